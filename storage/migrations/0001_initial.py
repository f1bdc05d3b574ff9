import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="StorageLocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100, unique=True)),
                (
                    "location_type",
                    models.CharField(
                        choices=[
                            ("cold_storage", "Cold Storage"),
                            ("freezer", "Freezer"),
                            ("ambient", "Ambient Store"),
                            ("processing_area", "Processing Area"),
                        ],
                        default="cold_storage",
                        max_length=30,
                    ),
                ),
                ("description", models.TextField(blank=True)),
                (
                    "capacity_kg",
                    models.DecimalField(
                        decimal_places=3,
                        default=0,
                        help_text="Total capacity in kilograms. Current usage is always derived from the batch ledger.",
                        max_digits=12,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("inactive", "Inactive")],
                        db_index=True,
                        default="active",
                        max_length=10,
                    ),
                ),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
    ]
