import django.db.models.deletion
import django.utils.timezone
import ledger.models
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("storage", "0001_initial"),
        ("transfers", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="SortingBatch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("batch_number", models.CharField(max_length=40, unique=True)),
                ("farmer_name", models.CharField(blank=True, max_length=120)),
                ("processing_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Batch",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("size_class", models.PositiveSmallIntegerField(validators=[ledger.models.validate_size_class_limit])),
                ("pieces", models.PositiveIntegerField(default=0)),
                ("weight_grams", models.PositiveBigIntegerField(default=0)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("transfer_source_location_name", models.CharField(blank=True, max_length=100)),
                (
                    "sorting_batch",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="ledger.sortingbatch",
                    ),
                ),
                (
                    "storage_location",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="batches",
                        to="storage.storagelocation",
                    ),
                ),
                (
                    "transfer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="credited_batches",
                        to="transfers.transferrequest",
                    ),
                ),
                (
                    "transfer_source_location",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transferred_out_batches",
                        to="storage.storagelocation",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(fields=["storage_location", "size_class", "created_at"], name="ledger_batch_fifo_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("pieces__gte", 0), ("weight_grams__gte", 0)),
                        name="ledger_batch_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BatchMovement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("production", "Production"),
                            ("transfer_debit", "Transfer out"),
                            ("transfer_credit", "Transfer in"),
                        ],
                        max_length=20,
                    ),
                ),
                ("pieces", models.IntegerField(help_text="Signed piece delta applied to the batch.")),
                ("weight_grams", models.BigIntegerField(help_text="Signed weight delta in grams.")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "batch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="ledger.batch",
                    ),
                ),
                (
                    "transfer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="movements",
                        to="transfers.transferrequest",
                    ),
                ),
            ],
            options={
                "ordering": ["created_at", "id"],
            },
        ),
    ]
