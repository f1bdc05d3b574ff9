from django.db import models
from django.utils import timezone


class StorageLocation(models.Model):
    LOCATION_TYPES = [
        ("cold_storage", "Cold Storage"),
        ("freezer", "Freezer"),
        ("ambient", "Ambient Store"),
        ("processing_area", "Processing Area"),
    ]

    STATUS_ACTIVE = "active"
    STATUS_INACTIVE = "inactive"
    STATUS_CHOICES = [
        (STATUS_ACTIVE, "Active"),
        (STATUS_INACTIVE, "Inactive"),
    ]

    name = models.CharField(max_length=100, unique=True)
    location_type = models.CharField(max_length=30, choices=LOCATION_TYPES, default="cold_storage")
    description = models.TextField(blank=True)
    capacity_kg = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=0,
        help_text="Total capacity in kilograms. Current usage is always derived from the batch ledger.",
    )
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE, db_index=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.get_location_type_display()})"

    @property
    def is_active(self):
        return self.status == self.STATUS_ACTIVE
