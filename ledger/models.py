from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.conf import inventory_setting


def validate_size_class_limit(value):
    max_size = inventory_setting("MAX_SIZE_CLASS")
    if value > max_size:
        raise ValidationError(f"Size class must be at most {max_size}.", code="invalid_size_class")


class SortingBatch(models.Model):
    """Reference to the sorting run that produced fish, owned by the production side."""

    batch_number = models.CharField(max_length=40, unique=True)
    farmer_name = models.CharField(max_length=120, blank=True)
    processing_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return self.batch_number


class Batch(models.Model):
    """Fish of one size class sitting in one storage location.

    Rows are reduced in place when stock leaves and are never deleted; the
    ``created_at`` timestamp is the FIFO key and is never rewritten.
    """

    sorting_batch = models.ForeignKey(
        SortingBatch,
        on_delete=models.PROTECT,
        related_name="batches",
        null=True,
        blank=True,
    )
    storage_location = models.ForeignKey(
        "storage.StorageLocation",
        on_delete=models.PROTECT,
        related_name="batches",
    )
    size_class = models.PositiveSmallIntegerField(validators=[validate_size_class_limit])
    pieces = models.PositiveIntegerField(default=0)
    weight_grams = models.PositiveBigIntegerField(default=0)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    # Provenance for stock that arrived through a transfer.
    transfer_source_location = models.ForeignKey(
        "storage.StorageLocation",
        on_delete=models.PROTECT,
        related_name="transferred_out_batches",
        null=True,
        blank=True,
    )
    transfer_source_location_name = models.CharField(max_length=100, blank=True)
    transfer = models.ForeignKey(
        "transfers.TransferRequest",
        on_delete=models.PROTECT,
        related_name="credited_batches",
        null=True,
        blank=True,
    )

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["storage_location", "size_class", "created_at"], name="ledger_batch_fifo_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(pieces__gte=0) & Q(weight_grams__gte=0),
                name="ledger_batch_non_negative",
            ),
        ]

    def __str__(self):
        return f"Batch #{self.pk} size {self.size_class} @ {self.storage_location_id}"

    @property
    def is_depleted(self):
        return self.pieces == 0 and self.weight_grams == 0

    @property
    def is_transfer(self):
        return self.transfer_id is not None

    @property
    def label(self):
        if self.sorting_batch_id:
            return self.sorting_batch.batch_number
        if self.transfer_id:
            return f"TRANSFER-{self.transfer_id}"
        return f"BATCH-{self.pk}"


class BatchMovement(models.Model):
    KIND_PRODUCTION = "production"
    KIND_TRANSFER_DEBIT = "transfer_debit"
    KIND_TRANSFER_CREDIT = "transfer_credit"
    KIND_CHOICES = [
        (KIND_PRODUCTION, "Production"),
        (KIND_TRANSFER_DEBIT, "Transfer out"),
        (KIND_TRANSFER_CREDIT, "Transfer in"),
    ]

    batch = models.ForeignKey(Batch, on_delete=models.PROTECT, related_name="movements")
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    pieces = models.IntegerField(help_text="Signed piece delta applied to the batch.")
    weight_grams = models.BigIntegerField(help_text="Signed weight delta in grams.")
    transfer = models.ForeignKey(
        "transfers.TransferRequest",
        on_delete=models.PROTECT,
        related_name="movements",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.get_kind_display()} {self.pieces:+d} pcs / {self.weight_grams:+d} g on batch {self.batch_id}"
