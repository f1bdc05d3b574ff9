import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.errors import InvalidTransition


class TransferRequest(models.Model):
    STATUS_PENDING = "pending"
    STATUS_APPROVED = "approved"
    STATUS_COMPLETED = "completed"
    STATUS_DECLINED = "declined"
    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_APPROVED, "Approved"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_DECLINED, "Declined"),
    ]

    ALLOWED_TRANSITIONS = {
        STATUS_PENDING: {STATUS_APPROVED, STATUS_DECLINED},
        STATUS_APPROVED: {STATUS_COMPLETED},
        STATUS_COMPLETED: set(),
        STATUS_DECLINED: set(),
    }

    # Rows created by one request share this key.
    batch_group_id = models.UUIDField(default=uuid.uuid4, db_index=True)
    source_location = models.ForeignKey(
        "storage.StorageLocation",
        on_delete=models.PROTECT,
        related_name="outgoing_transfers",
    )
    destination_location = models.ForeignKey(
        "storage.StorageLocation",
        on_delete=models.PROTECT,
        related_name="incoming_transfers",
    )
    size_class = models.PositiveSmallIntegerField()
    requested_pieces = models.PositiveIntegerField()
    requested_weight_grams = models.PositiveBigIntegerField()
    moved_pieces = models.PositiveIntegerField(null=True, blank=True)
    moved_weight_grams = models.PositiveBigIntegerField(null=True, blank=True)
    status = models.CharField(max_length=12, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="requested_transfers",
        null=True,
        blank=True,
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="approved_transfers",
        null=True,
        blank=True,
    )
    created_at = models.DateTimeField(default=timezone.now)
    approved_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ["-created_at", "size_class"]
        permissions = [
            ("approve_transferrequest", "Can approve or decline transfer requests"),
        ]

    def __str__(self):
        return (
            f"Transfer #{self.pk} size {self.size_class}: "
            f"{self.source_location_id} -> {self.destination_location_id} ({self.status})"
        )

    @property
    def is_pending(self):
        return self.status == self.STATUS_PENDING

    def transition_to(self, target, *, actor=None, at=None):
        """Apply one state-machine step without saving."""
        if target not in self.ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidTransition(self.pk, self.status, target)
        at = at or timezone.now()
        if target in (self.STATUS_APPROVED, self.STATUS_DECLINED):
            self.approved_by = actor
            self.approved_at = at
        elif target == self.STATUS_COMPLETED:
            self.completed_at = at
        self.status = target
