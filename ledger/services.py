"""Write and read access to the batch ledger.

Everything that changes ``Batch`` or ``BatchMovement`` rows goes through this
module: the production side calls ``record_production`` and the transfer engine
calls the debit/credit pair. Each write appends a ``BatchMovement`` so a
batch's current totals can always be re-derived from its history.
"""
import logging

from django.db import transaction
from django.utils import timezone

from core.conf import inventory_setting
from core.errors import (
    InsufficientBatchQuantity,
    InvalidBatchReference,
    InvalidQuantity,
    InvalidSizeClass,
)
from storage.services import get_location, require_active_location

from .models import Batch, BatchMovement, SortingBatch

logger = logging.getLogger(__name__)


def validate_size_class(size_class):
    max_size = inventory_setting("MAX_SIZE_CLASS")
    if isinstance(size_class, bool) or not isinstance(size_class, int) or not 0 <= size_class <= max_size:
        raise InvalidSizeClass(f"Size class must be an integer between 0 and {max_size}, got {size_class!r}.")
    return size_class


def validate_quantity(pieces, weight_grams):
    for label, value in (("pieces", pieces), ("weight_grams", weight_grams)):
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidQuantity(f"{label} must be a positive integer, got {value!r}.")


def _resolve_sorting_batch(source_batch_ref):
    if source_batch_ref is None:
        return None
    if isinstance(source_batch_ref, SortingBatch):
        return source_batch_ref
    try:
        return SortingBatch.objects.get(pk=source_batch_ref)
    except (SortingBatch.DoesNotExist, ValueError, TypeError):
        raise InvalidBatchReference(f"Sorting batch {source_batch_ref!r} does not exist.")


def record_production(location_id, size_class, pieces, weight_grams, source_batch_ref=None, *, created_at=None):
    """Place freshly sorted fish into a storage location and return the batch id."""
    location = require_active_location(location_id)
    validate_size_class(size_class)
    validate_quantity(pieces, weight_grams)
    sorting_batch = _resolve_sorting_batch(source_batch_ref)

    with transaction.atomic():
        batch = Batch.objects.create(
            sorting_batch=sorting_batch,
            storage_location=location,
            size_class=size_class,
            pieces=pieces,
            weight_grams=weight_grams,
            created_at=created_at or timezone.now(),
        )
        BatchMovement.objects.create(
            batch=batch,
            kind=BatchMovement.KIND_PRODUCTION,
            pieces=pieces,
            weight_grams=weight_grams,
            created_at=batch.created_at,
        )
    logger.info(
        "Recorded production batch %s: size %s, %s pcs / %s g at %s",
        batch.pk, size_class, pieces, weight_grams, location.name,
    )
    return batch.pk


def record_transfer_credit(
    destination_location_id,
    size_class,
    pieces,
    weight_grams,
    transfer_id,
    source_location_id,
    source_location_name,
    *,
    sorting_batch_id=None,
):
    """Create the batch that receives transferred stock at the destination.

    ``sorting_batch_id`` carries the sorting batch of the source batch the fish
    were drawn from, so the destination keeps its label and farmer.
    """
    destination = get_location(destination_location_id)
    validate_size_class(size_class)
    validate_quantity(pieces, weight_grams)

    with transaction.atomic():
        now = timezone.now()
        batch = Batch.objects.create(
            sorting_batch_id=sorting_batch_id,
            storage_location=destination,
            size_class=size_class,
            pieces=pieces,
            weight_grams=weight_grams,
            created_at=now,
            transfer_source_location_id=source_location_id,
            transfer_source_location_name=source_location_name or "",
            transfer_id=transfer_id,
        )
        BatchMovement.objects.create(
            batch=batch,
            kind=BatchMovement.KIND_TRANSFER_CREDIT,
            pieces=pieces,
            weight_grams=weight_grams,
            transfer_id=transfer_id,
            created_at=now,
        )
    logger.info(
        "Credited %s pcs / %s g size %s to %s from %s (transfer %s)",
        pieces, weight_grams, size_class, destination.name, source_location_name, transfer_id,
    )
    return batch.pk


def record_transfer_debit(batch_id, pieces_to_remove, grams_to_remove, *, transfer_id=None):
    """Reduce one batch in place.

    Removing more than the batch holds raises ``InsufficientBatchQuantity``;
    nothing is clamped. A batch reduced to zero stays in the ledger.
    """
    if pieces_to_remove < 0 or grams_to_remove < 0:
        raise InvalidQuantity("Debit amounts cannot be negative.")
    if pieces_to_remove == 0 and grams_to_remove == 0:
        raise InvalidQuantity("Debit must remove pieces or weight.")

    with transaction.atomic():
        batch = Batch.objects.select_for_update().get(pk=batch_id)
        if pieces_to_remove > batch.pieces or grams_to_remove > batch.weight_grams:
            error = InsufficientBatchQuantity(
                batch.pk, pieces_to_remove, grams_to_remove, batch.pieces, batch.weight_grams
            )
            logger.error("Ledger invariant breach: %s", error)
            raise error

        batch.pieces -= pieces_to_remove
        batch.weight_grams -= grams_to_remove
        batch.save(update_fields=["pieces", "weight_grams"])
        BatchMovement.objects.create(
            batch=batch,
            kind=BatchMovement.KIND_TRANSFER_DEBIT,
            pieces=-pieces_to_remove,
            weight_grams=-grams_to_remove,
            transfer_id=transfer_id,
        )
    logger.info(
        "Debited %s pcs / %s g from batch %s (transfer %s); %s pcs / %s g remain",
        pieces_to_remove, grams_to_remove, batch.pk, transfer_id, batch.pieces, batch.weight_grams,
    )


def _fifo_queryset(location_id, size_class, include_depleted=False):
    qs = Batch.objects.filter(storage_location_id=location_id, size_class=size_class)
    if not include_depleted:
        qs = qs.exclude(pieces=0, weight_grams=0)
    return qs.order_by("created_at", "id")


def list_batches(location_id, size_class, *, include_depleted=False):
    """Batches for one (location, size class), oldest first."""
    get_location(location_id)
    return list(_fifo_queryset(location_id, size_class, include_depleted).select_related("sorting_batch"))


def lock_batches(location_id, size_class):
    """Lock and return the live batches of one (location, size class) in FIFO order.

    Must be called inside a transaction; competing writers on the same pair
    wait here until the holder commits.
    """
    return list(_fifo_queryset(location_id, size_class).select_for_update())
