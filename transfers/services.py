"""Transfer request workflow: create, approve and decline grouped requests.

A user asking to move several size classes from one location to another
produces one ``TransferRequest`` per size class, all sharing a
``batch_group_id``. Approval and decline always act on the whole group of
still-pending rows.

Approval re-reads availability under row locks, drains source batches oldest
first and credits the destination with one new batch per source batch drawn,
so the sorting batch behind the fish travels with it. Rows are locked in a
fixed order: destination location, then requests, then source batches. Each
call runs in one transaction; serialisation failures and deadlocks are retried
a few times before ``ConcurrentModification`` reaches the caller.
"""
import logging
import uuid
from dataclasses import dataclass

from django.db import OperationalError, transaction
from django.utils import timezone

from core.conf import inventory_setting
from core.errors import (
    ConcurrentModification,
    DuplicateTransfer,
    InsufficientCapacity,
    InsufficientStock,
    InvalidLocation,
    InvalidQuantity,
    SizeFailure,
    TransferNotFound,
    TransferNotPending,
)
from inventory.services import available_stock, grams_to_kg, location_usage
from ledger.services import (
    record_transfer_credit,
    record_transfer_debit,
    validate_quantity,
    validate_size_class,
)
from storage.services import lock_location, require_active_location

from .models import TransferRequest

logger = logging.getLogger(__name__)

RETRYABLE_SQLSTATES = {"40001", "40P01"}


@dataclass(frozen=True)
class ApprovalResult:
    group_id: uuid.UUID
    approved_ids: tuple
    failures: tuple

    @property
    def approved_count(self):
        return len(self.approved_ids)

    @property
    def ok(self):
        return not self.failures

    def as_dict(self):
        return {
            "group_id": str(self.group_id),
            "approved_count": self.approved_count,
            "approved_ids": list(self.approved_ids),
            "failures": [f.as_dict() for f in self.failures],
        }


@dataclass(frozen=True)
class DeclineResult:
    group_id: uuid.UUID
    declined_ids: tuple

    @property
    def declined_count(self):
        return len(self.declined_ids)

    def as_dict(self):
        return {
            "group_id": str(self.group_id),
            "declined_count": self.declined_count,
            "declined_ids": list(self.declined_ids),
        }


@dataclass(frozen=True)
class Draw:
    """One slice taken from one source batch."""

    batch_id: int
    pieces: int
    weight_grams: int
    sorting_batch_id: int | None = None


def _is_retryable(exc):
    cause = exc.__cause__
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate in RETRYABLE_SQLSTATES:
        return True
    return "database is locked" in str(exc).lower()


def _run_atomically(operation, label):
    attempts = max(1, int(inventory_setting("TRANSFER_MAX_RETRIES")))
    last_error = None
    for attempt in range(1, attempts + 1):
        try:
            with transaction.atomic():
                return operation()
        except OperationalError as exc:
            if not _is_retryable(exc):
                raise
            last_error = exc
            logger.warning("%s hit a write conflict (attempt %s/%s): %s", label, attempt, attempts, exc)
    raise ConcurrentModification(f"{label} kept conflicting after {attempts} attempts.") from last_error


def plan_fifo_depletion(batches, pieces, weight_grams):
    """Split a request for ``pieces`` weighing ``weight_grams`` across ``batches``.

    Pieces are taken oldest batch first. A batch used up completely hands over
    all of its weight. The last, partially used batch supplies exactly the
    weight still owed and keeps the rest, at least one gram, in place under
    its original timestamp. Requests the oldest batches cannot satisfy raise
    ``InsufficientStock``; the total moved always equals ``weight_grams``.
    """
    draws = []
    remaining = pieces
    owed = weight_grams
    for batch in batches:
        if remaining == 0:
            break
        if batch.pieces == 0:
            continue
        take = min(batch.pieces, remaining)
        remaining -= take
        if take < batch.pieces:
            grams = owed
            if not 0 < grams < batch.weight_grams:
                raise InsufficientStock(
                    f"Batch {batch.pk} holds {batch.pieces} pcs / {batch.weight_grams} g and cannot "
                    f"hand over {take} pcs weighing {grams} g."
                )
        else:
            grams = batch.weight_grams
            if grams == 0:
                raise InsufficientStock(f"Batch {batch.pk} holds {batch.pieces} pcs but no weight.")
        owed -= grams
        draws.append(
            Draw(
                batch_id=batch.pk,
                pieces=take,
                weight_grams=grams,
                sorting_batch_id=batch.sorting_batch_id,
            )
        )
    if remaining:
        raise InsufficientStock(f"Requested {pieces} pcs; only {pieces - remaining} pcs are in stock.")
    if owed:
        raise InsufficientStock(
            f"The {pieces} oldest pcs weigh {weight_grams - owed} g; requested {weight_grams} g."
        )
    return draws


def _plan_failure(size_class, exc, transfer_id=None):
    return SizeFailure(size_class, exc.code, f"Size {size_class}: {exc.text}", transfer_id)


def _normalise_sizes(requested_sizes):
    if not requested_sizes:
        raise InvalidQuantity("Choose at least one size class to transfer.")
    lines = []
    for size_class, amounts in requested_sizes.items():
        validate_size_class(size_class)
        try:
            pieces, weight_grams = amounts
        except (TypeError, ValueError):
            raise InvalidQuantity(f"Size {size_class}: expected (pieces, weight_grams), got {amounts!r}.")
        validate_quantity(pieces, weight_grams)
        lines.append((size_class, pieces, weight_grams))
    return sorted(lines)


def _stock_failure(size_class, stock, pieces, weight_grams, transfer_id=None):
    return SizeFailure(
        size_class=size_class,
        code=InsufficientStock.default_code,
        message=(
            f"Size {size_class}: requested {pieces} pcs / {grams_to_kg(weight_grams)} kg, "
            f"available {stock.pieces} pcs / {grams_to_kg(stock.weight_grams)} kg."
        ),
        transfer_id=transfer_id,
    )


def create_transfer_batch(source_location_id, destination_location_id, requested_sizes, requester=None, notes=""):
    """Queue a transfer of one or more size classes; returns the new request ids.

    ``requested_sizes`` maps size class to ``(pieces, weight_grams)``. Nothing
    is created unless every size class passes validation.
    """
    lines = _normalise_sizes(requested_sizes)

    def create():
        source = require_active_location(source_location_id)
        destination = require_active_location(destination_location_id)
        if source.pk == destination.pk:
            raise InvalidLocation("Source and destination must be different storage locations.")
        destination = lock_location(destination.pk)

        duplicates = [
            SizeFailure(size_class, DuplicateTransfer.default_code, f"Size {size_class}: an identical request is already pending.")
            for size_class, pieces, weight_grams in lines
            if TransferRequest.objects.filter(
                status=TransferRequest.STATUS_PENDING,
                source_location=source,
                destination_location=destination,
                size_class=size_class,
                requested_pieces=pieces,
                requested_weight_grams=weight_grams,
            ).exists()
        ]
        if duplicates:
            raise DuplicateTransfer(
                "A transfer request for these items already exists.", failures=duplicates
            )

        failures = []
        for size_class, pieces, weight_grams in lines:
            stock = available_stock(source.pk, size_class, lock=True)
            if not stock.covers(pieces, weight_grams):
                failures.append(_stock_failure(size_class, stock, pieces, weight_grams))
                continue
            try:
                plan_fifo_depletion(stock.batches, pieces, weight_grams)
            except InsufficientStock as exc:
                failures.append(_plan_failure(size_class, exc))
        if failures:
            raise InsufficientStock(
                f"Not enough stock at {source.name} for {len(failures)} size class(es).", failures=failures
            )

        total_grams = sum(weight_grams for _, _, weight_grams in lines)
        free = location_usage(destination.pk)
        if total_grams > free.available_grams:
            raise InsufficientCapacity(
                f"{destination.name} has {free.available_capacity_kg} kg free; "
                f"transfer needs {grams_to_kg(total_grams)} kg."
            )

        group_id = uuid.uuid4()
        created_at = timezone.now()
        ids = []
        for size_class, pieces, weight_grams in lines:
            request = TransferRequest.objects.create(
                batch_group_id=group_id,
                source_location=source,
                destination_location=destination,
                size_class=size_class,
                requested_pieces=pieces,
                requested_weight_grams=weight_grams,
                requested_by=requester,
                created_at=created_at,
                notes=notes or "",
            )
            ids.append(request.pk)
        logger.info(
            "Created transfer group %s: %s -> %s, sizes %s",
            group_id, source.name, destination.name, [size for size, _, _ in lines],
        )
        return ids

    return _run_atomically(create, "Transfer creation")


def _lock_pending_group(transfer_id, *, lock_destination=False):
    try:
        anchor = TransferRequest.objects.get(pk=transfer_id)
    except (TransferRequest.DoesNotExist, ValueError, TypeError):
        raise TransferNotFound(f"Transfer {transfer_id} does not exist.")
    if lock_destination:
        lock_location(anchor.destination_location_id)
    members = list(
        TransferRequest.objects
        .select_for_update()
        .filter(batch_group_id=anchor.batch_group_id, status=TransferRequest.STATUS_PENDING)
        .order_by("id")
    )
    if not members:
        raise TransferNotPending(f"Transfer {transfer_id} has already been {anchor.status}.")
    # Lock by id; process by size.
    members.sort(key=lambda m: (m.size_class, m.pk))
    return anchor, members


def approve_transfer_batch(transfer_id, approver=None) -> ApprovalResult:
    """Approve and fulfil every pending request in ``transfer_id``'s group.

    Requests that no longer fit current stock or destination capacity stay
    pending and are listed in ``failures``; the rest complete.
    """

    def approve():
        anchor, members = _lock_pending_group(transfer_id, lock_destination=True)
        group_id = anchor.batch_group_id

        try:
            source = require_active_location(anchor.source_location_id)
            destination = require_active_location(anchor.destination_location_id)
        except InvalidLocation as exc:
            failures = tuple(SizeFailure(m.size_class, exc.code, exc.text, m.pk) for m in members)
            logger.warning("Transfer group %s cannot be approved: %s", group_id, exc.text)
            return ApprovalResult(group_id=group_id, approved_ids=(), failures=failures)

        free_grams = location_usage(destination.pk).available_grams
        now = timezone.now()
        approved, failures = [], []
        for member in members:
            stock = available_stock(source.pk, member.size_class, lock=True)
            if not stock.covers(member.requested_pieces, member.requested_weight_grams):
                failures.append(
                    _stock_failure(
                        member.size_class, stock, member.requested_pieces, member.requested_weight_grams, member.pk
                    )
                )
                continue

            try:
                draws = plan_fifo_depletion(stock.batches, member.requested_pieces, member.requested_weight_grams)
            except InsufficientStock as exc:
                failures.append(_plan_failure(member.size_class, exc, member.pk))
                continue
            moved_grams = member.requested_weight_grams
            if moved_grams > free_grams:
                failures.append(
                    SizeFailure(
                        member.size_class,
                        InsufficientCapacity.default_code,
                        f"Size {member.size_class}: {destination.name} has {grams_to_kg(free_grams)} kg free, "
                        f"needs {grams_to_kg(moved_grams)} kg.",
                        member.pk,
                    )
                )
                continue

            for draw in draws:
                record_transfer_debit(draw.batch_id, draw.pieces, draw.weight_grams, transfer_id=member.pk)
                record_transfer_credit(
                    destination.pk,
                    member.size_class,
                    draw.pieces,
                    draw.weight_grams,
                    member.pk,
                    source.pk,
                    source.name,
                    sorting_batch_id=draw.sorting_batch_id,
                )
            free_grams -= moved_grams

            member.moved_pieces = member.requested_pieces
            member.moved_weight_grams = moved_grams
            member.transition_to(TransferRequest.STATUS_APPROVED, actor=approver, at=now)
            member.transition_to(TransferRequest.STATUS_COMPLETED, at=now)
            member.save(
                update_fields=[
                    "status", "approved_by", "approved_at", "completed_at", "moved_pieces", "moved_weight_grams",
                ]
            )
            approved.append(member.pk)

        if failures:
            logger.warning(
                "Transfer group %s: %s approved, %s left pending (%s)",
                group_id, len(approved), len(failures), [f.size_class for f in failures],
            )
        else:
            logger.info("Transfer group %s fully approved (%s requests)", group_id, len(approved))
        return ApprovalResult(group_id=group_id, approved_ids=tuple(approved), failures=tuple(failures))

    return _run_atomically(approve, f"Approval of transfer {transfer_id}")


def decline_transfer_batch(transfer_id, approver=None) -> DeclineResult:
    """Decline every pending request in the group. The ledger is not touched."""

    def decline():
        anchor, members = _lock_pending_group(transfer_id)
        now = timezone.now()
        for member in members:
            member.transition_to(TransferRequest.STATUS_DECLINED, actor=approver, at=now)
            member.save(update_fields=["status", "approved_by", "approved_at"])
        logger.info("Declined transfer group %s (%s requests)", anchor.batch_group_id, len(members))
        return DeclineResult(group_id=anchor.batch_group_id, declined_ids=tuple(m.pk for m in members))

    return _run_atomically(decline, f"Decline of transfer {transfer_id}")


def transfer_group(transfer_id):
    try:
        anchor = TransferRequest.objects.get(pk=transfer_id)
    except (TransferRequest.DoesNotExist, ValueError, TypeError):
        raise TransferNotFound(f"Transfer {transfer_id} does not exist.")
    return list(TransferRequest.objects.filter(batch_group_id=anchor.batch_group_id).order_by("size_class", "id"))


def pending_transfers():
    return list(
        TransferRequest.objects
        .filter(status=TransferRequest.STATUS_PENDING)
        .select_related("source_location", "destination_location", "requested_by")
        .order_by("-created_at", "size_class")
    )


def transfer_history(limit=100):
    return list(
        TransferRequest.objects
        .select_related("source_location", "destination_location", "requested_by", "approved_by")
        .order_by("-created_at", "size_class")[:limit]
    )
