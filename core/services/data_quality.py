from __future__ import annotations

from datetime import timedelta
from typing import Iterable, Set

from django.db.models import Q, Sum
from django.utils import timezone

from core.conf import inventory_setting
from core.models import DataQualityAlert
from inventory.services import storage_capacity_status
from ledger.models import Batch
from storage.models import StorageLocation
from transfers.models import TransferRequest


def run_data_quality_checks() -> Iterable[DataQualityAlert]:
    """Run integrity checks and persist alert records."""

    active_codes: Set[str] = set()
    active_codes.update(_check_storage_capacity())
    active_codes.update(_check_inactive_locations())
    active_codes.update(_check_ledger_drift())
    active_codes.update(_check_stale_transfers())

    _resolve_inactive_alerts(active_codes)
    return DataQualityAlert.objects.filter(resolved_at__isnull=True).order_by("-detected_at")


def _check_storage_capacity() -> Set[str]:
    codes: Set[str] = set()
    for usage in storage_capacity_status():
        if usage.capacity_kg > 0 and usage.current_usage_kg > usage.capacity_kg:
            code = f"storage-capacity-{usage.location_id}"
            _upsert_alert(
                code,
                category="Storage",
                message=(
                    f"{usage.name} holds {usage.current_usage_kg} kg which exceeds "
                    f"its capacity of {usage.capacity_kg} kg."
                ),
                severity="critical",
                model_label="storage.StorageLocation",
                record_id=str(usage.location_id),
            )
            codes.add(code)
    return codes


def _check_inactive_locations() -> Set[str]:
    codes: Set[str] = set()
    locations = (
        StorageLocation.objects
        .filter(status=StorageLocation.STATUS_INACTIVE)
        .annotate(on_hand=Sum("batches__weight_grams"), pieces=Sum("batches__pieces"))
        .filter(Q(on_hand__gt=0) | Q(pieces__gt=0))
    )
    for location in locations:
        code = f"storage-inactive-stock-{location.pk}"
        _upsert_alert(
            code,
            category="Storage",
            message=f"{location.name} is inactive but still holds {location.pieces or 0} pieces.",
            severity="warning",
            model_label="storage.StorageLocation",
            record_id=str(location.pk),
        )
        codes.add(code)
    return codes


def _check_ledger_drift() -> Set[str]:
    codes: Set[str] = set()
    batches = (
        Batch.objects
        .annotate(moved_pieces=Sum("movements__pieces"), moved_grams=Sum("movements__weight_grams"))
        .only("id", "pieces", "weight_grams")
    )
    for batch in batches:
        if (batch.moved_pieces or 0) == batch.pieces and (batch.moved_grams or 0) == batch.weight_grams:
            continue
        code = f"ledger-drift-{batch.pk}"
        _upsert_alert(
            code,
            category="Ledger",
            message=(
                f"Batch {batch.pk} shows {batch.pieces} pcs / {batch.weight_grams} g but its movements "
                f"add up to {batch.moved_pieces or 0} pcs / {batch.moved_grams or 0} g."
            ),
            severity="critical",
            model_label="ledger.Batch",
            record_id=str(batch.pk),
        )
        codes.add(code)
    return codes


def _check_stale_transfers() -> Set[str]:
    codes: Set[str] = set()
    cutoff = timezone.now() - timedelta(days=inventory_setting("STALE_TRANSFER_DAYS"))
    stale = TransferRequest.objects.filter(
        status=TransferRequest.STATUS_PENDING, created_at__lt=cutoff
    ).select_related("source_location", "destination_location")
    for request in stale:
        code = f"transfer-stale-{request.pk}"
        _upsert_alert(
            code,
            category="Transfers",
            message=(
                f"Transfer #{request.pk} (size {request.size_class}, {request.source_location.name} -> "
                f"{request.destination_location.name}) has been pending since {request.created_at:%Y-%m-%d}."
            ),
            severity="warning",
            model_label="transfers.TransferRequest",
            record_id=str(request.pk),
        )
        codes.add(code)
    return codes


def _upsert_alert(
    code: str,
    *,
    category: str,
    message: str,
    severity: str,
    model_label: str,
    record_id: str,
) -> DataQualityAlert:
    defaults = {
        "category": category,
        "message": message,
        "severity": severity,
        "model_label": model_label,
        "record_id": record_id,
    }
    alert, created = DataQualityAlert.objects.get_or_create(code=code, defaults=defaults)
    if not created:
        updated_fields = []
        for field, value in defaults.items():
            if getattr(alert, field) != value:
                setattr(alert, field, value)
                updated_fields.append(field)
        if alert.resolved_at is not None:
            alert.resolved_at = None
            alert.auto_resolved = False
            updated_fields.extend(["resolved_at", "auto_resolved"])
        if updated_fields:
            alert.save(update_fields=list(set(updated_fields)))
    return alert


def _resolve_inactive_alerts(active_codes: Set[str]) -> None:
    inactive_qs = DataQualityAlert.objects.filter(resolved_at__isnull=True).exclude(code__in=active_codes)
    if inactive_qs.exists():
        inactive_qs.update(resolved_at=timezone.now(), auto_resolved=True)
