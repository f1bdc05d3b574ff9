"""Derive stock levels from the batch ledger.

Nothing here is stored: every figure is recomputed from ``ledger.Batch`` rows
on each call, so location usage can never drift from the batches that make it
up. Weights are summed as integer grams and only turned into kilograms when a
row is built.
"""
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.db.models import Sum
from django.utils import timezone

from ledger.models import Batch
from ledger.services import lock_batches
from storage.models import StorageLocation
from storage.services import get_location

GRAMS_PER_KG = Decimal(1000)
PERCENT_QUANT = Decimal("0.01")


def grams_to_kg(grams) -> Decimal:
    return Decimal(int(grams or 0)) / GRAMS_PER_KG


def kg_to_grams(kg) -> int:
    return int((Decimal(str(kg)) * GRAMS_PER_KG).to_integral_value(rounding=ROUND_HALF_UP))


def utilization_percent(usage_grams, capacity_kg) -> Decimal:
    capacity = Decimal(capacity_kg or 0)
    if capacity <= 0:
        return Decimal("0.00")
    ratio = grams_to_kg(usage_grams) / capacity * Decimal(100)
    return ratio.quantize(PERCENT_QUANT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ContributingBatch:
    batch_id: int
    batch_number: str
    pieces: int
    weight_grams: int
    created_at: datetime
    processing_date: Optional[date]
    farmer_name: str
    is_transfer: bool = False
    transfer_id: Optional[int] = None
    transfer_source_location_id: Optional[int] = None
    transfer_source_location_name: str = ""

    @property
    def weight_kg(self) -> Decimal:
        return grams_to_kg(self.weight_grams)

    @classmethod
    def from_batch(cls, batch):
        sorting = batch.sorting_batch
        source = batch.transfer_source_location_name or "unknown location"
        if sorting is not None and sorting.farmer_name:
            farmer = sorting.farmer_name
            if batch.is_transfer:
                farmer = f"{farmer} (Transferred from {source})"
        elif batch.is_transfer:
            farmer = f"Transfer from {source}"
        else:
            farmer = "Unknown"
        return cls(
            batch_id=batch.pk,
            batch_number=batch.label,
            pieces=batch.pieces,
            weight_grams=batch.weight_grams,
            created_at=batch.created_at,
            processing_date=sorting.processing_date if sorting is not None else None,
            farmer_name=farmer,
            is_transfer=batch.is_transfer,
            transfer_id=batch.transfer_id,
            transfer_source_location_id=batch.transfer_source_location_id,
            transfer_source_location_name=batch.transfer_source_location_name,
        )

    def as_dict(self):
        data = asdict(self)
        data["weight_kg"] = self.weight_kg
        return data


@dataclass(frozen=True)
class LocationUsage:
    location_id: int
    name: str
    location_type: str
    status: str
    capacity_kg: Decimal
    usage_grams: int

    @property
    def current_usage_kg(self) -> Decimal:
        return grams_to_kg(self.usage_grams)

    @property
    def capacity_grams(self) -> int:
        return kg_to_grams(self.capacity_kg)

    @property
    def available_grams(self) -> int:
        return max(0, self.capacity_grams - self.usage_grams)

    @property
    def available_capacity_kg(self) -> Decimal:
        return max(Decimal(0), Decimal(self.capacity_kg) - self.current_usage_kg)

    @property
    def utilization_percent(self) -> Decimal:
        return utilization_percent(self.usage_grams, self.capacity_kg)

    @classmethod
    def for_location(cls, location, usage_grams):
        return cls(
            location_id=location.pk,
            name=location.name,
            location_type=location.location_type,
            status=location.status,
            capacity_kg=Decimal(location.capacity_kg or 0),
            usage_grams=int(usage_grams or 0),
        )

    def as_dict(self):
        return {
            "storage_location_id": self.location_id,
            "storage_location_name": self.name,
            "storage_location_type": self.location_type,
            "storage_status": self.status,
            "capacity_kg": self.capacity_kg,
            "current_usage_kg": self.current_usage_kg,
            "available_capacity_kg": self.available_capacity_kg,
            "utilization_percent": self.utilization_percent,
        }


@dataclass(frozen=True)
class InventoryRow:
    location: LocationUsage
    size_class: Optional[int]
    total_pieces: int = 0
    total_weight_grams: int = 0
    batches: tuple = field(default_factory=tuple)

    @property
    def storage_location_id(self):
        return self.location.location_id

    @property
    def storage_location_name(self):
        return self.location.name

    @property
    def storage_location_type(self):
        return self.location.location_type

    @property
    def storage_status(self):
        return self.location.status

    @property
    def capacity_kg(self):
        return self.location.capacity_kg

    @property
    def current_usage_kg(self):
        return self.location.current_usage_kg

    @property
    def available_capacity_kg(self):
        return self.location.available_capacity_kg

    @property
    def utilization_percent(self):
        return self.location.utilization_percent

    @property
    def total_weight_kg(self) -> Decimal:
        return grams_to_kg(self.total_weight_grams)

    @property
    def batch_count(self) -> int:
        return len(self.batches)

    def as_dict(self):
        data = self.location.as_dict()
        data.update(
            {
                "size": self.size_class,
                "total_quantity": self.total_pieces,
                "total_weight_grams": self.total_weight_grams,
                "total_weight_kg": self.total_weight_kg,
                "batch_count": self.batch_count,
                "contributing_batches": [b.as_dict() for b in self.batches],
            }
        )
        return data


@dataclass(frozen=True)
class StockLevel:
    pieces: int
    weight_grams: int
    batches: tuple = ()

    def covers(self, pieces, weight_grams) -> bool:
        return pieces <= self.pieces and weight_grams <= self.weight_grams


def compute_inventory():
    """Current stock per (location, size class), oldest batches first.

    Every location appears at least once; a location holding nothing yields a
    single row with ``size_class=None``.
    """
    locations = list(StorageLocation.objects.order_by("name", "id"))
    batches = (
        Batch.objects
        .exclude(pieces=0, weight_grams=0)
        .select_related("sorting_batch")
        .order_by("created_at", "id")
    )

    by_location = defaultdict(lambda: defaultdict(list))
    usage = defaultdict(int)
    for batch in batches:
        by_location[batch.storage_location_id][batch.size_class].append(batch)
        usage[batch.storage_location_id] += batch.weight_grams

    rows = []
    for location in locations:
        location_usage = LocationUsage.for_location(location, usage[location.pk])
        sizes = by_location.get(location.pk)
        if not sizes:
            rows.append(InventoryRow(location=location_usage, size_class=None))
            continue
        for size_class in sorted(sizes):
            members = sizes[size_class]
            rows.append(
                InventoryRow(
                    location=location_usage,
                    size_class=size_class,
                    total_pieces=sum(b.pieces for b in members),
                    total_weight_grams=sum(b.weight_grams for b in members),
                    batches=tuple(ContributingBatch.from_batch(b) for b in members),
                )
            )
    return rows


def available_stock(location_id, size_class, *, lock=False) -> StockLevel:
    """Stock of one size class at one location.

    With ``lock=True`` the contributing batch rows are locked for the rest of
    the surrounding transaction and returned oldest first on ``batches``.
    """
    if lock:
        members = lock_batches(location_id, size_class)
        return StockLevel(
            pieces=sum(b.pieces for b in members),
            weight_grams=sum(b.weight_grams for b in members),
            batches=tuple(members),
        )
    totals = Batch.objects.filter(storage_location_id=location_id, size_class=size_class).aggregate(
        pieces=Sum("pieces"), weight_grams=Sum("weight_grams")
    )
    return StockLevel(pieces=totals["pieces"] or 0, weight_grams=totals["weight_grams"] or 0)


def location_usage_grams(location_id) -> int:
    total = Batch.objects.filter(storage_location_id=location_id).aggregate(total=Sum("weight_grams"))["total"]
    return int(total or 0)


def location_usage(location_id) -> LocationUsage:
    location = get_location(location_id)
    return LocationUsage.for_location(location, location_usage_grams(location.pk))


def storage_capacity_status(active_only=False):
    qs = StorageLocation.objects.annotate(usage=Sum("batches__weight_grams")).order_by("name")
    if active_only:
        qs = qs.filter(status=StorageLocation.STATUS_ACTIVE)
    return [LocationUsage.for_location(location, location.usage) for location in qs]


def available_locations_for_transfer(exclude_location_id=None):
    """Active locations that can receive stock, with their live free capacity."""
    usages = storage_capacity_status(active_only=True)
    if exclude_location_id is not None:
        usages = [u for u in usages if str(u.location_id) != str(exclude_location_id)]
    return usages


@dataclass(frozen=True)
class AgedBatch:
    batch: ContributingBatch
    storage_location_name: str
    size_class: int
    days_in_storage: int


def oldest_batches(limit=10):
    """The oldest batches still holding stock, first candidates for removal."""
    now = timezone.now()
    qs = (
        Batch.objects
        .exclude(pieces=0, weight_grams=0)
        .select_related("sorting_batch", "storage_location")
        .order_by("created_at", "id")[:limit]
    )
    return [
        AgedBatch(
            batch=ContributingBatch.from_batch(b),
            storage_location_name=b.storage_location.name,
            size_class=b.size_class,
            days_in_storage=max(0, (now - b.created_at).days),
        )
        for b in qs
    ]
