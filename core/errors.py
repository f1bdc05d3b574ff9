"""Error taxonomy shared by the storage, ledger, inventory and transfer apps.

Two families:

* ``StockError`` subclasses are expected business conditions. They subclass
  Django's ``ValidationError`` so forms and views can treat them as ordinary
  validation failures, and each carries a stable ``code`` for API callers.
* ``IntegrityBreach`` subclasses mean an invariant was violated upstream. They
  are never caught inside the services; callers see them as server errors.
"""
from dataclasses import asdict, dataclass

from django.core.exceptions import ValidationError


@dataclass(frozen=True)
class SizeFailure:
    """Why one size class of a transfer could not be created or approved."""

    size_class: int
    code: str
    message: str
    transfer_id: int | None = None

    def as_dict(self):
        return asdict(self)


class StockError(ValidationError):
    default_code = "stock_error"

    def __init__(self, message, *, code=None, failures=()):
        super().__init__(message, code=code or self.default_code)
        self.failures = list(failures)

    @property
    def text(self):
        return self.messages[0] if self.messages else ""

    def as_dict(self):
        return {
            "error": self.code,
            "message": self.text,
            "failures": [f.as_dict() for f in self.failures],
        }


class InvalidLocation(StockError):
    default_code = "invalid_location"


class LocationNotFound(InvalidLocation):
    default_code = "location_not_found"


class InvalidQuantity(StockError):
    default_code = "invalid_quantity"


class InvalidSizeClass(StockError):
    default_code = "invalid_size_class"


class InvalidBatchReference(StockError):
    default_code = "invalid_batch_reference"


class InsufficientStock(StockError):
    default_code = "insufficient_stock"


class InsufficientCapacity(StockError):
    default_code = "insufficient_capacity"


class DuplicateTransfer(StockError):
    default_code = "duplicate_transfer"


class TransferNotFound(StockError):
    default_code = "transfer_not_found"


class TransferNotPending(StockError):
    default_code = "transfer_not_pending"


class ConcurrentModification(Exception):
    """A conflicting transaction kept winning until the retry budget ran out."""


class IntegrityBreach(Exception):
    pass


class InsufficientBatchQuantity(IntegrityBreach):
    def __init__(self, batch_id, requested_pieces, requested_grams, available_pieces, available_grams):
        self.batch_id = batch_id
        self.requested_pieces = requested_pieces
        self.requested_grams = requested_grams
        self.available_pieces = available_pieces
        self.available_grams = available_grams
        super().__init__(
            f"Batch {batch_id} holds {available_pieces} pcs / {available_grams} g; "
            f"cannot remove {requested_pieces} pcs / {requested_grams} g."
        )


class InvalidTransition(IntegrityBreach):
    def __init__(self, transfer_id, current, target):
        self.transfer_id = transfer_id
        self.current = current
        self.target = target
        super().__init__(f"Transfer {transfer_id} cannot move from {current} to {target}.")
