"""Lookups over the storage location registry."""
import logging

from django.db import transaction

from core.errors import InvalidLocation, LocationNotFound

from .models import StorageLocation

logger = logging.getLogger(__name__)


def get_location(location_id) -> StorageLocation:
    try:
        return StorageLocation.objects.get(pk=location_id)
    except (StorageLocation.DoesNotExist, ValueError, TypeError):
        raise LocationNotFound(f"Storage location {location_id} does not exist.")


def lock_location(location_id) -> StorageLocation:
    """Fetch a location with its row locked until the surrounding transaction ends."""
    try:
        return StorageLocation.objects.select_for_update().get(pk=location_id)
    except (StorageLocation.DoesNotExist, ValueError, TypeError):
        raise LocationNotFound(f"Storage location {location_id} does not exist.")


def list_locations(active_only: bool = False):
    qs = StorageLocation.objects.order_by("name")
    if active_only:
        qs = qs.filter(status=StorageLocation.STATUS_ACTIVE)
    return list(qs)


def require_active_location(location_id) -> StorageLocation:
    """Resolve a location that may receive or release stock.

    Raises ``LocationNotFound`` for unknown ids and ``InvalidLocation`` when the
    location has been deactivated.
    """
    location = get_location(location_id)
    if not location.is_active:
        raise InvalidLocation(f"Storage location {location.name} is inactive.")
    return location


def deactivate_location(location_id) -> StorageLocation:
    with transaction.atomic():
        location = lock_location(location_id)
        if location.is_active:
            location.status = StorageLocation.STATUS_INACTIVE
            location.save(update_fields=["status"])
            logger.info("Deactivated storage location %s (%s)", location.pk, location.name)
    return location
