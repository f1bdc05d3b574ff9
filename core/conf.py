from django.conf import settings

DEFAULTS = {
    "MAX_SIZE_CLASS": 10,
    "TRANSFER_MAX_RETRIES": 3,
    "STALE_TRANSFER_DAYS": 7,
}


def inventory_setting(name):
    """Read a key from ``settings.FISH_INVENTORY`` falling back to DEFAULTS."""
    overrides = getattr(settings, "FISH_INVENTORY", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
