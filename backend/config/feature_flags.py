"""Feature flags — controls optional consistency hardening."""
from config.settings import get_settings


def reservations_enabled() -> bool:
    return get_settings().UNIQUENESS_RESERVATIONS_ENABLED
