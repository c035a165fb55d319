"""Startup configuration validation guardrails."""

import logging


logger = logging.getLogger(__name__)

_DEV_TOKEN_MARKER = "CHANGE-IN-PROD"


def _require_s2s_token(settings) -> None:
    """Fail closed if the service token is not explicitly configured."""
    token = settings.CONTROL_PLANE_S2S_TOKEN
    if not token or not token.strip():
        raise RuntimeError(
            "STARTUP FAILED — CONTROL_PLANE_S2S_TOKEN is required and cannot be empty. "
            "Set CONTROL_PLANE_S2S_TOKEN in backend/.env or container environment and restart the server."
        )


def validate_startup_config(settings) -> None:
    """Centralized startup guardrails for required and warning-level config."""
    _require_s2s_token(settings)

    required_vars = {
        "MONGO_URL": settings.MONGO_URL,
        "DB_NAME": settings.DB_NAME,
    }

    missing = [k for k, v in required_vars.items() if not v]
    if missing:
        raise RuntimeError(
            f"STARTUP FAILED — missing required env vars: {', '.join(missing)}\n"
            "Set them in .env or container environment and restart the server."
        )

    if settings.ENV == "prod":
        if _DEV_TOKEN_MARKER in settings.CONTROL_PLANE_S2S_TOKEN:
            raise RuntimeError(
                "STARTUP FAILED — CONTROL_PLANE_S2S_TOKEN still holds the dev default in production."
            )
        if not settings.UNIQUENESS_RESERVATIONS_ENABLED:
            logger.warning(
                "CONFIG WARNING: UNIQUENESS_RESERVATIONS_ENABLED is off — "
                "concurrent subscription creates can duplicate unique attributes"
            )

    if settings.RESERVATION_STALE_AFTER_S <= 0:
        raise RuntimeError(
            "STARTUP FAILED — RESERVATION_STALE_AFTER_S must be a positive number of seconds."
        )
