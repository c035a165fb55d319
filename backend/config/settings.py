"""Control plane configuration.

Values come from the environment, falling back to backend/.env. The service
token and Mongo URI are secrets: they are scrubbed from logs by
observability.redaction.
"""
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    # ── Environment ──────────────────────────────────────────────
    ENV: Literal["dev", "staging", "prod"] = Field(default="dev")

    # ── MongoDB ──────────────────────────────────────────────────
    MONGO_URL: str = Field(default="mongodb://localhost:27017")
    DB_NAME: str = Field(default="control_plane_dev")

    # ── Collections ──────────────────────────────────────────────
    TENANTS_COLLECTION: str = Field(default="tenants")
    CLUSTERS_COLLECTION: str = Field(default="clusters")
    SUBSCRIPTIONS_COLLECTION: str = Field(default="subscriptions")
    LANDLORD_COLLECTION: str = Field(default="landlord")
    RESERVATIONS_COLLECTION: str = Field(default="reservations")
    PACKAGES_COLLECTION: str = Field(default="packages")
    SUBSCRIPTION_TYPES_COLLECTION: str = Field(default="subscription_types")
    AUDIT_COLLECTION: str = Field(default="audit_events")

    # ── Service-to-service auth ──────────────────────────────────
    # Shared token presented by the routing/authorization layer.
    CONTROL_PLANE_S2S_TOKEN: str = Field(default="control-plane-s2s-dev-token-CHANGE-IN-PROD")

    # ── Uniqueness reservations ──────────────────────────────────
    UNIQUENESS_RESERVATIONS_ENABLED: bool = Field(default=True)
    RESERVATION_STALE_AFTER_S: int = Field(default=300)  # 5 min

    # ── Observability ────────────────────────────────────────────
    LOG_LEVEL: str = Field(default="INFO")
    LOG_REDACTION_ENABLED: bool = Field(default=True)

    model_config = {
        "env_file": str(_ROOT / ".env"),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
