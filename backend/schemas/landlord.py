"""Landlord schemas — denormalized projection of a subscription.

One row per subscription, keyed by ``id`` == subscription_id. The row is
only ever written by the propagation layer, never by callers directly.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import Field

from schemas.base import StoredRecord, utcnow


class LandlordStatus(str, Enum):
    ACTIVE = "Active"
    SUSPENDED = "Suspended"


class Landlord(StoredRecord):
    id: str
    tenant_id: str
    name: str
    package_id: int
    domain: str
    api_url: str
    url: str
    outlets: int = 1
    status: LandlordStatus = LandlordStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_synced_at: Optional[datetime] = None
