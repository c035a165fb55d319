"""Audit journal schemas.

One event per lifecycle write or cascade step, carrying enough detail to
replay what happened to a tenant's records.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import Field
import uuid

from schemas.base import StoredRecord, utcnow


class AuditEventType(str, Enum):
    # Tenant lifecycle
    TENANT_REGISTERED = "tenant_registered"
    TENANT_UPDATED = "tenant_updated"
    TENANT_STATUS_CHANGED = "tenant_status_changed"
    # Cluster lifecycle
    CLUSTER_REGISTERED = "cluster_registered"
    CLUSTER_STATUS_CHANGED = "cluster_status_changed"
    CLUSTER_DELETED = "cluster_deleted"
    # Subscriptions + projection
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    LANDLORD_SYNCED = "landlord_synced"
    # Cascade journal
    CASCADE_STEP_APPLIED = "cascade_step_applied"
    CASCADE_STEP_FAILED = "cascade_step_failed"
    # Catalog
    PACKAGE_CREATED = "package_created"
    SUBSCRIPTION_TYPE_CREATED = "subscription_type_created"
    # Uniqueness reservations
    RESERVATION_RECLAIMED = "reservation_reclaimed"


class AuditEvent(StoredRecord):
    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event_type: AuditEventType
    tenant_id: Optional[str] = None
    entity_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)
    details: Dict[str, Any] = Field(default_factory=dict)
    env: str = "dev"
