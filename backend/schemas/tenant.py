"""Tenant schemas — onboarding and lifecycle models."""
import re
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
import uuid

from schemas.base import StoredRecord, utcnow

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


class TenantStatus(str, Enum):
    PENDING = "Pending"
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    TERMINATED = "Terminated"


# Statuses that force every child subscription into Suspended
CASCADING_TENANT_STATUSES = frozenset({TenantStatus.SUSPENDED, TenantStatus.TERMINATED})


class DeploymentType(str, Enum):
    SHARED = "Shared"
    DEDICATED = "Dedicated"


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not _EMAIL_RE.match(value):
        raise ValueError("email must be a valid address")
    return value


def normalize_tenant_slug(value: str) -> str:
    """Lowercase a tenant_url slug and enforce URL-safe formatting."""
    value = value.strip().lower()
    if not 1 <= len(value) <= 50:
        raise ValueError("tenant_url must be between 1 and 50 characters long")
    if not _SLUG_RE.match(value):
        raise ValueError("tenant_url must contain only lowercase letters, numbers, and hyphens")
    if value.startswith("-") or value.endswith("-"):
        raise ValueError("tenant_url cannot start or end with a hyphen")
    if "--" in value:
        raise ValueError("tenant_url cannot contain consecutive hyphens")
    return value


class ContactInfo(BaseModel):
    phone: Optional[str] = None
    address: Optional[str] = None
    company: Optional[str] = None


class Tenant(StoredRecord):
    """Tenant record in MongoDB."""
    tenant_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, max_length=255)
    email: str
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    business_name: str = Field(min_length=1, max_length=255)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    status: TenantStatus = TenantStatus.PENDING
    deployment_type: DeploymentType
    region: str = Field(min_length=1)
    tenant_url: str
    cluster_id: Optional[str] = None
    cluster_name: Optional[str] = None
    package_id: Optional[int] = None
    subscription_type_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("tenant_url")
    @classmethod
    def _normalize_slug(cls, value: str) -> str:
        return normalize_tenant_slug(value)


class TenantRegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    email: str
    mobile_number: Optional[str] = Field(default=None, max_length=20)
    business_name: str = Field(min_length=1, max_length=255)
    contact_info: ContactInfo = Field(default_factory=ContactInfo)
    deployment_type: DeploymentType
    region: str = Field(min_length=1)
    tenant_url: str
    cluster_id: str = Field(min_length=1)
    package_id: Optional[int] = Field(default=None, gt=0)
    subscription_type_id: Optional[int] = Field(default=None, gt=0)

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("tenant_url")
    @classmethod
    def _normalize_slug(cls, value: str) -> str:
        return normalize_tenant_slug(value)


class TenantUpdateRequest(BaseModel):
    """Administrative update. Only keys that are set are applied."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = None
    mobile_number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    business_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    status: Optional[TenantStatus] = None

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value is not None else value


class TenantStatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: TenantStatus
