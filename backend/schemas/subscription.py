"""Subscription schemas.

domain_name, tenant_url and tenant_api_url are globally unique across all
subscriptions. All three share one normalization policy (strip, lowercase)
applied at write time, so stored values compare exactly.
"""
import re
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
import uuid

from schemas.base import StoredRecord, utcnow

_URL_RE = re.compile(r"^https?://[^\s/]+(/\S*)?$")

UNIQUE_ATTRIBUTES = ("domain_name", "tenant_url", "tenant_api_url")


class SubscriptionStatus(str, Enum):
    PENDING = "Pending"
    DEPLOYING = "Deploying"
    ACTIVE = "Active"
    FAILED = "Failed"
    SUSPENDED = "Suspended"
    TERMINATED = "Terminated"


def normalize_unique_value(value: str) -> str:
    return value.strip().lower()


def _check_domain_name(value: str) -> str:
    value = normalize_unique_value(value)
    if not _URL_RE.match(value):
        raise ValueError("domain_name must be an http(s) URL")
    return value


def _check_host(value: str) -> str:
    value = normalize_unique_value(value)
    if not value or len(value) > 255:
        raise ValueError("must be between 1 and 255 characters long")
    return value


class Subscription(StoredRecord):
    """Subscription record in MongoDB."""
    subscription_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    tenant_id: str
    domain_name: str
    tenant_url: str
    tenant_api_url: str
    package_id: int = Field(gt=0)
    subscription_type_id: int = Field(gt=0)
    cluster_id: Optional[str] = None
    number_of_stores: int = Field(default=1, ge=1)
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("domain_name")
    @classmethod
    def _domain(cls, value: str) -> str:
        return _check_domain_name(value)

    @field_validator("tenant_url", "tenant_api_url")
    @classmethod
    def _hosts(cls, value: str) -> str:
        return _check_host(value)


class SubscriptionCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    tenant_id: str = Field(min_length=1)
    domain_name: str
    tenant_url: str
    tenant_api_url: str
    package_id: int = Field(gt=0)
    subscription_type_id: int = Field(gt=0)
    cluster_id: Optional[str] = None
    number_of_stores: int = Field(
        default=1, ge=1, validation_alias=AliasChoices("number_of_stores", "stores"),
    )

    @field_validator("domain_name")
    @classmethod
    def _domain(cls, value: str) -> str:
        return _check_domain_name(value)

    @field_validator("tenant_url", "tenant_api_url")
    @classmethod
    def _hosts(cls, value: str) -> str:
        return _check_host(value)


class SubscriptionUpdateRequest(BaseModel):
    """Partial update. Only keys that are set are applied and mirrored."""
    model_config = ConfigDict(extra="forbid")

    package_id: Optional[int] = Field(default=None, gt=0)
    tenant_url: Optional[str] = None
    tenant_api_url: Optional[str] = None
    domain_name: Optional[str] = None
    number_of_stores: Optional[int] = Field(default=None, ge=1)
    status: Optional[SubscriptionStatus] = None

    @field_validator("domain_name")
    @classmethod
    def _domain(cls, value: Optional[str]) -> Optional[str]:
        return _check_domain_name(value) if value is not None else value

    @field_validator("tenant_url", "tenant_api_url")
    @classmethod
    def _hosts(cls, value: Optional[str]) -> Optional[str]:
        return _check_host(value) if value is not None else value
