"""Catalog schemas — packages and subscription types offered to tenants.

Both catalogs use integer ids allocated in steps of 10 (10, 20, 30, ...).
Entries are created active. A subscription may only reference an active
package and an active subscription type.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field

from schemas.base import StoredRecord, utcnow

CATALOG_ID_STEP = 10


class Package(StoredRecord):
    package_id: int = Field(gt=0)
    package_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[float] = Field(default=None, ge=0)
    features: List[str] = Field(default_factory=list)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PackageCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    package_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price: Optional[float] = Field(default=None, ge=0)
    features: List[str] = Field(default_factory=list)


class SubscriptionType(StoredRecord):
    subscription_type_id: int = Field(gt=0)
    subscription_type_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class SubscriptionTypeCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subscription_type_name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
