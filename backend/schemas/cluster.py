"""Cluster schemas — compute clusters and their private network ranges."""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid

from schemas.base import StoredRecord, utcnow


class ClusterType(str, Enum):
    DEDICATED = "dedicated"
    SHARED = "shared"


class ClusterStatus(str, Enum):
    IN_ACTIVE = "In-Active"
    DEPLOYING = "Deploying"
    ACTIVE = "Active"
    FAILED = "Failed"


class Cluster(StoredRecord):
    """Cluster record in MongoDB. ``cidr`` is the VPC block allocated to it."""
    cluster_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = Field(min_length=1, max_length=255)
    type: ClusterType
    environment: str = Field(min_length=1)
    region: str = Field(min_length=1)
    cidr: str = Field(min_length=9, max_length=18)
    status: ClusterStatus = ClusterStatus.IN_ACTIVE
    aws_account_id: Optional[str] = None
    hosted_zone_id: Optional[str] = None
    stack_name: Optional[str] = None
    db_proxy_url: Optional[str] = None
    deployment_status: Optional[str] = None
    deployed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ClusterRegisterRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1, max_length=255)
    type: ClusterType
    environment: str = Field(min_length=1)
    region: str = Field(min_length=1)
    cidr: str = Field(min_length=1)
    aws_account_id: Optional[str] = None
    hosted_zone_id: Optional[str] = None
    stack_name: Optional[str] = None
    db_proxy_url: Optional[str] = None


class ClusterStatusUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: ClusterStatus
    deployment_status: Optional[str] = None
