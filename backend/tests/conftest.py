from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import itertools
import uuid

import pytest
from mongomock_motor import AsyncMongoMockClient

import core.database as database
from config.settings import get_settings
from provisioning import catalog, lifecycle
from schemas.catalog import PackageCreateRequest, SubscriptionTypeCreateRequest
from schemas.cluster import ClusterRegisterRequest, ClusterStatus, ClusterStatusUpdateRequest
from schemas.subscription import SubscriptionCreateRequest
from schemas.tenant import TenantRegisterRequest, TenantStatus

_second_octets = itertools.count(1)


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    """Each test reads settings from its own environment."""
    monkeypatch.setenv("ENV", "dev")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
async def db(monkeypatch):
    """In-memory Mongo with the production indexes."""
    mock_db = AsyncMongoMockClient()[f"test_{uuid.uuid4().hex[:8]}"]
    monkeypatch.setattr(database, "_db", mock_db)
    await database.init_indexes()
    return mock_db


@pytest.fixture
def make_cluster(db):
    async def _make(cidr="10.0.0.0/16", type="shared", activate=True, **overrides):
        data = {
            "name": f"cluster-{uuid.uuid4().hex[:6]}",
            "type": type,
            "environment": "production",
            "region": "us-east-1",
            "cidr": cidr,
        }
        data.update(overrides)
        cluster = await lifecycle.register_cluster(ClusterRegisterRequest(**data))
        if activate:
            await lifecycle.update_cluster_status(
                cluster.cluster_id, ClusterStatusUpdateRequest(status=ClusterStatus.DEPLOYING),
            )
            cluster = await lifecycle.update_cluster_status(
                cluster.cluster_id, ClusterStatusUpdateRequest(status=ClusterStatus.ACTIVE),
            )
        return cluster
    return _make


@pytest.fixture
def make_tenant(db, make_cluster):
    async def _make(cluster=None, status=TenantStatus.ACTIVE, **overrides):
        if cluster is None:
            cluster = await make_cluster(cidr=f"10.{next(_second_octets) % 250 + 1}.0.0/16")
        slug = f"acme-{uuid.uuid4().hex[:6]}"
        data = {
            "name": "Jane Owner",
            "email": f"{slug}@example.com",
            "business_name": "Acme Foods",
            "deployment_type": "Shared",
            "region": "us-east-1",
            "tenant_url": slug,
            "cluster_id": cluster.cluster_id,
        }
        data.update(overrides)
        tenant = await lifecycle.register_tenant(TenantRegisterRequest(**data))
        if status != tenant.status:
            tenant, _ = await lifecycle.update_tenant_status(tenant.tenant_id, status)
        return tenant
    return _make


@pytest.fixture
async def catalog_entries(db):
    """One active package and one active subscription type."""
    package = await catalog.create_package(PackageCreateRequest(package_name="Essential"))
    subscription_type = await catalog.create_subscription_type(
        SubscriptionTypeCreateRequest(subscription_type_name="Standard"),
    )
    return package, subscription_type


@pytest.fixture
def make_subscription(db, catalog_entries):
    package, subscription_type = catalog_entries

    async def _make(tenant, slug=None, **overrides):
        slug = slug or uuid.uuid4().hex[:8]
        data = {
            "tenant_id": tenant.tenant_id,
            "domain_name": f"https://{slug}.example.com",
            "tenant_url": f"{slug}.platform.io",
            "tenant_api_url": f"api.{slug}.platform.io",
            "package_id": package.package_id,
            "subscription_type_id": subscription_type.subscription_type_id,
        }
        data.update(overrides)
        return await lifecycle.create_subscription(SubscriptionCreateRequest(**data))
    return _make
