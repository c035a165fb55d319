"""Provisioning Control Plane — HTTP entry point.

Thin REST surface over provisioning/. Every control route requires the
service-to-service token presented by the routing/authorization layer.
"""
from contextlib import asynccontextmanager
from pathlib import Path
import logging

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from typing import Optional

# Load env before anything else
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / ".env")

from config.settings import get_settings
from config.validators import validate_startup_config
from core.logging_config import setup_logging
from core.database import init_indexes, close_db
from core.exceptions import ControlPlaneError, ForbiddenError
from observability.audit_log import list_audit_events
from observability.metrics import get_system_metrics
from provisioning import catalog, lifecycle
from provisioning.cidr import calculate_subnet_cidrs, cidr_info
from provisioning.reconcile import find_orphaned_subscriptions, reconcile_landlords
from schemas.audit import AuditEventType
from schemas.catalog import PackageCreateRequest, SubscriptionTypeCreateRequest
from schemas.cluster import (
    ClusterRegisterRequest,
    ClusterStatus,
    ClusterStatusUpdateRequest,
    ClusterType,
)
from schemas.subscription import SubscriptionCreateRequest, SubscriptionUpdateRequest
from schemas.tenant import (
    DeploymentType,
    TenantRegisterRequest,
    TenantStatus,
    TenantStatusUpdateRequest,
    TenantUpdateRequest,
)

# ---- Setup logging ----
setup_logging()
logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    "ValidationError": 400,
    "Forbidden": 403,
    "NotFound": 404,
    "Conflict": 409,
    "InternalError": 500,
}


# ---- Lifespan ----
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Control plane starting: env=%s", settings.ENV)
    validate_startup_config(settings)
    await init_indexes()
    logger.info("Control plane ready")
    yield
    await close_db()
    logger.info("Control plane shutdown complete")


# ---- App ----
app = FastAPI(
    title="Provisioning Control Plane",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ControlPlaneError)
async def control_plane_error_handler(request: Request, exc: ControlPlaneError):
    status_code = _STATUS_BY_CODE.get(exc.code, 500)
    if status_code >= 500:
        logger.error("Request failed: path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"code": "ValidationError", "message": "Invalid request body", "details": {"errors": errors}},
    )


def _verify_s2s_token(x_control_plane_s2s_token: str = Header(None)) -> None:
    """Verify service-to-service auth token."""
    settings = get_settings()
    if x_control_plane_s2s_token != settings.CONTROL_PLANE_S2S_TOKEN:
        raise ForbiddenError("Invalid S2S token")


api_router = APIRouter(prefix="/api")
control_router = APIRouter(dependencies=[Depends(_verify_s2s_token)])


# =====================================================
#  REST Endpoints
# =====================================================

# ---- Health ----
@api_router.get("/health")
async def health():
    settings = get_settings()
    return {"status": "ok", "env": settings.ENV}


# ---- Tenants ----
@control_router.post("/tenants", status_code=201)
async def api_register_tenant(req: TenantRegisterRequest):
    return await lifecycle.register_tenant(req)


@control_router.get("/tenants")
async def api_list_tenants(status: Optional[TenantStatus] = None):
    tenants = await lifecycle.list_tenants(status)
    return {"tenants": tenants, "count": len(tenants)}


@control_router.get("/tenants/{tenant_id}")
async def api_get_tenant(tenant_id: str):
    return await lifecycle.get_tenant(tenant_id)


@control_router.patch("/tenants/{tenant_id}")
async def api_update_tenant(tenant_id: str, req: TenantUpdateRequest):
    tenant, cascade = await lifecycle.update_tenant(tenant_id, req)
    return {"tenant": tenant, "cascade": cascade}


@control_router.put("/tenants/{tenant_id}/status")
async def api_update_tenant_status(tenant_id: str, req: TenantStatusUpdateRequest):
    """Set tenant status. Suspended/Terminated cascades to subscriptions."""
    tenant, cascade = await lifecycle.update_tenant_status(tenant_id, req.status)
    return {"tenant": tenant, "cascade": cascade}


# ---- Clusters ----
@control_router.post("/clusters", status_code=201)
async def api_register_cluster(req: ClusterRegisterRequest):
    return await lifecycle.register_cluster(req)


@control_router.get("/clusters")
async def api_list_clusters(type: Optional[ClusterType] = None, status: Optional[ClusterStatus] = None):
    clusters = await lifecycle.list_clusters(type, status)
    return {"clusters": clusters, "count": len(clusters)}


@control_router.get("/clusters/available")
async def api_available_clusters(deployment_type: DeploymentType):
    clusters = await lifecycle.list_available_clusters(deployment_type)
    return {"clusters": clusters, "count": len(clusters)}


@control_router.get("/clusters/{cluster_id}")
async def api_get_cluster(cluster_id: str):
    return await lifecycle.get_cluster(cluster_id)


@control_router.get("/clusters/{cluster_id}/network")
async def api_cluster_network(cluster_id: str):
    """VPC block details and the subnet layout derived from it."""
    cluster = await lifecycle.get_cluster(cluster_id)
    return {
        "cluster_id": cluster.cluster_id,
        "cidr": cluster.cidr,
        "info": cidr_info(cluster.cidr),
        "subnets": calculate_subnet_cidrs(cluster.cidr),
    }


@control_router.patch("/clusters/{cluster_id}/status")
async def api_update_cluster_status(cluster_id: str, req: ClusterStatusUpdateRequest):
    return await lifecycle.update_cluster_status(cluster_id, req)


@control_router.delete("/clusters/{cluster_id}")
async def api_delete_cluster(cluster_id: str):
    await lifecycle.delete_cluster(cluster_id)
    return {"deleted": True, "cluster_id": cluster_id}


# ---- Subscriptions ----
@control_router.post("/subscriptions", status_code=201)
async def api_create_subscription(req: SubscriptionCreateRequest):
    subscription, landlord = await lifecycle.create_subscription(req)
    return {"subscription": subscription, "landlord": landlord}


@control_router.get("/subscriptions")
async def api_list_subscriptions(tenant_id: Optional[str] = None):
    subscriptions = await lifecycle.list_subscriptions(tenant_id)
    return {"subscriptions": subscriptions, "count": len(subscriptions)}


@control_router.get("/subscriptions/{subscription_id}")
async def api_get_subscription(subscription_id: str):
    return await lifecycle.get_subscription(subscription_id)


@control_router.patch("/subscriptions/{subscription_id}")
async def api_update_subscription(subscription_id: str, req: SubscriptionUpdateRequest):
    subscription, landlord = await lifecycle.update_subscription(subscription_id, req)
    return {"subscription": subscription, "landlord": landlord}


# ---- Catalog ----
@control_router.post("/packages", status_code=201)
async def api_create_package(req: PackageCreateRequest):
    return await catalog.create_package(req)


@control_router.get("/packages")
async def api_list_packages(include_inactive: bool = False):
    packages = await catalog.list_packages(include_inactive)
    return {"packages": packages, "count": len(packages)}


@control_router.get("/packages/{package_id}")
async def api_get_package(package_id: int):
    return await catalog.get_package(package_id)


@control_router.post("/subscription-types", status_code=201)
async def api_create_subscription_type(req: SubscriptionTypeCreateRequest):
    return await catalog.create_subscription_type(req)


@control_router.get("/subscription-types")
async def api_list_subscription_types(include_inactive: bool = False):
    subscription_types = await catalog.list_subscription_types(include_inactive)
    return {"subscription_types": subscription_types, "count": len(subscription_types)}


@control_router.get("/subscription-types/{subscription_type_id}")
async def api_get_subscription_type(subscription_type_id: int):
    return await catalog.get_subscription_type(subscription_type_id)


# ---- Consistency ----
@control_router.get("/landlords/orphans")
async def api_orphaned_subscriptions():
    orphans = await find_orphaned_subscriptions()
    return {"subscription_ids": [s.subscription_id for s in orphans], "count": len(orphans)}


@control_router.post("/landlords/reconcile")
async def api_reconcile_landlords():
    return await reconcile_landlords()


# ---- Observability ----
@control_router.get("/metrics")
async def api_metrics():
    return await get_system_metrics()


@control_router.get("/audit")
async def api_audit(
    tenant_id: Optional[str] = None,
    event_type: Optional[AuditEventType] = None,
    limit: int = 100,
):
    events = await list_audit_events(tenant_id, event_type, min(max(limit, 1), 500))
    return {"events": events, "count": len(events)}


# Include REST routers
api_router.include_router(control_router)
app.include_router(api_router)
