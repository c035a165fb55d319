"""Lifecycle Orchestrator — tenant, cluster and subscription workflows.

Each operation validates input, runs the uniqueness / range checks, writes
the primary record, then propagates to dependent records. Store calls run
one at a time. A failure after the primary write is reported as
InternalError and the primary write stays committed.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo.errors import PyMongoError

from core.exceptions import (
    ConflictError,
    ControlPlaneError,
    ForbiddenError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from observability.audit_log import log_audit_event
from provisioning import catalog
from provisioning import cidr as range_allocator
from provisioning import uniqueness
from provisioning.propagation import (
    cascade_tenant_status,
    mirror_tenant_name,
    sync_landlord,
)
from provisioning.store import clusters, subscriptions, tenants
from schemas.audit import AuditEventType
from schemas.base import utcnow
from schemas.cluster import (
    Cluster,
    ClusterRegisterRequest,
    ClusterStatus,
    ClusterStatusUpdateRequest,
    ClusterType,
)
from schemas.landlord import Landlord
from schemas.subscription import (
    UNIQUE_ATTRIBUTES,
    Subscription,
    SubscriptionCreateRequest,
    SubscriptionStatus,
    SubscriptionUpdateRequest,
)
from schemas.tenant import (
    CASCADING_TENANT_STATUSES,
    DeploymentType,
    Tenant,
    TenantRegisterRequest,
    TenantStatus,
    TenantUpdateRequest,
)

logger = logging.getLogger(__name__)

# Tenants that may receive new subscriptions
_SUBSCRIBABLE_TENANT_STATUSES = frozenset({TenantStatus.ACTIVE, TenantStatus.PENDING})

# Valid cluster transitions
_VALID_CLUSTER_TRANSITIONS = {
    ClusterStatus.IN_ACTIVE: {ClusterStatus.DEPLOYING},
    ClusterStatus.DEPLOYING: {ClusterStatus.ACTIVE, ClusterStatus.FAILED},
    ClusterStatus.ACTIVE: {ClusterStatus.DEPLOYING},
    ClusterStatus.FAILED: {ClusterStatus.DEPLOYING},
}


def _cluster_type_for(deployment_type: DeploymentType) -> ClusterType:
    return ClusterType(DeploymentType(deployment_type).value.lower())


# ---- Tenants ----

async def register_tenant(req: TenantRegisterRequest) -> Tenant:
    """Onboard a tenant onto an Active cluster of the matching type."""
    if await tenants.scan({"tenant_url": req.tenant_url}):
        raise ConflictError(
            "Tenant URL already exists",
            conflicts=[req.tenant_url],
            details={"attribute": "tenant_url"},
        )

    cluster = await clusters.get(req.cluster_id)
    if cluster is None:
        raise ValidationError("Invalid cluster ID", details={"cluster_id": req.cluster_id})
    if cluster.status != ClusterStatus.ACTIVE:
        raise ValidationError(
            "Cluster is not available for tenant assignment",
            details={"cluster_id": cluster.cluster_id, "status": cluster.status.value},
        )
    if cluster.type != _cluster_type_for(req.deployment_type):
        raise ValidationError(
            "Cluster type does not match deployment type",
            details={
                "cluster_id": cluster.cluster_id,
                "cluster_type": cluster.type.value,
                "deployment_type": req.deployment_type.value,
            },
        )

    tenant = await tenants.put(Tenant(
        **req.model_dump(),
        cluster_name=cluster.name,
        status=TenantStatus.PENDING,
    ))
    logger.info(
        "Tenant registered: tenant=%s cluster=%s deployment=%s",
        tenant.tenant_id, cluster.cluster_id, tenant.deployment_type.value,
    )
    await log_audit_event(
        AuditEventType.TENANT_REGISTERED,
        tenant_id=tenant.tenant_id,
        entity_id=tenant.tenant_id,
        details={"cluster_id": cluster.cluster_id, "tenant_url": tenant.tenant_url},
    )
    return tenant


async def get_tenant(tenant_id: str) -> Tenant:
    tenant = await tenants.get(tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found", details={"tenant_id": tenant_id})
    return tenant


async def list_tenants(status: Optional[TenantStatus] = None) -> List[Tenant]:
    query = {"status": TenantStatus(status).value} if status else {}
    return await tenants.scan(query)


async def update_tenant(
    tenant_id: str,
    req: TenantUpdateRequest,
) -> Tuple[Tenant, Optional[Dict[str, Any]]]:
    """Administrative update. Status and business_name changes propagate.

    Returns the tenant and the cascade summary (None when no cascade ran).
    """
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")
    current = await get_tenant(tenant_id)

    updated = await tenants.update(tenant_id, fields)
    logger.info("Tenant updated: tenant=%s fields=%s", tenant_id, sorted(fields))
    await log_audit_event(
        AuditEventType.TENANT_UPDATED,
        tenant_id=tenant_id,
        entity_id=tenant_id,
        details={"fields": sorted(fields)},
    )

    errors: List[Dict[str, Any]] = []
    cascade: Optional[Dict[str, Any]] = None
    if "status" in fields and updated.status in CASCADING_TENANT_STATUSES:
        try:
            cascade = await cascade_tenant_status(tenant_id, updated.status)
        except InternalError as e:
            errors.append(e.to_dict())
    if "business_name" in fields and updated.business_name != current.business_name:
        try:
            await mirror_tenant_name(tenant_id, updated.business_name)
        except InternalError as e:
            errors.append(e.to_dict())
    if errors:
        raise InternalError(
            "Tenant updated but propagation incomplete",
            details={"tenant_id": tenant_id, "errors": errors},
        )
    return updated, cascade


async def update_tenant_status(
    tenant_id: str,
    status: TenantStatus,
) -> Tuple[Tenant, Dict[str, Any]]:
    """Write the tenant status, then cascade it to subscriptions and landlords.

    Returns the tenant and the cascade summary: ``cascaded`` and the
    ``applied`` subscription ids.

    Re-applying the same status re-runs the cascade, which repairs any
    subscription a previous attempt left behind.
    """
    status = TenantStatus(status)
    current = await get_tenant(tenant_id)
    updated = await tenants.update(tenant_id, {"status": status})
    logger.info(
        "Tenant status updated: tenant=%s %s -> %s",
        tenant_id, current.status.value, status.value,
    )
    await log_audit_event(
        AuditEventType.TENANT_STATUS_CHANGED,
        tenant_id=tenant_id,
        entity_id=tenant_id,
        details={"from": current.status.value, "to": status.value},
    )
    cascade = await cascade_tenant_status(tenant_id, status)
    return updated, cascade


# ---- Clusters ----

async def register_cluster(req: ClusterRegisterRequest) -> Cluster:
    """Allocate a private range to a new cluster. Nothing is written on failure."""
    network = range_allocator.validate(req.cidr)
    existing = [c.cidr for c in await clusters.scan()]
    range_allocator.check_against_existing(req.cidr, existing)

    data = req.model_dump()
    data["cidr"] = str(network)
    cluster = await clusters.put(Cluster(**data, status=ClusterStatus.IN_ACTIVE))
    logger.info(
        "Cluster registered: cluster=%s cidr=%s type=%s",
        cluster.cluster_id, cluster.cidr, cluster.type.value,
    )
    await log_audit_event(
        AuditEventType.CLUSTER_REGISTERED,
        entity_id=cluster.cluster_id,
        details={"cidr": cluster.cidr, "region": cluster.region, "type": cluster.type.value},
    )
    return cluster


async def get_cluster(cluster_id: str) -> Cluster:
    cluster = await clusters.get(cluster_id)
    if cluster is None:
        raise NotFoundError("Cluster not found", details={"cluster_id": cluster_id})
    return cluster


async def list_clusters(
    cluster_type: Optional[ClusterType] = None,
    status: Optional[ClusterStatus] = None,
) -> List[Cluster]:
    query: Dict[str, Any] = {}
    if cluster_type:
        query["type"] = ClusterType(cluster_type).value
    if status:
        query["status"] = ClusterStatus(status).value
    return await clusters.scan(query)


async def list_available_clusters(deployment_type: DeploymentType) -> List[Cluster]:
    """Active clusters a tenant of ``deployment_type`` can be placed on."""
    return await list_clusters(_cluster_type_for(deployment_type), ClusterStatus.ACTIVE)


async def update_cluster_status(cluster_id: str, req: ClusterStatusUpdateRequest) -> Cluster:
    cluster = await get_cluster(cluster_id)
    valid_next = _VALID_CLUSTER_TRANSITIONS.get(cluster.status, set())
    if req.status not in valid_next:
        raise ValidationError(
            f"Invalid transition: {cluster.status.value} -> {req.status.value}",
            details={"valid": sorted(s.value for s in valid_next)},
        )

    fields: Dict[str, Any] = {"status": req.status}
    if req.deployment_status is not None:
        fields["deployment_status"] = req.deployment_status
    if req.status == ClusterStatus.ACTIVE:
        fields["deployed_at"] = utcnow()
    updated = await clusters.update(cluster_id, fields)
    logger.info(
        "Cluster transition: cluster=%s %s -> %s",
        cluster_id, cluster.status.value, req.status.value,
    )
    await log_audit_event(
        AuditEventType.CLUSTER_STATUS_CHANGED,
        entity_id=cluster_id,
        details={"from": cluster.status.value, "to": req.status.value},
    )
    return updated


async def delete_cluster(cluster_id: str) -> None:
    """Remove a cluster record. Only In-Active clusters may be deleted."""
    cluster = await get_cluster(cluster_id)
    if cluster.status != ClusterStatus.IN_ACTIVE:
        logger.warning(
            "Cluster delete refused: cluster=%s status=%s",
            cluster_id, cluster.status.value,
        )
        raise ForbiddenError(
            f"Cannot delete cluster with status '{cluster.status.value}'. "
            "Only clusters with status 'In-Active' can be deleted.",
            details={"cluster_id": cluster_id, "status": cluster.status.value},
        )
    await clusters.delete(cluster_id)
    logger.info("Cluster deleted: cluster=%s cidr=%s", cluster_id, cluster.cidr)
    await log_audit_event(
        AuditEventType.CLUSTER_DELETED,
        entity_id=cluster_id,
        details={"cidr": cluster.cidr},
    )


# ---- Subscriptions ----

async def create_subscription(req: SubscriptionCreateRequest) -> Tuple[Subscription, Landlord]:
    """Create a subscription and its landlord projection."""
    tenant = await tenants.get(req.tenant_id)
    if tenant is None:
        raise ValidationError("Invalid tenant ID", details={"tenant_id": req.tenant_id})
    if tenant.status not in _SUBSCRIBABLE_TENANT_STATUSES:
        raise ValidationError(
            f"Tenant is {tenant.status.value}; subscriptions cannot be created",
            details={"tenant_id": tenant.tenant_id, "status": tenant.status.value},
        )

    cluster_id = req.cluster_id or tenant.cluster_id
    if req.cluster_id and await clusters.get(req.cluster_id) is None:
        raise ValidationError("Invalid cluster ID", details={"cluster_id": req.cluster_id})
    await catalog.require_subscription_type(req.subscription_type_id)
    await catalog.require_package(req.package_id)

    values = {a: getattr(req, a) for a in UNIQUE_ATTRIBUTES}
    await uniqueness.ensure_unique(values)

    subscription = Subscription(
        **req.model_dump(exclude={"cluster_id"}),
        cluster_id=cluster_id,
        status=SubscriptionStatus.ACTIVE,
    )
    claims = await uniqueness.reserve_all(values, subscription.subscription_id)
    try:
        subscription = await subscriptions.put(subscription)
    except Exception:
        await uniqueness.release_all(claims, subscription.subscription_id)
        raise

    logger.info(
        "Subscription created: subscription=%s tenant=%s domain=%s",
        subscription.subscription_id, tenant.tenant_id, subscription.domain_name,
    )
    await log_audit_event(
        AuditEventType.SUBSCRIPTION_CREATED,
        tenant_id=tenant.tenant_id,
        entity_id=subscription.subscription_id,
        details={**values, "package_id": subscription.package_id},
    )

    try:
        landlord = await sync_landlord(subscription)
    except (ControlPlaneError, PyMongoError) as e:
        logger.error(
            "Landlord projection failed after subscription commit: subscription=%s error=%s",
            subscription.subscription_id, e,
        )
        raise InternalError(
            "Subscription created but landlord projection failed",
            details={"subscription_id": subscription.subscription_id},
        ) from e
    return subscription, landlord


async def get_subscription(subscription_id: str) -> Subscription:
    subscription = await subscriptions.get(subscription_id)
    if subscription is None:
        raise NotFoundError(
            "Subscription not found", details={"subscription_id": subscription_id},
        )
    return subscription


async def list_subscriptions(tenant_id: Optional[str] = None) -> List[Subscription]:
    return await subscriptions.scan({"tenant_id": tenant_id} if tenant_id else {})


async def update_subscription(
    subscription_id: str,
    req: SubscriptionUpdateRequest,
) -> Tuple[Subscription, Landlord]:
    """Apply a partial update and mirror the changed fields to the landlord.

    Status is applied as given, whatever the tenant status. Reactivating a
    subscription after a tenant suspension is always this explicit call.
    """
    fields = req.model_dump(exclude_unset=True)
    if not fields:
        raise ValidationError("No fields to update")
    current = await get_subscription(subscription_id)

    if fields.get("package_id") is not None:
        await catalog.require_package(fields["package_id"], active=False)

    changed = {
        a: fields[a] for a in UNIQUE_ATTRIBUTES
        if fields.get(a) is not None and fields[a] != getattr(current, a)
    }
    await uniqueness.ensure_unique(changed, exclude_id=subscription_id)
    claims = await uniqueness.reserve_all(changed, subscription_id)
    try:
        updated = await subscriptions.update(subscription_id, fields)
    except Exception:
        await uniqueness.release_all(claims, subscription_id)
        raise
    await uniqueness.release_all(
        [(a, getattr(current, a)) for a in changed], subscription_id,
    )

    logger.info(
        "Subscription updated: subscription=%s fields=%s",
        subscription_id, sorted(fields),
    )
    await log_audit_event(
        AuditEventType.SUBSCRIPTION_UPDATED,
        tenant_id=updated.tenant_id,
        entity_id=subscription_id,
        details={"fields": sorted(fields)},
    )

    try:
        landlord = await sync_landlord(updated, fields.keys())
    except (ControlPlaneError, PyMongoError) as e:
        logger.error(
            "Landlord sync failed after subscription update: subscription=%s error=%s",
            subscription_id, e,
        )
        raise InternalError(
            "Subscription updated but landlord sync failed",
            details={"subscription_id": subscription_id},
        ) from e
    return updated, landlord
