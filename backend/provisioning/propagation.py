"""Consistency Propagator — status cascade and landlord field mirroring.

Landlord rows are a projection of subscriptions:
  package_id        -> package_id
  tenant_url        -> domain
  tenant_api_url    -> api_url
  domain_name       -> url
  number_of_stores  -> outlets
  status            -> Active if Active else Suspended
  tenant.business_name -> name

Every step is an independent single-row write that recomputes its target
state, so re-running a cascade or sync converges on the same result.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pymongo.errors import PyMongoError

from core.exceptions import ControlPlaneError, InternalError
from observability.audit_log import log_audit_event
from provisioning.store import landlords, subscriptions, tenants
from schemas.audit import AuditEventType
from schemas.base import utcnow
from schemas.landlord import Landlord, LandlordStatus
from schemas.subscription import Subscription, SubscriptionStatus
from schemas.tenant import CASCADING_TENANT_STATUSES, Tenant, TenantStatus

logger = logging.getLogger(__name__)

LANDLORD_FIELD_MAP = {
    "package_id": "package_id",
    "tenant_url": "domain",
    "tenant_api_url": "api_url",
    "domain_name": "url",
    "number_of_stores": "outlets",
}


def project_status(status: SubscriptionStatus) -> LandlordStatus:
    if SubscriptionStatus(status) == SubscriptionStatus.ACTIVE:
        return LandlordStatus.ACTIVE
    return LandlordStatus.SUSPENDED


def landlord_fields_from_update(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Map subscription fields to landlord fields. Absent keys stay absent."""
    out = {LANDLORD_FIELD_MAP[k]: v for k, v in fields.items() if k in LANDLORD_FIELD_MAP}
    if fields.get("status") is not None:
        out["status"] = project_status(fields["status"])
    return out


def build_landlord(subscription: Subscription, tenant: Tenant) -> Landlord:
    return Landlord(
        id=subscription.subscription_id,
        tenant_id=subscription.tenant_id,
        name=tenant.business_name,
        package_id=subscription.package_id,
        domain=subscription.tenant_url,
        api_url=subscription.tenant_api_url,
        url=subscription.domain_name,
        outlets=subscription.number_of_stores,
        status=project_status(subscription.status),
        last_synced_at=utcnow(),
    )


def landlord_matches(subscription: Subscription, landlord: Landlord) -> bool:
    """True when every mirrored field agrees with the subscription."""
    expected = landlord_fields_from_update(subscription.model_dump())
    return all(getattr(landlord, k) == v for k, v in expected.items())


async def sync_landlord(
    subscription: Subscription,
    changed_fields: Optional[Iterable[str]] = None,
) -> Landlord:
    """Mirror ``changed_fields`` (all mirrored fields if None) to the landlord.

    A missing landlord row is rebuilt in full from the subscription and its
    tenant.
    """
    existing = await landlords.get(subscription.subscription_id)
    if existing is None:
        tenant = await tenants.get(subscription.tenant_id)
        if tenant is None:
            raise InternalError(
                "Cannot build landlord: tenant missing",
                details={
                    "subscription_id": subscription.subscription_id,
                    "tenant_id": subscription.tenant_id,
                },
            )
        landlord = await landlords.put(build_landlord(subscription, tenant))
        logger.info(
            "Landlord rebuilt: subscription=%s tenant=%s status=%s",
            subscription.subscription_id, subscription.tenant_id, landlord.status.value,
        )
        await log_audit_event(
            AuditEventType.LANDLORD_SYNCED,
            tenant_id=subscription.tenant_id,
            entity_id=subscription.subscription_id,
            details={"rebuilt": True, "status": landlord.status.value},
        )
        return landlord

    if changed_fields is None:
        changed_fields = list(LANDLORD_FIELD_MAP) + ["status"]
    values = {f: getattr(subscription, f) for f in changed_fields if hasattr(subscription, f)}
    fields = landlord_fields_from_update(values)
    fields["last_synced_at"] = utcnow()
    landlord = await landlords.update(subscription.subscription_id, fields)
    logger.info(
        "Landlord synced: subscription=%s fields=%s",
        subscription.subscription_id, sorted(k for k in fields if k != "last_synced_at"),
    )
    return landlord


def _failure(subscription_id: str, exc: Exception) -> Dict[str, str]:
    if isinstance(exc, ControlPlaneError):
        return {"subscription_id": subscription_id, "code": exc.code, "message": exc.message}
    return {"subscription_id": subscription_id, "code": "InternalError", "message": str(exc)}


async def _journal(event_type: AuditEventType, **kwargs: Any) -> None:
    """Journal a cascade step. A journal write failure never aborts the cascade."""
    try:
        await log_audit_event(event_type, **kwargs)
    except PyMongoError as e:
        logger.error(
            "Cascade journal write failed: event=%s subscription=%s error=%s",
            event_type.value, kwargs.get("entity_id"), e,
        )


async def cascade_tenant_status(tenant_id: str, status: TenantStatus) -> Dict[str, Any]:
    """Force every subscription of a Suspended/Terminated tenant to Suspended.

    Subscriptions are never set to Terminated. Other tenant statuses do not
    cascade. Steps already applied are not rolled back; a failing step is
    journalled and the cascade moves on, then raises InternalError listing
    every failure.
    """
    status = TenantStatus(status)
    summary: Dict[str, Any] = {"tenant_id": tenant_id, "status": status.value, "cascaded": False, "applied": []}
    if status not in CASCADING_TENANT_STATUSES:
        return summary

    summary["cascaded"] = True
    failures: List[Dict[str, str]] = []
    for sub in await subscriptions.scan({"tenant_id": tenant_id}):
        try:
            previous = sub.status
            if sub.status != SubscriptionStatus.SUSPENDED:
                sub = await subscriptions.update(
                    sub.subscription_id, {"status": SubscriptionStatus.SUSPENDED},
                )
            await sync_landlord(sub, ["status"])
        except (ControlPlaneError, PyMongoError) as e:
            logger.error(
                "Cascade step failed: tenant=%s subscription=%s error=%s",
                tenant_id, sub.subscription_id, e,
            )
            failures.append(_failure(sub.subscription_id, e))
            await _journal(
                AuditEventType.CASCADE_STEP_FAILED,
                tenant_id=tenant_id,
                entity_id=sub.subscription_id,
                details={"tenant_status": status.value, "error": str(e)},
            )
            continue

        summary["applied"].append(sub.subscription_id)
        await _journal(
            AuditEventType.CASCADE_STEP_APPLIED,
            tenant_id=tenant_id,
            entity_id=sub.subscription_id,
            details={
                "tenant_status": status.value,
                "from": SubscriptionStatus(previous).value,
                "to": SubscriptionStatus.SUSPENDED.value,
                "landlord_status": LandlordStatus.SUSPENDED.value,
            },
        )

    logger.info(
        "Cascade complete: tenant=%s status=%s applied=%d failed=%d",
        tenant_id, status.value, len(summary["applied"]), len(failures),
    )
    if failures:
        raise InternalError(
            "Status cascade incomplete",
            details={**summary, "failures": failures},
        )
    return summary


async def mirror_tenant_name(tenant_id: str, business_name: str) -> List[str]:
    """Rewrite landlord ``name`` for every subscription of the tenant."""
    updated: List[str] = []
    failures: List[Dict[str, str]] = []
    for sub in await subscriptions.scan({"tenant_id": tenant_id}):
        try:
            if await landlords.get(sub.subscription_id) is None:
                await sync_landlord(sub)
            else:
                await landlords.update(
                    sub.subscription_id, {"name": business_name, "last_synced_at": utcnow()},
                )
        except (ControlPlaneError, PyMongoError) as e:
            logger.error(
                "Name mirror failed: tenant=%s subscription=%s error=%s",
                tenant_id, sub.subscription_id, e,
            )
            failures.append(_failure(sub.subscription_id, e))
            continue
        updated.append(sub.subscription_id)

    if failures:
        raise InternalError(
            "Landlord name mirror incomplete",
            details={"tenant_id": tenant_id, "applied": updated, "failures": failures},
        )
    return updated
