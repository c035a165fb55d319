"""Package and subscription-type catalogs.

New entries take the next free id (highest existing id + 10) and start
active. Two concurrent creates may pick the same id; the loser sees the
unique key index reject its insert and retries with a fresh id.
"""
import logging
from typing import List

from core.exceptions import ConflictError, InternalError, NotFoundError, ValidationError
from observability.audit_log import log_audit_event
from provisioning.store import EntityStore, packages, subscription_types
from schemas.audit import AuditEventType
from schemas.catalog import (
    CATALOG_ID_STEP,
    Package,
    PackageCreateRequest,
    SubscriptionType,
    SubscriptionTypeCreateRequest,
)

logger = logging.getLogger(__name__)

_ALLOCATE_ATTEMPTS = 3


async def _next_id(store: EntityStore) -> int:
    existing = await store.scan()
    return max((getattr(r, store.key) for r in existing), default=0) + CATALOG_ID_STEP


async def _insert_with_next_id(store: EntityStore, build):
    for attempt in range(1, _ALLOCATE_ATTEMPTS + 1):
        record = build(await _next_id(store))
        try:
            return await store.insert(record)
        except ConflictError:
            logger.warning(
                "Catalog id collision: collection=%s id=%s attempt=%d",
                store.name, getattr(record, store.key), attempt,
            )
    raise InternalError(
        "Could not allocate a catalog id",
        details={"collection": store.name, "attempts": _ALLOCATE_ATTEMPTS},
    )


# ---- Packages ----

async def create_package(req: PackageCreateRequest) -> Package:
    package = await _insert_with_next_id(
        packages, lambda package_id: Package(package_id=package_id, **req.model_dump()),
    )
    logger.info("Package created: package=%d name=%s", package.package_id, package.package_name)
    await log_audit_event(
        AuditEventType.PACKAGE_CREATED,
        entity_id=str(package.package_id),
        details={"package_name": package.package_name},
    )
    return package


async def list_packages(include_inactive: bool = False) -> List[Package]:
    """Packages sorted by id. Only active ones unless ``include_inactive``."""
    found = await packages.scan({} if include_inactive else {"active": True})
    return sorted(found, key=lambda p: p.package_id)


async def get_package(package_id: int) -> Package:
    package = await packages.get(package_id)
    if package is None:
        raise NotFoundError("Package not found", details={"package_id": package_id})
    return package


async def require_package(package_id: int, active: bool = True) -> Package:
    """Resolve a package referenced by a subscription.

    A missing package (or an inactive one, when ``active``) is a
    ValidationError: the caller's input is wrong, not the URL.
    """
    package = await packages.get(package_id)
    if package is None:
        raise ValidationError(
            f"Invalid package ID: {package_id}", details={"package_id": package_id},
        )
    if active and not package.active:
        raise ValidationError("Package is not active", details={"package_id": package_id})
    return package


# ---- Subscription types ----

async def create_subscription_type(req: SubscriptionTypeCreateRequest) -> SubscriptionType:
    subscription_type = await _insert_with_next_id(
        subscription_types,
        lambda type_id: SubscriptionType(subscription_type_id=type_id, **req.model_dump()),
    )
    logger.info(
        "Subscription type created: subscription_type=%d name=%s",
        subscription_type.subscription_type_id, subscription_type.subscription_type_name,
    )
    await log_audit_event(
        AuditEventType.SUBSCRIPTION_TYPE_CREATED,
        entity_id=str(subscription_type.subscription_type_id),
        details={"subscription_type_name": subscription_type.subscription_type_name},
    )
    return subscription_type


async def list_subscription_types(include_inactive: bool = False) -> List[SubscriptionType]:
    found = await subscription_types.scan({} if include_inactive else {"active": True})
    return sorted(found, key=lambda t: t.subscription_type_id)


async def get_subscription_type(subscription_type_id: int) -> SubscriptionType:
    subscription_type = await subscription_types.get(subscription_type_id)
    if subscription_type is None:
        raise NotFoundError(
            "Subscription type not found",
            details={"subscription_type_id": subscription_type_id},
        )
    return subscription_type


async def require_subscription_type(subscription_type_id: int) -> SubscriptionType:
    """Resolve an active subscription type referenced by a new subscription."""
    subscription_type = await subscription_types.get(subscription_type_id)
    if subscription_type is None:
        raise ValidationError(
            f"Invalid subscription type ID: {subscription_type_id}",
            details={"subscription_type_id": subscription_type_id},
        )
    if not subscription_type.active:
        raise ValidationError(
            "Subscription type is not active",
            details={"subscription_type_id": subscription_type_id},
        )
    return subscription_type
