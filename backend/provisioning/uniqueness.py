"""Uniqueness Validator — domain_name, tenant_url, tenant_api_url.

The check is a scan over subscriptions followed later by a write, so two
concurrent creates can both pass it. When reservations are enabled each
value is additionally claimed with a single-key insert into the
reservations collection before the subscription is written; the insert is
atomic, so only one claimant wins.

Reservation ``_id`` is ``"<attribute>:<normalized value>"``.
"""
import logging
from datetime import timedelta, timezone
from typing import Dict, List, Mapping, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from config.feature_flags import reservations_enabled
from config.settings import get_settings
from core.database import get_collection
from core.exceptions import ConflictError, ValidationError
from observability.audit_log import log_audit_event
from provisioning.store import subscriptions
from schemas.audit import AuditEventType
from schemas.base import utcnow
from schemas.subscription import UNIQUE_ATTRIBUTES, normalize_unique_value

logger = logging.getLogger(__name__)

Claim = Tuple[str, str]


def _check_attribute(attribute: str) -> None:
    if attribute not in UNIQUE_ATTRIBUTES:
        raise ValidationError(
            f"Unsupported unique attribute: {attribute}",
            details={"attribute": attribute},
        )


async def is_unique(attribute: str, value: str, exclude_id: Optional[str] = None) -> bool:
    """True when no subscription other than ``exclude_id`` holds the value."""
    _check_attribute(attribute)
    value = normalize_unique_value(value)
    holders = await subscriptions.scan({attribute: value})
    return not any(s.subscription_id != exclude_id for s in holders)


async def ensure_unique(values: Mapping[str, Optional[str]], exclude_id: Optional[str] = None) -> None:
    """Raise ConflictError on the first collision, in fixed attribute order."""
    for attribute in UNIQUE_ATTRIBUTES:
        value = values.get(attribute)
        if value is None:
            continue
        if not await is_unique(attribute, value, exclude_id):
            logger.info("Uniqueness conflict: attribute=%s value=%s", attribute, value)
            raise ConflictError(
                f"{attribute} already exists",
                conflicts=[normalize_unique_value(value)],
                details={"attribute": attribute},
            )


# ---- Reservations ----

def reservation_id(attribute: str, value: str) -> str:
    return f"{attribute}:{normalize_unique_value(value)}"


def _reservations():
    return get_collection(get_settings().RESERVATIONS_COLLECTION)


async def _is_stale(reservation: Dict) -> bool:
    """Old enough, and the owner does not actually hold the value."""
    reserved_at = reservation.get("reserved_at")
    if reserved_at is None:
        return True
    if reserved_at.tzinfo is None:
        reserved_at = reserved_at.replace(tzinfo=timezone.utc)
    max_age = timedelta(seconds=get_settings().RESERVATION_STALE_AFTER_S)
    if utcnow() - reserved_at < max_age:
        return False
    owner = await subscriptions.get(reservation["owner_id"])
    if owner is None:
        return True
    return getattr(owner, reservation["attribute"]) != reservation["value"]


async def reserve(attribute: str, value: str, owner_id: str) -> bool:
    """Claim ``value`` for subscription ``owner_id``.

    Returns True if a claim is held after the call, False when reservations
    are disabled. Re-claiming one's own value succeeds. Raises ConflictError
    when another live claim exists.
    """
    if not reservations_enabled():
        return False
    _check_attribute(attribute)
    value = normalize_unique_value(value)
    rid = reservation_id(attribute, value)
    coll = _reservations()
    try:
        await coll.insert_one({
            "_id": rid,
            "attribute": attribute,
            "value": value,
            "owner_id": owner_id,
            "reserved_at": utcnow(),
        })
        return True
    except DuplicateKeyError:
        existing = await coll.find_one({"_id": rid})

    if existing is None:
        # Released between our insert and read
        return await reserve(attribute, value, owner_id)
    if existing["owner_id"] == owner_id:
        return True
    if await _is_stale(existing):
        result = await coll.update_one(
            {"_id": rid, "owner_id": existing["owner_id"]},
            {"$set": {"owner_id": owner_id, "reserved_at": utcnow()}},
        )
        if result.modified_count:
            logger.warning(
                "Reservation reclaimed: key=%s from=%s to=%s",
                rid, existing["owner_id"], owner_id,
            )
            await log_audit_event(
                AuditEventType.RESERVATION_RECLAIMED,
                entity_id=owner_id,
                details={"reservation": rid, "previous_owner": existing["owner_id"]},
            )
            return True

    logger.info("Reservation conflict: key=%s owner=%s", rid, existing["owner_id"])
    raise ConflictError(
        f"{attribute} already exists",
        conflicts=[value],
        details={"attribute": attribute, "reserved": True},
    )


async def release(attribute: str, value: str, owner_id: str) -> None:
    """Drop a claim, only if ``owner_id`` still holds it."""
    if not reservations_enabled():
        return
    await _reservations().delete_one(
        {"_id": reservation_id(attribute, value), "owner_id": owner_id},
    )


async def reserve_all(values: Mapping[str, Optional[str]], owner_id: str) -> List[Claim]:
    """Claim every present value, in attribute order. All or nothing."""
    claimed: List[Claim] = []
    try:
        for attribute in UNIQUE_ATTRIBUTES:
            value = values.get(attribute)
            if value is None:
                continue
            if await reserve(attribute, value, owner_id):
                claimed.append((attribute, value))
    except Exception:
        await release_all(claimed, owner_id)
        raise
    return claimed


async def release_all(claims: List[Claim], owner_id: str) -> None:
    for attribute, value in claims:
        await release(attribute, value, owner_id)
