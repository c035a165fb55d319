"""Landlord reconciliation — replay path for partially applied writes.

A subscription committed without its landlord row (projection failure after
the commit), or whose landlord drifted from it, is repaired by recomputing
the projection. Safe to run repeatedly.
"""
import logging
from typing import Any, Dict, List

from pymongo.errors import PyMongoError

from core.exceptions import ControlPlaneError
from provisioning.propagation import landlord_matches, sync_landlord
from provisioning.store import landlords, subscriptions
from schemas.subscription import Subscription

logger = logging.getLogger(__name__)


async def find_orphaned_subscriptions() -> List[Subscription]:
    """Subscriptions with no landlord row."""
    landlord_ids = {row.id for row in await landlords.scan()}
    return [s for s in await subscriptions.scan() if s.subscription_id not in landlord_ids]


async def reconcile_landlords() -> Dict[str, Any]:
    """Rebuild missing landlord rows and re-sync drifted ones."""
    by_id = {row.id: row for row in await landlords.scan()}
    report: Dict[str, Any] = {"rebuilt": [], "resynced": [], "failed": []}

    for sub in await subscriptions.scan():
        landlord = by_id.get(sub.subscription_id)
        if landlord is not None and landlord_matches(sub, landlord):
            continue
        try:
            await sync_landlord(sub)
        except (ControlPlaneError, PyMongoError) as e:
            logger.error("Reconcile failed: subscription=%s error=%s", sub.subscription_id, e)
            report["failed"].append({"subscription_id": sub.subscription_id, "error": str(e)})
            continue
        key = "rebuilt" if landlord is None else "resynced"
        report[key].append(sub.subscription_id)

    logger.info(
        "Landlord reconcile: rebuilt=%d resynced=%d failed=%d",
        len(report["rebuilt"]), len(report["resynced"]), len(report["failed"]),
    )
    return report
