"""Observability Metrics.

Entity counts by status for monitoring, plus the number of subscriptions
missing their landlord projection.
"""
import logging
from collections import Counter
from typing import Any, Dict

from config.settings import get_settings
from core.database import get_collection
from provisioning.reconcile import find_orphaned_subscriptions
from schemas.base import utcnow

logger = logging.getLogger(__name__)


async def _counts_by_status(collection_name: str) -> Dict[str, int]:
    counts: Counter = Counter()
    async for doc in get_collection(collection_name).find({}, {"status": 1}):
        counts[str(doc.get("status"))] += 1
    return dict(counts)


async def get_system_metrics() -> Dict[str, Any]:
    """Collect system-wide metrics."""
    settings = get_settings()
    entities = {
        "tenants": settings.TENANTS_COLLECTION,
        "clusters": settings.CLUSTERS_COLLECTION,
        "subscriptions": settings.SUBSCRIPTIONS_COLLECTION,
        "landlords": settings.LANDLORD_COLLECTION,
    }
    metrics: Dict[str, Any] = {}
    for label, collection_name in entities.items():
        by_status = await _counts_by_status(collection_name)
        metrics[label] = {"total": sum(by_status.values()), "by_status": by_status}

    metrics["reservations"] = {
        "total": await get_collection(settings.RESERVATIONS_COLLECTION).count_documents({}),
    }
    metrics["audit_events"] = {
        "total": await get_collection(settings.AUDIT_COLLECTION).count_documents({}),
        "cascade_failures": await get_collection(settings.AUDIT_COLLECTION).count_documents(
            {"event_type": "cascade_step_failed"},
        ),
    }
    metrics["orphaned_subscriptions"] = len(await find_orphaned_subscriptions())
    metrics["timestamp"] = utcnow().isoformat()
    return metrics
