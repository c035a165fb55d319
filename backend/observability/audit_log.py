"""Audit logging — persists structured audit events to MongoDB."""
import logging
from typing import Any, Dict, List, Optional

from config.settings import get_settings
from core.database import get_collection
from schemas.audit import AuditEvent, AuditEventType
from observability.redaction import redact_dict

logger = logging.getLogger(__name__)


async def log_audit_event(
    event_type: AuditEventType,
    tenant_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> str:
    """Create and persist an audit event. Returns event_id."""
    settings = get_settings()
    event = AuditEvent(
        event_type=event_type,
        tenant_id=tenant_id,
        entity_id=entity_id,
        details=details or {},
        env=settings.ENV,
    )
    await get_collection(settings.AUDIT_COLLECTION).insert_one(event.to_doc())

    # Log with redacted details
    safe_details = redact_dict(details or {})
    logger.info(
        "AUDIT event=%s tenant=%s entity=%s details=%s",
        event_type.value,
        tenant_id,
        entity_id,
        safe_details,
    )
    return event.event_id


async def list_audit_events(
    tenant_id: Optional[str] = None,
    event_type: Optional[AuditEventType] = None,
    limit: int = 100,
) -> List[Dict[str, Any]]:
    """Most recent events first, optionally narrowed by tenant or type."""
    query: Dict[str, Any] = {}
    if tenant_id:
        query["tenant_id"] = tenant_id
    if event_type:
        query["event_type"] = event_type.value
    cursor = get_collection(get_settings().AUDIT_COLLECTION).find(
        query, {"_id": 0}, sort=[("timestamp", -1)], limit=limit,
    )
    return await cursor.to_list(limit)
