"""Logging setup for the control plane.

Production emits one JSON object per line; every other environment emits
plaintext. Both paths scrub PII when LOG_REDACTION_ENABLED is set.

Messages use the ``key=value`` convention. A filter copies the tenant,
subscription and cluster ids found in a message onto the record so the
JSON output can be correlated per entity.
"""
import json
import logging
import re
import sys
from typing import Optional

from config.settings import get_settings
from observability.redaction import redact

CORRELATION_FIELDS = {
    "tenant_id": re.compile(r"\btenant=([^\s,]+)"),
    "subscription_id": re.compile(r"\bsubscription=([^\s,]+)"),
    "cluster_id": re.compile(r"\bcluster=([^\s,]+)"),
}

# Third-party loggers kept at WARNING
_QUIET_LOGGERS = ("uvicorn.access", "motor", "pymongo")


class CorrelationFilter(logging.Filter):
    """Attach entity ids parsed from the message unless the caller set them via ``extra``."""

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        for field, pattern in CORRELATION_FIELDS.items():
            if getattr(record, field, None):
                continue
            m = pattern.search(msg)
            setattr(record, field, m.group(1) if m else None)
        return True


def _maybe_redact(text: str) -> str:
    return redact(text) if get_settings().LOG_REDACTION_ENABLED else text


class RedactingFormatter(logging.Formatter):
    """Plaintext formatter with PII scrubbing."""

    def format(self, record: logging.LogRecord) -> str:
        return _maybe_redact(super().format(record))


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "tenant_id"):
            CorrelationFilter().filter(record)
        entry = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for field in CORRELATION_FIELDS:
            value = getattr(record, field, None)
            if value:
                entry[field] = value
        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)
        return _maybe_redact(json.dumps(entry, default=str))


def setup_logging(level: Optional[str] = None) -> None:
    """Install a single stdout handler on the root logger. Idempotent."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(CorrelationFilter())
    if settings.ENV == "prod":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(RedactingFormatter(
            fmt="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        ))

    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
