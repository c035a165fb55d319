"""Shared helpers for stored record schemas."""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def enum_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace Enum members with their values so the dict is storable."""
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


class StoredRecord(BaseModel):
    """Base for records persisted in an entity collection."""

    def to_doc(self) -> dict:
        """Convert to MongoDB document."""
        return enum_values(self.model_dump())
