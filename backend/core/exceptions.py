"""Custom exception hierarchy for the control plane.

Every error carries a stable ``code`` the HTTP layer maps to a status.
"""
from typing import Any, Dict, List, Optional


class ControlPlaneError(Exception):
    """Base error."""
    def __init__(
        self,
        message: str,
        code: str = "InternalError",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ControlPlaneError):
    """Malformed input or a schema violation detected before any write."""
    def __init__(self, message: str = "Invalid input", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="ValidationError", details=details)


class ConflictError(ControlPlaneError):
    """Uniqueness collision or CIDR overlap. ``conflicts`` lists what collided."""
    def __init__(
        self,
        message: str = "Resource conflict",
        conflicts: Optional[List[str]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.conflicts = list(conflicts or [])
        merged = dict(details or {})
        merged["conflicts"] = self.conflicts
        super().__init__(message, code="Conflict", details=merged)


class NotFoundError(ControlPlaneError):
    """Referenced id absent."""
    def __init__(self, message: str = "Resource not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="NotFound", details=details)


class ForbiddenError(ControlPlaneError):
    """Operation refused by an entity state guard."""
    def __init__(self, message: str = "Operation not permitted", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="Forbidden", details=details)


class InternalError(ControlPlaneError):
    """Store corruption, or a dependent write failed after a primary commit."""
    def __init__(self, message: str = "Internal error", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="InternalError", details=details)
