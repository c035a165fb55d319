"""PII and secret scrubbing for log lines and audit details.

Tenant records carry contact PII (email, mobile number, contact phone);
configuration carries the Mongo URI and the service token. Neither may
reach a log sink in clear.
"""
import re
from typing import Any, FrozenSet, Optional, Sequence, Tuple

SENSITIVE_KEYS: FrozenSet[str] = frozenset({
    "email", "mobile_number", "phone",
    "password", "token", "secret", "api_key",
    "control_plane_s2s_token", "mongo_url",
})

# Applied in order. URIs go first: user:pass@host would otherwise read as an email.
_RULES: Sequence[Tuple[str, re.Pattern]] = (
    ("MONGO_URI", re.compile(r"mongodb(?:\+srv)?://[^\s\"']+")),
    ("EMAIL", re.compile(r"[A-Za-z0-9_.+-]+@[A-Za-z0-9-]+(?:\.[A-Za-z0-9-]+)+")),
    ("PHONE", re.compile(r"\+\d[\d\s-]{7,15}\d")),
    ("JWT", re.compile(r"eyJ[\w-]+\.eyJ[\w-]+\.[\w-]+")),
    ("BEARER", re.compile(r"Bearer\s+[\w.-]+", re.IGNORECASE)),
    ("SECRET", re.compile(
        r"(?:s2s[_-]?token|api[_-]?key|token|secret|password)[\s:=]+[\"']?[\w.-]{20,}[\"']?",
        re.IGNORECASE,
    )),
)


def redact(text: str) -> str:
    """Replace every PII or secret match with ``[REDACTED_<KIND>]``."""
    for label, pattern in _RULES:
        text = pattern.sub(f"[REDACTED_{label}]", text)
    return text


def _scrub(value: Any, keys: FrozenSet[str]) -> Any:
    if isinstance(value, dict):
        return {
            k: "[REDACTED]" if str(k).lower() in keys else _scrub(v, keys)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_scrub(v, keys) for v in value]
    if isinstance(value, str):
        return redact(value)
    return value


def redact_dict(data: dict, sensitive_keys: Optional[FrozenSet[str]] = None) -> dict:
    """Copy of ``data`` with sensitive keys masked and strings scrubbed, recursively."""
    keys = frozenset(k.lower() for k in sensitive_keys) if sensitive_keys else SENSITIVE_KEYS
    return _scrub(data, keys)
