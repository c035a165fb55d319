from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import json
import logging

from core.logging_config import JSONFormatter, RedactingFormatter
from observability.redaction import redact, redact_dict


class TestRedact:
    def test_email_masked(self):
        assert redact("owner jane@example.com registered") == "owner [REDACTED_EMAIL] registered"

    def test_phone_masked(self):
        assert "[REDACTED_PHONE]" in redact("mobile +44 7700 900123")

    def test_mongo_uri_masked_before_email(self):
        out = redact("connecting to mongodb://admin:pw@db.internal:27017/cp")
        assert out == "connecting to [REDACTED_MONGO_URI]"

    def test_bearer_masked(self):
        assert redact("Authorization: Bearer abc.def.ghi") == "Authorization: [REDACTED_BEARER]"

    def test_tenant_urls_left_alone(self):
        text = "tenant=t1 url=https://shop.example.com cidr=10.0.0.0/16"
        assert redact(text) == text


class TestRedactDict:
    def test_contact_fields_masked(self):
        out = redact_dict({"email": "a@b.co", "mobile_number": "+15551234567", "name": "Jane"})
        assert out == {"email": "[REDACTED]", "mobile_number": "[REDACTED]", "name": "Jane"}

    def test_nested(self):
        out = redact_dict({"contact_info": {"phone": "+15551234567", "company": "Acme"}})
        assert out == {"contact_info": {"phone": "[REDACTED]", "company": "Acme"}}


def _record(msg, *args):
    return logging.LogRecord("provisioning.lifecycle", logging.INFO, __file__, 1, msg, args, None)


class TestFormatters:
    def test_plaintext_formatter_redacts(self):
        out = RedactingFormatter("%(message)s").format(_record("Tenant updated: email=%s", "jane@example.com"))
        assert out == "Tenant updated: email=[REDACTED_EMAIL]"

    def test_json_formatter_lifts_correlation_ids(self):
        out = JSONFormatter().format(_record(
            "Subscription created: subscription=%s tenant=%s", "s-1", "t-1",
        ))
        payload = json.loads(out)
        assert payload["subscription_id"] == "s-1"
        assert payload["tenant_id"] == "t-1"
        assert payload["level"] == "INFO"
