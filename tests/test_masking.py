import hashlib
import logging

from partner_wallet.utils.masking import MASKED_PLACEHOLDER, fingerprint, preview, sanitize_for_log
from partner_wallet.utils.security_events import log_security_event


def test_preview_truncates_long_values():
    assert preview("abcdefghijklmnop") == "abcdefghij..."
    assert preview("short") == "short"
    assert preview(None) is None


def test_fingerprint_is_short_sha256():
    assert fingerprint("secret") == hashlib.sha256(b"secret").hexdigest()[:8]
    assert fingerprint("") is None
    assert fingerprint(None) is None


def test_sanitize_masks_contacts_and_secrets():
    sanitized = sanitize_for_log(
        {
            "email": "asha@example.com",
            "contact": "+919876543210",
            "customer_name": "Asha Rao",
            "webhook_secret": "whsec",
            "payment_id": "pay_1",
            "nested": {"customer_email": "ops@acme.test"},
            "flag": True,
        }
    )

    assert sanitized["email"] == "***@example.com"
    assert sanitized["contact"] == "***10"
    assert sanitized["customer_name"] == MASKED_PLACEHOLDER
    assert sanitized["webhook_secret"] == f"sha256:{fingerprint('whsec')}"
    assert sanitized["payment_id"] == "pay_1"
    assert sanitized["nested"] == {"customer_email": "***@acme.test"}
    assert sanitized["flag"] is True


def test_sanitize_handles_empty():
    assert sanitize_for_log(None) == {}
    assert sanitize_for_log({}) == {}


def test_security_event_severity_levels(caplog):
    caplog.set_level(logging.INFO, logger="partner_wallet.security")

    log_security_event("LOW_EVENT", {"a": 1}, "low")
    log_security_event("MEDIUM_EVENT", {"email": "x@y.z"}, "medium")
    log_security_event("HIGH_EVENT", None, "high")

    levels = {r.security_event: r.levelno for r in caplog.records if hasattr(r, "security_event")}
    assert levels == {"LOW_EVENT": logging.INFO, "MEDIUM_EVENT": logging.WARNING, "HIGH_EVENT": logging.ERROR}
    medium = next(r for r in caplog.records if getattr(r, "security_event", None) == "MEDIUM_EVENT")
    assert medium.details == {"email": "***@y.z"}
    assert medium.env == "dev"
