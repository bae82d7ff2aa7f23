"""Helpers for masking sensitive values before they reach the logs."""
from __future__ import annotations

import hashlib
from typing import Any, Mapping, Sequence

MASKED_PLACEHOLDER = "***masked***"

# Keys whose values are never logged, only fingerprinted
SECRET_KEYS = {
    "secret",
    "webhook_secret",
    "key_secret",
    "merchant_key",
    "api_key",
    "password",
    "token",
}

CONTACT_KEYS = {"email", "contact", "phone", "mobile", "customer_email", "customer_contact"}

FULL_MASK_KEYS = {"customer_name", "customer_street_address", "card_number", "vpa"}


def preview(value: Any, length: int = 10) -> str | None:
    """Return the first ``length`` characters of a value followed by an ellipsis."""

    if value is None:
        return None
    text = str(value)
    if len(text) <= length:
        return text
    return f"{text[:length]}..."


def fingerprint(value: str | None) -> str | None:
    """Return a short SHA-256 fingerprint that identifies a secret without revealing it."""

    if not value:
        return None
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:8]


def _mask_email(value: Any) -> str:
    text = "" if value is None else str(value)
    if "@" not in text:
        return "***@***"
    _, domain = text.split("@", 1)
    return f"***@{domain or '***'}"


def _mask_phone(value: Any) -> str:
    text = "" if value is None else str(value)
    digits = "".join(ch for ch in text if ch.isdigit())
    if not digits:
        return "***"
    tail = digits[-2:] if len(digits) >= 2 else digits
    return f"***{tail}"


def _mask_leaf(key: str, value: Any) -> Any:
    if isinstance(value, bool) or value is None:
        return value

    lower = key.lower()
    if lower in SECRET_KEYS or lower.endswith("_secret"):
        return f"sha256:{fingerprint(str(value))}"

    if lower in FULL_MASK_KEYS:
        return MASKED_PLACEHOLDER

    if lower.endswith("email") or (lower in CONTACT_KEYS and "@" in str(value)):
        return _mask_email(value)

    if lower in CONTACT_KEYS or "phone" in lower or "mobile" in lower:
        return _mask_phone(value)

    return value


def sanitize_for_log(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of ``data`` with contact details masked and secrets fingerprinted."""

    if not data:
        return {}
    masked: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            masked[key] = sanitize_for_log(value)
        elif isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
            masked[key] = [
                sanitize_for_log(item) if isinstance(item, Mapping) else _mask_leaf(key, item)
                for item in value
            ]
        else:
            masked[key] = _mask_leaf(key, value)
    return masked


__all__ = ["MASKED_PLACEHOLDER", "preview", "fingerprint", "sanitize_for_log"]
