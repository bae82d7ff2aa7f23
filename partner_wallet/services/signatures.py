"""HMAC signature verification for Razorpay webhooks and checkout completions."""
from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Mapping

from fastapi import HTTPException, status

from partner_wallet.config import get_settings
from partner_wallet.utils.errors import error_response
from partner_wallet.utils.masking import fingerprint, preview
from partner_wallet.utils.security_events import log_security_event

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-razorpay-signature", "x-provider-signature")


def _hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def compute_webhook_signature(secret: str, raw_body: bytes) -> str:
    """Return the hex HMAC-SHA256 of the raw request body."""

    return _hmac_sha256_hex(secret, raw_body)


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Constant-time comparison of ``signature`` with the expected body HMAC."""

    if not signature or not secret:
        return False
    expected = compute_webhook_signature(secret, raw_body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


def verify_payment_signature(
    order_id: str, payment_id: str, signature: str | None, key_secret: str | None
) -> bool:
    """Verify the signature Razorpay Checkout returns after a successful payment."""

    if not signature or not key_secret:
        return False
    expected = _hmac_sha256_hex(key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    name_lower = name.lower()
    for key, value in headers.items():
        if key.lower() == name_lower:
            return value
    return None


def extract_signature(headers: Mapping[str, str]) -> str | None:
    for name in SIGNATURE_HEADERS:
        value = _get_header(headers, name)
        if value:
            return value
    return None


def verify_webhook_request_or_raise(
    raw_body: bytes,
    headers: Mapping[str, str],
    *,
    client_ip: str | None = None,
) -> None:
    """Authenticate a webhook request before any parsing happens."""

    secret = get_settings().razorpay_webhook_secret
    if not secret:
        logger.error("Razorpay webhook secret is not configured; rejecting webhook.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=error_response(
                "WEBHOOK_SECRET_NOT_CONFIGURED",
                "Webhook secret is not configured.",
            ),
        )

    signature = extract_signature(headers)
    if not signature:
        log_security_event(
            "WEBHOOK_NO_SIGNATURE",
            {"ip": client_ip, "body_length": len(raw_body)},
            "high",
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("WEBHOOK_SIGNATURE_MISSING", "Missing webhook signature."),
        )

    if not verify_webhook_signature(raw_body, signature, secret):
        log_security_event(
            "WEBHOOK_INVALID_SIGNATURE",
            {
                "ip": client_ip,
                "received": preview(signature),
                "expected": preview(compute_webhook_signature(secret, raw_body)),
                "secret_fingerprint": fingerprint(secret),
            },
            "high",
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("WEBHOOK_SIGNATURE_INVALID", "Invalid webhook signature."),
        )


__all__ = [
    "compute_webhook_signature",
    "extract_signature",
    "verify_payment_signature",
    "verify_webhook_request_or_raise",
    "verify_webhook_signature",
]
