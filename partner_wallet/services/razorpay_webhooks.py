"""Services handling Razorpay webhook callbacks."""
from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from partner_wallet.config import get_settings
from partner_wallet.schemas.razorpay import RazorpayWebhookEvent
from partner_wallet.services.event_router import WebhookContext, WebhookOutcome, dispatch_event
from partner_wallet.services.razorpay_client import RazorpayClient
from partner_wallet.services.signatures import verify_webhook_request_or_raise
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.errors import error_response
from partner_wallet.utils.security_events import log_security_event
from partner_wallet.utils.time import utcnow

logger = logging.getLogger(__name__)


def parse_webhook_event(raw_body: bytes) -> RazorpayWebhookEvent:
    """Decode and validate the webhook body, raising HTTP 400 on malformed input."""

    try:
        data = json.loads(raw_body)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("WEBHOOK_PAYLOAD_INVALID", "Webhook body is not valid JSON."),
        )
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("WEBHOOK_PAYLOAD_INVALID", "Webhook body must be a JSON object."),
        )
    try:
        return RazorpayWebhookEvent.model_validate(data)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "WEBHOOK_PAYLOAD_INVALID",
                "Webhook body does not match the expected schema.",
                {"errors": exc.errors(include_url=False, include_input=False, include_context=False)},
            ),
        )


def process_webhook(
    db: Session,
    raw_body: bytes,
    headers: Mapping[str, str],
    *,
    client: RazorpayClient | None = None,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> dict[str, Any]:
    """Authenticate, parse and dispatch a Razorpay webhook.

    Once the signature is verified the response is always a success payload so
    Razorpay stops retrying; the outcome field reports what actually happened.
    """

    verify_webhook_request_or_raise(raw_body, headers, client_ip=client_ip)
    event = parse_webhook_event(raw_body)

    try:
        log_security_event(
            "WEBHOOK_RECEIVED",
            {
                "event": event.event,
                "ip": client_ip,
                "user_agent": user_agent,
                "payment_id": event.payment.id if event.payment is not None else None,
            },
            "low",
        )
        ctx = WebhookContext(store=WalletStore(db), client=client, client_ip=client_ip)
        outcome = dispatch_event(event, ctx)
    except Exception:  # noqa: BLE001
        logger.exception("Razorpay webhook dispatch failed", extra={"event": event.event})
        outcome = WebhookOutcome.ERROR
    logger.info(
        "Razorpay webhook processed",
        extra={"event": event.event, "outcome": outcome.value},
    )
    return {"success": True, "event": event.event, "outcome": outcome.value}


def webhook_status() -> dict[str, str]:
    settings = get_settings()
    return {
        "message": "Razorpay webhook endpoint is active",
        "timestamp": utcnow().isoformat(),
        "environment": settings.razorpay_mode,
    }


__all__ = ["parse_webhook_event", "process_webhook", "webhook_status"]
