"""Dispatch authenticated Razorpay webhook events to their handlers."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError

from partner_wallet.schemas.razorpay import RazorpayWebhookEvent
from partner_wallet.services.failure_logger import record_failed_payment
from partner_wallet.services.partner_resolver import (
    PartnerStrategy,
    default_partner_strategies,
    resolve_partner_id,
)
from partner_wallet.services.razorpay_client import RazorpayClient
from partner_wallet.services.wallet_ledger import LedgerOutcome, credit_captured_payment
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.security_events import log_security_event

logger = logging.getLogger(__name__)


class WebhookOutcome(str, enum.Enum):
    CREDITED = "credited"
    DUPLICATE = "duplicate"
    PARTNER_UNRESOLVED = "partner_unresolved"
    PARTNER_NOT_FOUND = "partner_not_found"
    INVALID_PAYLOAD = "invalid_payload"
    FAILURE_RECORDED = "failure_recorded"
    LOGGED = "logged"
    IGNORED = "ignored"
    ERROR = "error"


_LEDGER_TO_WEBHOOK = {
    LedgerOutcome.CREDITED: WebhookOutcome.CREDITED,
    LedgerOutcome.DUPLICATE: WebhookOutcome.DUPLICATE,
    LedgerOutcome.PARTNER_NOT_FOUND: WebhookOutcome.PARTNER_NOT_FOUND,
    LedgerOutcome.INVALID_PAYLOAD: WebhookOutcome.INVALID_PAYLOAD,
    LedgerOutcome.FAILURE_RECORDED: WebhookOutcome.FAILURE_RECORDED,
    LedgerOutcome.ERROR: WebhookOutcome.ERROR,
}


@dataclass
class WebhookContext:
    """Per-request collaborators handed to every handler."""

    store: WalletStore
    client: RazorpayClient | None = None
    strategies: list[tuple[str, PartnerStrategy]] = field(default_factory=list)
    client_ip: str | None = None

    def __post_init__(self) -> None:
        if not self.strategies:
            self.strategies = default_partner_strategies(self.client)


Handler = Callable[[RazorpayWebhookEvent, WebhookContext], WebhookOutcome]


def handle_payment_captured(event: RazorpayWebhookEvent, ctx: WebhookContext) -> WebhookOutcome:
    payment = event.payment
    if payment is None:
        log_security_event("WEBHOOK_PAYMENT_MISSING", {"event": event.event}, "medium")
        return WebhookOutcome.INVALID_PAYLOAD

    partner_id, source = resolve_partner_id(event, ctx.strategies)
    if partner_id is None:
        return WebhookOutcome.PARTNER_UNRESOLVED

    result = credit_captured_payment(
        ctx.store,
        partner_id=partner_id,
        payment_id=payment.id,
        amount_minor=payment.amount,
        currency=payment.currency,
        method=payment.method,
        order_id=event.order_id,
        source="webhook",
        extra_metadata={"webhook_event": event.event, "partner_id_source": source},
    )
    return _LEDGER_TO_WEBHOOK[result.outcome]


def handle_payment_failed(event: RazorpayWebhookEvent, ctx: WebhookContext) -> WebhookOutcome:
    result = record_failed_payment(ctx.store, event)
    return _LEDGER_TO_WEBHOOK[result.outcome]


def handle_order_paid(event: RazorpayWebhookEvent, ctx: WebhookContext) -> WebhookOutcome:
    order = event.order
    log_security_event(
        "ORDER_PAID",
        {
            "order_id": event.order_id,
            "amount_minor": order.amount if order is not None else None,
            "status": order.status if order is not None else None,
        },
        "low",
    )
    return WebhookOutcome.LOGGED


def handle_refund(event: RazorpayWebhookEvent, ctx: WebhookContext) -> WebhookOutcome:
    # Refunds are recorded in the logs only; the wallet is not reversed automatically.
    refund = event.refund
    name = "REFUND_CREATED" if event.event == "refund.created" else "REFUND_PROCESSED"
    log_security_event(
        name,
        {
            "refund_id": refund.id if refund is not None else None,
            "payment_id": refund.payment_id if refund is not None else None,
            "amount_minor": refund.amount if refund is not None else None,
            "status": refund.status if refund is not None else None,
        },
        "medium",
    )
    return WebhookOutcome.LOGGED


HANDLERS: dict[str, Handler] = {
    "payment.captured": handle_payment_captured,
    "payment.failed": handle_payment_failed,
    "order.paid": handle_order_paid,
    "refund.created": handle_refund,
    "refund.processed": handle_refund,
}


def dispatch_event(event: RazorpayWebhookEvent, ctx: WebhookContext) -> WebhookOutcome:
    """Run the handler for ``event`` and contain any failure it raises."""

    handler = HANDLERS.get(event.event)
    if handler is None:
        logger.info("Unhandled Razorpay webhook event", extra={"event": event.event})
        return WebhookOutcome.IGNORED

    try:
        return handler(event, ctx)
    except Exception as exc:  # noqa: BLE001
        try:
            ctx.store.rollback()
        except SQLAlchemyError:
            logger.exception("Rollback after webhook handler failure failed", extra={"event": event.event})
        payment = event.payment
        log_security_event(
            "WEBHOOK_PROCESSING_ERROR",
            {
                "event": event.event,
                "payment_id": payment.id if payment is not None else None,
                "order_id": event.order_id,
                "error": type(exc).__name__,
                "message": str(exc)[:200],
            },
            "high",
        )
        logger.exception("Webhook handler failed", extra={"event": event.event})
        return WebhookOutcome.ERROR


__all__ = ["HANDLERS", "WebhookContext", "WebhookOutcome", "dispatch_event"]
