"""Persist failed payment attempts for later review."""
from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from partner_wallet.models import ReferenceType, TransactionStatus, TransactionType, WalletTransaction
from partner_wallet.schemas.razorpay import RazorpayWebhookEvent
from partner_wallet.services.partner_resolver import from_order_notes, from_payment_notes, parse_partner_id
from partner_wallet.services.wallet_ledger import LedgerOutcome, LedgerResult
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.security_events import log_security_event
from partner_wallet.utils.time import utcnow

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _known_partner_id(store: WalletStore, event: RazorpayWebhookEvent) -> int | None:
    for strategy in (from_order_notes, from_payment_notes):
        partner_id = parse_partner_id(strategy(event))
        if partner_id is not None and store.get_partner(partner_id) is not None:
            return partner_id
    return None


def record_failed_payment(
    store: WalletStore,
    event: RazorpayWebhookEvent,
    *,
    now: datetime | None = None,
) -> LedgerResult:
    """Store a zero-amount failed debit for a ``payment.failed`` event.

    Never raises; database problems are logged and reported as ``ERROR``.
    """

    payment = event.payment
    if payment is None:
        logger.warning("payment.failed without payment entity", extra={"event": event.event})
        return LedgerResult(outcome=LedgerOutcome.INVALID_PAYLOAD)

    reason = payment.error_description or payment.error_reason or "Unknown error"
    context = {"payment_id": payment.id, "order_id": event.order_id}

    try:
        existing = store.find_transaction_by_reference(payment.id, ReferenceType.RAZORPAY_PAYMENT_FAILED)
        if existing is not None:
            logger.info("Payment failure already recorded", extra=context)
            return LedgerResult.from_transaction(LedgerOutcome.DUPLICATE, existing)

        partner_id = _known_partner_id(store, event)
        at = now or utcnow()
        txn = WalletTransaction(
            partner_id=partner_id,
            transaction_type=TransactionType.DEBIT,
            amount=ZERO,
            balance_before=ZERO,
            balance_after=ZERO,
            description=f"Payment failed: {reason}",
            reference_id=payment.id,
            reference_type=ReferenceType.RAZORPAY_PAYMENT_FAILED,
            status=TransactionStatus.FAILED,
            metadata_json={
                "payment_method": payment.method,
                "failure_reason": reason,
                "error_code": payment.error_code,
                "error_reason": payment.error_reason,
                "order_id": event.order_id,
                "webhook_event": event.event,
                "processed_at": at.isoformat(),
            },
        )
        store.insert_transaction(txn)
        store.commit()
    except IntegrityError:
        store.rollback()
        logger.info("Concurrent payment failure record detected", extra=context)
        return LedgerResult(outcome=LedgerOutcome.DUPLICATE)
    except SQLAlchemyError:
        store.rollback()
        logger.exception("Failed to record failed payment", extra=context)
        return LedgerResult(outcome=LedgerOutcome.ERROR)

    log_security_event(
        "PAYMENT_FAILED",
        {
            **context,
            "partner_id": partner_id,
            "amount_minor": payment.amount,
            "error_code": payment.error_code,
            "failure_reason": reason,
        },
        "medium",
    )
    return LedgerResult.from_transaction(LedgerOutcome.FAILURE_RECORDED, txn)


__all__ = ["record_failed_payment"]
