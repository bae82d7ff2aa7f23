"""Idempotent wallet credits for captured payments."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from partner_wallet.config import get_settings
from partner_wallet.models import (
    ReferenceType,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.money import minor_to_major
from partner_wallet.utils.security_events import log_security_event
from partner_wallet.utils.time import utcnow

logger = logging.getLogger(__name__)


class LedgerOutcome(str, enum.Enum):
    CREDITED = "credited"
    DUPLICATE = "duplicate"
    PARTNER_NOT_FOUND = "partner_not_found"
    INVALID_PAYLOAD = "invalid_payload"
    FAILURE_RECORDED = "failure_recorded"
    ERROR = "error"


@dataclass(frozen=True)
class LedgerResult:
    outcome: LedgerOutcome
    partner_id: int | None = None
    amount: Decimal | None = None
    balance_before: Decimal | None = None
    balance_after: Decimal | None = None
    transaction_id: int | None = None
    audit_gap: bool = False

    @classmethod
    def from_transaction(cls, outcome: LedgerOutcome, txn: WalletTransaction) -> "LedgerResult":
        return cls(
            outcome=outcome,
            partner_id=txn.partner_id,
            amount=txn.amount,
            balance_before=txn.balance_before,
            balance_after=txn.balance_after,
            transaction_id=txn.id,
        )


def credit_captured_payment(
    store: WalletStore,
    *,
    partner_id: int,
    payment_id: str,
    amount_minor: int,
    currency: str,
    method: str | None = None,
    order_id: str | None = None,
    source: str = "webhook",
    extra_metadata: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> LedgerResult:
    """Credit a captured payment to the partner wallet exactly once.

    ``payment_id`` is the idempotency key: a second call for the same payment, from
    the webhook or from client-side verification, returns ``DUPLICATE`` without
    touching the balance. The balance update and the ledger row commit together,
    except when the ledger insert fails for a reason other than a uniqueness
    violation; the balance is then kept and the gap is reported as a high
    severity event so it can be reconciled by hand.
    """

    context = {"partner_id": partner_id, "payment_id": payment_id, "order_id": order_id, "source": source}

    existing = store.find_transaction_by_reference(payment_id, ReferenceType.RAZORPAY_PAYMENT)
    if existing is not None:
        logger.info("Payment already credited; skipping", extra=context)
        return LedgerResult.from_transaction(LedgerOutcome.DUPLICATE, existing)

    if amount_minor <= 0:
        log_security_event("WEBHOOK_INVALID_AMOUNT", {**context, "amount_minor": amount_minor}, "high")
        return LedgerResult(outcome=LedgerOutcome.INVALID_PAYLOAD, partner_id=partner_id)

    expected_currency = get_settings().WALLET_CURRENCY
    if currency.upper() != expected_currency.upper():
        log_security_event(
            "WEBHOOK_CURRENCY_MISMATCH",
            {**context, "currency": currency, "expected_currency": expected_currency},
            "high",
        )
        return LedgerResult(outcome=LedgerOutcome.INVALID_PAYLOAD, partner_id=partner_id)

    partner = store.get_partner(partner_id, for_update=True)
    if partner is None:
        store.rollback()
        log_security_event("WEBHOOK_PARTNER_NOT_FOUND", context, "high")
        return LedgerResult(outcome=LedgerOutcome.PARTNER_NOT_FOUND, partner_id=partner_id)

    amount = minor_to_major(amount_minor)
    at = now or utcnow()
    balance_after = store.apply_balance_delta(partner_id, amount, at=at)
    if balance_after is None:
        store.rollback()
        log_security_event("WEBHOOK_PARTNER_NOT_FOUND", context, "high")
        return LedgerResult(outcome=LedgerOutcome.PARTNER_NOT_FOUND, partner_id=partner_id)
    balance_before = balance_after - amount

    metadata: dict[str, Any] = {
        "payment_method": method,
        "order_id": order_id,
        "currency": currency,
        "source": source,
        "processed_at": at.isoformat(),
    }
    if extra_metadata:
        metadata.update(extra_metadata)

    txn = WalletTransaction(
        partner_id=partner_id,
        transaction_type=TransactionType.CREDIT,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=f"Wallet top-up via Razorpay - Payment ID: {payment_id}",
        reference_id=payment_id,
        reference_type=ReferenceType.RAZORPAY_PAYMENT,
        status=TransactionStatus.COMPLETED,
        metadata_json=metadata,
    )

    try:
        store.insert_transaction(txn)
    except IntegrityError:
        # A concurrent delivery of the same payment committed first; undo our increment.
        store.rollback()
        logger.info("Concurrent duplicate credit detected; rolled back", extra=context)
        winner = store.find_transaction_by_reference(payment_id, ReferenceType.RAZORPAY_PAYMENT)
        if winner is not None:
            return LedgerResult.from_transaction(LedgerOutcome.DUPLICATE, winner)
        return LedgerResult(outcome=LedgerOutcome.DUPLICATE, partner_id=partner_id)
    except SQLAlchemyError as exc:
        store.commit()
        log_security_event(
            "WALLET_AUDIT_GAP",
            {
                **context,
                "amount": str(amount),
                "balance_after": str(balance_after),
                "error": type(exc).__name__,
            },
            "high",
        )
        return LedgerResult(
            outcome=LedgerOutcome.CREDITED,
            partner_id=partner_id,
            amount=amount,
            balance_before=balance_before,
            balance_after=balance_after,
            audit_gap=True,
        )

    store.commit()
    logger.info(
        "Wallet credited",
        extra={**context, "amount": str(amount), "balance_after": str(balance_after)},
    )
    return LedgerResult.from_transaction(LedgerOutcome.CREDITED, txn)


__all__ = ["LedgerOutcome", "LedgerResult", "credit_captured_payment"]
