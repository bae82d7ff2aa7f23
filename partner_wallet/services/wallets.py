"""Wallet read APIs, admin adjustments and Razorpay top-up orchestration."""
from __future__ import annotations

import logging
import math
import secrets
import string
from datetime import datetime, timedelta
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from partner_wallet.config import get_settings
from partner_wallet.models import (
    Partner,
    ReferenceType,
    TransactionStatus,
    TransactionType,
    WalletStatus,
    WalletTransaction,
)
from partner_wallet.schemas.razorpay import (
    PaymentVerificationCreate,
    PaymentVerificationRead,
    TopupOrderCreate,
    TopupOrderRead,
)
from partner_wallet.schemas.wallet import (
    PartnerWalletPage,
    PaymentStatusRead,
    TopPartnerRead,
    WalletBalanceDistribution,
    WalletOverview,
    WalletRecentActivity,
    WalletStatsRead,
    WalletAdjustmentCreate,
    WalletAdjustmentRead,
    WalletBalanceRead,
    WalletTransactionPage,
    WalletTransactionRead,
)
from partner_wallet.services.checkout import validate_amount
from partner_wallet.services.partner_resolver import parse_partner_id
from partner_wallet.services.razorpay_client import PROVIDER_ERRORS, RazorpayClient
from partner_wallet.services.signatures import verify_payment_signature
from partner_wallet.services.wallet_ledger import LedgerOutcome, credit_captured_payment
from partner_wallet.services.wallet_store import WalletStore
from partner_wallet.utils.errors import error_response
from partner_wallet.utils.money import major_to_minor, quantize_amount
from partner_wallet.utils.security_events import log_security_event
from partner_wallet.utils.time import epoch_millis, utcnow

logger = logging.getLogger(__name__)

_RECEIPT_ALPHABET = string.ascii_uppercase + string.digits
HIGH_BALANCE_THRESHOLD = Decimal("10000")
RECENT_ACTIVITY_DAYS = 7
TOP_PARTNERS_LIMIT = 5


def _partner_or_404(store: WalletStore, partner_id: int, *, for_update: bool = False) -> Partner:
    partner = store.get_partner(partner_id, for_update=for_update)
    if partner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("PARTNER_NOT_FOUND", "Partner not found."),
        )
    return partner


def _balance_read(partner: Partner) -> WalletBalanceRead:
    return WalletBalanceRead(
        partner_id=partner.id,
        partner_name=partner.name,
        wallet_balance=partner.wallet_balance,
        wallet_status=partner.wallet_status,
        last_transaction_at=partner.last_transaction_at,
        wallet_updated_at=partner.wallet_updated_at,
    )


def get_wallet_summary(db: Session, partner_id: int) -> WalletBalanceRead:
    return _balance_read(_partner_or_404(WalletStore(db), partner_id))


def list_partner_wallets(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    search: str | None = None,
    wallet_status: WalletStatus | None = None,
    min_balance: Decimal | None = None,
    max_balance: Decimal | None = None,
) -> PartnerWalletPage:
    partners, total = WalletStore(db).list_partners(
        page=page,
        limit=limit,
        search=search,
        wallet_status=wallet_status,
        min_balance=min_balance,
        max_balance=max_balance,
    )
    return PartnerWalletPage(
        items=[_balance_read(partner) for partner in partners],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def get_wallet_stats(db: Session, *, now: datetime | None = None) -> WalletStatsRead:
    """Aggregate balances, statuses and the last week of completed activity."""

    store = WalletStore(db)
    total_partners, total_balance = store.wallet_totals()
    average = total_balance / total_partners if total_partners else Decimal("0")

    by_status = store.count_by_status()
    zero_count, high_count = store.count_by_balance(HIGH_BALANCE_THRESHOLD)

    since = (now or utcnow()) - timedelta(days=RECENT_ACTIVITY_DAYS)
    activity = store.completed_activity_since(since)
    credit_count, credit_amount = activity.get(TransactionType.CREDIT, (0, Decimal("0")))
    debit_count, debit_amount = activity.get(TransactionType.DEBIT, (0, Decimal("0")))
    adjustment_count, _ = activity.get(TransactionType.ADJUSTMENT, (0, Decimal("0")))

    return WalletStatsRead(
        overview=WalletOverview(
            total_partners=total_partners,
            total_wallet_balance=quantize_amount(total_balance),
            average_balance=quantize_amount(average),
        ),
        status_breakdown={status_.value: by_status.get(status_, 0) for status_ in WalletStatus},
        balance_distribution=WalletBalanceDistribution(
            zero_balance=zero_count,
            high_balance=high_count,
            normal_balance=total_partners - zero_count - high_count,
        ),
        recent_activity=WalletRecentActivity(
            period_days=RECENT_ACTIVITY_DAYS,
            total_transactions=credit_count + debit_count + adjustment_count,
            credit_amount=quantize_amount(credit_amount),
            debit_amount=quantize_amount(debit_amount),
            net_amount=quantize_amount(credit_amount - debit_amount),
        ),
        top_partners=[
            TopPartnerRead(
                partner_id=partner.id,
                partner_name=partner.name,
                wallet_balance=partner.wallet_balance,
            )
            for partner in store.top_partners_by_balance(TOP_PARTNERS_LIMIT)
        ],
    )


def list_wallet_transactions(
    db: Session,
    partner_id: int,
    *,
    page: int = 1,
    limit: int = 10,
    transaction_type: TransactionType | None = None,
    status_filter: TransactionStatus | None = None,
) -> WalletTransactionPage:
    store = WalletStore(db)
    _partner_or_404(store, partner_id)
    items, total = store.list_transactions(
        partner_id,
        page=page,
        limit=limit,
        transaction_type=transaction_type,
        status=status_filter,
    )
    return WalletTransactionPage(
        items=[WalletTransactionRead.model_validate(item) for item in items],
        page=page,
        limit=limit,
        total=total,
        total_pages=math.ceil(total / limit) if total else 0,
    )


def get_payment_status(db: Session, partner_id: int, payment_id: str) -> PaymentStatusRead:
    """Report whether a Razorpay payment has been credited to (or failed for) a partner."""

    store = WalletStore(db)
    _partner_or_404(store, partner_id)
    for reference_type in (ReferenceType.RAZORPAY_PAYMENT, ReferenceType.RAZORPAY_PAYMENT_FAILED):
        txn = store.find_transaction_by_reference(payment_id, reference_type, partner_id=partner_id)
        if txn is not None:
            return PaymentStatusRead(
                payment_id=payment_id,
                partner_id=partner_id,
                status=txn.status.value,
                amount=txn.amount,
                balance_after=txn.balance_after,
                transaction_id=txn.id,
                processed_at=txn.created_at,
            )
    return PaymentStatusRead(payment_id=payment_id, partner_id=partner_id, status="not_found")


def _replay_adjustment(store: WalletStore, partner_id: int, existing: WalletTransaction) -> WalletAdjustmentRead:
    if existing.partner_id != partner_id:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response(
                "IDEMPOTENCY_KEY_CONFLICT",
                "Idempotency key already used for another partner.",
            ),
        )
    return WalletAdjustmentRead(
        transaction=WalletTransactionRead.model_validate(existing),
        wallet_balance=store.get_partner_balance(partner_id),
        replayed=True,
    )


def adjust_wallet(
    db: Session,
    partner_id: int,
    payload: WalletAdjustmentCreate,
    *,
    idempotency_key: str | None = None,
    actor: str = "admin",
) -> WalletAdjustmentRead:
    """Apply an admin credit, debit or absolute balance adjustment."""

    store = WalletStore(db)
    if idempotency_key:
        existing = store.find_transaction_by_reference(idempotency_key, ReferenceType.ADMIN_ADJUSTMENT)
        if existing is not None:
            return _replay_adjustment(store, partner_id, existing)

    _partner_or_404(store, partner_id, for_update=True)
    amount = quantize_amount(payload.amount)
    at = utcnow()

    if payload.transaction_type == TransactionType.CREDIT:
        balance_after = store.apply_balance_delta(partner_id, amount, at=at)
        balance_before = balance_after - amount
    elif payload.transaction_type == TransactionType.DEBIT:
        balance_after = store.apply_balance_delta(partner_id, -amount, at=at, require_balance=amount)
        if balance_after is None:
            current = store.get_partner_balance(partner_id)
            store.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=error_response(
                    "INSUFFICIENT_BALANCE",
                    "Insufficient wallet balance for debit transaction.",
                    {"wallet_balance": str(current), "requested": str(amount)},
                ),
            )
        balance_before = balance_after + amount
    else:
        balance_before = store.get_partner_balance(partner_id)
        balance_after = store.set_partner_balance(partner_id, amount, at=at)

    txn = WalletTransaction(
        partner_id=partner_id,
        transaction_type=payload.transaction_type,
        amount=amount,
        balance_before=balance_before,
        balance_after=balance_after,
        description=payload.description or f"Admin {payload.transaction_type.value} transaction",
        reference_id=idempotency_key,
        reference_type=ReferenceType.ADMIN_ADJUSTMENT if idempotency_key else None,
        status=TransactionStatus.COMPLETED,
        metadata_json={"created_by": actor},
    )
    try:
        store.insert_transaction(txn)
    except IntegrityError:
        store.rollback()
        existing = store.find_transaction_by_reference(idempotency_key or "", ReferenceType.ADMIN_ADJUSTMENT)
        if existing is None:
            raise
        return _replay_adjustment(store, partner_id, existing)
    store.commit()

    logger.info(
        "Wallet adjusted",
        extra={
            "partner_id": partner_id,
            "transaction_type": payload.transaction_type.value,
            "amount": str(amount),
            "balance_before": str(balance_before),
            "balance_after": str(balance_after),
            "actor": actor,
        },
    )
    return WalletAdjustmentRead(
        transaction=WalletTransactionRead.model_validate(txn),
        wallet_balance=balance_after,
    )


def _require_client(client: RazorpayClient | None) -> RazorpayClient:
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=error_response("RAZORPAY_NOT_CONFIGURED", "Razorpay credentials are not configured."),
        )
    return client


def generate_receipt(prefix: str = "RCPT") -> str:
    suffix = "".join(secrets.choice(_RECEIPT_ALPHABET) for _ in range(6))
    return f"{prefix}_{epoch_millis()}_{suffix}"


def create_topup_order(
    db: Session,
    payload: TopupOrderCreate,
    client: RazorpayClient | None,
) -> TopupOrderRead:
    """Create a Razorpay order tagged with the partner id for a wallet top-up."""

    razorpay_client = _require_client(client)
    partner = _partner_or_404(WalletStore(db), payload.partner_id)
    if partner.wallet_status != WalletStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response(
                "WALLET_NOT_ACTIVE",
                "Wallet is not active.",
                {"wallet_status": partner.wallet_status.value},
            ),
        )
    amount = validate_amount(payload.amount)
    settings = get_settings()
    customer = payload.customer
    notes = {
        "partner_id": str(partner.id),
        "customer_name": (customer.name if customer else None) or partner.name,
        "customer_email": (customer.email if customer else None) or "",
        "customer_contact": (customer.contact if customer else None) or "",
    }
    receipt = generate_receipt()
    try:
        order = razorpay_client.create_order(
            amount_minor=major_to_minor(amount),
            currency=settings.WALLET_CURRENCY,
            receipt=receipt,
            notes=notes,
        )
    except PROVIDER_ERRORS as exc:
        logger.error(
            "Razorpay order creation failed",
            extra={"partner_id": partner.id, "error": type(exc).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error_response("RAZORPAY_ORDER_FAILED", "Failed to create Razorpay order."),
        )

    return TopupOrderRead(
        order_id=order["id"],
        amount=order.get("amount", major_to_minor(amount)),
        currency=order.get("currency", settings.WALLET_CURRENCY),
        receipt=order.get("receipt", receipt),
        status=order.get("status"),
        key_id=razorpay_client.key_id,
    )


def verify_checkout_payment(
    db: Session,
    payload: PaymentVerificationCreate,
    client: RazorpayClient | None,
) -> PaymentVerificationRead:
    """Confirm a Checkout completion and credit the wallet.

    Shares the webhook's idempotency key (the payment id), so whichever path runs
    second is a no-op.
    """

    settings = get_settings()
    if not verify_payment_signature(
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
        settings.razorpay_key_secret,
    ):
        log_security_event(
            "PAYMENT_SIGNATURE_INVALID",
            {"order_id": payload.razorpay_order_id, "payment_id": payload.razorpay_payment_id},
            "high",
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("PAYMENT_SIGNATURE_INVALID", "Invalid payment signature."),
        )

    razorpay_client = _require_client(client)
    try:
        payment = razorpay_client.fetch_payment(payload.razorpay_payment_id)
    except PROVIDER_ERRORS as exc:
        logger.error(
            "Razorpay payment lookup failed",
            extra={"payment_id": payload.razorpay_payment_id, "error": type(exc).__name__},
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=error_response("RAZORPAY_LOOKUP_FAILED", "Failed to fetch payment from Razorpay."),
        )

    if payment.get("order_id") != payload.razorpay_order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("PAYMENT_ORDER_MISMATCH", "Payment does not belong to this order."),
        )
    if payment.get("status") != "captured":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=error_response(
                "PAYMENT_NOT_CAPTURED",
                "Payment is not captured yet.",
                {"status": payment.get("status")},
            ),
        )

    notes = payment.get("notes")
    noted_partner = parse_partner_id(notes.get("partner_id")) if isinstance(notes, dict) else None
    if noted_partner is not None and noted_partner != payload.partner_id:
        log_security_event(
            "PAYMENT_PARTNER_MISMATCH",
            {
                "payment_id": payload.razorpay_payment_id,
                "requested_partner_id": payload.partner_id,
                "noted_partner_id": noted_partner,
            },
            "high",
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=error_response("PARTNER_MISMATCH", "Payment belongs to a different partner."),
        )

    result = credit_captured_payment(
        WalletStore(db),
        partner_id=payload.partner_id,
        payment_id=payload.razorpay_payment_id,
        amount_minor=int(payment.get("amount") or 0),
        currency=str(payment.get("currency") or ""),
        method=payment.get("method"),
        order_id=payload.razorpay_order_id,
        source="checkout_verification",
    )
    if result.outcome == LedgerOutcome.PARTNER_NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=error_response("PARTNER_NOT_FOUND", "Partner not found."),
        )
    if result.outcome == LedgerOutcome.INVALID_PAYLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=error_response("PAYMENT_INVALID", "Payment amount or currency is not acceptable."),
        )

    return PaymentVerificationRead(
        success=True,
        outcome=result.outcome.value,
        payment_id=payload.razorpay_payment_id,
        partner_id=payload.partner_id,
        amount=result.amount,
        balance_after=result.balance_after,
        transaction_id=result.transaction_id,
    )


__all__ = [
    "adjust_wallet",
    "create_topup_order",
    "generate_receipt",
    "get_payment_status",
    "get_wallet_stats",
    "get_wallet_summary",
    "list_partner_wallets",
    "list_wallet_transactions",
    "verify_checkout_payment",
]
