"""Partner wallet routes and Razorpay top-up endpoints."""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from partner_wallet.db import get_db
from partner_wallet.models import TransactionStatus, TransactionType, WalletStatus
from partner_wallet.schemas.razorpay import (
    PaymentVerificationCreate,
    PaymentVerificationRead,
    TopupOrderCreate,
    TopupOrderRead,
)
from partner_wallet.schemas.wallet import (
    PartnerWalletPage,
    PaymentStatusRead,
    WalletAdjustmentCreate,
    WalletAdjustmentRead,
    WalletBalanceRead,
    WalletStatsRead,
    WalletTransactionPage,
)
from partner_wallet.security import require_api_key
from partner_wallet.services import wallets as wallet_service
from partner_wallet.services.razorpay_client import RazorpayClient, get_razorpay_client

router = APIRouter(tags=["wallets"], dependencies=[Depends(require_api_key)])


@router.get("/partners/wallets", response_model=PartnerWalletPage)
def list_partner_wallets(
    search: str | None = Query(default=None, max_length=100),
    wallet_status: WalletStatus | None = Query(default=None),
    min_balance: Decimal | None = Query(default=None),
    max_balance: Decimal | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
) -> PartnerWalletPage:
    return wallet_service.list_partner_wallets(
        db,
        page=page,
        limit=limit,
        search=search,
        wallet_status=wallet_status,
        min_balance=min_balance,
        max_balance=max_balance,
    )


@router.get("/partners/wallets/stats", response_model=WalletStatsRead)
def wallet_stats(db: Session = Depends(get_db)) -> WalletStatsRead:
    return wallet_service.get_wallet_stats(db)


@router.get("/partners/{partner_id}/wallet", response_model=WalletBalanceRead)
def get_wallet(partner_id: int, db: Session = Depends(get_db)) -> WalletBalanceRead:
    return wallet_service.get_wallet_summary(db, partner_id)


@router.get("/partners/{partner_id}/wallet/transactions", response_model=WalletTransactionPage)
def list_transactions(
    partner_id: int,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    transaction_type: TransactionType | None = Query(default=None),
    status_filter: TransactionStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> WalletTransactionPage:
    return wallet_service.list_wallet_transactions(
        db,
        partner_id,
        page=page,
        limit=limit,
        transaction_type=transaction_type,
        status_filter=status_filter,
    )


@router.post(
    "/partners/{partner_id}/wallet/adjustments",
    response_model=WalletAdjustmentRead,
    status_code=status.HTTP_201_CREATED,
)
def adjust_wallet(
    partner_id: int,
    payload: WalletAdjustmentCreate,
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
    db: Session = Depends(get_db),
) -> WalletAdjustmentRead:
    return wallet_service.adjust_wallet(db, partner_id, payload, idempotency_key=idempotency_key)


@router.get("/partners/{partner_id}/payments/{payment_id}/status", response_model=PaymentStatusRead)
def payment_status(partner_id: int, payment_id: str, db: Session = Depends(get_db)) -> PaymentStatusRead:
    return wallet_service.get_payment_status(db, partner_id, payment_id)


@router.post("/razorpay/orders", response_model=TopupOrderRead, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: TopupOrderCreate,
    db: Session = Depends(get_db),
    client: RazorpayClient | None = Depends(get_razorpay_client),
) -> TopupOrderRead:
    return wallet_service.create_topup_order(db, payload, client)


@router.post("/razorpay/verify-payment", response_model=PaymentVerificationRead)
def verify_payment(
    payload: PaymentVerificationCreate,
    db: Session = Depends(get_db),
    client: RazorpayClient | None = Depends(get_razorpay_client),
) -> PaymentVerificationRead:
    return wallet_service.verify_checkout_payment(db, payload, client)


__all__ = ["router"]
