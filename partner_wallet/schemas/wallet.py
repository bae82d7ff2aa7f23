"""Schemas for wallet balances, ledger entries and admin adjustments."""
from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from partner_wallet.models.partner import WalletStatus
from partner_wallet.models.wallet_transaction import TransactionStatus, TransactionType


class WalletBalanceRead(BaseModel):
    partner_id: int
    partner_name: str
    wallet_balance: Decimal
    wallet_status: WalletStatus
    last_transaction_at: datetime | None
    wallet_updated_at: datetime | None


class WalletTransactionRead(BaseModel):
    id: int
    partner_id: int | None
    transaction_type: TransactionType
    amount: Decimal
    balance_before: Decimal
    balance_after: Decimal
    description: str | None
    reference_id: str | None
    reference_type: str | None
    status: TransactionStatus
    metadata: dict[str, Any] | None = Field(
        default=None, validation_alias=AliasChoices("metadata_json", "metadata")
    )
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WalletTransactionPage(BaseModel):
    items: list[WalletTransactionRead]
    page: int
    limit: int
    total: int
    total_pages: int


class WalletAdjustmentCreate(BaseModel):
    amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    transaction_type: TransactionType
    description: str | None = Field(default=None, max_length=500)


class WalletAdjustmentRead(BaseModel):
    transaction: WalletTransactionRead
    wallet_balance: Decimal
    replayed: bool = False


class PaymentStatusRead(BaseModel):
    payment_id: str
    partner_id: int
    status: str
    amount: Decimal | None = None
    balance_after: Decimal | None = None
    transaction_id: int | None = None
    processed_at: datetime | None = None


class PartnerWalletPage(BaseModel):
    items: list[WalletBalanceRead]
    page: int
    limit: int
    total: int
    total_pages: int


class WalletOverview(BaseModel):
    total_partners: int
    total_wallet_balance: Decimal
    average_balance: Decimal


class WalletBalanceDistribution(BaseModel):
    zero_balance: int
    high_balance: int
    normal_balance: int


class WalletRecentActivity(BaseModel):
    period_days: int
    total_transactions: int
    credit_amount: Decimal
    debit_amount: Decimal
    net_amount: Decimal


class TopPartnerRead(BaseModel):
    partner_id: int
    partner_name: str
    wallet_balance: Decimal


class WalletStatsRead(BaseModel):
    """Admin dashboard summary across all partner wallets."""

    overview: WalletOverview
    status_breakdown: dict[str, int]
    balance_distribution: WalletBalanceDistribution
    recent_activity: WalletRecentActivity
    top_partners: list[TopPartnerRead]


__all__ = [
    "WalletBalanceRead",
    "PartnerWalletPage",
    "WalletStatsRead",
    "WalletTransactionRead",
    "WalletTransactionPage",
    "WalletAdjustmentCreate",
    "WalletAdjustmentRead",
    "PaymentStatusRead",
]
