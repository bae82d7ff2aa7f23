"""Append-only wallet ledger entries."""
import enum
from decimal import Decimal
from typing import Any

from sqlalchemy import JSON, Enum as SqlEnum, ForeignKey, Index, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class TransactionType(str, enum.Enum):
    """Direction of a wallet movement."""

    CREDIT = "credit"
    DEBIT = "debit"
    ADJUSTMENT = "adjustment"


class TransactionStatus(str, enum.Enum):
    """Processing status of a wallet movement."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class ReferenceType:
    """Known ``reference_type`` values."""

    RAZORPAY_PAYMENT = "razorpay_payment"
    RAZORPAY_PAYMENT_FAILED = "razorpay_payment_failed"
    ADMIN_ADJUSTMENT = "admin_adjustment"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class WalletTransaction(Base):
    """Single movement on a partner wallet, keyed by an external reference."""

    __tablename__ = "wallet_transactions"
    __table_args__ = (
        UniqueConstraint("reference_id", "reference_type", name="uq_wallet_transactions_reference"),
        Index("ix_wallet_transactions_partner_created", "partner_id", "created_at"),
    )

    partner_id: Mapped[int | None] = mapped_column(ForeignKey("partners.id"), nullable=True, index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SqlEnum(TransactionType, name="wallet_transaction_type", values_callable=_enum_values),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_before: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_after: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reference_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    reference_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[TransactionStatus] = mapped_column(
        SqlEnum(TransactionStatus, name="wallet_transaction_status", values_callable=_enum_values),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    partner = relationship("Partner")
