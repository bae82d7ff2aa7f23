"""Partner model holding the prepaid wallet balance."""
import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum as SqlEnum, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class WalletStatus(str, enum.Enum):
    """Lifecycle states of a partner wallet."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    FROZEN = "frozen"
    CLOSED = "closed"


class Partner(Base):
    """Service partner with a prepaid wallet."""

    __tablename__ = "partners"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    wallet_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0.00"))
    wallet_status: Mapped[WalletStatus] = mapped_column(
        SqlEnum(WalletStatus, name="wallet_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=WalletStatus.ACTIVE,
    )
    last_transaction_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    wallet_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
