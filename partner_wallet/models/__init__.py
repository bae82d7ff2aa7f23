"""ORM models package."""
from .base import Base
from .partner import Partner, WalletStatus
from .wallet_transaction import (
    ReferenceType,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)

__all__ = [
    "Base",
    "Partner",
    "ReferenceType",
    "TransactionStatus",
    "TransactionType",
    "WalletStatus",
    "WalletTransaction",
]
