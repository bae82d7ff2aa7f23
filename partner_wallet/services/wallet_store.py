"""Persistence operations for partner wallets and their ledger."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from partner_wallet.models import (
    Partner,
    TransactionStatus,
    TransactionType,
    WalletStatus,
    WalletTransaction,
)


class WalletStore:
    """Thin transactional wrapper around a SQLAlchemy session.

    Balance mutations are expressed as single ``UPDATE`` statements computed by the
    database (``wallet_balance = wallet_balance + :delta``) so concurrent writers for
    the same partner cannot lose updates.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_partner(self, partner_id: int, *, for_update: bool = False) -> Partner | None:
        stmt = select(Partner).where(Partner.id == partner_id)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.scalars(stmt).first()

    def get_partner_balance(self, partner_id: int) -> Decimal | None:
        return self.db.scalar(select(Partner.wallet_balance).where(Partner.id == partner_id))

    def apply_balance_delta(
        self,
        partner_id: int,
        delta: Decimal,
        *,
        at: datetime,
        require_balance: Decimal | None = None,
    ) -> Decimal | None:
        """Atomically add ``delta`` to the balance and return the new balance.

        When ``require_balance`` is given the update only applies if the current
        balance is at least that amount; ``None`` is returned when no row matched.
        """

        stmt = (
            update(Partner)
            .where(Partner.id == partner_id)
            .values(
                wallet_balance=Partner.wallet_balance + delta,
                last_transaction_at=at,
                wallet_updated_at=at,
            )
        )
        if require_balance is not None:
            stmt = stmt.where(Partner.wallet_balance >= require_balance)
        return self._execute_balance_update(stmt, partner_id)

    def set_partner_balance(self, partner_id: int, new_balance: Decimal, *, at: datetime) -> Decimal | None:
        stmt = (
            update(Partner)
            .where(Partner.id == partner_id)
            .values(wallet_balance=new_balance, last_transaction_at=at, wallet_updated_at=at)
        )
        return self._execute_balance_update(stmt, partner_id)

    def _execute_balance_update(self, stmt, partner_id: int) -> Decimal | None:
        result = self.db.execute(stmt.execution_options(synchronize_session=False))
        if result.rowcount == 0:
            return None
        # Refresh any loaded instance so callers never see the pre-update balance.
        partner = self.db.get(Partner, partner_id, populate_existing=True)
        return partner.wallet_balance if partner is not None else None

    def find_transaction_by_reference(
        self,
        reference_id: str,
        reference_type: str,
        *,
        partner_id: int | None = None,
    ) -> WalletTransaction | None:
        stmt = select(WalletTransaction).where(
            WalletTransaction.reference_id == reference_id,
            WalletTransaction.reference_type == reference_type,
        )
        if partner_id is not None:
            stmt = stmt.where(WalletTransaction.partner_id == partner_id)
        return self.db.scalars(stmt).first()

    def insert_transaction(self, transaction: WalletTransaction) -> WalletTransaction:
        """Insert inside a SAVEPOINT so a failed insert leaves earlier statements intact."""

        with self.db.begin_nested():
            self.db.add(transaction)
            self.db.flush()
        return transaction

    def list_transactions(
        self,
        partner_id: int,
        *,
        page: int = 1,
        limit: int = 10,
        transaction_type: TransactionType | None = None,
        status: TransactionStatus | None = None,
    ) -> tuple[list[WalletTransaction], int]:
        filters = [WalletTransaction.partner_id == partner_id]
        if transaction_type is not None:
            filters.append(WalletTransaction.transaction_type == transaction_type)
        if status is not None:
            filters.append(WalletTransaction.status == status)

        total = self.db.scalar(select(func.count()).select_from(WalletTransaction).where(*filters)) or 0
        stmt = (
            select(WalletTransaction)
            .where(*filters)
            .order_by(WalletTransaction.created_at.desc(), WalletTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.db.scalars(stmt)), total

    def list_partners(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
        wallet_status: WalletStatus | None = None,
        min_balance: Decimal | None = None,
        max_balance: Decimal | None = None,
    ) -> tuple[list[Partner], int]:
        filters = []
        if search:
            filters.append(Partner.name.ilike(f"%{search}%"))
        if wallet_status is not None:
            filters.append(Partner.wallet_status == wallet_status)
        if min_balance is not None:
            filters.append(Partner.wallet_balance >= min_balance)
        if max_balance is not None:
            filters.append(Partner.wallet_balance <= max_balance)

        total = self.db.scalar(select(func.count()).select_from(Partner).where(*filters)) or 0
        stmt = (
            select(Partner)
            .where(*filters)
            .order_by(Partner.wallet_balance.desc(), Partner.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(self.db.scalars(stmt)), total

    def wallet_totals(self) -> tuple[int, Decimal]:
        """Return the partner count and the sum of all wallet balances."""

        row = self.db.execute(
            select(func.count(Partner.id), func.coalesce(func.sum(Partner.wallet_balance), 0))
        ).one()
        return int(row[0]), Decimal(str(row[1]))

    def count_by_status(self) -> dict[WalletStatus, int]:
        rows = self.db.execute(
            select(Partner.wallet_status, func.count(Partner.id)).group_by(Partner.wallet_status)
        ).all()
        return {status: int(count) for status, count in rows}

    def count_by_balance(self, high_threshold: Decimal) -> tuple[int, int]:
        """Return ``(zero_balance, high_balance)`` partner counts."""

        zero = self.db.scalar(
            select(func.count()).select_from(Partner).where(Partner.wallet_balance == 0)
        )
        high = self.db.scalar(
            select(func.count()).select_from(Partner).where(Partner.wallet_balance > high_threshold)
        )
        return int(zero or 0), int(high or 0)

    def completed_activity_since(self, since: datetime) -> dict[TransactionType, tuple[int, Decimal]]:
        """Count and sum completed transactions per type created at or after ``since``."""

        rows = self.db.execute(
            select(
                WalletTransaction.transaction_type,
                func.count(WalletTransaction.id),
                func.coalesce(func.sum(WalletTransaction.amount), 0),
            )
            .where(
                WalletTransaction.status == TransactionStatus.COMPLETED,
                WalletTransaction.created_at >= since,
            )
            .group_by(WalletTransaction.transaction_type)
        ).all()
        return {txn_type: (int(count), Decimal(str(amount))) for txn_type, count, amount in rows}

    def top_partners_by_balance(self, limit: int = 5) -> list[Partner]:
        stmt = select(Partner).order_by(Partner.wallet_balance.desc(), Partner.id).limit(limit)
        return list(self.db.scalars(stmt))

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()


__all__ = ["WalletStore"]
