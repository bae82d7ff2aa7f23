"""create partners and wallet_transactions tables"""
from alembic import op
import sqlalchemy as sa

revision = "20260101_partner_wallet"
down_revision = None
branch_labels = None
depends_on = None

wallet_status = sa.Enum("active", "suspended", "frozen", "closed", name="wallet_status")
transaction_type = sa.Enum("credit", "debit", "adjustment", name="wallet_transaction_type")
transaction_status = sa.Enum("pending", "completed", "failed", name="wallet_transaction_status")


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing = set(inspector.get_table_names())

    if "partners" not in existing:
        op.create_table(
            "partners",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("wallet_balance", sa.Numeric(18, 2), nullable=False, server_default="0"),
            sa.Column("wallet_status", wallet_status, nullable=False, server_default="active"),
            sa.Column("last_transaction_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("wallet_updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )

    if "wallet_transactions" not in existing:
        op.create_table(
            "wallet_transactions",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("partner_id", sa.Integer(), sa.ForeignKey("partners.id"), nullable=True),
            sa.Column("transaction_type", transaction_type, nullable=False),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("balance_before", sa.Numeric(18, 2), nullable=False),
            sa.Column("balance_after", sa.Numeric(18, 2), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=True),
            sa.Column("reference_id", sa.String(length=128), nullable=True),
            sa.Column("reference_type", sa.String(length=64), nullable=True),
            sa.Column("status", transaction_status, nullable=False),
            sa.Column("metadata", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.UniqueConstraint("reference_id", "reference_type", name="uq_wallet_transactions_reference"),
        )
        op.create_index("ix_wallet_transactions_partner_id", "wallet_transactions", ["partner_id"])
        op.create_index(
            "ix_wallet_transactions_partner_created",
            "wallet_transactions",
            ["partner_id", "created_at"],
        )


def downgrade() -> None:
    op.drop_index("ix_wallet_transactions_partner_created", table_name="wallet_transactions")
    op.drop_index("ix_wallet_transactions_partner_id", table_name="wallet_transactions")
    op.drop_table("wallet_transactions")
    op.drop_table("partners")
    bind = op.get_bind()
    for enum_type in (transaction_status, transaction_type, wallet_status):
        enum_type.drop(bind, checkfirst=True)
