"""Trade journal schema baseline

Revision ID: 20261017_01
Revises: None
Create Date: 2026-10-17
"""
# pylint: disable=no-member,invalid-name,wrong-import-order

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261017_01"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "trade",
        sa.Column("trade_id", sa.String(36), primary_key=True),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("exchange", sa.Text(), nullable=False),
        sa.Column("instrument_symbol", sa.Text(), nullable=False),
        sa.Column("asset_type", sa.Text(), nullable=False),
        sa.Column("direction", sa.Text(), nullable=False),
        sa.Column("entry_price", sa.Numeric(24, 8), nullable=False),
        sa.Column("exit_price", sa.Numeric(24, 8), nullable=False),
        sa.Column("quantity", sa.Numeric(24, 8), nullable=False),
        sa.Column("entry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("exit_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fees", sa.Numeric(24, 8), nullable=False),
        sa.Column("pnl", sa.Numeric(24, 8), nullable=False),
        sa.Column("pnl_percent", sa.Numeric(24, 8), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("external_oid", sa.Text(), nullable=True),
        sa.Column("fingerprint", sa.Text(), nullable=False),
        sa.Column("underlying_symbol", sa.Text(), nullable=True),
        sa.Column("option_type", sa.Text(), nullable=True),
        sa.Column("strike_price", sa.Numeric(24, 8), nullable=True),
        sa.Column("expiration_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("account_id", "exchange", "external_oid", name="uq_trade_account_exchange_external_oid"),
        sa.CheckConstraint("direction in ('LONG', 'SHORT')", name="ck_trade_direction"),
        sa.CheckConstraint("quantity > 0", name="ck_trade_quantity_positive"),
    )
    # Fingerprints only identify trades the broker gave no id; FIFO segments
    # closed together at one price share a fingerprint under distinct ids.
    op.create_index(
        "uq_trade_account_fingerprint",
        "trade",
        ["account_id", "fingerprint"],
        unique=True,
        postgresql_where=sa.text("external_oid IS NULL"),
        sqlite_where=sa.text("external_oid IS NULL"),
    )
    op.create_index("ix_trade_account_exit_date", "trade", ["account_id", "exit_date"])
    op.create_index("ix_trade_account_created_at_utc", "trade", ["account_id", "created_at_utc"])

    op.create_table(
        "sync_run",
        sa.Column("sync_run_id", sa.String(36), primary_key=True),
        sa.Column("account_id", sa.Text(), nullable=False),
        sa.Column("run_type", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False),
        sa.Column("started_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at_utc", sa.DateTime(timezone=True), nullable=True),
        sa.Column("duration_ms", sa.BigInteger(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("trade_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("inserted_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("duplicate_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("unmatched_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("malformed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_code", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("diagnostics", sa.Text(), nullable=True),
        sa.Column("created_at_utc", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status in ('started', 'success', 'failed')", name="ck_sync_run_status"),
        sa.CheckConstraint("run_type in ('scheduled', 'manual', 'api')", name="ck_sync_run_run_type"),
    )
    op.create_index("ix_sync_run_account_status", "sync_run", ["account_id", "status"])
    op.create_index("ix_sync_run_started_at_utc", "sync_run", ["started_at_utc"])


def downgrade() -> None:
    """Downgrade schema."""

    op.drop_index("ix_sync_run_started_at_utc", table_name="sync_run")
    op.drop_index("ix_sync_run_account_status", table_name="sync_run")
    op.drop_table("sync_run")
    op.drop_index("ix_trade_account_created_at_utc", table_name="trade")
    op.drop_index("ix_trade_account_exit_date", table_name="trade")
    op.drop_index("uq_trade_account_fingerprint", table_name="trade")
    op.drop_table("trade")
