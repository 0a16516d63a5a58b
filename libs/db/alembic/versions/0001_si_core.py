# ruff: noqa: I001
"""Ledger core tables: accounts, import batches, transactions, audit records.

Revision ID: 0001_si_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_si_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "si_accounts",
        sa.Column("account_ref", sa.String(), primary_key=True),
        sa.Column("balance", sa.Numeric(18, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "si_import_batches",
        sa.Column("id", sa.CHAR(32), primary_key=True),
        sa.Column("account_ref", sa.String(), nullable=False),
        sa.Column("bank_id", sa.String(), nullable=False),
        sa.Column("source_sha256", sa.CHAR(64), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=True),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("opening_balance", sa.Numeric(18, 2), nullable=False),
        sa.Column("closing_balance", sa.Numeric(18, 2), nullable=False),
        sa.Column("balance_delta", sa.Numeric(18, 2), nullable=False),
        sa.Column("replay_of", sa.CHAR(32), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("committed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status in ('pending','committed','failed')", name="ck_si_batch_status"
        ),
    )
    op.create_index(
        "ix_si_batches_account_source",
        "si_import_batches",
        ["account_ref", "source_sha256"],
    )

    op.create_table(
        "si_transactions",
        sa.Column("id", sa.CHAR(32), primary_key=True),
        sa.Column(
            "account_ref",
            sa.String(),
            sa.ForeignKey("si_accounts.account_ref"),
            nullable=False,
        ),
        sa.Column(
            "batch_id",
            sa.CHAR(32),
            sa.ForeignKey("si_import_batches.id"),
            nullable=False,
        ),
        sa.Column("fingerprint_sha256", sa.CHAR(64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("account_ref", "fingerprint_sha256", name="uq_si_tx_account_fp"),
    )
    # Duplicate-window lookups filter by account, amount and date.
    op.create_index(
        "ix_si_tx_account_amount_date",
        "si_transactions",
        ["account_ref", "amount", "date"],
    )

    op.create_table(
        "si_audit_records",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "batch_id",
            sa.CHAR(32),
            sa.ForeignKey("si_import_batches.id"),
            nullable=False,
        ),
        sa.Column(
            "transaction_id",
            sa.CHAR(32),
            sa.ForeignKey("si_transactions.id"),
            nullable=False,
        ),
        sa.Column("page_index", sa.Integer(), nullable=False),
        sa.Column("row_index", sa.Integer(), nullable=False),
        sa.Column("raw_record", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("si_audit_records")
    op.drop_index("ix_si_tx_account_amount_date", table_name="si_transactions")
    op.drop_table("si_transactions")
    op.drop_index("ix_si_batches_account_source", table_name="si_import_batches")
    op.drop_table("si_import_batches")
    op.drop_table("si_accounts")
