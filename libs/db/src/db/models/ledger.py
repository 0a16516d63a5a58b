from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: si_accounts
# ---------------------------


class SiAccount(Base):
    __tablename__ = "si_accounts"

    # Caller-facing account identifier (the host application's account key).
    account_ref: Mapped[str] = mapped_column(String, primary_key=True)
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'USD'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


# ---------------------------
# Core: si_import_batches
# ---------------------------


class SiImportBatch(Base):
    __tablename__ = "si_import_batches"

    id: Mapped[str] = mapped_column(CHAR(32), primary_key=True)
    account_ref: Mapped[str] = mapped_column(String, nullable=False)
    bank_id: Mapped[str] = mapped_column(String, nullable=False)
    source_sha256: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    period_start: Mapped[date | None] = mapped_column(Date, nullable=True)
    period_end: Mapped[date | None] = mapped_column(Date, nullable=True)
    opening_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    closing_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    balance_delta: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Set when the statement was already committed for this account; such a
    # batch never moves the balance a second time.
    replay_of: Mapped[str | None] = mapped_column(CHAR(32), nullable=True)
    # Hash of the decrypted document and the account/period/balances key; either
    # one identifies a statement that arrives again in a different archive.
    document_sha256: Mapped[str | None] = mapped_column(CHAR(64), nullable=True)
    statement_key: Mapped[str | None] = mapped_column(CHAR(64), nullable=True)
    transaction_count: Mapped[int] = mapped_column(
        Integer, nullable=False, server_default=text("0")
    )
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    committed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status in ('pending','committed','failed')",
            name="ck_si_batch_status",
        ),
        Index("ix_si_batches_account_source", "account_ref", "source_sha256"),
        Index("ix_si_batches_account_statement", "account_ref", "statement_key"),
    )


# ---------------------------
# Core: si_transactions
# ---------------------------


class SiTransaction(Base):
    __tablename__ = "si_transactions"

    id: Mapped[str] = mapped_column(CHAR(32), primary_key=True)
    account_ref: Mapped[str] = mapped_column(
        String, ForeignKey("si_accounts.account_ref"), nullable=False
    )
    batch_id: Mapped[str] = mapped_column(
        CHAR(32), ForeignKey("si_import_batches.id"), nullable=False
    )
    fingerprint_sha256: Mapped[str] = mapped_column(CHAR(64), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        # Repeated identical rows are disambiguated by the ordinal folded into
        # the fingerprint, so the pair stays unique per account.
        UniqueConstraint("account_ref", "fingerprint_sha256", name="uq_si_tx_account_fp"),
        # Duplicate-window lookups filter by account, amount and date.
        Index("ix_si_tx_account_amount_date", "account_ref", "amount", "date"),
    )


# ---------------------------
# Audit: si_audit_records (append-only)
# ---------------------------


class SiAuditRecord(Base):
    __tablename__ = "si_audit_records"

    # SQLite only autoincrements an INTEGER PRIMARY KEY (rowid alias).
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    batch_id: Mapped[str] = mapped_column(
        CHAR(32), ForeignKey("si_import_batches.id"), nullable=False
    )
    transaction_id: Mapped[str] = mapped_column(
        CHAR(32), ForeignKey("si_transactions.id"), nullable=False
    )
    page_index: Mapped[int] = mapped_column(Integer, nullable=False)
    row_index: Mapped[int] = mapped_column(Integer, nullable=False)
    raw_record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )


__all__ = [
    "Base",
    "SiAccount",
    "SiImportBatch",
    "SiTransaction",
    "SiAuditRecord",
]
