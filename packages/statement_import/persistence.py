"""SQL ledger store: account history snapshots and the atomic batch commit.

:class:`SqlLedgerStore` implements the :class:`AccountHistoryProvider`
protocol on the ``libs/db`` models. ``commit`` is the only code path in the
pipeline that writes ledger rows; it inserts the batch, its transactions and
their audit records and moves the account balance inside one
``session_scope``. Any failure rolls the whole transaction back and surfaces
as :class:`CommitFailedError`.

Accounts the store has never seen start with an empty history and are created
on their first commit with balance ``opening + delta``.
"""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Protocol

from db.client import session_scope
from db.models.ledger import SiAccount, SiAuditRecord, SiImportBatch, SiTransaction
from sqlalchemy import select, update

from .errors import CommitFailedError
from .logging_setup import get_logger
from .models import AccountHistory, BatchStatus, HistoryEntry, ImportBatch, StagedBatch

_logger = get_logger("statement_import.persistence")


class AccountHistoryProvider(Protocol):
    def snapshot(
        self,
        account_id: str,
        *,
        since: date | None = None,
        until: date | None = None,
    ) -> AccountHistory: ...

    def commit(self, staged: StagedBatch) -> Decimal: ...

    def record_failed(self, batch: ImportBatch, detail: str) -> None: ...


def _batch_row(batch: ImportBatch, *, error_detail: str | None = None, at: datetime | None = None):
    s = batch.summary
    return SiImportBatch(
        id=batch.id,
        account_ref=batch.account_id,
        bank_id=batch.bank_id,
        source_sha256=batch.source_sha256,
        status=batch.status.value,
        period_start=s.period_start,
        period_end=s.period_end,
        opening_balance=s.opening_balance,
        closing_balance=s.closing_balance,
        balance_delta=batch.balance_delta,
        replay_of=batch.replay_of,
        document_sha256=batch.document_sha256,
        statement_key=batch.statement_key,
        error_detail=error_detail,
        created_at=batch.created_at,
        committed_at=at if batch.status is BatchStatus.COMMITTED else None,
    )


def _identity_index(rows) -> dict[str, str]:
    """Map each identity hash of the committed batches to the earliest batch id."""

    index: dict[str, str] = {}
    for batch_id, *hashes in rows:
        for h in hashes:
            if h:
                index.setdefault(h, batch_id)
    return index


class SqlLedgerStore:
    def __init__(self, *, database_url: str | None = None) -> None:
        self.database_url = database_url

    def open_account(
        self, account_id: str, *, balance: Decimal = Decimal("0"), currency_code: str = "USD"
    ) -> None:
        """Register an account with a starting balance (no-op if it exists)."""

        with session_scope(database_url=self.database_url) as s:
            if s.get(SiAccount, account_id) is None:
                s.add(
                    SiAccount(account_ref=account_id, balance=balance, currency_code=currency_code)
                )

    def balance(self, account_id: str) -> Decimal | None:
        with session_scope(database_url=self.database_url) as s:
            account = s.get(SiAccount, account_id)
            return None if account is None else Decimal(account.balance)

    def snapshot(
        self,
        account_id: str,
        *,
        since: date | None = None,
        until: date | None = None,
    ) -> AccountHistory:
        with session_scope(database_url=self.database_url) as s:
            account = s.get(SiAccount, account_id)
            if account is None:
                return AccountHistory.empty(account_id)

            stmt = select(
                SiTransaction.id,
                SiTransaction.fingerprint_sha256,
                SiTransaction.date,
                SiTransaction.amount,
                SiTransaction.description,
            ).where(SiTransaction.account_ref == account_id)
            if since is not None:
                stmt = stmt.where(SiTransaction.date >= since)
            if until is not None:
                stmt = stmt.where(SiTransaction.date <= until)
            entries = tuple(
                HistoryEntry(
                    transaction_id=row.id,
                    fingerprint=row.fingerprint_sha256,
                    date=row.date,
                    amount=Decimal(row.amount),
                    description=row.description,
                )
                for row in s.execute(stmt.order_by(SiTransaction.date, SiTransaction.id))
            )

            sources = s.execute(
                select(
                    SiImportBatch.id,
                    SiImportBatch.source_sha256,
                    SiImportBatch.document_sha256,
                    SiImportBatch.statement_key,
                )
                .where(
                    SiImportBatch.account_ref == account_id,
                    SiImportBatch.status == BatchStatus.COMMITTED.value,
                    SiImportBatch.replay_of.is_(None),
                )
                .order_by(SiImportBatch.created_at)
            ).all()

            return AccountHistory(
                account_id=account_id,
                balance=Decimal(account.balance),
                entries=entries,
                committed_sources=_identity_index(sources),
            )

    def commit(self, staged: StagedBatch) -> Decimal:
        batch = staged.batch.committed()
        now = datetime.now(UTC)
        try:
            with session_scope(database_url=self.database_url) as s:
                # balance = balance + delta in one statement; the row lock it takes
                # holds off any other commit for the account until this one ends.
                moved = s.execute(
                    update(SiAccount)
                    .where(SiAccount.account_ref == batch.account_id)
                    .values(balance=SiAccount.balance + batch.balance_delta, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if moved.rowcount == 0:
                    s.add(
                        SiAccount(
                            account_ref=batch.account_id,
                            balance=batch.summary.opening_balance + batch.balance_delta,
                            created_at=now,
                            updated_at=now,
                        )
                    )
                    s.flush()
                new_balance = Decimal(
                    s.execute(
                        select(SiAccount.balance).where(
                            SiAccount.account_ref == batch.account_id
                        )
                    ).scalar_one()
                )

                row = _batch_row(batch, at=now)
                row.transaction_count = len(staged.transactions)
                s.add(row)
                s.flush()

                s.add_all(
                    SiTransaction(
                        id=tx.id,
                        account_ref=tx.account_id,
                        batch_id=tx.batch_id,
                        fingerprint_sha256=tx.fingerprint,
                        date=tx.date,
                        amount=tx.amount,
                        description=tx.description,
                    )
                    for tx in staged.transactions
                )
                s.flush()

                s.add_all(
                    SiAuditRecord(
                        batch_id=batch.id,
                        transaction_id=canonical.id,
                        page_index=raw.page_index,
                        row_index=raw.row_index,
                        raw_record=raw.to_audit_record(),
                    )
                    for raw, canonical in staged.audit_pairs
                )
        except Exception as exc:
            raise CommitFailedError(
                f"batch {batch.id} rolled back: {type(exc).__name__}: {exc}"
            ) from exc

        _logger.info(
            "committed batch %s: %d transaction(s), delta %s, balance %s",
            batch.id,
            len(staged.transactions),
            batch.balance_delta,
            new_balance,
        )
        return new_balance

    def record_failed(self, batch: ImportBatch, detail: str) -> None:
        """Persist a Failed batch row for the audit trail (no ledger effect)."""

        failed = batch.failed()
        with session_scope(database_url=self.database_url) as s:
            s.add(_batch_row(failed, error_detail=detail))


__all__ = ["AccountHistoryProvider", "SqlLedgerStore"]
