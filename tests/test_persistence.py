from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest
from db import SiAuditRecord, SiImportBatch, SiTransaction
from db.client import session_scope
from statement_import.assemble import BatchAssembler
from statement_import.duplicates import DuplicateDetector
from statement_import.errors import CommitFailedError
from statement_import.models import (
    DuplicateClass,
    DuplicateDecision,
    ParsedStatement,
    RawTransaction,
    StagedBatch,
    StatementSummary,
)
from statement_import.persistence import SqlLedgerStore

from tests.helpers.db import count_rows

ACCOUNT = "0012-3456-78"


def _parsed(rows: list[tuple[date, str, str]], opening: str = "1000.00") -> ParsedStatement:
    txs = tuple(
        RawTransaction(
            date=day,
            description=desc,
            amount=Decimal(amount),
            balance_after=None,
            page_index=0,
            row_index=i,
            source_text=f"{day:%m/%d/%Y} {desc} {amount}",
        )
        for i, (day, desc, amount) in enumerate(rows)
    )
    total = sum((t.amount for t in txs), Decimal("0"))
    return ParsedStatement(
        transactions=txs,
        summary=StatementSummary(
            account_id=ACCOUNT,
            period_start=date(2024, 1, 1),
            period_end=date(2024, 1, 31),
            opening_balance=Decimal(opening),
            closing_balance=Decimal(opening) + total,
        ),
    )


def _stage(store: SqlLedgerStore, parsed: ParsedStatement, sha: str = "a" * 64) -> StagedBatch:
    history = store.snapshot(ACCOUNT)
    decisions = DuplicateDetector().classify(parsed.transactions, history, ACCOUNT)
    return BatchAssembler().assemble(
        parsed,
        decisions,
        account_id=ACCOUNT,
        bank_id="northwind",
        source_sha256=sha,
        history=history,
    )


ROWS = [
    (date(2024, 1, 3), "COFFEE CORNER", "-4.50"),
    (date(2024, 1, 5), "PAYROLL ACME INC", "2500.00"),
    (date(2024, 1, 9), "GROCER MART", "-86.23"),
]


def test_unknown_account_has_an_empty_history(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    history = store.snapshot("nobody")
    assert history.exists is False
    assert history.entries == ()
    assert store.balance("nobody") is None


def test_first_commit_creates_the_account_at_the_statement_opening(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    staged = _stage(store, _parsed(ROWS))

    balance = store.commit(staged)

    assert balance == Decimal("3409.27")
    assert store.balance(ACCOUNT) == Decimal("3409.27")
    assert count_rows(database_url, SiTransaction) == 3
    assert count_rows(database_url, SiAuditRecord) == 3
    with session_scope(database_url=database_url) as s:
        row = s.get(SiImportBatch, staged.batch.id)
        assert row.status == "committed"
        assert row.transaction_count == 3
        assert row.committed_at is not None
        audit = s.query(SiAuditRecord).order_by(SiAuditRecord.row_index).first()
        assert audit.raw_record["description"] == "COFFEE CORNER"
        assert audit.raw_record["amount"] == "-4.50"


def test_commit_applies_the_delta_to_an_existing_balance(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    store.open_account(ACCOUNT, balance=Decimal("500.00"))

    assert store.commit(_stage(store, _parsed(ROWS))) == Decimal("2909.27")


def test_snapshot_returns_committed_rows_and_sources(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    staged = _stage(store, _parsed(ROWS), sha="c" * 64)
    store.commit(staged)

    history = store.snapshot(ACCOUNT, since=date(2024, 1, 4), until=date(2024, 1, 31))

    assert history.exists
    assert [e.description for e in history.entries] == ["PAYROLL ACME INC", "GROCER MART"]
    assert history.entries[1].amount == Decimal("-86.23")
    assert history.committed_sources == {
        "c" * 64: staged.batch.id,
        staged.batch.statement_key: staged.batch.id,
    }
    assert history.balance == Decimal("3409.27")


def test_failed_commit_rolls_back_everything(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    store.open_account(ACCOUNT, balance=Decimal("500.00"))
    parsed = _parsed(ROWS[:2])
    # Two rows sharing a fingerprint violate the per-account uniqueness.
    decisions = [DuplicateDecision(i, DuplicateClass.NEW, "f" * 64) for i in range(2)]
    staged = BatchAssembler().assemble(
        parsed,
        decisions,
        account_id=ACCOUNT,
        bank_id="northwind",
        source_sha256="a" * 64,
        history=store.snapshot(ACCOUNT),
    )

    with pytest.raises(CommitFailedError, match="rolled back") as excinfo:
        store.commit(staged)

    assert excinfo.value.__cause__ is not None
    assert store.balance(ACCOUNT) == Decimal("500.00")
    assert count_rows(database_url, SiTransaction) == 0
    assert count_rows(database_url, SiImportBatch) == 0
    assert count_rows(database_url, SiAuditRecord) == 0

    store.record_failed(staged.batch, str(excinfo.value))
    with session_scope(database_url=database_url) as s:
        row = s.get(SiImportBatch, staged.batch.id)
        assert row.status == "failed"
        assert "rolled back" in row.error_detail
        assert row.committed_at is None
    assert store.balance(ACCOUNT) == Decimal("500.00")


def test_replay_commit_leaves_the_balance_alone(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    store.commit(_stage(store, _parsed(ROWS)))

    # Same statement, different archive bytes.
    replay = _stage(store, _parsed(ROWS), sha="e" * 64)
    assert replay.batch.replay_of is not None
    assert replay.transactions == ()

    assert store.commit(replay) == Decimal("3409.27")
    assert count_rows(database_url, SiImportBatch, SiImportBatch.replay_of.is_not(None)) == 1
    assert count_rows(database_url, SiTransaction) == 3


def test_commit_timestamps_are_recorded(database_url: str) -> None:
    store = SqlLedgerStore(database_url=database_url)
    clock = datetime(2024, 2, 1, tzinfo=UTC)
    staged = BatchAssembler(clock=lambda: clock).assemble(
        _parsed([]),
        [],
        account_id=ACCOUNT,
        bank_id="northwind",
        source_sha256="d" * 64,
        history=store.snapshot(ACCOUNT),
    )
    assert store.commit(staged) == Decimal("1000.00")
    with session_scope(database_url=database_url) as s:
        row = s.get(SiImportBatch, staged.batch.id)
        assert row.created_at.replace(tzinfo=None) == clock.replace(tzinfo=None)
        assert row.transaction_count == 0
