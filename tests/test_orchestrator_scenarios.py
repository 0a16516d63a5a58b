"""End-to-end imports: real encrypted archives, real PDFs, a SQLite ledger."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from db import SiImportBatch, SiTransaction
from statement_import.api import import_statement
from statement_import.config import ImportSettings
from statement_import.credentials import Password
from statement_import.errors import ImportFailedError
from statement_import.models import DuplicateClass, StagedBatch
from statement_import.orchestrator import (
    ImportContext,
    ImportOrchestrator,
    ImportRequest,
    ImportState,
    ProgressEvent,
)
from statement_import.persistence import SqlLedgerStore

from tests.helpers.db import count_rows
from tests.helpers.fixtures import (
    X_DATE,
    X_DESC,
    NorthwindStatement,
    Tx,
    daily_transactions,
    encrypted_archive,
)

PASSWORD = "s3cret-Statement!"
ACCOUNT = "0012-3456-78"


def _context(database_url: str, **settings) -> ImportContext:
    return ImportContext.default(ImportSettings(database_url=database_url, **settings))


def _import(archive: bytes, context: ImportContext, **kwargs):
    kwargs.setdefault("password", PASSWORD)
    return import_statement(
        archive, bank_id="northwind", account_id=ACCOUNT, context=context, **kwargs
    )


def _failure(excinfo: pytest.ExceptionInfo[ImportFailedError]) -> tuple[str, str]:
    failure = excinfo.value.failure
    return failure.stage, failure.kind


def test_scenario_a_clean_import_commits_every_row(database_url: str) -> None:
    stmt = NorthwindStatement(transactions=daily_transactions(10))
    events: list[ProgressEvent] = []

    result = _import(stmt.archive(PASSWORD), _context(database_url), on_progress=events.append)

    assert (result.committed_count, result.duplicate_count, result.manual_review_count) == (
        10,
        0,
        0,
    )
    assert result.new_account_balance == stmt.closing
    assert result.row_errors == ()
    assert [e.current for e in events] == [
        ImportState.DECRYPTING,
        ImportState.EXTRACTING,
        ImportState.PARSING,
        ImportState.VERIFYING,
        ImportState.DEDUPLICATING,
        ImportState.ASSEMBLING,
        ImportState.COMMITTED,
    ]
    assert events[0].previous is ImportState.IDLE
    assert count_rows(database_url, SiTransaction) == 10
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) == stmt.closing


def test_scenario_b_wrong_password_leaves_no_trace(database_url: str) -> None:
    archive = NorthwindStatement(transactions=daily_transactions(10)).archive(PASSWORD)
    orchestrator = ImportOrchestrator(_context(database_url))
    request = ImportRequest(
        archive=archive,
        bank_id="northwind",
        account_id=ACCOUNT,
        password=Password("guess-1234"),
    )

    with pytest.raises(ImportFailedError) as excinfo:
        orchestrator.run(request)

    assert _failure(excinfo) == ("decrypting", "WrongPassword")
    assert "guess-1234" not in str(excinfo.value)
    assert PASSWORD not in str(excinfo.value)
    assert orchestrator.state is ImportState.FAILED
    assert orchestrator.failure is excinfo.value
    assert request.password.consumed
    assert count_rows(database_url, SiImportBatch) == 0
    assert count_rows(database_url, SiTransaction) == 0


def test_scenario_c_reimport_is_all_duplicates(database_url: str) -> None:
    stmt = NorthwindStatement(transactions=daily_transactions(10))
    archive = stmt.archive(PASSWORD)
    context = _context(database_url)
    first = _import(archive, context)

    again = _import(archive, context)

    assert (again.committed_count, again.duplicate_count, again.manual_review_count) == (0, 10, 0)
    assert again.batch_id != first.batch_id
    assert again.new_account_balance == stmt.closing
    assert count_rows(database_url, SiTransaction) == 10
    assert count_rows(database_url, SiImportBatch, SiImportBatch.replay_of == first.batch_id) == 1


def test_same_statement_in_a_new_archive_does_not_move_the_balance_again(
    database_url: str,
) -> None:
    stmt = NorthwindStatement(transactions=daily_transactions(10))
    context = _context(database_url)
    first = _import(stmt.archive(PASSWORD), context)
    repacked = encrypted_archive(stmt.pdf(), PASSWORD, name="copy.pdf")
    assert repacked != stmt.archive(PASSWORD)

    again = _import(repacked, context)

    assert (again.committed_count, again.duplicate_count) == (0, 10)
    assert again.new_account_balance == stmt.closing
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) == stmt.closing
    assert count_rows(database_url, SiImportBatch, SiImportBatch.replay_of == first.batch_id) == 1


def test_scenario_d_misprinted_total_is_rejected(database_url: str) -> None:
    stmt = NorthwindStatement(
        transactions=daily_transactions(10), closing_offset=Decimal("1.00")
    )
    with pytest.raises(ImportFailedError) as excinfo:
        _import(stmt.archive(PASSWORD), _context(database_url))

    assert _failure(excinfo) == ("verifying", "BalanceMismatch")
    assert "transaction 9" in excinfo.value.failure.detail
    assert count_rows(database_url, SiImportBatch) == 0
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) is None


def test_scenario_d_divergent_row_is_named(database_url: str) -> None:
    stmt = NorthwindStatement(
        transactions=daily_transactions(10), balance_offsets={4: Decimal("0.01")}
    )
    with pytest.raises(ImportFailedError) as excinfo:
        _import(stmt.archive(PASSWORD), _context(database_url))

    assert _failure(excinfo) == ("verifying", "BalanceMismatch")
    assert "transaction 4" in excinfo.value.failure.detail
    assert count_rows(database_url, SiTransaction) == 0


def test_scenario_e_same_day_same_amount_rows_are_both_kept(database_url: str) -> None:
    day = date(2024, 1, 10)
    stmt = NorthwindStatement(
        transactions=[
            Tx(day, "BOOK NOOK", Decimal("-19.99")),
            Tx(day, "BOOK NOOK CAFE", Decimal("-19.99")),
        ]
    )

    result = _import(stmt.archive(PASSWORD), _context(database_url))

    assert [d.classification for d in result.decisions] == [DuplicateClass.NEW] * 2
    assert result.committed_count == 2


def test_scenario_e_collision_with_history_goes_to_review(database_url: str) -> None:
    day = date(2024, 1, 10)
    context = _context(database_url)
    _import(
        NorthwindStatement(transactions=[Tx(day, "BOOK NOOK", Decimal("-19.99"))]).archive(
            PASSWORD
        ),
        context,
    )
    second = NorthwindStatement(
        opening=Decimal("980.01"),
        transactions=[
            Tx(day, "BOOK NOOK", Decimal("-19.99")),
            Tx(day, "BOOK NOOK CAFE", Decimal("-19.99")),
        ],
    )

    result = _import(second.archive(PASSWORD), context)

    assert [d.classification for d in result.decisions] == [
        DuplicateClass.DUPLICATE,
        DuplicateClass.MANUAL_REVIEW,
    ]
    assert result.committed_count == 0
    assert result.manual_review_count == 1
    [item] = result.review_items
    assert item.transaction.description == "BOOK NOOK CAFE"
    assert item.decision.matched_id is not None


def test_accepted_review_rows_are_committed(database_url: str) -> None:
    day = date(2024, 1, 10)
    context = _context(database_url)
    _import(
        NorthwindStatement(transactions=[Tx(day, "BOOK NOOK", Decimal("-19.99"))]).archive(
            PASSWORD
        ),
        context,
    )
    second = NorthwindStatement(
        period_start=date(2024, 1, 11),
        transactions=[Tx(date(2024, 1, 12), "BOOK NOOK 2", Decimal("-19.99"))],
    )
    seen = []

    def accept(raw, decision) -> bool:
        seen.append((raw.description, decision.classification))
        return True

    result = _import(second.archive(PASSWORD), context, accept_review=accept)

    assert seen == [("BOOK NOOK 2", DuplicateClass.MANUAL_REVIEW)]
    assert (result.committed_count, result.manual_review_count) == (1, 0)
    assert count_rows(database_url, SiTransaction) == 2


def test_multi_page_statement(database_url: str) -> None:
    stmt = NorthwindStatement(transactions=daily_transactions(35), rows_per_page=20)

    result = _import(stmt.archive(PASSWORD), _context(database_url, page_concurrency=3))

    assert result.committed_count == 35
    assert result.new_account_balance == stmt.closing


def test_best_effort_import_reports_skipped_rows(database_url: str) -> None:
    stmt = NorthwindStatement(
        transactions=daily_transactions(5),
        extra_rows=[(2, [(X_DATE, "01/05/2024"), (X_DESC, "MYSTERY")])],
    )
    archive = stmt.archive(PASSWORD)

    with pytest.raises(ImportFailedError) as excinfo:
        _import(archive, _context(database_url))
    assert _failure(excinfo) == ("parsing", "UnrecognizedRowFormat")

    result = _import(archive, _context(database_url), strict=False)
    assert result.committed_count == 5
    assert [e.source_text for e in result.row_errors] == ["01/05/2024 MYSTERY"]


def test_unknown_bank_fails_before_decryption(database_url: str) -> None:
    events: list[ProgressEvent] = []
    with pytest.raises(ImportFailedError) as excinfo:
        import_statement(
            b"irrelevant",
            bank_id="acme",
            account_id=ACCOUNT,
            password=PASSWORD,
            context=_context(database_url),
            on_progress=events.append,
        )
    assert _failure(excinfo) == ("idle", "UnknownBank")
    assert [(e.previous, e.current) for e in events] == [(ImportState.IDLE, ImportState.FAILED)]


def test_cancellation_is_honoured_between_stages(database_url: str) -> None:
    cancel = threading.Event()
    events: list[ProgressEvent] = []

    def on_progress(event: ProgressEvent) -> None:
        events.append(event)
        if event.current is ImportState.PARSING:
            cancel.set()

    archive = NorthwindStatement(transactions=daily_transactions(3)).archive(PASSWORD)
    with pytest.raises(ImportFailedError) as excinfo:
        _import(archive, _context(database_url), on_progress=on_progress, cancel=cancel)

    assert _failure(excinfo) == ("parsing", "Cancelled")
    assert events[-1].current is ImportState.FAILED
    assert ImportState.VERIFYING not in [e.current for e in events]
    assert count_rows(database_url, SiImportBatch) == 0


def test_orchestrator_runs_only_once(database_url: str) -> None:
    archive = NorthwindStatement(transactions=daily_transactions(2)).archive(PASSWORD)
    orchestrator = ImportOrchestrator(_context(database_url))
    request = dict(archive=archive, bank_id="northwind", account_id=ACCOUNT)
    orchestrator.run(ImportRequest(password=Password(PASSWORD), **request))

    with pytest.raises(RuntimeError):
        orchestrator.run(ImportRequest(password=Password(PASSWORD), **request))


def test_password_comes_from_the_environment(
    database_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("STATEMENT_IMPORT_PASSWORD", PASSWORD)
    archive = NorthwindStatement(transactions=daily_transactions(2)).archive(PASSWORD)

    result = import_statement(
        archive, bank_id="northwind", account_id=ACCOUNT, context=_context(database_url)
    )
    assert result.committed_count == 2


def test_same_account_imports_are_serialized(database_url: str) -> None:
    SqlLedgerStore(database_url=database_url).open_account(ACCOUNT, balance=Decimal("100.00"))
    january = NorthwindStatement(transactions=daily_transactions(4))
    february = NorthwindStatement(
        period_start=date(2024, 2, 1),
        period_end=date(2024, 2, 29),
        opening=january.closing,
        transactions=daily_transactions(4, start=date(2024, 2, 5)),
    )
    context = _context(database_url)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(_import, s.archive(PASSWORD), context) for s in (january, february)]
        results = [f.result() for f in futures]

    expected = Decimal("100.00") + january.closing - january.opening
    expected += february.closing - february.opening
    assert sorted(r.committed_count for r in results) == [4, 4]
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) == expected


def test_imports_without_a_context_share_account_locks(
    database_url: str, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("DATABASE_URL", database_url)
    monkeypatch.setenv("STATEMENT_IMPORT_PASSWORD", PASSWORD)
    assert ImportContext.default().locks is ImportContext.default().locks

    SqlLedgerStore(database_url=database_url).open_account(ACCOUNT, balance=Decimal("100.00"))
    january = NorthwindStatement(transactions=daily_transactions(3))
    february = NorthwindStatement(
        period_start=date(2024, 2, 1),
        period_end=date(2024, 2, 29),
        opening=january.closing,
        transactions=daily_transactions(3, start=date(2024, 2, 5)),
    )

    def run(stmt: NorthwindStatement):
        return import_statement(stmt.archive(PASSWORD), bank_id="northwind", account_id=ACCOUNT)

    with ThreadPoolExecutor(max_workers=2) as pool:
        results = list(pool.map(run, (january, february)))

    expected = Decimal("100.00") + january.closing - january.opening
    expected += february.closing - february.opening
    assert [r.committed_count for r in results] == [3, 3]
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) == expected


class _BrokenCommitStore(SqlLedgerStore):
    def commit(self, staged: StagedBatch) -> Decimal:
        raise RuntimeError("disk I/O error")


def test_commit_failure_records_a_failed_batch(database_url: str) -> None:
    SqlLedgerStore(database_url=database_url).open_account(ACCOUNT, balance=Decimal("100.00"))
    context = ImportContext.default(
        ImportSettings(database_url=database_url),
        store=_BrokenCommitStore(database_url=database_url),
    )
    archive = NorthwindStatement(transactions=daily_transactions(3)).archive(PASSWORD)

    with pytest.raises(ImportFailedError) as excinfo:
        _import(archive, context)

    assert _failure(excinfo) == ("assembling", "CommitFailed")
    assert "disk I/O error" in excinfo.value.failure.detail
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert count_rows(database_url, SiImportBatch, SiImportBatch.status == "failed") == 1
    assert count_rows(database_url, SiImportBatch) == 1
    assert count_rows(database_url, SiTransaction) == 0
    assert SqlLedgerStore(database_url=database_url).balance(ACCOUNT) == Decimal("100.00")
