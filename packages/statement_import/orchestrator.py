"""Drive one statement import through its stages as a state machine.

::

    IDLE → DECRYPTING → EXTRACTING → PARSING → VERIFYING
         → DEDUPLICATING → ASSEMBLING → COMMITTED
    (any non-terminal state) → FAILED

Every transition is reported through ``on_progress``. Cancellation is
honoured only at stage boundaries; once the commit has started it runs to
completion. Everything before the commit works on in-memory values, so a
failure there leaves nothing to undo. The per-account lock is held from
DEDUPLICATING through the commit so two imports for one account can neither
see each other's half-written history nor apply a delta twice.

All dependencies arrive through an explicit :class:`ImportContext`. Contexts
that do not bring their own locks share the process-wide
:func:`~statement_import.locks.default_locks`, so separately built contexts
still serialize imports for one account.
"""

from __future__ import annotations

import enum
import hashlib
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import TypeVar

from .archive import ArchiveDecryptor
from .assemble import BatchAssembler, Clock, utc_now
from .config import ImportSettings
from .credentials import Password
from .duplicates import DuplicateDetector
from .errors import (
    CommitFailedError,
    ImportCancelledError,
    ImportFailedError,
    StatementImportError,
)
from .extract import TextExtractor
from .importers import ImporterRegistry, default_registry
from .locks import AccountLocks, default_locks
from .logging_setup import get_logger
from .models import (
    DuplicateClass,
    DuplicateDecision,
    ImportResult,
    ParsedStatement,
    RawTransaction,
    ReviewItem,
    StagedBatch,
)
from .persistence import AccountHistoryProvider, SqlLedgerStore
from .verify import BalanceVerifier

_logger = get_logger("statement_import.orchestrator")

T = TypeVar("T")


class ImportState(enum.StrEnum):
    IDLE = "idle"
    DECRYPTING = "decrypting"
    EXTRACTING = "extracting"
    PARSING = "parsing"
    VERIFYING = "verifying"
    DEDUPLICATING = "deduplicating"
    ASSEMBLING = "assembling"
    COMMITTED = "committed"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (ImportState.COMMITTED, ImportState.FAILED)


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    previous: ImportState
    current: ImportState
    stage_detail: str = ""


type ProgressCallback = Callable[[ProgressEvent], None]
type ReviewCallback = Callable[[RawTransaction, DuplicateDecision], bool]


@dataclass(frozen=True, slots=True)
class ImportContext:
    """Everything an import needs, passed explicitly."""

    settings: ImportSettings
    registry: ImporterRegistry
    store: AccountHistoryProvider
    decryptor: ArchiveDecryptor
    extractor: TextExtractor
    locks: AccountLocks = field(default_factory=default_locks)
    clock: Clock = utc_now

    @classmethod
    def default(
        cls,
        settings: ImportSettings | None = None,
        *,
        store: AccountHistoryProvider | None = None,
        registry: ImporterRegistry | None = None,
        locks: AccountLocks | None = None,
    ) -> ImportContext:
        settings = settings or ImportSettings.from_env()
        return cls(
            settings=settings,
            registry=registry or default_registry(),
            store=store or SqlLedgerStore(database_url=settings.database_url),
            decryptor=ArchiveDecryptor(max_document_bytes=settings.max_document_bytes),
            extractor=TextExtractor(settings),
            locks=locks or default_locks(),
        )


@dataclass(frozen=True, slots=True)
class ImportRequest:
    archive: bytes = field(repr=False)
    bank_id: str
    account_id: str
    password: Password
    # ``None`` defers to ``ImportSettings.strict``.
    strict: bool | None = None
    accept_review: ReviewCallback | None = None

    @classmethod
    def from_path(cls, path: str | Path, **kwargs) -> ImportRequest:
        return cls(archive=Path(path).read_bytes(), **kwargs)


class ImportOrchestrator:
    """Run exactly one import; create a new orchestrator per import."""

    def __init__(
        self,
        context: ImportContext,
        *,
        on_progress: ProgressCallback | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.context = context
        self.on_progress = on_progress
        self.cancel = cancel or threading.Event()
        self.state = ImportState.IDLE
        self.failure: ImportFailedError | None = None
        self._batch_id = "-"

    # ------------------------------------------------------------------
    # State handling
    # ------------------------------------------------------------------

    def _transition(self, new: ImportState, detail: str = "") -> None:
        previous, self.state = self.state, new
        _logger.info("import %s: %s -> %s %s", self._batch_id, previous, new, detail)
        if self.on_progress is not None:
            self.on_progress(ProgressEvent(previous=previous, current=new, stage_detail=detail))

    def _fail(self, exc: BaseException) -> ImportFailedError:
        stage = self.state.value
        failure = ImportFailedError.wrap(stage, exc)
        self.failure = failure
        self._transition(ImportState.FAILED, f"{failure.failure.kind}: {failure.failure.detail}")
        return failure

    def _check_cancel(self) -> None:
        if self.cancel.is_set():
            raise ImportCancelledError(f"import cancelled before leaving {self.state.value}")

    def _stage(self, state: ImportState, work: Callable[[], T], detail: str = "") -> T:
        try:
            self._check_cancel()
        except ImportCancelledError as exc:
            raise self._fail(exc) from exc
        self._transition(state, detail)
        started = time.perf_counter()
        try:
            result = work()
        except Exception as exc:
            raise self._fail(exc) from exc
        _logger.debug("%s finished in %.3fs", state, time.perf_counter() - started)
        return result

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def run(self, request: ImportRequest) -> ImportResult:
        if self.state is not ImportState.IDLE:
            raise RuntimeError("this orchestrator has already run an import")
        try:
            return self._run(request)
        finally:
            request.password.clear()

    def _run(self, request: ImportRequest) -> ImportResult:
        ctx = self.context
        settings = ctx.settings
        strict = settings.strict if request.strict is None else request.strict

        try:
            importer = ctx.registry.get(request.bank_id)
        except StatementImportError as exc:
            raise self._fail(exc) from exc

        source_sha256 = hashlib.sha256(request.archive).hexdigest()

        document_bytes = self._stage(
            ImportState.DECRYPTING,
            lambda: ctx.decryptor.decrypt(request.archive, request.password),
            f"{len(request.archive)} byte archive",
        )
        document = self._stage(
            ImportState.EXTRACTING,
            lambda: ctx.extractor.extract(document_bytes),
            f"{len(document_bytes)} byte document",
        )
        parsed = self._stage(
            ImportState.PARSING,
            lambda: importer.parse(document, strict=strict),
            f"{document.page_count} page(s) as {importer.bank_id}",
        )
        self._stage(
            ImportState.VERIFYING,
            lambda: BalanceVerifier(settings.balance_tolerance).verify(
                parsed.transactions, parsed.summary, parsed.checkpoints
            ),
            f"{len(parsed.transactions)} transaction(s)",
        )

        with ctx.locks.hold(request.account_id):
            window = timedelta(days=settings.date_window_days)
            summary = parsed.summary

            def deduplicate():
                history = ctx.store.snapshot(
                    request.account_id,
                    since=summary.period_start - window if summary.period_start else None,
                    until=summary.period_end + window if summary.period_end else None,
                )
                decisions = DuplicateDetector(settings.date_window_days).classify(
                    parsed.transactions, history, request.account_id
                )
                accepted = set()
                if request.accept_review is not None:
                    for d in decisions:
                        if d.classification is not DuplicateClass.MANUAL_REVIEW:
                            continue
                        if request.accept_review(parsed.transactions[d.index], d):
                            accepted.add(d.index)
                return history, decisions, accepted

            history, decisions, accepted = self._stage(
                ImportState.DEDUPLICATING, deduplicate, f"account {request.account_id}"
            )

            staged = self._stage(
                ImportState.ASSEMBLING,
                lambda: BatchAssembler(clock=ctx.clock).assemble(
                    parsed,
                    decisions,
                    account_id=request.account_id,
                    bank_id=importer.bank_id,
                    source_sha256=source_sha256,
                    document_sha256=hashlib.sha256(document_bytes).hexdigest(),
                    history=history,
                    accepted=accepted,
                ),
            )
            self._batch_id = staged.batch.id

            try:
                self._check_cancel()
            except ImportCancelledError as exc:
                raise self._fail(exc) from exc
            new_balance = self._commit(staged)

        self._transition(ImportState.COMMITTED, f"batch {staged.batch.id}")
        return self._result(parsed, staged, decisions, accepted, new_balance)

    def _commit(self, staged: StagedBatch) -> Decimal:
        store = self.context.store
        try:
            return store.commit(staged)
        except Exception as exc:
            error = exc if isinstance(exc, CommitFailedError) else CommitFailedError(str(exc))
            try:
                store.record_failed(staged.batch, error.detail)
            except Exception:
                _logger.exception("could not record failed batch %s", staged.batch.id)
            raise self._fail(error) from exc

    def _result(
        self,
        parsed: ParsedStatement,
        staged: StagedBatch,
        decisions: list[DuplicateDecision],
        accepted: set[int],
        new_balance: Decimal,
    ) -> ImportResult:
        review_items = tuple(
            ReviewItem(transaction=parsed.transactions[d.index], decision=d)
            for d in decisions
            if d.classification is DuplicateClass.MANUAL_REVIEW and d.index not in accepted
        )
        duplicates = sum(d.classification is DuplicateClass.DUPLICATE for d in decisions)
        return ImportResult(
            batch_id=staged.batch.id,
            committed_count=len(staged.transactions),
            duplicate_count=duplicates,
            manual_review_count=len(review_items),
            new_account_balance=new_balance,
            review_items=review_items,
            row_errors=parsed.row_errors,
            decisions=tuple(decisions),
        )


__all__ = [
    "ImportState",
    "ProgressEvent",
    "ImportContext",
    "ImportRequest",
    "ImportOrchestrator",
]
