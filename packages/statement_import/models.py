"""Data model for the statement import pipeline.

Every record here is an immutable ``dataclass``. Money is always
``decimal.Decimal`` and calendar dates are ``datetime.date``; nothing in the
pipeline converts amounts to floats.

Layout records (``TextCell`` → ``Row`` → ``Page`` → ``ExtractedDocument``)
are produced by the extractor. Parsed records (``RawTransaction``,
``Checkpoint``, ``StatementSummary``) come from a bank grammar. Reconciliation
records (``DuplicateDecision``, ``CanonicalTransaction``, ``ImportBatch``)
are produced downstream and are what the ledger store commits.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextCell:
    """A positioned run of text. Coordinates are PDF points, origin top-left."""

    text: str
    x0: float
    x1: float
    top: float
    bottom: float

    @property
    def center(self) -> float:
        return (self.x0 + self.x1) / 2


@dataclass(frozen=True, slots=True)
class Row:
    index: int
    cells: tuple[TextCell, ...]

    @property
    def text(self) -> str:
        return " ".join(c.text for c in self.cells)


@dataclass(frozen=True, slots=True)
class Page:
    index: int
    rows: tuple[Row, ...]
    width: float = 0.0
    height: float = 0.0


@dataclass(frozen=True, slots=True)
class ExtractedDocument:
    pages: tuple[Page, ...]

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def iter_rows(self):
        for page in self.pages:
            for row in page.rows:
                yield page.index, row


# ---------------------------------------------------------------------------
# Parsed statement
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawTransaction:
    """One transaction row exactly as the statement declares it.

    ``source_text`` is the original row text (continuation lines joined with
    newlines) kept for the audit trail.
    """

    date: date
    description: str
    amount: Decimal
    balance_after: Decimal | None
    page_index: int
    row_index: int
    source_text: str

    def to_audit_record(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": f"{self.amount:.2f}",
            "balance_after": (
                f"{self.balance_after:.2f}" if self.balance_after is not None else None
            ),
            "page_index": self.page_index,
            "row_index": self.row_index,
            "source_text": self.source_text,
        }


@dataclass(frozen=True, slots=True)
class Checkpoint:
    """A declared balance on a non-transaction row (e.g. a page subtotal).

    ``after_index`` is the index of the transaction the balance follows;
    ``-1`` means it precedes every transaction.
    """

    after_index: int
    balance: Decimal
    page_index: int
    row_index: int
    label: str


@dataclass(frozen=True, slots=True)
class StatementSummary:
    account_id: str | None
    period_start: date | None
    period_end: date | None
    opening_balance: Decimal
    closing_balance: Decimal

    @property
    def net_change(self) -> Decimal:
        return self.closing_balance - self.opening_balance


@dataclass(frozen=True, slots=True)
class RowError:
    """A row skipped in best-effort mode."""

    page_index: int
    row_index: int
    kind: str
    detail: str
    source_text: str


@dataclass(frozen=True, slots=True)
class ParsedStatement:
    transactions: tuple[RawTransaction, ...]
    summary: StatementSummary
    checkpoints: tuple[Checkpoint, ...] = ()
    row_errors: tuple[RowError, ...] = ()


# ---------------------------------------------------------------------------
# Duplicate detection
# ---------------------------------------------------------------------------


class DuplicateClass(enum.StrEnum):
    DUPLICATE = "duplicate"
    MANUAL_REVIEW = "manual_review"
    NEW = "new"


@dataclass(frozen=True, slots=True)
class DuplicateDecision:
    index: int
    classification: DuplicateClass
    fingerprint: str
    matched_id: str | None = None


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    transaction_id: str
    fingerprint: str
    date: date
    amount: Decimal
    description: str


@dataclass(frozen=True, slots=True)
class AccountHistory:
    """Snapshot of one account's ledger, scoped for duplicate detection.

    ``committed_sources`` maps every identity hash of a statement already
    committed for this account (archive bytes, decrypted document bytes and
    the statement key) to the batch id that committed it.
    """

    account_id: str
    balance: Decimal
    entries: tuple[HistoryEntry, ...] = ()
    committed_sources: dict[str, str] = field(default_factory=dict)
    exists: bool = True

    @classmethod
    def empty(cls, account_id: str) -> AccountHistory:
        return cls(account_id=account_id, balance=Decimal("0"), exists=False)


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CanonicalTransaction:
    id: str
    date: date
    amount: Decimal
    description: str
    account_id: str
    batch_id: str
    fingerprint: str


class BatchStatus(enum.StrEnum):
    PENDING = "pending"
    COMMITTED = "committed"
    FAILED = "failed"


class BatchStateError(RuntimeError):
    """An ImportBatch was asked to make an illegal status transition."""


@dataclass(frozen=True, slots=True)
class ImportBatch:
    id: str
    account_id: str
    bank_id: str
    source_sha256: str
    created_at: datetime
    summary: StatementSummary
    balance_delta: Decimal
    status: BatchStatus = BatchStatus.PENDING
    replay_of: str | None = None
    document_sha256: str | None = None
    statement_key: str | None = None

    def committed(self) -> ImportBatch:
        if self.status is not BatchStatus.PENDING:
            raise BatchStateError(f"batch {self.id} is {self.status}; cannot commit")
        return replace(self, status=BatchStatus.COMMITTED)

    def failed(self) -> ImportBatch:
        if self.status is not BatchStatus.PENDING:
            raise BatchStateError(f"batch {self.id} is {self.status}; cannot fail")
        return replace(self, status=BatchStatus.FAILED)


@dataclass(frozen=True, slots=True)
class StagedBatch:
    """A Pending batch plus everything its commit must write atomically."""

    batch: ImportBatch
    transactions: tuple[CanonicalTransaction, ...]
    audit_pairs: tuple[tuple[RawTransaction, CanonicalTransaction], ...]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReviewItem:
    """A row held back for the caller because it resembles existing history."""

    transaction: RawTransaction
    decision: DuplicateDecision


@dataclass(frozen=True, slots=True)
class ImportResult:
    batch_id: str
    committed_count: int
    duplicate_count: int
    manual_review_count: int
    new_account_balance: Decimal
    review_items: tuple[ReviewItem, ...] = ()
    row_errors: tuple[RowError, ...] = ()
    decisions: Sequence[DuplicateDecision] = ()


__all__ = [
    "TextCell",
    "Row",
    "Page",
    "ExtractedDocument",
    "RawTransaction",
    "Checkpoint",
    "StatementSummary",
    "RowError",
    "ParsedStatement",
    "DuplicateClass",
    "DuplicateDecision",
    "HistoryEntry",
    "AccountHistory",
    "CanonicalTransaction",
    "BatchStatus",
    "BatchStateError",
    "ImportBatch",
    "StagedBatch",
    "ReviewItem",
    "ImportResult",
]
