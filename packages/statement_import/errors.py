"""Error taxonomy for the statement import pipeline.

Every failure the pipeline can surface is a :class:`StatementImportError`
carrying a stable ``kind`` string (used in reports and CLI output) and a
human-readable ``detail``. Stage errors are raised by the component that
detects them; :class:`ImportFailedError` is the orchestrator's wrapper that
adds the stage name and keeps the original as ``__cause__``.

No error in this module ever formats a password.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar


class StatementImportError(Exception):
    """Base class for all pipeline errors."""

    kind: ClassVar[str] = "Error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


# ---------------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------------


class ArchiveError(StatementImportError):
    kind = "ArchiveError"


class WrongPasswordError(ArchiveError):
    kind = "WrongPassword"


class CorruptArchiveError(ArchiveError):
    kind = "CorruptArchive"


class UnsupportedFormatError(ArchiveError):
    kind = "UnsupportedFormat"


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class ExtractionError(StatementImportError):
    kind = "ExtractionError"


class NoTextLayerError(ExtractionError):
    kind = "NoTextLayer"


class UnsupportedDocumentVersionError(ExtractionError):
    kind = "UnsupportedDocumentVersion"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class ParseError(StatementImportError):
    """A row (or the document as a whole) does not fit the bank grammar.

    ``source_text`` is the raw row text, included in the message for
    debugging. ``page_index``/``row_index`` are ``-1`` for document-level
    failures.
    """

    kind = "ParseError"

    def __init__(
        self,
        detail: str,
        *,
        page_index: int = -1,
        row_index: int = -1,
        source_text: str | None = None,
    ) -> None:
        location = f" (page {page_index + 1}, row {row_index + 1})" if page_index >= 0 else ""
        text = f": {source_text!r}" if source_text is not None else ""
        super().__init__(f"{detail}{location}{text}")
        self.page_index = page_index
        self.row_index = row_index
        self.source_text = source_text


class UnrecognizedRowFormatError(ParseError):
    kind = "UnrecognizedRowFormat"


class AmbiguousRowError(ParseError):
    kind = "AmbiguousRow"


class MissingSummaryError(ParseError):
    kind = "MissingSummary"


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


class BalanceMismatchError(StatementImportError):
    """The statement's own running balance does not add up.

    ``index`` is the 0-based position of the first divergent transaction in
    document order (``-1`` when the statement has no transactions).
    """

    kind = "BalanceMismatch"

    def __init__(self, index: int, expected: Decimal, actual: Decimal, *, where: str = "") -> None:
        suffix = f" {where}" if where else ""
        super().__init__(
            f"running balance diverges at transaction {index}{suffix}: "
            f"declared {expected}, computed {actual}"
        )
        self.index = index
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class StorageError(StatementImportError):
    kind = "StorageError"


class CommitFailedError(StorageError):
    kind = "CommitFailed"


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class UnknownBankError(StatementImportError):
    kind = "UnknownBank"


class ImportCancelledError(StatementImportError):
    kind = "Cancelled"


@dataclass(frozen=True, slots=True)
class ImportFailure:
    """Structured failure report: which stage failed, how, and why."""

    stage: str
    kind: str
    detail: str


class ImportFailedError(StatementImportError):
    """Raised by the orchestrator when any stage fails."""

    kind = "ImportFailed"

    def __init__(self, stage: str, kind: str, detail: str) -> None:
        super().__init__(f"{stage}: {kind}: {detail}")
        self.failure = ImportFailure(stage=stage, kind=kind, detail=detail)

    @property
    def stage(self) -> str:
        return self.failure.stage

    @classmethod
    def wrap(cls, stage: str, exc: BaseException) -> ImportFailedError:
        if isinstance(exc, StatementImportError):
            return cls(stage, exc.kind, exc.detail)
        return cls(stage, type(exc).__name__, str(exc))


__all__ = [
    "StatementImportError",
    "ArchiveError",
    "WrongPasswordError",
    "CorruptArchiveError",
    "UnsupportedFormatError",
    "ExtractionError",
    "NoTextLayerError",
    "UnsupportedDocumentVersionError",
    "ParseError",
    "UnrecognizedRowFormatError",
    "AmbiguousRowError",
    "MissingSummaryError",
    "BalanceMismatchError",
    "StorageError",
    "CommitFailedError",
    "UnknownBankError",
    "ImportCancelledError",
    "ImportFailure",
    "ImportFailedError",
]
