"""Apply a bank grammar to an extracted document.

The parser walks rows in document order (page by page, top to bottom) and
classifies each one against the grammar's row patterns. Column text comes from
the most recent header row: its cells fix a horizontal span per column, and
every later cell is assigned to the span it overlaps most (or, failing any
overlap, to the nearest span centre).

Per-row handling:

- ``transaction`` → a :class:`RawTransaction`
- ``continuation`` → appended to the previous transaction's description
- ``subtotal`` → a :class:`Checkpoint` when it carries a balance
- ``opening`` / ``closing`` / ``metadata`` → statement summary fields
- ``header`` → re-anchors columns; ``footer`` / ``ignore`` → skipped

In strict mode the first row error is raised. In best-effort mode row errors
are collected as :class:`RowError` and the row is skipped; a statement whose
summary cannot be established still fails.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal

from .errors import (
    AmbiguousRowError,
    MissingSummaryError,
    ParseError,
    UnrecognizedRowFormatError,
)
from .grammar import GrammarDescriptor, RowPattern
from .logging_setup import get_logger
from .models import (
    Checkpoint,
    ExtractedDocument,
    ParsedStatement,
    RawTransaction,
    Row,
    RowError,
    StatementSummary,
    TextCell,
)

_logger = get_logger("statement_import.parser")

# Kinds that do not break a transaction/continuation sequence.
_TRANSPARENT_KINDS = frozenset({"header", "footer", "ignore"})
_SEQUENCE_KINDS = frozenset({"transaction", "continuation"})


@dataclass(frozen=True, slots=True)
class ColumnAnchor:
    name: str
    x0: float
    x1: float

    @property
    def center(self) -> float:
        return (self.x0 + self.x1) / 2

    def overlap(self, cell: TextCell) -> float:
        return min(self.x1, cell.x1) - max(self.x0, cell.x0)


def assign_columns(row: Row, anchors: tuple[ColumnAnchor, ...]) -> dict[str, str]:
    """Map a row's cells onto named columns; cells sharing a column are joined."""

    if not anchors:
        return {}
    buckets: dict[str, list[str]] = {}
    for cell in row.cells:
        best = max(anchors, key=lambda a: a.overlap(cell))
        if best.overlap(cell) <= 0:
            best = min(anchors, key=lambda a: abs(a.center - cell.center))
        buckets.setdefault(best.name, []).append(cell.text)
    return {name: " ".join(parts) for name, parts in buckets.items()}


@dataclass(slots=True)
class _Classified:
    kind: str
    pattern: RowPattern
    line: re.Match[str] | None
    columns: dict[str, str]

    def value(self, name: str) -> str:
        if self.line is not None and name in self.line.re.groupindex:
            found = self.line.group(name)
            if found is not None:
                return found.strip()
        return self.columns.get(name, "").strip()


@dataclass(slots=True)
class _State:
    transactions: list[RawTransaction] = field(default_factory=list)
    checkpoints: list[Checkpoint] = field(default_factory=list)
    row_errors: list[RowError] = field(default_factory=list)
    anchors: tuple[ColumnAnchor, ...] = ()
    account_id: str | None = None
    period_start: date | None = None
    period_end: date | None = None
    opening: Decimal | None = None
    closing: Decimal | None = None
    last_declared: Decimal | None = None
    # Balances declared by rows after the latest closing row.
    declared_after_closing: Decimal | None = None
    last_kind: str | None = None


def _declare(state: _State, balance: Decimal) -> None:
    state.last_declared = balance
    if state.closing is not None:
        state.declared_after_closing = balance


class StatementParser:
    def __init__(self, grammar: GrammarDescriptor, *, strict: bool = True) -> None:
        self.grammar = grammar
        self.strict = strict
        self._labels = tuple(
            (spec.name, re.compile(spec.label, re.IGNORECASE)) for spec in grammar.columns
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self, document: ExtractedDocument) -> ParsedStatement:
        state = _State()
        for page_index, row in document.iter_rows():
            text = row.text
            try:
                classified = self._classify(page_index, row, text, state.anchors)
                self._apply(state, classified, page_index, row, text)
            except ParseError as exc:
                if self.strict:
                    raise
                _logger.debug("skipping row %d on page %d: %s", row.index, page_index, exc.kind)
                state.row_errors.append(
                    RowError(
                        page_index=page_index,
                        row_index=row.index,
                        kind=exc.kind,
                        detail=exc.detail,
                        source_text=text,
                    )
                )
                state.last_kind = None
                continue
            if classified.kind not in _TRANSPARENT_KINDS:
                state.last_kind = classified.kind

        summary = self._summary(state)
        _logger.debug(
            "parsed %d transaction(s), %d checkpoint(s), %d row error(s) [%s]",
            len(state.transactions),
            len(state.checkpoints),
            len(state.row_errors),
            self.grammar.bank_id,
        )
        return ParsedStatement(
            transactions=tuple(state.transactions),
            summary=summary,
            checkpoints=tuple(state.checkpoints),
            row_errors=tuple(state.row_errors),
        )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _classify(
        self,
        page_index: int,
        row: Row,
        text: str,
        anchors: tuple[ColumnAnchor, ...],
    ) -> _Classified:
        columns = assign_columns(row, anchors)
        matches: list[tuple[RowPattern, re.Match[str] | bool]] = []
        for pattern in self.grammar.patterns:
            m = pattern.match(text, columns)
            if m is not None:
                matches.append((pattern, m))

        if not matches:
            raise UnrecognizedRowFormatError(
                "row matches no known pattern",
                page_index=page_index,
                row_index=row.index,
                source_text=text,
            )

        top = max(p.specificity for p, _ in matches)
        best = [(p, m) for p, m in matches if p.specificity == top]
        kinds = sorted({p.kind for p, _ in best})
        if len(kinds) > 1:
            raise AmbiguousRowError(
                f"row matches {' and '.join(kinds)} patterns at specificity {top}",
                page_index=page_index,
                row_index=row.index,
                source_text=text,
            )

        pattern, m = best[0]
        return _Classified(
            kind=pattern.kind,
            pattern=pattern,
            line=m if isinstance(m, re.Match) else None,
            columns=columns,
        )

    def _anchors_from_header(self, row: Row) -> tuple[ColumnAnchor, ...]:
        anchors: list[ColumnAnchor] = []
        seen: set[str] = set()
        for cell in row.cells:
            for name, label in self._labels:
                if name not in seen and label.fullmatch(cell.text.strip()):
                    anchors.append(ColumnAnchor(name=name, x0=cell.x0, x1=cell.x1))
                    seen.add(name)
                    break
        return tuple(anchors)

    # ------------------------------------------------------------------
    # Row handlers
    # ------------------------------------------------------------------

    def _apply(
        self,
        state: _State,
        row: _Classified,
        page_index: int,
        source: Row,
        text: str,
    ) -> None:
        def fail(detail: str) -> UnrecognizedRowFormatError:
            return UnrecognizedRowFormatError(
                detail, page_index=page_index, row_index=source.index, source_text=text
            )

        try:
            match row.kind:
                case "header":
                    anchors = self._anchors_from_header(source)
                    if anchors:
                        state.anchors = anchors
                case "footer" | "ignore":
                    pass
                case "metadata":
                    self._apply_metadata(state, row)
                case "opening":
                    balance = self._required_amount(row, "balance", fail)
                    if state.opening is None:
                        state.opening = balance
                    state.last_declared = balance
                case "closing":
                    balance = self._required_amount(row, "balance", fail)
                    state.closing = balance
                    state.declared_after_closing = None
                    state.last_declared = balance
                case "subtotal":
                    raw = row.value("balance")
                    if raw:
                        balance = self.grammar.parse_amount(raw)
                        state.checkpoints.append(
                            Checkpoint(
                                after_index=len(state.transactions) - 1,
                                balance=balance,
                                page_index=page_index,
                                row_index=source.index,
                                label=row.pattern.name or text,
                            )
                        )
                        _declare(state, balance)
                case "transaction":
                    tx = self._transaction(state, row, page_index, source.index, text, fail)
                    state.transactions.append(tx)
                    if tx.balance_after is not None:
                        _declare(state, tx.balance_after)
                case "continuation":
                    if not state.transactions or state.last_kind not in _SEQUENCE_KINDS:
                        raise fail("continuation line without a preceding transaction")
                    extra = row.value("description") or text
                    prev = state.transactions[-1]
                    state.transactions[-1] = replace(
                        prev,
                        description=f"{prev.description} {extra}",
                        source_text=f"{prev.source_text}\n{text}",
                    )
        except ValueError as exc:
            raise fail(str(exc)) from exc

    def _apply_metadata(self, state: _State, row: _Classified) -> None:
        account = row.value("account")
        if account and state.account_id is None:
            state.account_id = account
        start = row.value("start")
        if start:
            state.period_start = self.grammar.parse_period_date(start)
        end = row.value("end")
        if end:
            state.period_end = self.grammar.parse_period_date(end)

    def _required_amount(self, row: _Classified, name: str, fail) -> Decimal:
        raw = row.value(name)
        if not raw:
            raise fail(f"{row.kind} row has no {name}")
        return self.grammar.parse_amount(raw)

    def _transaction(
        self,
        state: _State,
        row: _Classified,
        page_index: int,
        row_index: int,
        text: str,
        fail,
    ) -> RawTransaction:
        raw_date = row.value("date")
        if not raw_date:
            raise fail("transaction row has no date")
        tx_date = self.grammar.parse_date(
            raw_date, period_start=state.period_start, period_end=state.period_end
        )

        description = " ".join(row.value("description").split())
        if not description:
            raise fail("transaction row has no description")

        debit, credit = row.value("debit"), row.value("credit")
        if debit or credit:
            amount = Decimal("0")
            if credit:
                amount += self.grammar.parse_amount(credit)
            if debit:
                amount -= abs(self.grammar.parse_amount(debit))
        elif raw_amount := row.value("amount"):
            amount = self.grammar.parse_amount(raw_amount)
        else:
            raise fail("transaction row has no amount")

        raw_balance = row.value("balance")
        balance = self.grammar.parse_amount(raw_balance) if raw_balance else None

        return RawTransaction(
            date=tx_date,
            description=description,
            amount=amount,
            balance_after=balance,
            page_index=page_index,
            row_index=row_index,
            source_text=text,
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def _summary(self, state: _State) -> StatementSummary:
        opening = state.opening
        if opening is None:
            leading = next((c for c in state.checkpoints if c.after_index < 0), None)
            if leading is not None:
                opening = leading.balance
            elif state.transactions and state.transactions[0].balance_after is not None:
                first = state.transactions[0]
                opening = first.balance_after - first.amount
        if opening is None:
            raise MissingSummaryError("statement declares no opening balance")

        if state.declared_after_closing is not None:
            closing = state.declared_after_closing
        elif state.closing is not None:
            closing = state.closing
        else:
            closing = state.last_declared
        if closing is None:
            raise MissingSummaryError("statement declares no closing balance")

        dates = [t.date for t in state.transactions]
        return StatementSummary(
            account_id=state.account_id,
            period_start=state.period_start or (min(dates) if dates else None),
            period_end=state.period_end or (max(dates) if dates else None),
            opening_balance=opening,
            closing_balance=closing,
        )


__all__ = ["StatementParser", "ColumnAnchor", "assign_columns"]
