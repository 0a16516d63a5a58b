"""Bank grammar descriptors.

A :class:`GrammarDescriptor` tells the statement parser how one bank prints
its statements: number and date conventions, the table columns (and the
header labels that locate them on the page), and the row patterns that
classify each extracted row.

Row patterns
------------
Each :class:`RowPattern` has a ``kind`` and a ``specificity``. A row matches a
pattern when:

- ``line`` (if set) is found by ``re.search`` in the row's text, and
- every entry of ``fields`` fully matches the text assigned to that column
  (an absent column reads as ``""``, so ``{"debit": ""}`` means "empty").

Named groups in ``line`` (``date``, ``description``, ``amount``, ``debit``,
``credit``, ``balance``, ``account``, ``start``, ``end``) take precedence over
column text when extracting values. Header, footer and subtotal patterns are
expected to carry a higher specificity than transaction patterns; the parser
resolves overlaps by specificity and rejects ties between different kinds.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import locale_parsing

ColumnName = Literal["date", "description", "debit", "credit", "amount", "balance"]
RowKind = Literal[
    "header",
    "footer",
    "subtotal",
    "opening",
    "closing",
    "metadata",
    "transaction",
    "continuation",
    "ignore",
]


def _check_regex(v: str) -> str:
    try:
        re.compile(v)
    except re.error as exc:
        raise ValueError(f"invalid regular expression {v!r}: {exc}") from exc
    return v


class ColumnSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: ColumnName
    # Regex fully matched (case-insensitive) against a header cell.
    label: str

    @field_validator("label")
    @classmethod
    def _label_is_regex(cls, v: str) -> str:
        return _check_regex(v)


class RowPattern(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: RowKind
    specificity: int = Field(ge=0)
    line: str | None = None
    fields: dict[ColumnName, str] = Field(default_factory=dict)
    name: str = ""

    @field_validator("line")
    @classmethod
    def _line_is_regex(cls, v: str | None) -> str | None:
        return None if v is None else _check_regex(v)

    @field_validator("fields")
    @classmethod
    def _fields_are_regex(cls, v: dict[str, str]) -> dict[str, str]:
        for pattern in v.values():
            _check_regex(pattern)
        return v

    @model_validator(mode="after")
    def _has_condition(self) -> RowPattern:
        if self.line is None and not self.fields:
            raise ValueError(f"row pattern {self.name or self.kind!r} matches nothing specific")
        return self

    def match(self, text: str, columns: dict[str, str]) -> re.Match[str] | bool | None:
        """Return the ``line`` match (or ``True``) when the row fits, else ``None``."""

        m: re.Match[str] | bool = True
        if self.line is not None:
            found = re.search(self.line, text)
            if found is None:
                return None
            m = found
        for column, pattern in self.fields.items():
            if re.fullmatch(pattern, columns.get(column, "")) is None:
                return None
        return m


class GrammarDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    bank_id: str
    display_name: str = ""
    date_formats: tuple[str, ...]
    # Formats for dates printed in the statement period line; defaults to
    # ``date_formats``.
    period_date_formats: tuple[str, ...] = ()
    decimal_separator: str = "."
    thousands_separator: str | None = ","
    negative_styles: frozenset[str] = frozenset({"leading_minus", "parentheses"})
    currency_symbols: tuple[str, ...] = ("$",)
    columns: tuple[ColumnSpec, ...]
    patterns: tuple[RowPattern, ...]

    @field_validator("bank_id")
    @classmethod
    def _normalize_bank_id(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("bank_id must be non-empty")
        return v

    @field_validator("negative_styles")
    @classmethod
    def _known_styles(cls, v: frozenset[str]) -> frozenset[str]:
        unknown = sorted(v - locale_parsing.NEGATIVE_STYLES)
        if unknown:
            raise ValueError(f"unknown negative styles: {unknown}")
        return v

    @model_validator(mode="after")
    def _consistent(self) -> GrammarDescriptor:
        if not self.date_formats:
            raise ValueError("at least one date format is required")
        if self.decimal_separator == self.thousands_separator:
            raise ValueError("decimal and thousands separators must differ")
        if not self.patterns:
            raise ValueError("grammar defines no row patterns")
        names = {c.name for c in self.columns}
        if len(names) != len(self.columns):
            raise ValueError("column names must be unique")
        if names and not ({"amount"} <= names or {"debit", "credit"} <= names):
            raise ValueError("columns need either 'amount' or both 'debit' and 'credit'")
        return self

    @property
    def has_split_amounts(self) -> bool:
        return any(c.name == "debit" for c in self.columns)

    def parse_amount(self, raw: str) -> Decimal:
        return locale_parsing.parse_amount(
            raw,
            decimal_separator=self.decimal_separator,
            thousands_separator=self.thousands_separator,
            negative_styles=self.negative_styles,
            currency_symbols=self.currency_symbols,
        )

    def parse_date(
        self,
        raw: str,
        *,
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> date:
        return locale_parsing.parse_date(
            raw, self.date_formats, period_start=period_start, period_end=period_end
        )

    def parse_period_date(self, raw: str) -> date:
        return locale_parsing.parse_date(raw, self.period_date_formats or self.date_formats)


__all__ = ["ColumnName", "RowKind", "ColumnSpec", "RowPattern", "GrammarDescriptor"]
