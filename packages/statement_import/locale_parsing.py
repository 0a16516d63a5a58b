"""Locale-aware amount and date parsing for statement cells.

Amounts
-------
``parse_amount`` accepts the conventions banks actually print:

- thousands separators (``,`` ``.`` ``'`` or a space) with strict 3-digit
  grouping, and a configurable decimal separator;
- currency symbols before or after the number;
- negative markers: leading minus, trailing minus, surrounding parentheses,
  and ``DR``/``CR`` suffixes (``DR`` negative). Only the styles enabled for
  the bank are honoured; anything else is rejected rather than guessed.

Both functions raise ``ValueError`` with the offending text on failure.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Sequence
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

NEGATIVE_STYLES = frozenset({"leading_minus", "trailing_minus", "parentheses", "dr_suffix"})

_YEAR_DIRECTIVES = ("%Y", "%y")


def _grouping_re(decimal_separator: str, thousands_separator: str | None) -> re.Pattern[str]:
    d = re.escape(decimal_separator)
    if thousands_separator:
        t = re.escape(thousands_separator)
        return re.compile(rf"^(?:\d{{1,3}}(?:{t}\d{{3}})+|\d+)(?:{d}\d+)?$")
    return re.compile(rf"^\d+(?:{d}\d+)?$")


def parse_amount(
    raw: str,
    *,
    decimal_separator: str = ".",
    thousands_separator: str | None = ",",
    negative_styles: Collection[str] = ("leading_minus", "parentheses"),
    currency_symbols: Sequence[str] = ("$",),
) -> Decimal:
    """Parse a printed money amount into a signed ``Decimal``."""

    if raw is None:
        raise ValueError("amount is required")
    s = raw.replace("−", "-").replace("\xa0", " ").strip()
    if not s:
        raise ValueError("amount is empty")

    negative = False
    upper = s.upper()
    if "dr_suffix" in negative_styles and upper.endswith(("DR", "CR")):
        negative = upper.endswith("DR")
        s = s[:-2].rstrip()

    # Iteratively strip signs, currency symbols and parentheses until stable
    # so combinations like "-$(1,234.56)" or "1.234,56 €-" resolve.
    while True:
        changed = False
        for sym in currency_symbols:
            if sym and s.startswith(sym):
                s = s[len(sym) :].lstrip()
                changed = True
            if sym and s.endswith(sym):
                s = s[: -len(sym)].rstrip()
                changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            if "parentheses" not in negative_styles:
                raise ValueError(f"parenthesised amount not allowed here: {raw!r}")
            negative = True
            s = s[1:-1].strip()
            changed = True
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            if "leading_minus" not in negative_styles:
                raise ValueError(f"leading minus not allowed here: {raw!r}")
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.endswith("-") and len(s) > 1:
            if "trailing_minus" not in negative_styles:
                raise ValueError(f"trailing minus not allowed here: {raw!r}")
            negative = True
            s = s[:-1].rstrip()
            changed = True
        if not changed:
            break

    if not _grouping_re(decimal_separator, thousands_separator).match(s):
        raise ValueError(f"invalid amount: {raw!r}")
    if thousands_separator:
        s = s.replace(thousands_separator, "")
    s = s.replace(decimal_separator, ".")
    try:
        value = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -value if negative else value


def looks_like_amount(raw: str, **kwargs) -> bool:
    try:
        parse_amount(raw, **kwargs)
    except ValueError:
        return False
    return True


def parse_date(
    raw: str,
    formats: Sequence[str],
    *,
    period_start: date | None = None,
    period_end: date | None = None,
) -> date:
    """Parse ``raw`` with the first matching format.

    Formats without a year directive take the year from the statement
    period: the period end's year, or the year before when that would place
    the date after the period end (statements spanning New Year).
    """

    if raw is None:
        raise ValueError("date is required")
    s = " ".join(raw.split())
    if not s:
        raise ValueError("date is empty")

    for fmt in formats:
        if any(directive in fmt for directive in _YEAR_DIRECTIVES):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue

        reference = period_end or period_start
        if reference is None:
            continue
        try:
            candidate = datetime.strptime(f"{s} {reference.year}", f"{fmt} %Y").date()
        except ValueError:
            continue
        if period_end is not None and candidate > period_end:
            try:
                candidate = candidate.replace(year=candidate.year - 1)
            except ValueError:  # 29 Feb in a non-leap year
                continue
        return candidate

    raise ValueError(f"unrecognized date {raw!r} (formats: {', '.join(formats)})")


def looks_like_date(raw: str, formats: Sequence[str], **kwargs) -> bool:
    try:
        parse_date(raw, formats, **kwargs)
    except ValueError:
        return False
    return True


__all__ = [
    "NEGATIVE_STYLES",
    "parse_amount",
    "looks_like_amount",
    "parse_date",
    "looks_like_date",
]
