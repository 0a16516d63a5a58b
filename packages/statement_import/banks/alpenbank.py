"""Alpenbank AG private account statements (Swiss/German layout).

Amounts use ``.`` for thousands and ``,`` for decimals with a trailing minus
for debits, in a single signed ``Betrag`` column. Booking dates are printed
without a year (``05.01.``); the year comes from the statement period::

    Alpenbank AG
    Konto CH93 0076 2011 6238 5295 7  Zeitraum 01.12.2023 - 31.01.2024
    Datum  Buchungstext  Betrag  Saldo
    Anfangssaldo                       1.000,00
    28.12.  Migros Zuerich    45,60-     954,40
    05.01.  Lohn Januar    4.200,00    5.154,40
    Uebertrag                          5.154,40
    Seite 1/2
    ...
    Endsaldo                           5.020,15
"""

from __future__ import annotations

from ..grammar import ColumnSpec, GrammarDescriptor, RowPattern

_AMOUNT = r"\d{1,3}(?:\.\d{3})*,\d{2}-?"
_DAY = r"\d{2}\.\d{2}\.(?:\d{4})?"

GRAMMAR = GrammarDescriptor(
    bank_id="alpenbank",
    display_name="Alpenbank AG",
    date_formats=("%d.%m.%Y", "%d.%m."),
    period_date_formats=("%d.%m.%Y",),
    decimal_separator=",",
    thousands_separator=".",
    negative_styles=frozenset({"trailing_minus", "leading_minus"}),
    currency_symbols=("CHF",),
    columns=(
        ColumnSpec(name="date", label=r"datum"),
        ColumnSpec(name="description", label=r"buchungstext"),
        ColumnSpec(name="amount", label=r"betrag"),
        ColumnSpec(name="balance", label=r"saldo"),
    ),
    patterns=(
        RowPattern(name="bank name", kind="ignore", specificity=50, line=r"^Alpenbank AG$"),
        RowPattern(
            name="account and period",
            kind="metadata",
            specificity=50,
            line=(
                r"^Konto\s+(?P<account>CH[\d ]+?)\s+Zeitraum\s+"
                r"(?P<start>\d{2}\.\d{2}\.\d{4})\s*-\s*(?P<end>\d{2}\.\d{2}\.\d{4})$"
            ),
        ),
        RowPattern(
            name="column header",
            kind="header",
            specificity=30,
            line=r"^Datum\s+Buchungstext\s+Betrag\s+Saldo$",
        ),
        RowPattern(name="page footer", kind="footer", specificity=30, line=r"^Seite \d+/\d+$"),
        RowPattern(
            name="carried forward",
            kind="subtotal",
            specificity=30,
            line=rf"^(?:Übertrag|Uebertrag)\s+(?P<balance>{_AMOUNT})$",
        ),
        RowPattern(
            name="opening balance",
            kind="opening",
            specificity=20,
            line=rf"^Anfangssaldo\s+(?:CHF\s+)?(?P<balance>{_AMOUNT})$",
        ),
        RowPattern(
            name="closing balance",
            kind="closing",
            specificity=20,
            line=rf"^Endsaldo\s+(?:CHF\s+)?(?P<balance>{_AMOUNT})$",
        ),
        RowPattern(
            name="booking",
            kind="transaction",
            specificity=10,
            fields={
                "date": _DAY,
                "description": r".+",
                "amount": _AMOUNT,
                "balance": rf"(?:{_AMOUNT})?",
            },
        ),
        RowPattern(
            name="booking text continuation",
            kind="continuation",
            specificity=5,
            fields={"date": "", "description": r".+", "amount": "", "balance": ""},
        ),
    ),
)
