"""Northwind Federal Bank checking statements (US layout).

Page layout::

    Northwind Federal Bank
    Account Number: 0012-3456-78  Statement Period: 01/01/2024 - 01/31/2024
    Date  Description  Withdrawals  Deposits  Balance
    Opening Balance                                  1,000.00
    01/03/2024  COFFEE CORNER        4.50                995.50
                STORE #12                                         (continuation)
    01/05/2024  PAYROLL ACME INC               2,500.00  3,495.50
    01/15/2024  Page subtotal       4.50      2,500.00  3,495.50  (checkpoint)
    Balance carried forward                          3,495.50
    Page 1 of 2
    ...
    Closing Balance                                  3,210.12

Withdrawals and deposits are printed unsigned in separate columns.
"""

from __future__ import annotations

from ..grammar import ColumnSpec, GrammarDescriptor, RowPattern

_AMOUNT = r"\$?\d{1,3}(?:,\d{3})*\.\d{2}"
_SIGNED = rf"-?{_AMOUNT}|\({_AMOUNT}\)"
_DATE = r"\d{2}/\d{2}/\d{4}"

GRAMMAR = GrammarDescriptor(
    bank_id="northwind",
    display_name="Northwind Federal Bank",
    date_formats=("%m/%d/%Y",),
    decimal_separator=".",
    thousands_separator=",",
    negative_styles=frozenset({"leading_minus", "parentheses"}),
    currency_symbols=("$",),
    columns=(
        ColumnSpec(name="date", label=r"date"),
        ColumnSpec(name="description", label=r"description"),
        ColumnSpec(name="debit", label=r"withdrawals?"),
        ColumnSpec(name="credit", label=r"deposits?"),
        ColumnSpec(name="balance", label=r"balance"),
    ),
    patterns=(
        RowPattern(
            name="bank name", kind="ignore", specificity=50, line=r"^Northwind Federal Bank\b"
        ),
        RowPattern(
            name="account and period",
            kind="metadata",
            specificity=50,
            line=(
                rf"Account Number:\s*(?P<account>[\w-]+)\s+Statement Period:\s*"
                rf"(?P<start>{_DATE})\s*-\s*(?P<end>{_DATE})"
            ),
        ),
        RowPattern(
            name="column header",
            kind="header",
            specificity=30,
            line=r"^Date\s+Description\s+Withdrawals\s+Deposits\s+Balance$",
        ),
        RowPattern(name="page footer", kind="footer", specificity=30, line=r"^Page \d+ of \d+$"),
        RowPattern(
            name="balance forward",
            kind="subtotal",
            specificity=30,
            line=rf"^Balance (?:carried|brought) forward\s+(?P<balance>{_SIGNED})$",
        ),
        RowPattern(
            name="page subtotal",
            kind="subtotal",
            specificity=30,
            line=r"^(?:\S+\s+)?Page subtotal\b",
        ),
        RowPattern(
            name="opening balance",
            kind="opening",
            specificity=20,
            line=rf"^(?:Opening|Beginning) Balance\s+(?P<balance>{_SIGNED})$",
        ),
        RowPattern(
            name="closing balance",
            kind="closing",
            specificity=20,
            line=rf"^(?:Closing|Ending) Balance\s+(?P<balance>{_SIGNED})$",
        ),
        RowPattern(
            name="withdrawal",
            kind="transaction",
            specificity=10,
            fields={
                "date": _DATE,
                "description": r".+",
                "debit": _AMOUNT,
                "credit": "",
                "balance": rf"(?:{_SIGNED})?",
            },
        ),
        RowPattern(
            name="deposit",
            kind="transaction",
            specificity=10,
            fields={
                "date": _DATE,
                "description": r".+",
                "debit": "",
                "credit": _AMOUNT,
                "balance": rf"(?:{_SIGNED})?",
            },
        ),
        RowPattern(
            name="description continuation",
            kind="continuation",
            specificity=5,
            fields={"date": "", "description": r".+", "debit": "", "credit": "", "balance": ""},
        ),
    ),
)
