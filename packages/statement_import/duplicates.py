"""Fingerprinting and graded duplicate classification.

Fingerprint
-----------
SHA-256 over deterministic JSON of ``account``, ISO ``date``, ``amount`` at
2dp, the normalized description and an ``ordinal``. The ordinal counts the
earlier rows in the same statement with the same date, amount and normalized
description, so two genuine identical charges on one day get distinct
fingerprints while a re-import of the same statement reproduces them exactly.

Statement key
-------------
SHA-256 over the account, the statement period and the opening and closing
balances. It recognises a statement that was already committed even when it
arrives in a different archive.

Classification (per row, against the account's committed history)
-----------------------------------------------------------------
- fingerprint already in history → ``DUPLICATE``
- same amount, date within ``date_window_days`` and a different description
  → ``MANUAL_REVIEW`` (matched to the closest-dated entry)
- otherwise → ``NEW``
"""

from __future__ import annotations

import hashlib
import json
import unicodedata
from collections import defaultdict
from collections.abc import Sequence
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .logging_setup import get_logger
from .models import (
    AccountHistory,
    DuplicateClass,
    DuplicateDecision,
    HistoryEntry,
    RawTransaction,
    StatementSummary,
)

_logger = get_logger("statement_import.duplicates")

_CENT = Decimal("0.01")


def _to_decimal_2(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def normalize_description(text: str) -> str:
    """NFKC-normalize, casefold and collapse whitespace."""

    return " ".join(unicodedata.normalize("NFKC", text or "").casefold().split())


def _digest(payload: dict) -> str:
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def compute_fingerprint(
    *,
    account_id: str,
    tx_date: date,
    amount: Decimal,
    description: str,
    ordinal: int,
) -> str:
    payload = {
        "account": (account_id or "").strip(),
        "date": tx_date.isoformat(),
        "amount": f"{_to_decimal_2(amount):.2f}",
        "description": normalize_description(description),
        "ordinal": ordinal,
    }
    return _digest(payload)


def fingerprint_statement(account_id: str, transactions: Sequence[RawTransaction]) -> list[str]:
    """Fingerprint every row, assigning ordinals in document order."""

    seen: dict[tuple[date, Decimal, str], int] = defaultdict(int)
    out: list[str] = []
    for tx in transactions:
        key = (tx.date, _to_decimal_2(tx.amount), normalize_description(tx.description))
        ordinal = seen[key]
        seen[key] += 1
        out.append(
            compute_fingerprint(
                account_id=account_id,
                tx_date=tx.date,
                amount=tx.amount,
                description=tx.description,
                ordinal=ordinal,
            )
        )
    return out


def statement_key(account_id: str, summary: StatementSummary) -> str:
    """Identify a statement by what it says rather than how it was packaged.

    A re-encrypted or re-rendered copy has new archive and document bytes but
    keeps its account, period and bracketing balances.
    """

    payload = {
        "account": (account_id or "").strip(),
        "start": summary.period_start.isoformat() if summary.period_start else None,
        "end": summary.period_end.isoformat() if summary.period_end else None,
        "opening": f"{_to_decimal_2(summary.opening_balance):.2f}",
        "closing": f"{_to_decimal_2(summary.closing_balance):.2f}",
    }
    return _digest(payload)


class DuplicateDetector:
    def __init__(self, date_window_days: int = 3) -> None:
        if date_window_days < 0:
            raise ValueError("date_window_days must be non-negative")
        self.date_window_days = date_window_days

    def classify(
        self,
        transactions: Sequence[RawTransaction],
        history: AccountHistory,
        account_id: str,
    ) -> list[DuplicateDecision]:
        by_fingerprint = {e.fingerprint: e.transaction_id for e in history.entries}
        by_amount: dict[Decimal, list[HistoryEntry]] = defaultdict(list)
        for entry in history.entries:
            by_amount[_to_decimal_2(entry.amount)].append(entry)

        decisions: list[DuplicateDecision] = []
        for index, (tx, fp) in enumerate(
            zip(transactions, fingerprint_statement(account_id, transactions), strict=True)
        ):
            matched = by_fingerprint.get(fp)
            if matched is not None:
                decisions.append(
                    DuplicateDecision(index, DuplicateClass.DUPLICATE, fp, matched_id=matched)
                )
                continue

            near = self._closest_near_match(tx, by_amount.get(_to_decimal_2(tx.amount), ()))
            if near is not None:
                decisions.append(
                    DuplicateDecision(
                        index, DuplicateClass.MANUAL_REVIEW, fp, matched_id=near.transaction_id
                    )
                )
            else:
                decisions.append(DuplicateDecision(index, DuplicateClass.NEW, fp))

        _logger.debug(
            "classified %d row(s): %s",
            len(decisions),
            {c.value: sum(d.classification is c for d in decisions) for c in DuplicateClass},
        )
        return decisions

    def _closest_near_match(
        self, tx: RawTransaction, candidates: Sequence[HistoryEntry]
    ) -> HistoryEntry | None:
        description = normalize_description(tx.description)
        best: HistoryEntry | None = None
        best_gap = 0
        for entry in candidates:
            gap = abs((entry.date - tx.date).days)
            if gap > self.date_window_days:
                continue
            if normalize_description(entry.description) == description:
                continue
            if best is None or gap < best_gap:
                best, best_gap = entry, gap
        return best


__all__ = [
    "normalize_description",
    "compute_fingerprint",
    "fingerprint_statement",
    "statement_key",
    "DuplicateDetector",
]
