"""Replay a statement's own arithmetic.

The running total starts at the declared opening balance and adds each
signed amount in document order. It must agree, within the tolerance, with
every balance the statement declares: each transaction's balance-after, each
checkpoint (page subtotals, carried-forward lines) and finally the closing
balance. The first disagreement raises :class:`BalanceMismatchError`; nothing
is ever adjusted.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .errors import BalanceMismatchError
from .logging_setup import get_logger
from .models import Checkpoint, RawTransaction, StatementSummary

_logger = get_logger("statement_import.verify")


class BalanceVerifier:
    def __init__(self, tolerance: Decimal = Decimal("0.005")) -> None:
        if tolerance < 0:
            raise ValueError("tolerance must be non-negative")
        self.tolerance = tolerance

    def _agrees(self, declared: Decimal, running: Decimal) -> bool:
        return abs(declared - running) <= self.tolerance

    def verify(
        self,
        transactions: Sequence[RawTransaction],
        summary: StatementSummary,
        checkpoints: Sequence[Checkpoint] = (),
    ) -> Decimal:
        """Return the verified closing total or raise ``BalanceMismatchError``."""

        pending = sorted(checkpoints, key=lambda c: c.after_index)
        cp = 0
        running = summary.opening_balance

        def check_checkpoints(upto: int) -> None:
            nonlocal cp
            while cp < len(pending) and pending[cp].after_index <= upto:
                checkpoint = pending[cp]
                if not self._agrees(checkpoint.balance, running):
                    raise BalanceMismatchError(
                        checkpoint.after_index,
                        checkpoint.balance,
                        running,
                        where=f"at {checkpoint.label!r} (page {checkpoint.page_index + 1})",
                    )
                cp += 1

        check_checkpoints(-1)
        for index, tx in enumerate(transactions):
            running += tx.amount
            if tx.balance_after is not None and not self._agrees(tx.balance_after, running):
                raise BalanceMismatchError(index, tx.balance_after, running)
            check_checkpoints(index)
        check_checkpoints(len(transactions))

        if not self._agrees(summary.closing_balance, running):
            raise BalanceMismatchError(
                len(transactions) - 1,
                summary.closing_balance,
                running,
                where="against the closing balance",
            )

        _logger.debug(
            "verified %d transaction(s), %d checkpoint(s)", len(transactions), len(pending)
        )
        return running


__all__ = ["BalanceVerifier"]
