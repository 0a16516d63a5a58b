"""Stage a Pending batch from a verified, classified statement.

The committed balance delta is the statement's own verified arithmetic
(``closing - opening``), not the sum of the rows that survive duplicate
detection: duplicate rows were already applied when they were first imported.

A statement already committed for the account stages a *replay*:
``replay_of`` names the original batch and the delta is zero, so the balance
never moves twice for the same statement. A statement counts as already
committed when its archive hash, its decrypted document hash or its
:func:`~statement_import.duplicates.statement_key` matches an earlier batch;
the last of these survives re-encryption and renamed archive members.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Collection, Sequence
from datetime import UTC, datetime
from decimal import Decimal

from .duplicates import statement_key
from .logging_setup import get_logger
from .models import (
    AccountHistory,
    CanonicalTransaction,
    DuplicateClass,
    DuplicateDecision,
    ImportBatch,
    ParsedStatement,
    StagedBatch,
)

_logger = get_logger("statement_import.assemble")

type Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid.uuid4().hex


class BatchAssembler:
    def __init__(self, clock: Clock = utc_now, id_factory: Callable[[], str] = new_id) -> None:
        self.clock = clock
        self.id_factory = id_factory

    def assemble(
        self,
        parsed: ParsedStatement,
        decisions: Sequence[DuplicateDecision],
        *,
        account_id: str,
        bank_id: str,
        source_sha256: str,
        history: AccountHistory,
        accepted: Collection[int] = (),
        document_sha256: str | None = None,
    ) -> StagedBatch:
        if len(decisions) != len(parsed.transactions):
            raise ValueError(
                f"{len(decisions)} decision(s) for {len(parsed.transactions)} transaction(s)"
            )

        batch_id = self.id_factory()
        key = statement_key(account_id, parsed.summary)
        replay_of = next(
            (
                history.committed_sources[h]
                for h in (source_sha256, document_sha256, key)
                if h and h in history.committed_sources
            ),
            None,
        )
        delta = Decimal("0") if replay_of else parsed.summary.net_change

        pairs = []
        for decision in decisions:
            keep = decision.classification is DuplicateClass.NEW or (
                decision.classification is DuplicateClass.MANUAL_REVIEW
                and decision.index in accepted
            )
            if not keep:
                continue
            raw = parsed.transactions[decision.index]
            canonical = CanonicalTransaction(
                id=self.id_factory(),
                date=raw.date,
                amount=raw.amount,
                description=raw.description,
                account_id=account_id,
                batch_id=batch_id,
                fingerprint=decision.fingerprint,
            )
            pairs.append((raw, canonical))

        batch = ImportBatch(
            id=batch_id,
            account_id=account_id,
            bank_id=bank_id,
            source_sha256=source_sha256,
            created_at=self.clock(),
            summary=parsed.summary,
            balance_delta=delta,
            replay_of=replay_of,
            document_sha256=document_sha256,
            statement_key=key,
        )
        if replay_of:
            _logger.info(
                "statement already committed as batch %s; staging a zero-delta replay", replay_of
            )
        return StagedBatch(
            batch=batch,
            transactions=tuple(c for _, c in pairs),
            audit_pairs=tuple(pairs),
        )


__all__ = ["BatchAssembler", "Clock", "utc_now", "new_id"]
