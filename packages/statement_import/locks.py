"""Per-account mutual exclusion for concurrent imports."""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class AccountLocks:
    """Hand out one lock per account id; different accounts never contend."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, account_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, account_id: str, *, timeout: float | None = None) -> Iterator[None]:
        lock = self.lock_for(account_id)
        acquired = lock.acquire() if timeout is None else lock.acquire(timeout=timeout)
        if not acquired:
            raise TimeoutError(f"account {account_id!r} is busy with another import")
        try:
            yield
        finally:
            lock.release()


_DEFAULT_LOCKS = AccountLocks()


def default_locks() -> AccountLocks:
    """The registry shared by every import context built without its own."""

    return _DEFAULT_LOCKS


__all__ = ["AccountLocks", "default_locks"]
