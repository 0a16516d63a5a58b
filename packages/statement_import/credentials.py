"""Password handling at the pipeline boundary.

The core never stores a password. A :class:`SecretProvider` hands over a
:class:`Password` when an import starts; the archive decryptor borrows its
bytes exactly once through :meth:`Password.borrow` and the buffer is zeroed
when the ``with`` block exits, whichever way it exits.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Protocol


class Password:
    """A one-shot, self-wiping password value."""

    __slots__ = ("_buf", "_used")

    def __init__(self, value: str | bytes) -> None:
        raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        self._buf = bytearray(raw)
        self._used = False

    def __repr__(self) -> str:
        return "Password(***)"

    __str__ = __repr__

    @property
    def consumed(self) -> bool:
        return self._used

    @contextmanager
    def borrow(self) -> Iterator[bytes]:
        """Yield the password bytes once, then wipe the buffer."""

        if self._used:
            raise RuntimeError("password value has already been used")
        self._used = True
        try:
            yield bytes(self._buf)
        finally:
            self.clear()

    def clear(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf = bytearray()
        self._used = True


class SecretProvider(Protocol):
    """Supplies the archive password for an account at call time only."""

    def get_password(self, account_id: str) -> Password: ...


class StaticSecretProvider:
    """Provider that returns a fixed value; meant for tests and scripted runs."""

    def __init__(self, value: str | bytes) -> None:
        self._value = value

    def __repr__(self) -> str:
        return "StaticSecretProvider(***)"

    def get_password(self, account_id: str) -> Password:
        return Password(self._value)


class EnvSecretProvider:
    """Provider reading the password from an environment variable."""

    def __init__(self, var: str = "STATEMENT_IMPORT_PASSWORD") -> None:
        self.var = var

    def get_password(self, account_id: str) -> Password:
        value = os.getenv(self.var)
        if value is None:
            raise LookupError(f"{self.var} is not set")
        return Password(value)


__all__ = ["Password", "SecretProvider", "StaticSecretProvider", "EnvSecretProvider"]
