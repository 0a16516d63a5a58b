"""Per-bank importer capability and the registry that selects it.

An importer turns an :class:`ExtractedDocument` into a
:class:`ParsedStatement`. Most banks are fully described by a
:class:`GrammarDescriptor` and use :class:`GrammarImporter`; anything that
needs custom logic only has to satisfy the :class:`StatementImporter`
protocol and be registered under its bank id.
"""

from __future__ import annotations

import threading
from typing import Protocol, runtime_checkable

from .banks import BUILTIN_GRAMMARS
from .errors import UnknownBankError
from .grammar import GrammarDescriptor
from .models import ExtractedDocument, ParsedStatement
from .parser import StatementParser


@runtime_checkable
class StatementImporter(Protocol):
    bank_id: str

    def parse(self, document: ExtractedDocument, *, strict: bool = True) -> ParsedStatement: ...


class GrammarImporter:
    def __init__(self, grammar: GrammarDescriptor) -> None:
        self.grammar = grammar
        self.bank_id = grammar.bank_id

    def parse(self, document: ExtractedDocument, *, strict: bool = True) -> ParsedStatement:
        return StatementParser(self.grammar, strict=strict).parse(document)

    def __repr__(self) -> str:
        return f"GrammarImporter({self.bank_id!r})"


def _normalize(bank_id: str) -> str:
    return (bank_id or "").strip().lower()


class ImporterRegistry:
    """Thread-safe mapping of bank id → importer."""

    def __init__(self) -> None:
        self._importers: dict[str, StatementImporter] = {}
        self._lock = threading.Lock()

    def register(self, importer: StatementImporter, *, replace: bool = False) -> None:
        key = _normalize(importer.bank_id)
        if not key:
            raise ValueError("importer has an empty bank_id")
        with self._lock:
            if key in self._importers and not replace:
                raise ValueError(f"an importer for bank {key!r} is already registered")
            self._importers[key] = importer

    def register_grammar(self, grammar: GrammarDescriptor, *, replace: bool = False) -> None:
        self.register(GrammarImporter(grammar), replace=replace)

    def get(self, bank_id: str) -> StatementImporter:
        key = _normalize(bank_id)
        with self._lock:
            importer = self._importers.get(key)
        if importer is None:
            known = ", ".join(self.bank_ids()) or "none"
            raise UnknownBankError(f"no importer registered for bank {bank_id!r} (known: {known})")
        return importer

    def bank_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._importers)

    def __contains__(self, bank_id: object) -> bool:
        return isinstance(bank_id, str) and _normalize(bank_id) in self.bank_ids()


def default_registry() -> ImporterRegistry:
    """A fresh registry with the built-in bank grammars."""

    registry = ImporterRegistry()
    for grammar in BUILTIN_GRAMMARS:
        registry.register_grammar(grammar)
    return registry


__all__ = ["StatementImporter", "GrammarImporter", "ImporterRegistry", "default_registry"]
