"""Built-in bank grammars, keyed by bank id."""

from __future__ import annotations

from ..grammar import GrammarDescriptor
from . import alpenbank, northwind

BUILTIN_GRAMMARS: tuple[GrammarDescriptor, ...] = (northwind.GRAMMAR, alpenbank.GRAMMAR)

__all__ = ["BUILTIN_GRAMMARS"]
