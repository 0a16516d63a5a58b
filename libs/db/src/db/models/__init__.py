"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models written by ``statement_import``.
"""

from .ledger import Base, SiAccount, SiAuditRecord, SiImportBatch, SiTransaction

__all__ = [
    "Base",
    "SiAccount",
    "SiAuditRecord",
    "SiImportBatch",
    "SiTransaction",
]
