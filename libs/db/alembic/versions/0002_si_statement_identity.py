# ruff: noqa: I001
"""Statement identity on import batches: document hash and statement key.

Revision ID: 0002_si_statement_identity
Revises: 0001_si_core
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_si_statement_identity"
down_revision: str | None = "0001_si_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column("si_import_batches", sa.Column("document_sha256", sa.CHAR(64), nullable=True))
    op.add_column("si_import_batches", sa.Column("statement_key", sa.CHAR(64), nullable=True))

    # Replay lookups filter by account and statement key
    op.create_index(
        "ix_si_batches_account_statement",
        "si_import_batches",
        ["account_ref", "statement_key"],
    )


def downgrade() -> None:
    op.drop_index("ix_si_batches_account_statement", table_name="si_import_batches")
    op.drop_column("si_import_batches", "statement_key")
    op.drop_column("si_import_batches", "document_sha256")
