"""Pytest configuration for test isolation.

Every test gets its own file-backed SQLite ledger, and the process-wide
engine cache is disposed afterwards so no connection outlives its database
file. Environment variables the pipeline reads are cleared so a developer's
``.env`` or shell cannot change test outcomes.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

from tests.helpers.db import bootstrap_sqlite_db

_PIPELINE_ENV = (
    "DATABASE_URL",
    "STATEMENT_IMPORT_PASSWORD",
    "SI_BALANCE_TOLERANCE",
    "SI_DATE_WINDOW_DAYS",
    "SI_STRICT",
    "SI_MAX_DOCUMENT_BYTES",
    "SI_PAGE_CONCURRENCY",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in _PIPELINE_ENV:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def database_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite3")
    yield url
    dispose_engines()
