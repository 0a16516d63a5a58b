"""Convenience entry point for embedding the import pipeline.

Callers with their own UI or scheduler normally build an
:class:`ImportContext` once and call :func:`import_statement` per archive.
"""

from __future__ import annotations

import threading
from pathlib import Path

from .credentials import EnvSecretProvider, Password, SecretProvider
from .models import ImportResult
from .orchestrator import (
    ImportContext,
    ImportOrchestrator,
    ImportRequest,
    ProgressCallback,
    ReviewCallback,
)


def _resolve_password(
    account_id: str,
    password: Password | str | bytes | None,
    secrets: SecretProvider | None,
) -> Password:
    if isinstance(password, Password):
        return password
    if password is not None:
        return Password(password)
    return (secrets or EnvSecretProvider()).get_password(account_id)


def import_statement(
    archive: bytes | str | Path,
    *,
    bank_id: str,
    account_id: str,
    password: Password | str | bytes | None = None,
    secrets: SecretProvider | None = None,
    context: ImportContext | None = None,
    strict: bool | None = None,
    accept_review: ReviewCallback | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: threading.Event | None = None,
) -> ImportResult:
    """Import one statement archive and commit it to the account's ledger.

    ``archive`` is the archive content or a path to it. The password is taken
    from ``password`` when given, otherwise from ``secrets`` (default: the
    ``STATEMENT_IMPORT_PASSWORD`` environment variable) at call time.

    Raises ``ImportFailedError`` carrying ``stage``/``kind``/``detail`` on any
    failure.
    """

    data = archive if isinstance(archive, bytes) else Path(archive).read_bytes()
    request = ImportRequest(
        archive=data,
        bank_id=bank_id,
        account_id=account_id,
        password=_resolve_password(account_id, password, secrets),
        strict=strict,
        accept_review=accept_review,
    )
    orchestrator = ImportOrchestrator(
        context or ImportContext.default(), on_progress=on_progress, cancel=cancel
    )
    return orchestrator.run(request)


__all__ = ["import_statement"]
