"""CLI for the ``statement_import`` package.

Commands load a local ``.env`` with ``python-dotenv`` (without overriding the
environment) and configure package logging before delegating to
:mod:`statement_import.api`. Failures are printed to stderr as
``stage: kind: detail`` and exit non-zero. The archive password is read from
``STATEMENT_IMPORT_PASSWORD`` or prompted for without echo; it is never
printed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .logging_setup import configure_logging


def cmd_import_statement(
    archive_path: str,
    *,
    bank_id: str,
    account_id: str,
    database_url: str | None = None,
    best_effort: bool = False,
    accept_review: bool = False,
) -> int:
    """Import one archive and print a short summary; return the exit status."""

    from .api import import_statement
    from .config import ImportSettings
    from .credentials import EnvSecretProvider, Password
    from .errors import ImportFailedError
    from .orchestrator import ImportContext

    try:
        data = Path(archive_path).read_bytes()
    except FileNotFoundError:
        print(f"Error: File not found: {archive_path}", file=sys.stderr)
        return 1
    except PermissionError:
        print(f"Error: Permission denied: {archive_path}", file=sys.stderr)
        return 1

    try:
        settings = ImportSettings.from_env(
            database_url=database_url, strict=False if best_effort else None
        )
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        password = EnvSecretProvider().get_password(account_id)
    except LookupError:
        password = Password(typer.prompt("Archive password", hide_input=True))

    try:
        result = import_statement(
            data,
            bank_id=bank_id,
            account_id=account_id,
            password=password,
            context=ImportContext.default(settings),
            accept_review=(lambda _raw, _decision: True) if accept_review else None,
        )
    except ImportFailedError as e:
        f = e.failure
        print(f"Error: {f.stage}: {f.kind}: {f.detail}", file=sys.stderr)
        return 1

    print(f"batch\t{result.batch_id}")
    print(f"committed\t{result.committed_count}")
    print(f"duplicates\t{result.duplicate_count}")
    print(f"manual_review\t{result.manual_review_count}")
    print(f"balance\t{result.new_account_balance:.2f}")
    for item in result.review_items:
        tx = item.transaction
        print(
            f"review\t{tx.date.isoformat()}\t{tx.amount:.2f}\t{tx.description}"
            f"\tmatches {item.decision.matched_id}"
        )
    for err in result.row_errors:
        print(f"skipped\tpage {err.page_index + 1} row {err.row_index + 1}\t{err.kind}")
    return 0


def cmd_init_db(database_url: str | None = None) -> int:
    from db import metadata
    from db.client import get_engine

    try:
        metadata.create_all(bind=get_engine(database_url=database_url))
    except Exception as e:
        print(f"Error: failed to create tables: {e}", file=sys.stderr)
        return 1
    print("ok")
    return 0


def cmd_banks() -> int:
    from .importers import default_registry

    registry = default_registry()
    for bank_id in registry.bank_ids():
        importer = registry.get(bank_id)
        grammar = getattr(importer, "grammar", None)
        print(f"{bank_id}\t{getattr(grammar, 'display_name', '')}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import password-protected PDF bank statements into a reconciled ledger. "
        "Loads a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
ARCHIVE_OPTION: OptionInfo = typer.Option(
    ...,
    "--archive",
    help="Path to the password-protected statement archive (.zip)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


@app.command("import-statement")
def import_statement_cmd(
    archive: Annotated[Path, ARCHIVE_OPTION],
    *,
    bank: str = typer.Option(..., "--bank", help="Registered bank id (see `banks`)."),
    account: str = typer.Option(..., "--account", help="Target ledger account id."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
    best_effort: bool = typer.Option(
        False, "--best-effort", help="Skip unparseable rows instead of aborting."
    ),
    accept_review: bool = typer.Option(
        False, "--accept-review", help="Commit rows held for manual review."
    ),
) -> None:
    """Decrypt, parse, verify, de-duplicate and commit one statement."""

    code = cmd_import_statement(
        str(archive),
        bank_id=bank,
        account_id=account,
        database_url=database_url,
        best_effort=best_effort,
        accept_review=accept_review,
    )
    raise typer.Exit(code)


@app.command("init-db")
def init_db_cmd(database_url: Annotated[str | None, DATABASE_URL_OPTION] = None) -> None:
    """Create the ledger tables (development databases; use Alembic elsewhere)."""

    raise typer.Exit(cmd_init_db(database_url))


@app.command("banks")
def banks_cmd() -> None:
    """List the registered bank ids."""

    raise typer.Exit(cmd_banks())


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
