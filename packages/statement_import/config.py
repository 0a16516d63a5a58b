"""Runtime settings for the import pipeline.

``ImportSettings`` is a validated pydantic model. Defaults suit typical
consumer bank statements; every field can be overridden through the
environment (see :meth:`ImportSettings.from_env`) or explicitly by callers.

Environment variables
---------------------
- ``SI_BALANCE_TOLERANCE``: absolute tolerance for balance checks (default 0.005)
- ``SI_DATE_WINDOW_DAYS``: duplicate-review date window in days (default 3)
- ``SI_STRICT``: ``1``/``0``, abort on the first parse error (default 1)
- ``SI_MAX_DOCUMENT_BYTES``: cap on the decompressed document (default 50 MiB)
- ``SI_PAGE_CONCURRENCY``: worker cap for page layout resolution (default 4)
- ``DATABASE_URL``: ledger database used by the SQL store
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class ImportSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    balance_tolerance: Decimal = Decimal("0.005")
    date_window_days: int = Field(default=3, ge=0, le=31)
    strict: bool = True
    max_document_bytes: int = Field(default=50 * 1024 * 1024, gt=0)
    page_concurrency: int = Field(default=4, ge=1, le=32)
    # Vertical distance (PDF points) within which fragments share a row.
    row_tolerance: float = Field(default=2.0, gt=0)
    # Horizontal gap (PDF points) below which fragments merge into one cell.
    cell_gap: float = Field(default=6.0, gt=0)
    database_url: str | None = None

    @field_validator("balance_tolerance")
    @classmethod
    def _tolerance_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("balance_tolerance must be within [0, 1)")
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> ImportSettings:
        """Build settings from ``SI_*`` environment variables plus ``overrides``.

        Explicit overrides win over the environment; unset or blank variables
        keep the defaults. Invalid values raise ``ValueError`` (pydantic's
        ``ValidationError``) naming the offending field.
        """

        values: dict[str, Any] = {}
        env_map = {
            "balance_tolerance": "SI_BALANCE_TOLERANCE",
            "date_window_days": "SI_DATE_WINDOW_DAYS",
            "max_document_bytes": "SI_MAX_DOCUMENT_BYTES",
            "page_concurrency": "SI_PAGE_CONCURRENCY",
            "database_url": "DATABASE_URL",
        }
        for field, var in env_map.items():
            raw = os.getenv(var)
            if raw is not None and raw.strip():
                values[field] = raw.strip()

        strict_raw = os.getenv("SI_STRICT")
        if strict_raw is not None and strict_raw.strip():
            v = strict_raw.strip().lower()
            if v in _TRUE:
                values["strict"] = True
            elif v in _FALSE:
                values["strict"] = False
            else:
                raise ValueError(f"SI_STRICT must be a boolean flag, got {strict_raw!r}")

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


__all__ = ["ImportSettings"]
