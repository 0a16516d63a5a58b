"""Positioned text extraction with row/column reconstruction.

Stream-order text from a tabular statement interleaves columns: the date,
description, amount and balance of one line can arrive as separate runs in
any order. The extractor therefore works from positioned words:

1. pdfplumber yields every word with its bounding box, page by page.
2. :func:`cluster_rows` groups words whose ``top`` lies within
   ``row_tolerance`` of a row's anchor, orders each row left-to-right, and
   merges horizontally adjacent words (gap ≤ ``cell_gap``) into one cell.
   Rows come out top-to-bottom.

Step 2 is pure and runs through :func:`~statement_import.pmap.ordered_map`
so pages may be resolved concurrently; page order is restored before the
document is returned.

Scanned or image-only statements are not supported: a document in which no
page yields a single word raises ``NoTextLayerError``.
"""

from __future__ import annotations

import io
import re
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import pdfplumber
from pdfminer.pdfdocument import PDFPasswordIncorrect
from pdfminer.pdftypes import PDFException
from pdfminer.psparser import PSException
from pdfplumber.utils.exceptions import PdfminerException

from .config import ImportSettings
from .errors import NoTextLayerError, UnsupportedDocumentVersionError
from .logging_setup import get_logger
from .models import ExtractedDocument, Page, Row, TextCell
from .pmap import ordered_map

_logger = get_logger("statement_import.extract")

_VERSION_RE = re.compile(rb"%PDF-(\d)\.(\d)")
_SUPPORTED_VERSIONS = frozenset({(1, minor) for minor in range(8)} | {(2, 0)})


def check_document_version(document: bytes) -> tuple[int, int]:
    """Return the ``(major, minor)`` PDF version or raise.

    The header may be preceded by up to 1 KiB of junk, as readers tolerate.
    """

    m = _VERSION_RE.search(document[:1024])
    if m is None:
        raise UnsupportedDocumentVersionError("document is not a PDF (no %PDF- header)")
    version = (int(m.group(1)), int(m.group(2)))
    if version not in _SUPPORTED_VERSIONS:
        raise UnsupportedDocumentVersionError(
            f"PDF version {version[0]}.{version[1]} is not supported"
        )
    return version


def cluster_rows(
    cells: Iterable[TextCell],
    *,
    row_tolerance: float,
    cell_gap: float,
) -> tuple[Row, ...]:
    """Group positioned fragments into rows of left-to-right cells."""

    ordered = sorted(cells, key=lambda c: (c.top, c.x0))
    groups: list[list[TextCell]] = []
    anchor = 0.0
    for cell in ordered:
        if groups and abs(cell.top - anchor) <= row_tolerance:
            groups[-1].append(cell)
        else:
            groups.append([cell])
            anchor = cell.top

    rows: list[Row] = []
    for idx, frags in enumerate(groups):
        frags.sort(key=lambda c: c.x0)
        merged: list[TextCell] = [frags[0]]
        for frag in frags[1:]:
            prev = merged[-1]
            if frag.x0 - prev.x1 <= cell_gap:
                merged[-1] = TextCell(
                    text=f"{prev.text} {frag.text}",
                    x0=prev.x0,
                    x1=max(prev.x1, frag.x1),
                    top=min(prev.top, frag.top),
                    bottom=max(prev.bottom, frag.bottom),
                )
            else:
                merged.append(frag)
        rows.append(Row(index=idx, cells=tuple(merged)))
    return tuple(rows)


def _cells_from_words(words: Sequence[Mapping[str, Any]]) -> list[TextCell]:
    out: list[TextCell] = []
    for w in words:
        text = str(w.get("text") or "").strip()
        if not text:
            continue
        out.append(
            TextCell(
                text=text,
                x0=float(w["x0"]),
                x1=float(w["x1"]),
                top=float(w["top"]),
                bottom=float(w["bottom"]),
            )
        )
    return out


def _describe_pdf_failure(exc: BaseException) -> str:
    inner = exc.args[0] if isinstance(exc, PdfminerException) and exc.args else exc
    if isinstance(inner, PDFPasswordIncorrect):
        return "document is itself encrypted and cannot be read"
    return f"document cannot be read: {type(inner).__name__}: {inner}"


class TextExtractor:
    """Turn PDF bytes into an :class:`ExtractedDocument`."""

    def __init__(self, settings: ImportSettings | None = None) -> None:
        self.settings = settings or ImportSettings()

    def extract(self, document: bytes) -> ExtractedDocument:
        check_document_version(document)

        raw_pages: list[tuple[int, float, float, list[TextCell]]] = []
        try:
            with pdfplumber.open(io.BytesIO(document)) as pdf:
                for index, page in enumerate(pdf.pages):
                    words = page.extract_words(
                        x_tolerance=1.5,
                        y_tolerance=2,
                        keep_blank_chars=False,
                        use_text_flow=False,
                    )
                    raw_pages.append(
                        (index, float(page.width), float(page.height), _cells_from_words(words))
                    )
        except (PdfminerException, PDFException, PSException) as exc:
            raise UnsupportedDocumentVersionError(_describe_pdf_failure(exc)) from exc

        if not any(cells for *_, cells in raw_pages):
            raise NoTextLayerError(
                "no extractable text on any page; scanned statements are not supported"
            )

        def _resolve(item: tuple[int, float, float, list[TextCell]]) -> Page:
            index, width, height, cells = item
            rows = cluster_rows(
                cells,
                row_tolerance=self.settings.row_tolerance,
                cell_gap=self.settings.cell_gap,
            )
            return Page(index=index, rows=rows, width=width, height=height)

        pages = ordered_map(raw_pages, _resolve, concurrency=self.settings.page_concurrency)
        _logger.debug(
            "extracted %d page(s), %d row(s)",
            len(pages),
            sum(len(p.rows) for p in pages),
        )
        return ExtractedDocument(pages=tuple(pages))


__all__ = ["TextExtractor", "cluster_rows", "check_document_version"]
