"""Fixture builders: real encrypted archives and real text-layer PDFs.

The standard library can read, but not write, PKWARE-encrypted ZIP members,
so :func:`write_zip` implements the traditional cipher directly. The PDFs from
:func:`build_pdf` use the standard Helvetica font (metrics are built into
pdfminer), which is enough for pdfplumber to extract positioned words.
"""

from __future__ import annotations

import struct
import zlib
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal

from statement_import.models import ExtractedDocument, Page, Row, TextCell

# ---------------------------------------------------------------------------
# ZIP (traditional PKWARE encryption)
# ---------------------------------------------------------------------------

_DOS_DATE = ((2024 - 1980) << 9) | (1 << 5) | 1


def _crc_byte(crc: int, b: int) -> int:
    return zlib.crc32(bytes([b]), crc ^ 0xFFFFFFFF) ^ 0xFFFFFFFF


class _ZipCrypto:
    def __init__(self, password: bytes) -> None:
        self.k0, self.k1, self.k2 = 0x12345678, 0x23456789, 0x34567890
        for b in password:
            self._update(b)

    def _update(self, b: int) -> None:
        self.k0 = _crc_byte(self.k0, b)
        self.k1 = ((self.k1 + (self.k0 & 0xFF)) * 134775813 + 1) & 0xFFFFFFFF
        self.k2 = _crc_byte(self.k2, (self.k1 >> 24) & 0xFF)

    def encrypt(self, data: bytes) -> bytes:
        out = bytearray()
        for p in data:
            temp = (self.k2 | 2) & 0xFFFF
            out.append(p ^ (((temp * (temp ^ 1)) >> 8) & 0xFF))
            self._update(p)
        return bytes(out)


@dataclass
class ZipMember:
    name: str
    data: bytes
    password: bytes | None = None
    method: int = 0  # 0 = stored; anything else is written as-is (unsupported methods)
    crc: int | None = None  # override to simulate a damaged member


def write_zip(members: Sequence[ZipMember]) -> bytes:
    """Serialize ``members`` as a ZIP archive (stored, optionally encrypted)."""

    body = bytearray()
    central = bytearray()
    for m in members:
        crc = zlib.crc32(m.data) if m.crc is None else m.crc
        payload = m.data
        flags = 0
        if m.password is not None:
            flags |= 0x1
            header = bytes(range(1, 12)) + bytes([(crc >> 24) & 0xFF])
            payload = _ZipCrypto(m.password).encrypt(header + m.data)
        name = m.name.encode("utf-8")
        offset = len(body)
        body += struct.pack(
            "<4sHHHHHIIIHH",
            b"PK\x03\x04",
            20,
            flags,
            m.method,
            0,
            _DOS_DATE,
            crc,
            len(payload),
            len(m.data),
            len(name),
            0,
        )
        body += name + payload
        central += struct.pack(
            "<4s4B4HL2L5H2L",
            b"PK\x01\x02",
            20,
            3,
            20,
            0,
            flags,
            m.method,
            0,
            _DOS_DATE,
            crc,
            len(payload),
            len(m.data),
            len(name),
            0,
            0,
            0,
            0,
            0o644 << 16,
            offset,
        )
        central += name
    eocd = struct.pack(
        "<4s4H2LH", b"PK\x05\x06", 0, 0, len(members), len(members), len(central), len(body), 0
    )
    return bytes(body + central + eocd)


def encrypted_archive(document: bytes, password: str, name: str = "statement.pdf") -> bytes:
    return write_zip([ZipMember(name, document, password=password.encode("utf-8"))])


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
FONT_SIZE = 9

# (x, top, text): ``top`` is measured from the top edge like pdfplumber's.
type Placement = tuple[float, float, str]


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def _content_stream(items: Sequence[Placement]) -> bytes:
    ops = []
    for x, top, text in items:
        y = PAGE_HEIGHT - top - FONT_SIZE
        ops.append(f"BT /F1 {FONT_SIZE} Tf {x:.2f} {y:.2f} Td ({_escape(text)}) Tj ET")
    return "\n".join(ops).encode("latin-1")


def build_pdf(pages: Sequence[Sequence[Placement]], *, version: str = "1.4") -> bytes:
    """Build a minimal PDF with one Helvetica text run per placement."""

    objects: list[bytes] = []
    n_pages = len(pages)
    page_ids = [4 + 2 * i for i in range(n_pages)]
    kids = " ".join(f"{pid} 0 R" for pid in page_ids)

    objects.append(b"<< /Type /Catalog /Pages 2 0 R >>")
    objects.append(f"<< /Type /Pages /Kids [{kids}] /Count {n_pages} >>".encode())
    objects.append(
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica /Encoding /WinAnsiEncoding >>"
    )
    for pid, items in zip(page_ids, pages, strict=True):
        stream = _content_stream(items)
        objects.append(
            (
                f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {PAGE_WIDTH} {PAGE_HEIGHT}] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {pid + 1} 0 R >>"
            ).encode()
        )
        objects.append(
            f"<< /Length {len(stream)} >>\nstream\n".encode() + stream + b"\nendstream"
        )

    out = bytearray(f"%PDF-{version}\n".encode())
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n".encode() + body + b"\nendobj\n"
    xref_at = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode()
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode()
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\nstartxref\n{xref_at}\n%%EOF\n"
    ).encode()
    return bytes(out)


def document_from_lines(
    pages: Sequence[Sequence[Sequence[tuple[float, str]]]],
) -> ExtractedDocument:
    """Build an extracted document directly, approximating 5pt per character."""

    out = []
    for p, lines in enumerate(pages):
        rows = []
        for i, line in enumerate(lines):
            top = TOP_START + i * LINE_STEP
            cells = tuple(
                TextCell(text=text, x0=x, x1=x + 5.0 * len(text), top=top, bottom=top + 9)
                for x, text in sorted(line)
            )
            rows.append(Row(index=i, cells=cells))
        out.append(Page(index=p, rows=tuple(rows), width=PAGE_WIDTH, height=PAGE_HEIGHT))
    return ExtractedDocument(pages=tuple(out))


# ---------------------------------------------------------------------------
# Northwind statement layout
# ---------------------------------------------------------------------------

X_DATE, X_DESC, X_DEBIT, X_CREDIT, X_BALANCE = 40, 110, 330, 410, 490
TOP_START, LINE_STEP = 60, 16


def fmt_amount(value: Decimal) -> str:
    sign = "-" if value < 0 else ""
    return f"{sign}{abs(value):,.2f}"


@dataclass
class Tx:
    day: date
    description: str
    amount: Decimal
    continuation: str | None = None


@dataclass
class NorthwindStatement:
    """Declarative Northwind statement rendered to PDF pages.

    ``closing_offset`` misprints the closing balance; ``balance_offsets`` maps
    a transaction index to an amount added to its printed balance.
    """

    account: str = "0012-3456-78"
    period_start: date = date(2024, 1, 1)
    period_end: date = date(2024, 1, 31)
    opening: Decimal = Decimal("1000.00")
    transactions: list[Tx] = field(default_factory=list)
    rows_per_page: int = 30
    closing_offset: Decimal = Decimal("0")
    balance_offsets: dict[int, Decimal] = field(default_factory=dict)
    extra_rows: list[tuple[int, list[tuple[float, str]]]] = field(default_factory=list)

    @property
    def closing(self) -> Decimal:
        return self.opening + sum((t.amount for t in self.transactions), Decimal("0"))

    def _header_lines(self) -> list[list[tuple[float, str]]]:
        period = (
            f"Statement Period: {self.period_start:%m/%d/%Y} - {self.period_end:%m/%d/%Y}"
        )
        return [
            [(X_DATE, "Northwind Federal Bank")],
            [(X_DATE, f"Account Number: {self.account}"), (300, period)],
            [
                (X_DATE, "Date"),
                (X_DESC, "Description"),
                (X_DEBIT, "Withdrawals"),
                (X_CREDIT, "Deposits"),
                (X_BALANCE, "Balance"),
            ],
        ]

    def lines(self) -> list[list[list[tuple[float, str]]]]:
        """Return pages of lines; each line is a list of ``(x, text)``."""

        chunks = [
            self.transactions[i : i + self.rows_per_page]
            for i in range(0, max(len(self.transactions), 1), self.rows_per_page)
        ]
        pages: list[list[list[tuple[float, str]]]] = []
        running = self.opening
        index = 0
        for page_no, chunk in enumerate(chunks, start=1):
            lines = self._header_lines()
            if page_no == 1:
                lines.append([(X_DESC, "Opening Balance"), (X_BALANCE, fmt_amount(self.opening))])
            else:
                lines.append(
                    [(X_DESC, "Balance brought forward"), (X_BALANCE, fmt_amount(running))]
                )
            for tx in chunk:
                running += tx.amount
                printed = running + self.balance_offsets.get(index, Decimal("0"))
                amount_x = X_DEBIT if tx.amount < 0 else X_CREDIT
                lines.append(
                    [
                        (X_DATE, f"{tx.day:%m/%d/%Y}"),
                        (X_DESC, tx.description),
                        (amount_x, fmt_amount(abs(tx.amount))),
                        (X_BALANCE, fmt_amount(printed)),
                    ]
                )
                if tx.continuation:
                    lines.append([(X_DESC, tx.continuation)])
                for after, extra in self.extra_rows:
                    if after == index:
                        lines.append(extra)
                index += 1
            if page_no < len(chunks):
                lines.append(
                    [(X_DESC, "Balance carried forward"), (X_BALANCE, fmt_amount(running))]
                )
            else:
                lines.append(
                    [
                        (X_DESC, "Closing Balance"),
                        (X_BALANCE, fmt_amount(running + self.closing_offset)),
                    ]
                )
            lines.append([(X_DATE, f"Page {page_no} of {len(chunks)}")])
            pages.append(lines)
        return pages

    def pdf(self) -> bytes:
        rendered = []
        for lines in self.lines():
            items: list[Placement] = []
            for n, line in enumerate(lines):
                top = TOP_START + n * LINE_STEP
                items.extend((x, top, text) for x, text in line)
            rendered.append(items)
        return build_pdf(rendered)

    def document(self) -> ExtractedDocument:
        return document_from_lines(self.lines())

    def archive(self, password: str) -> bytes:
        return encrypted_archive(self.pdf(), password)


def daily_transactions(
    count: int,
    *,
    start: date = date(2024, 1, 2),
    amounts: Sequence[Decimal] | None = None,
) -> list[Tx]:
    """``count`` distinct, well-formed transactions on consecutive days."""

    merchants = [
        "COFFEE CORNER",
        "PAYROLL ACME INC",
        "GROCER MART",
        "CITY WATER UTIL",
        "BOOK NOOK",
        "FUEL STOP 88",
        "PHARMACY PLUS",
        "TRANSIT PASS",
        "HARDWARE HUB",
        "DINER 24",
        "GYM MONTHLY",
        "PET SUPPLY CO",
    ]
    defaults = [
        Decimal("-4.50"),
        Decimal("2500.00"),
        Decimal("-86.23"),
        Decimal("-45.10"),
        Decimal("-19.99"),
        Decimal("-52.40"),
        Decimal("-12.75"),
        Decimal("-90.00"),
        Decimal("-33.18"),
        Decimal("-21.60"),
        Decimal("-40.00"),
        Decimal("-27.35"),
    ]
    values = list(amounts) if amounts is not None else defaults
    return [
        Tx(
            day=start + timedelta(days=i),
            description=merchants[i % len(merchants)],
            amount=values[i % len(values)],
        )
        for i in range(count)
    ]
