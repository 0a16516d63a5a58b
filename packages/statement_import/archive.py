"""Password-protected archive decoding.

Bank portals commonly deliver statements as a ZIP archive protected with the
traditional PKWARE cipher. :class:`ArchiveDecryptor` opens such an archive
from memory and returns the bytes of the single PDF inside.

Failure mapping
---------------
- not a ZIP container, no PDF member, several PDF members, or an encryption /
  compression method the runtime cannot decode → ``UnsupportedFormatError``
- missing or wrong password → ``WrongPasswordError``. The cipher only checks
  one byte of the key stream up front, so a wrong password occasionally gets
  past that check and surfaces as a CRC or inflate failure instead; on an
  encrypted member those are reported as a wrong password too.
- truncated or garbled container, or a member larger than the configured cap
  → ``CorruptArchiveError``

The decryptor never retries: a wrong password is returned to the caller
as-is, because bank services often lock after a few attempts.
"""

from __future__ import annotations

import io
import zipfile
import zlib

from .credentials import Password
from .errors import CorruptArchiveError, UnsupportedFormatError, WrongPasswordError
from .logging_setup import get_logger

_logger = get_logger("statement_import.archive")

_ZIP_MAGIC = (b"PK\x03\x04", b"PK\x05\x06")
_FLAG_ENCRYPTED = 0x1


def _select_document(zf: zipfile.ZipFile) -> zipfile.ZipInfo:
    candidates = [
        info
        for info in zf.infolist()
        if not info.is_dir() and info.filename.lower().endswith(".pdf")
    ]
    if not candidates:
        raise UnsupportedFormatError("archive does not contain a PDF document")
    if len(candidates) > 1:
        names = ", ".join(sorted(i.filename for i in candidates))
        raise UnsupportedFormatError(f"archive contains several PDF documents: {names}")
    return candidates[0]


class ArchiveDecryptor:
    """Decrypt a ZIP archive held in memory and return its PDF member."""

    def __init__(self, *, max_document_bytes: int = 50 * 1024 * 1024) -> None:
        self.max_document_bytes = max_document_bytes

    def decrypt(self, data: bytes, password: Password) -> bytes:
        try:
            return self._decrypt(data, password)
        finally:
            # Covers early exits that never reached ``borrow()``.
            password.clear()

    def _decrypt(self, data: bytes, password: Password) -> bytes:
        if not data:
            raise CorruptArchiveError("archive is empty")
        if not data.startswith(_ZIP_MAGIC):
            raise UnsupportedFormatError("input is not a ZIP archive")

        try:
            zf = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile as exc:
            raise CorruptArchiveError(f"unreadable ZIP container: {exc}") from exc

        with zf:
            info = _select_document(zf)
            if info.file_size > self.max_document_bytes:
                raise CorruptArchiveError(
                    f"{info.filename} declares {info.file_size} bytes; "
                    f"limit is {self.max_document_bytes}"
                )
            encrypted = bool(info.flag_bits & _FLAG_ENCRYPTED)

            with password.borrow() as pwd:
                if encrypted and not pwd:
                    raise WrongPasswordError("archive is password-protected; no password given")
                try:
                    payload = zf.read(info, pwd=pwd or None)
                except RuntimeError as exc:
                    if "password" in str(exc).lower():
                        raise WrongPasswordError("incorrect archive password") from None
                    raise CorruptArchiveError(f"cannot read {info.filename}: {exc}") from exc
                except NotImplementedError as exc:
                    raise UnsupportedFormatError(
                        f"unsupported encryption or compression for {info.filename}: {exc}"
                    ) from exc
                except zipfile.BadZipFile as exc:
                    if encrypted and "crc" in str(exc).lower():
                        raise WrongPasswordError("incorrect archive password") from None
                    raise CorruptArchiveError(f"damaged member {info.filename}: {exc}") from exc
                except (zlib.error, EOFError, OSError) as exc:
                    if encrypted:
                        raise WrongPasswordError("incorrect archive password") from None
                    raise CorruptArchiveError(f"damaged member {info.filename}: {exc}") from exc

        _logger.debug(
            "decrypted %s (%d bytes, encrypted=%s)", info.filename, len(payload), encrypted
        )
        return payload


__all__ = ["ArchiveDecryptor"]
