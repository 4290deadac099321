"""
Device Clinic - Interrogation File Format Detection

The lowercase extension decides. Bytes are only sniffed when the
extension is missing or generic (.dat, .txt).
"""
import logging
from pathlib import PurePath
from typing import Optional

from ..config import ALLOWED_EXTENSIONS
from ..errors import UnsupportedFormat
from ..schemas import FileFormat

logger = logging.getLogger(__name__)

PEEK_SIZE = 256

EXTENSION_FORMATS = {
    ".xml": FileFormat.XML,   # Biotronik IEEE 11073 export
    ".log": FileFormat.LOG,   # Abbott / St Jude Merlin export
    ".bnk": FileFormat.BNK,   # Boston Scientific Zoom bank
    ".pdf": FileFormat.PDF,
}

GENERIC_EXTENSIONS = {"", ".dat", ".txt"}

FILE_SEPARATOR = b"\x1c"


def file_extension(filename: Optional[str]) -> str:
    return PurePath(filename or "").suffix.lower()


def sniff_format(peek: Optional[bytes]) -> FileFormat:
    """Guess the format from the first bytes of a file."""
    if not peek:
        return FileFormat.UNSUPPORTED

    head = peek[:PEEK_SIZE]
    text = head.lstrip(b"\xef\xbb\xbf").lstrip()

    if text.startswith(b"<?xml"):
        return FileFormat.XML
    if text.startswith(b"%PDF-"):
        return FileFormat.PDF

    first_line = head.splitlines()[0] if head.splitlines() else b""
    if b"SAVE DATE:" in first_line:
        return FileFormat.BNK
    if FILE_SEPARATOR in head:
        return FileFormat.LOG
    return FileFormat.UNSUPPORTED


def detect_format(filename: Optional[str], peek: Optional[bytes] = None) -> FileFormat:
    """Choose the parser for an upload from its name and optional leading bytes."""
    ext = file_extension(filename)
    if ext and ext not in ALLOWED_EXTENSIONS:
        return FileFormat.UNSUPPORTED

    if ext in EXTENSION_FORMATS:
        return EXTENSION_FORMATS[ext]

    if ext in GENERIC_EXTENSIONS:
        detected = sniff_format(peek)
        logger.debug(f"Sniffed {filename!r} as {detected.value}")
        return detected

    return FileFormat.UNSUPPORTED


def require_format(filename: Optional[str], peek: Optional[bytes] = None) -> FileFormat:
    """detect_format, failing fast with UnsupportedFormat."""
    detected = detect_format(filename, peek)
    if detected is FileFormat.UNSUPPORTED:
        logger.warning(f"Rejected upload {filename!r}: unsupported format")
        raise UnsupportedFormat(file_extension(filename))
    return detected
