"""
Interrogation file parsers, one per programmer export format.

parse_file() is the single entry point: it detects the format and hands the
bytes to exactly one vendor parser.
"""
import logging
from typing import Optional, Union

from ...schemas import DeferredExtraction, FileFormat, ParsedData
from ..format_detector import PEEK_SIZE, require_format
from .abbott_log import parse_abbott_log
from .biotronik_xml import parse_biotronik_xml
from .boston_bnk import parse_boston_bnk
from .pdf_report import parse_pdf

logger = logging.getLogger(__name__)

PARSERS = {
    FileFormat.XML: parse_biotronik_xml,
    FileFormat.LOG: parse_abbott_log,
    FileFormat.BNK: parse_boston_bnk,
    FileFormat.PDF: parse_pdf,
}


def parse_file(filename: Optional[str], content: bytes) -> Union[ParsedData, DeferredExtraction]:
    """Parse an uploaded interrogation file into ParsedData (or a deferral marker)."""
    file_format = require_format(filename, content[:PEEK_SIZE])
    logger.info(f"Parsing {filename!r} ({len(content)} bytes) as {file_format.value}")
    return PARSERS[file_format](content)


__all__ = [
    "parse_file",
    "parse_abbott_log",
    "parse_biotronik_xml",
    "parse_boston_bnk",
    "parse_pdf",
]
