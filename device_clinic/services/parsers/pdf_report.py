"""
Device Clinic - PDF Interrogation Reports

Programmer PDFs are accepted and validated (opened, decrypted with the empty
password when encrypted) but their data is not extracted: the caller gets a
DeferredExtraction marker telling the user to upload the embedded XML.
"""
import logging
from io import BytesIO

from pypdf import PdfReader
from pypdf.errors import DependencyError, PdfReadError

from ...errors import MalformedInput
from ...schemas import DeferredExtraction

logger = logging.getLogger(__name__)

DEFERRED_MESSAGE = (
    "PDF parsing not fully implemented. Please upload the embedded XML file "
    "directly or use the frontend parser."
)


def parse_pdf(content: bytes) -> DeferredExtraction:
    """Open and (if needed) decrypt a PDF, then defer extraction."""
    try:
        reader = PdfReader(BytesIO(content))
        encrypted = reader.is_encrypted
        if encrypted and not reader.decrypt(""):
            raise MalformedInput("PDF is password protected")
        page_count = len(reader.pages)
    except (PdfReadError, DependencyError) as e:
        logger.warning(f"Unreadable PDF upload: {e}")
        raise MalformedInput(f"Unreadable PDF: {e}") from e

    logger.info(f"PDF accepted ({page_count} pages, encrypted={encrypted}); extraction deferred")
    return DeferredExtraction(
        file_type="pdf",
        message=DEFERRED_MESSAGE,
        page_count=page_count,
        encrypted=encrypted,
    )
