"""
Device Clinic - Parser Routes
Parse an interrogation file without touching the database
"""
import logging

from fastapi import APIRouter, File, UploadFile

from ..errors import ExtractionDeferred
from ..schemas import DeferredExtraction
from ..services.parsers import parse_file
from .deps import ERROR_RESPONSES, read_upload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/parser", tags=["Parser"])


@router.post("/file", responses=ERROR_RESPONSES)
def parse_uploaded_file(file: UploadFile = File(...)):
    """
    Parse a device export (.xml, .log, .bnk) and return the extracted fields.
    The report form uses this to prefill itself before saving.
    """
    content = read_upload(file)
    logger.info(f"📄 Parse request for {file.filename} ({len(content)} bytes)")

    parsed = parse_file(file.filename, content)
    if isinstance(parsed, DeferredExtraction):
        raise ExtractionDeferred(parsed.message)

    return parsed.to_payload()
