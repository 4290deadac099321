"""
Device Clinic - Shared Route Dependencies
"""
import logging
from typing import Optional

from fastapi import Header, UploadFile

from ..config import MAX_UPLOAD_SIZE
from ..errors import UploadTooLarge
from ..schemas import ErrorResponse, RequestUser

logger = logging.getLogger(__name__)

# OpenAPI docs for the {"error": ...} envelope
ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Unsupported or malformed file"},
    413: {"model": ErrorResponse, "description": "Upload too large"},
    501: {"model": ErrorResponse, "description": "Extraction not available for this file type"},
}


def get_current_user(
    x_user_id: Optional[int] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Optional[RequestUser]:
    """
    Caller identity as forwarded by the upstream auth layer.
    No headers means an anonymous request.
    """
    if x_user_id is None and x_user_name is None:
        return None
    return RequestUser(id=x_user_id, username=x_user_name)


def read_upload(file: UploadFile) -> bytes:
    """Read an uploaded file into memory, refusing anything over MAX_UPLOAD_SIZE."""
    content = file.file.read(MAX_UPLOAD_SIZE + 1)
    if len(content) > MAX_UPLOAD_SIZE:
        size = file.size if file.size is not None else len(content)
        logger.warning(f"Upload {file.filename!r} rejected: {size} bytes")
        raise UploadTooLarge(size, MAX_UPLOAD_SIZE)
    return content
