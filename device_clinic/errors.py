"""
Device Clinic - Ingestion Error Kinds

Every failure the ingestion pipeline reports descends from IngestionError,
which carries the HTTP status the API layer answers with. The handler in
main.py renders all of them as {"error": "<message>"}.
"""
from typing import Optional


class IngestionError(Exception):
    """Root of the ingestion exception hierarchy."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


# ==================== Parsing ====================

class UnsupportedFormat(IngestionError):
    """File extension (and sniffed bytes) match no known export format."""

    status_code = 400

    def __init__(self, extension: str):
        self.extension = extension or ""
        shown = self.extension or "(none)"
        super().__init__(f"Unsupported file type: {shown}")


class MalformedInput(IngestionError):
    """Structural failure: invalid XML, truncated BNK header, bad LOG code."""

    status_code = 400

    def __init__(self, message: str, offset: Optional[int] = None, line: Optional[int] = None):
        self.offset = offset
        self.line = line
        if offset is not None:
            message = f"{message} (byte offset {offset})"
        elif line is not None:
            message = f"{message} (line {line})"
        super().__init__(message)


class ExtractionDeferred(IngestionError):
    """The file type is accepted but its contents cannot be extracted yet."""

    status_code = 501


class UploadTooLarge(IngestionError):
    status_code = 413

    def __init__(self, size: int, limit: int):
        self.size = size
        self.limit = limit
        super().__init__(f"Uploaded file is {size} bytes; the limit is {limit} bytes")


# ==================== Persistence ====================

class PatientNotFound(IngestionError):
    status_code = 404

    def __init__(self, patient_id: int):
        self.patient_id = patient_id
        super().__init__(f"Patient {patient_id} not found")


class PersistenceFailure(IngestionError):
    """Database failure mid-ingestion. The transaction has been rolled back."""

    status_code = 500

    def __init__(self, step: str, message: str):
        self.step = step
        super().__init__(f"Report ingestion failed during {step}: {message}")
