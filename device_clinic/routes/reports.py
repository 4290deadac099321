"""
Device Clinic - Report Routes
Import interrogation files into a patient's chart and read reports back
"""
import logging
from datetime import datetime
from pathlib import Path, PurePath
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..config import UPLOAD_DIR
from ..db import get_db
from ..errors import ExtractionDeferred, PatientNotFound
from ..models import Patient, Report
from ..schemas import DeferredExtraction, ErrorResponse, RequestUser
from ..services.format_detector import PEEK_SIZE, require_format
from ..services.ingestion import ingest_parsed_data, ingestion_result_to_dict, report_to_dict
from ..services.parsers import PARSERS
from .deps import ERROR_RESPONSES, get_current_user, read_upload

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Reports"])


def _store_upload(patient_id: int, filename: Optional[str], content: bytes) -> Path:
    """Keep the original file under UPLOAD_DIR/<patient_id>/."""
    name = PurePath(filename or "upload").name or "upload"
    stamp = datetime.now().strftime("%Y%m%d%H%M%S%f")
    destination = Path(UPLOAD_DIR) / str(patient_id) / f"{stamp}_{name}"
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(content)
    logger.debug(f"Stored upload at {destination}")
    return destination


@router.post(
    "/patients/{patient_id}/reports/import",
    status_code=status.HTTP_201_CREATED,
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def import_report(
    patient_id: int,
    file: UploadFile = File(...),
    user: Optional[RequestUser] = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Parse a device export and save it as a new report for the patient"""
    content = read_upload(file)
    file_format = require_format(file.filename, content[:PEEK_SIZE])
    logger.info(f"📥 Import of {file.filename} ({file_format.value}) for patient {patient_id}")

    parsed = PARSERS[file_format](content)
    if isinstance(parsed, DeferredExtraction):
        raise ExtractionDeferred(parsed.message)

    stored = _store_upload(patient_id, file.filename, content)
    try:
        result = ingest_parsed_data(
            db,
            parsed,
            patient_id,
            user=user,
            file_path=str(stored),
            source_format=file_format.value,
        )
    except Exception:
        stored.unlink(missing_ok=True)
        logger.warning(f"Removed stored upload {stored} after failed import")
        raise

    return JSONResponse(status_code=status.HTTP_201_CREATED, content=ingestion_result_to_dict(result))


@router.get("/patients/{patient_id}/reports")
def list_patient_reports(patient_id: int, limit: int = 50, db: Session = Depends(get_db)):
    """Reports for a patient, newest first"""
    if db.query(Patient).filter_by(id=patient_id).first() is None:
        raise PatientNotFound(patient_id)

    reports = (
        db.query(Report)
        .filter_by(patient_id=patient_id)
        .order_by(Report.report_date.desc(), Report.id.desc())
        .limit(limit)
        .all()
    )
    return [report_to_dict(report) for report in reports]


@router.get("/reports/{report_id}")
def get_report(report_id: int, db: Session = Depends(get_db)):
    """Get report by ID"""
    report = db.query(Report).filter_by(id=report_id).first()
    if not report:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Report not found"
        )
    return report_to_dict(report)
