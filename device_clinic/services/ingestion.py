"""
Device Clinic - Report Ingestion Service
Writes a parsed interrogation into the patient's chart: implanted device and
leads, the Report row and its arrhythmia children, in one transaction.
"""
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, NamedTuple, Optional, Union

from sqlalchemy import Float, Integer
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ExtractionDeferred, IngestionError, PatientNotFound, PersistenceFailure
from ..models import Arrhythmia, Device, ImplantedDevice, ImplantedLead, Lead, Patient, Report
from ..schemas import (
    ArrhythmiaResponse,
    Chamber,
    DeferredExtraction,
    ImplantedDeviceResponse,
    ImplantedLeadResponse,
    ParsedData,
    RequestUser,
)
from .normalize import coerce_float, coerce_int

# Initialize logger
logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

# Set explicitly by the adapter, not copied from ParsedData
REPORT_OWN_COLUMNS = {"report_date"}

# Dialects with INSERT ... ON CONFLICT DO NOTHING
CONFLICT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class IngestionResult(NamedTuple):
    report: Report
    implanted_devices: List[ImplantedDevice]
    implanted_leads: List[ImplantedLead]


# ==================== Value Conversion ====================

def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _implant_datetime(value: Optional[str]) -> Optional[datetime]:
    """ISO calendar date -> midnight UTC."""
    if not value:
        return None
    try:
        return datetime.combine(date.fromisoformat(value), time(), tzinfo=timezone.utc)
    except ValueError:
        logger.warning(f"Ignoring unparseable implant date {value!r}")
        return None


def _report_datetime(value: Optional[str]) -> datetime:
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Unparseable report date {value!r}, using current time")
    return _utc_now()


def _report_values(parsed: ParsedData) -> Dict[str, Any]:
    """ParsedData fields that have a Report column, converted to the column type."""
    values = {}
    for column in Report.__table__.columns:
        if column.name in REPORT_OWN_COLUMNS or column.name not in ParsedData.model_fields:
            continue
        value = getattr(parsed, column.name)
        if value is None:
            continue
        if isinstance(column.type, Float):
            value = coerce_float(value)
        elif isinstance(column.type, Integer):
            value = coerce_int(value)
        if value is not None:
            values[column.name] = value
    return values


# ==================== Upserts ====================

def _find_catalog_entry(db: Session, model_cls, manufacturer: str, model: str):
    return db.query(model_cls).filter_by(manufacturer=manufacturer, model=model).first()


def _catalog_entry(db: Session, model_cls, manufacturer: Optional[str], model: Optional[str]):
    """
    Get or create the Device/Lead catalog row for (manufacturer, model).

    Concurrent imports may create the same row between our lookup and our
    insert, so the insert ignores a unique conflict and the row is re-read.
    """
    manufacturer = manufacturer or UNKNOWN
    model = model or UNKNOWN
    entry = _find_catalog_entry(db, model_cls, manufacturer, model)
    if entry is not None:
        return entry

    values = {"name": model, "manufacturer": manufacturer, "model": model}
    insert = CONFLICT_INSERTS.get(db.get_bind().dialect.name)
    if insert is not None:
        statement = insert(model_cls).values(**values).on_conflict_do_nothing(
            index_elements=["manufacturer", "model"]
        )
        created = db.execute(statement).rowcount > 0
    else:
        try:
            with db.begin_nested():
                db.add(model_cls(**values))
            created = True
        except IntegrityError:
            created = False

    if created:
        logger.info(f"🆕 Added {model_cls.__tablename__} catalog entry {manufacturer} {model}")
    else:
        logger.info(f"{model_cls.__tablename__} catalog entry {manufacturer} {model} created concurrently, reusing it")
    return _find_catalog_entry(db, model_cls, manufacturer, model)


def upsert_implanted_device(db: Session, patient: Patient, parsed: ParsedData) -> ImplantedDevice:
    serial = parsed.mdc_idc_dev_serial_number
    device = _catalog_entry(db, Device, parsed.mdc_idc_dev_manufacturer, parsed.mdc_idc_dev_model)
    implanted_at = _implant_datetime(parsed.mdc_idc_dev_implant_date)

    implanted = db.query(ImplantedDevice).filter_by(patient_id=patient.id, serial=serial).first()
    if implanted is None:
        implanted = ImplantedDevice(
            patient_id=patient.id,
            device_id=device.id,
            serial=serial,
            implanted_at=implanted_at or _utc_now(),
            status="Active",
        )
        db.add(implanted)
        logger.info(f"🆕 Implanted device {serial} recorded for patient {patient.id}")
    else:
        implanted.device_id = device.id
        if implanted_at is not None:
            implanted.implanted_at = implanted_at
        logger.debug(f"Implanted device {serial} already on file (ID {implanted.id})")

    db.flush()
    return implanted


def upsert_implanted_lead(db: Session, patient: Patient, chamber: Chamber, parsed: ParsedData) -> ImplantedLead:
    record = parsed.lead(chamber)
    lead = _catalog_entry(db, Lead, record.manufacturer, record.model)
    implanted_at = _implant_datetime(record.implant_date)

    implanted = db.query(ImplantedLead).filter_by(
        patient_id=patient.id, serial=record.serial_number, chamber=chamber.value
    ).first()
    if implanted is None:
        implanted = ImplantedLead(
            patient_id=patient.id,
            lead_id=lead.id,
            serial=record.serial_number,
            chamber=chamber.value,
            implanted_at=implanted_at or _utc_now(),
            status="Active",
        )
        db.add(implanted)
        logger.info(f"🆕 {chamber.value} lead {record.serial_number} recorded for patient {patient.id}")
    else:
        implanted.lead_id = lead.id
        if implanted_at is not None:
            implanted.implanted_at = implanted_at

    db.flush()
    return implanted


def _check_mrn(patient: Patient, parsed: ParsedData) -> None:
    """The file's MRN is informational; a mismatch is logged, not rejected."""
    if not parsed.mrn:
        return
    mrn = parsed.mrn.strip()
    if not mrn.isdigit():
        logger.warning(f"⚠️ File MRN {mrn!r} is not numeric; patient {patient.id} kept")
    elif int(mrn) != patient.mrn:
        logger.warning(f"⚠️ File MRN {mrn} does not match patient {patient.id} (MRN {patient.mrn})")


# ==================== Ingestion ====================

def ingest_parsed_data(
    db: Session,
    parsed: Union[ParsedData, DeferredExtraction],
    patient_id: int,
    user: Optional[RequestUser] = None,
    file_path: Optional[str] = None,
    source_format: Optional[str] = None,
) -> IngestionResult:
    """
    Persist a parsed interrogation for a patient.

    Steps run in order inside one transaction; any failure rolls the whole
    import back and is reported with the name of the step that failed.
    """
    if isinstance(parsed, DeferredExtraction):
        raise ExtractionDeferred(parsed.message)

    logger.info(f"📥 Ingesting {source_format or 'parsed'} report for patient {patient_id}")
    step = "patient_lookup"
    try:
        patient = db.get(Patient, patient_id)
        if patient is None:
            raise PatientNotFound(patient_id)
        _check_mrn(patient, parsed)

        step = "device_upsert"
        devices = []
        if parsed.mdc_idc_dev_serial_number:
            devices.append(upsert_implanted_device(db, patient, parsed))

        step = "lead_upsert"
        leads = []
        for chamber in Chamber:
            if parsed.lead(chamber).serial_number:
                leads.append(upsert_implanted_lead(db, patient, chamber, parsed))

        step = "report_create"
        report = Report(
            patient_id=patient.id,
            user_id=user.id if user else None,
            report_date=_report_datetime(parsed.report_date),
            report_type="Device Interrogation",
            report_status="pending",
            source_format=source_format,
            file_path=file_path,
            is_completed=False,
            **_report_values(parsed),
        )
        db.add(report)
        db.flush()

        step = "arrhythmia_insert"
        for event in parsed.arrhythmias:
            report.arrhythmias.append(Arrhythmia(
                name=event.name,
                type=event.type,
                count=event.count,
                duration=event.duration,
            ))
        db.flush()

        step = "commit"
        db.commit()
    except IngestionError:
        db.rollback()
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"❌ Ingestion for patient {patient_id} failed during {step}: {e}", exc_info=True)
        raise PersistenceFailure(step, str(e)) from e

    db.refresh(report)
    logger.info(
        f"💾 Report {report.id} saved for patient {patient_id} "
        f"({len(devices)} device, {len(leads)} lead(s), {len(report.arrhythmias)} arrhythmia(s))"
    )
    return IngestionResult(report=report, implanted_devices=devices, implanted_leads=leads)


# ==================== Serialization ====================

def _json_key(column_name: str) -> str:
    field = ParsedData.model_fields.get(column_name)
    if field is not None and field.alias:
        return field.alias
    return column_name


def report_to_dict(report: Report) -> Dict[str, Any]:
    """Report row as the JSON the report form reads (zone fields keyed VT1_/VT2_/VF_)."""
    data = {}
    for column in Report.__table__.columns:
        value = getattr(report, column.name)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[_json_key(column.name)] = value
    data["arrhythmias"] = [
        ArrhythmiaResponse.model_validate(arrhythmia).model_dump() for arrhythmia in report.arrhythmias
    ]
    return data


def ingestion_result_to_dict(result: IngestionResult) -> Dict[str, Any]:
    data = report_to_dict(result.report)
    data["implanted_devices"] = [
        ImplantedDeviceResponse.model_validate(device).model_dump() for device in result.implanted_devices
    ]
    data["implanted_leads"] = [
        ImplantedLeadResponse.model_validate(lead).model_dump() for lead in result.implanted_leads
    ]
    return data
