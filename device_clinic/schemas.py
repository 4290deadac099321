"""
Device Clinic - Pydantic Schemas

ParsedData is the vendor-neutral record every interrogation parser fills.
Field names double as the JSON keys the report form consumes, so they are
stable: snake_case IDC names, with the tachy zone fields keyed VT1_/VT2_/VF_.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ==================== Enumerations ====================

class Chamber(str, Enum):
    """Lead / channel chambers, in slot order."""
    RA = "RA"
    RV = "RV"
    LV = "LV"

    @property
    def key(self) -> str:
        return self.value.lower()


class TachyZone(str, Enum):
    """Tachycardia detection zones, slowest first."""
    VT1 = "VT1"
    VT2 = "VT2"
    VF = "VF"

    @property
    def key(self) -> str:
        return self.value.lower()


class FileFormat(str, Enum):
    XML = "xml"
    LOG = "log"
    BNK = "bnk"
    PDF = "pdf"
    UNSUPPORTED = "unsupported"


# ==================== Parser Intermediates ====================

class LeadRecord(BaseModel):
    """One lead as a source file describes it, before chamber assignment."""
    serial_number: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    implant_date: Optional[str] = None
    location: Optional[Chamber] = None


class ArrhythmiaEvent(BaseModel):
    """A discrete arrhythmia the source file encoded (XML exports only)."""
    name: str
    type: Optional[str] = None
    count: Optional[int] = None
    duration: Optional[int] = None


# ==================== ParsedData ====================

class ParsedData(BaseModel):
    """
    Flat record of optional measurements.

    None means the source file did not expose the value; an empty string is
    an explicit empty value and is kept.
    """
    class Config:
        populate_by_name = True

    # Identity
    name: Optional[str] = None
    mrn: Optional[str] = None
    dob: Optional[str] = None  # YYYY-MM-DD
    report_date: Optional[str] = None  # RFC 3339, UTC

    # Device
    mdc_idc_dev_manufacturer: Optional[str] = None
    mdc_idc_dev_model: Optional[str] = None
    mdc_idc_dev_serial_number: Optional[str] = None
    mdc_idc_dev_implant_date: Optional[str] = None

    # Leads
    mdc_idc_dev_ra_serial_number: Optional[str] = None
    mdc_idc_dev_ra_manufacturer: Optional[str] = None
    mdc_idc_dev_ra_model: Optional[str] = None
    mdc_idc_dev_ra_implant_date: Optional[str] = None
    mdc_idc_dev_rv_serial_number: Optional[str] = None
    mdc_idc_dev_rv_manufacturer: Optional[str] = None
    mdc_idc_dev_rv_model: Optional[str] = None
    mdc_idc_dev_rv_implant_date: Optional[str] = None
    mdc_idc_dev_lv_serial_number: Optional[str] = None
    mdc_idc_dev_lv_manufacturer: Optional[str] = None
    mdc_idc_dev_lv_model: Optional[str] = None
    mdc_idc_dev_lv_implant_date: Optional[str] = None

    # Brady settings (rates in bpm)
    mdc_idc_set_brady_mode: Optional[str] = None
    mdc_idc_set_brady_lowrate: Optional[int] = None
    mdc_idc_set_brady_max_tracking_rate: Optional[int] = None
    mdc_idc_set_brady_max_sensor_rate: Optional[int] = None
    mdc_idc_set_brady_mode_switch_rate: Optional[str] = None
    mdc_idc_dev_sav: Optional[str] = None
    mdc_idc_dev_pav: Optional[str] = None

    # Statistics
    mdc_idc_stat_ataf_burden_percent: Optional[str] = None
    mdc_idc_stat_ataf_count: Optional[str] = None
    mdc_idc_stat_brady_ra_percent_paced: Optional[str] = None
    mdc_idc_stat_brady_rv_percent_paced: Optional[str] = None
    mdc_idc_stat_brady_lv_percent_paced: Optional[str] = None
    mdc_idc_stat_brady_biv_percent_paced: Optional[str] = None
    mdc_idc_stat_pvc_count: Optional[str] = None
    mdc_idc_stat_nsvt_count: Optional[str] = None
    mdc_idc_stat_atp_delivered_recent: Optional[str] = None
    mdc_idc_stat_shocks_delivered_recent: Optional[str] = None

    # Battery
    mdc_idc_batt_status: Optional[str] = None
    mdc_idc_batt_percentage: Optional[str] = None
    mdc_idc_batt_volt: Optional[str] = None
    mdc_idc_batt_remaining: Optional[str] = None
    mdc_idc_cap_charge_time: Optional[str] = None

    # Per-chamber measurements (threshold in V, pulse width in ms)
    mdc_idc_msmt_ra_impedance_mean: Optional[str] = None
    mdc_idc_msmt_ra_sensing_mean: Optional[str] = None
    mdc_idc_msmt_ra_pacing_threshold: Optional[str] = None
    mdc_idc_msmt_ra_pw: Optional[str] = None
    mdc_idc_msmt_rv_impedance_mean: Optional[str] = None
    mdc_idc_msmt_rv_sensing_mean: Optional[str] = None
    mdc_idc_msmt_rv_pacing_threshold: Optional[str] = None
    mdc_idc_msmt_rv_pw: Optional[str] = None
    mdc_idc_msmt_lv_impedance_mean: Optional[str] = None
    mdc_idc_msmt_lv_sensing_mean: Optional[str] = None
    mdc_idc_msmt_lv_pacing_threshold: Optional[str] = None
    mdc_idc_msmt_lv_pw: Optional[str] = None
    mdc_idc_msmt_hv_impedance_mean: Optional[str] = None

    # VT1 zone
    vt1_active: Optional[str] = Field(default=None, alias="VT1_active")
    vt1_detection_interval: Optional[str] = Field(default=None, alias="VT1_detection_interval")
    vt1_therapy_1_atp: Optional[str] = Field(default=None, alias="VT1_therapy_1_atp")
    vt1_therapy_1_no_bursts: Optional[str] = Field(default=None, alias="VT1_therapy_1_no_bursts")
    vt1_therapy_2_atp: Optional[str] = Field(default=None, alias="VT1_therapy_2_atp")
    vt1_therapy_2_no_bursts: Optional[str] = Field(default=None, alias="VT1_therapy_2_no_bursts")
    vt1_therapy_3_energy: Optional[str] = Field(default=None, alias="VT1_therapy_3_energy")
    vt1_therapy_4_energy: Optional[str] = Field(default=None, alias="VT1_therapy_4_energy")
    vt1_therapy_5_energy: Optional[str] = Field(default=None, alias="VT1_therapy_5_energy")
    vt1_therapy_5_max_num_shocks: Optional[str] = Field(default=None, alias="VT1_therapy_5_max_num_shocks")

    # VT2 zone
    vt2_active: Optional[str] = Field(default=None, alias="VT2_active")
    vt2_detection_interval: Optional[str] = Field(default=None, alias="VT2_detection_interval")
    vt2_therapy_1_atp: Optional[str] = Field(default=None, alias="VT2_therapy_1_atp")
    vt2_therapy_1_no_bursts: Optional[str] = Field(default=None, alias="VT2_therapy_1_no_bursts")
    vt2_therapy_2_atp: Optional[str] = Field(default=None, alias="VT2_therapy_2_atp")
    vt2_therapy_2_no_bursts: Optional[str] = Field(default=None, alias="VT2_therapy_2_no_bursts")
    vt2_therapy_3_energy: Optional[str] = Field(default=None, alias="VT2_therapy_3_energy")
    vt2_therapy_4_energy: Optional[str] = Field(default=None, alias="VT2_therapy_4_energy")
    vt2_therapy_5_energy: Optional[str] = Field(default=None, alias="VT2_therapy_5_energy")
    vt2_therapy_5_max_num_shocks: Optional[str] = Field(default=None, alias="VT2_therapy_5_max_num_shocks")

    # VF zone (shock therapies sit in slots 2-4)
    vf_active: Optional[str] = Field(default=None, alias="VF_active")
    vf_detection_interval: Optional[str] = Field(default=None, alias="VF_detection_interval")
    vf_therapy_1_atp: Optional[str] = Field(default=None, alias="VF_therapy_1_atp")
    vf_therapy_1_no_bursts: Optional[str] = Field(default=None, alias="VF_therapy_1_no_bursts")
    vf_therapy_2_energy: Optional[str] = Field(default=None, alias="VF_therapy_2_energy")
    vf_therapy_3_energy: Optional[str] = Field(default=None, alias="VF_therapy_3_energy")
    vf_therapy_4_energy: Optional[str] = Field(default=None, alias="VF_therapy_4_energy")
    vf_therapy_4_max_num_shocks: Optional[str] = Field(default=None, alias="VF_therapy_4_max_num_shocks")

    arrhythmias: List[ArrhythmiaEvent] = Field(default_factory=list)

    # ---------- keyed access ----------

    def set_lead(self, chamber: Chamber, lead: LeadRecord) -> None:
        prefix = f"mdc_idc_dev_{chamber.key}_"
        setattr(self, prefix + "serial_number", lead.serial_number)
        setattr(self, prefix + "manufacturer", lead.manufacturer)
        setattr(self, prefix + "model", lead.model)
        setattr(self, prefix + "implant_date", lead.implant_date)

    def lead(self, chamber: Chamber) -> LeadRecord:
        prefix = f"mdc_idc_dev_{chamber.key}_"
        return LeadRecord(
            serial_number=getattr(self, prefix + "serial_number"),
            manufacturer=getattr(self, prefix + "manufacturer"),
            model=getattr(self, prefix + "model"),
            implant_date=getattr(self, prefix + "implant_date"),
            location=chamber,
        )

    def set_msmt(self, chamber: Chamber, field: str, value: Optional[str]) -> None:
        setattr(self, f"mdc_idc_msmt_{chamber.key}_{field}", value)

    def set_zone(self, zone: TachyZone, field: str, value: Optional[str]) -> None:
        setattr(self, f"{zone.key}_{field}", value)

    def zone(self, zone: TachyZone, field: str) -> Optional[str]:
        return getattr(self, f"{zone.key}_{field}", None)

    def to_payload(self) -> Dict[str, Any]:
        """JSON body for the report form: set fields only, zone keys aliased."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DeferredExtraction(BaseModel):
    """Returned instead of ParsedData when the container was accepted but not read."""
    file_type: str
    message: str
    page_count: Optional[int] = None
    encrypted: bool = False


# ==================== API Models ====================

class RequestUser(BaseModel):
    """The caller as resolved by the upstream auth layer."""
    id: Optional[int] = None
    username: Optional[str] = None


class ArrhythmiaResponse(BaseModel):
    id: int
    name: str
    type: Optional[str] = None
    count: Optional[int] = None
    duration: Optional[int] = None

    class Config:
        from_attributes = True


class ImplantedDeviceResponse(BaseModel):
    id: int
    patient_id: int
    device_id: int
    serial: str
    status: Optional[str] = None

    class Config:
        from_attributes = True


class ImplantedLeadResponse(BaseModel):
    id: int
    patient_id: int
    lead_id: int
    serial: str
    chamber: str
    status: Optional[str] = None

    class Config:
        from_attributes = True


class ErrorResponse(BaseModel):
    error: str
