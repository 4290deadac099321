"""
Device Clinic - Database ORM Models
Patients, implanted hardware and device interrogation reports
"""
from sqlalchemy import Column, Integer, String, Text, Date, DateTime, Float, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from .db import Base


class Patient(Base):
    """Patient demographic information"""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, autoincrement=True)
    mrn = Column(Integer, unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    dob = Column(Date)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    reports = relationship("Report", back_populates="patient", cascade="all, delete-orphan")
    implanted_devices = relationship("ImplantedDevice", back_populates="patient", cascade="all, delete-orphan")
    implanted_leads = relationship("ImplantedLead", back_populates="patient", cascade="all, delete-orphan")


# ==================== Hardware Catalog ====================

class Device(Base):
    """Generator model as sold (one row per manufacturer + model)"""
    __tablename__ = "devices"
    __table_args__ = (UniqueConstraint("manufacturer", "model", name="uq_device_manufacturer_model"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200))
    manufacturer = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    type = Column(String(50))  # Pacemaker, ICD, CRT-D ...
    is_mri = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Lead(Base):
    """Lead model as sold (one row per manufacturer + model)"""
    __tablename__ = "leads"
    __table_args__ = (UniqueConstraint("manufacturer", "model", name="uq_lead_manufacturer_model"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200))
    manufacturer = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    type = Column(String(50))
    is_mri = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


# ==================== Implanted Hardware ====================

class ImplantedDevice(Base):
    """A generator implanted in a patient, keyed by patient + serial"""
    __tablename__ = "implanted_devices"
    __table_args__ = (UniqueConstraint("patient_id", "serial", name="uq_implanted_device_patient_serial"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    serial = Column(String(100), nullable=False)
    implanted_at = Column(DateTime(timezone=True), nullable=False)
    explanted_at = Column(DateTime(timezone=True))
    status = Column(String(20), default="Active")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="implanted_devices")
    device = relationship("Device")


class ImplantedLead(Base):
    """A lead implanted in a patient, keyed by patient + serial + chamber"""
    __tablename__ = "implanted_leads"
    __table_args__ = (
        UniqueConstraint("patient_id", "serial", "chamber", name="uq_implanted_lead_patient_serial_chamber"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False)
    serial = Column(String(100), nullable=False)
    chamber = Column(String(2), nullable=False)  # RA / RV / LV
    implanted_at = Column(DateTime(timezone=True), nullable=False)
    explanted_at = Column(DateTime(timezone=True))
    status = Column(String(20), default="Active")

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="implanted_leads")
    lead = relationship("Lead")


# ==================== Reports ====================

class Report(Base):
    """Device interrogation report"""
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    user_id = Column(Integer)  # Upstream auth user, nullable for anonymous imports

    report_date = Column(DateTime(timezone=True), nullable=False)
    report_type = Column(String(50), default="Device Interrogation")
    report_status = Column(String(20), default="pending")
    source_format = Column(String(10))  # xml / log / bnk
    file_path = Column(String(500))
    comments = Column(Text)
    is_completed = Column(Boolean, default=False)

    # Brady settings
    mdc_idc_set_brady_mode = Column(String(20))
    mdc_idc_set_brady_lowrate = Column(Integer)
    mdc_idc_set_brady_max_tracking_rate = Column(Integer)
    mdc_idc_set_brady_max_sensor_rate = Column(Integer)
    mdc_idc_set_brady_mode_switch_rate = Column(String(20))
    mdc_idc_dev_sav = Column(String(20))
    mdc_idc_dev_pav = Column(String(20))

    # Statistics
    mdc_idc_stat_ataf_burden_percent = Column(Float)
    mdc_idc_stat_ataf_count = Column(Integer)
    mdc_idc_stat_brady_ra_percent_paced = Column(Float)
    mdc_idc_stat_brady_rv_percent_paced = Column(Float)
    mdc_idc_stat_brady_lv_percent_paced = Column(Float)
    mdc_idc_stat_brady_biv_percent_paced = Column(Float)
    mdc_idc_stat_pvc_count = Column(Integer)
    mdc_idc_stat_nsvt_count = Column(Integer)
    mdc_idc_stat_atp_delivered_recent = Column(Integer)
    mdc_idc_stat_shocks_delivered_recent = Column(Integer)

    # Battery
    mdc_idc_batt_status = Column(String(20))
    mdc_idc_batt_percentage = Column(Float)
    mdc_idc_batt_volt = Column(Float)
    mdc_idc_batt_remaining = Column(Float)  # years
    mdc_idc_cap_charge_time = Column(Float)

    # Measurements
    mdc_idc_msmt_ra_impedance_mean = Column(Float)
    mdc_idc_msmt_ra_sensing_mean = Column(Float)
    mdc_idc_msmt_ra_pacing_threshold = Column(Float)
    mdc_idc_msmt_ra_pw = Column(Float)
    mdc_idc_msmt_rv_impedance_mean = Column(Float)
    mdc_idc_msmt_rv_sensing_mean = Column(Float)
    mdc_idc_msmt_rv_pacing_threshold = Column(Float)
    mdc_idc_msmt_rv_pw = Column(Float)
    mdc_idc_msmt_lv_impedance_mean = Column(Float)
    mdc_idc_msmt_lv_sensing_mean = Column(Float)
    mdc_idc_msmt_lv_pacing_threshold = Column(Float)
    mdc_idc_msmt_lv_pw = Column(Float)
    mdc_idc_msmt_hv_impedance_mean = Column(Float)

    # VT1 zone
    vt1_active = Column(String(10))
    vt1_detection_interval = Column(String(20))
    vt1_therapy_1_atp = Column(String(50))
    vt1_therapy_1_no_bursts = Column(String(20))
    vt1_therapy_2_atp = Column(String(50))
    vt1_therapy_2_no_bursts = Column(String(20))
    vt1_therapy_3_energy = Column(String(20))
    vt1_therapy_4_energy = Column(String(20))
    vt1_therapy_5_energy = Column(String(20))
    vt1_therapy_5_max_num_shocks = Column(String(20))

    # VT2 zone
    vt2_active = Column(String(10))
    vt2_detection_interval = Column(String(20))
    vt2_therapy_1_atp = Column(String(50))
    vt2_therapy_1_no_bursts = Column(String(20))
    vt2_therapy_2_atp = Column(String(50))
    vt2_therapy_2_no_bursts = Column(String(20))
    vt2_therapy_3_energy = Column(String(20))
    vt2_therapy_4_energy = Column(String(20))
    vt2_therapy_5_energy = Column(String(20))
    vt2_therapy_5_max_num_shocks = Column(String(20))

    # VF zone
    vf_active = Column(String(10))
    vf_detection_interval = Column(String(20))
    vf_therapy_1_atp = Column(String(50))
    vf_therapy_1_no_bursts = Column(String(20))
    vf_therapy_2_energy = Column(String(20))
    vf_therapy_3_energy = Column(String(20))
    vf_therapy_4_energy = Column(String(20))
    vf_therapy_4_max_num_shocks = Column(String(20))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("Patient", back_populates="reports")
    arrhythmias = relationship(
        "Arrhythmia", back_populates="report", cascade="all, delete-orphan", order_by="Arrhythmia.id"
    )


class Arrhythmia(Base):
    """Discrete arrhythmia event attached to a report"""
    __tablename__ = "arrhythmias"

    id = Column(Integer, primary_key=True, autoincrement=True)
    report_id = Column(Integer, ForeignKey("reports.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(50))
    count = Column(Integer)
    duration = Column(Integer)  # seconds

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    report = relationship("Report", back_populates="arrhythmias")
