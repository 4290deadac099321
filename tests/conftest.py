"""Shared test fixtures for the device clinic tests."""

import os
import tempfile

# Point config at throwaway locations before any device_clinic import
_TMP = tempfile.mkdtemp(prefix="device_clinic_tests_")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_FILE", os.path.join(_TMP, "device_clinic.log"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TMP, "uploads"))

import pytest

from device_clinic import models
from device_clinic.db import Base, init_db, make_engine, make_session_factory

FS = "\x1c"


# ==================== Database ====================

@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = make_session_factory(engine)()
    yield session
    session.close()


@pytest.fixture
def patient(db_session):
    patient = models.Patient(mrn=10001, first_name="Jane", last_name="Doe")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def other_patient(db_session):
    patient = models.Patient(mrn=20002, first_name="John", last_name="Roe")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def client(engine, tmp_path, monkeypatch):
    """TestClient bound to the in-memory database (startup hooks not run)."""
    from fastapi.testclient import TestClient

    from device_clinic.db import get_db
    from device_clinic.main import app
    from device_clinic.routes import reports

    TestSession = make_session_factory(engine)

    def override_get_db():
        db = TestSession()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(reports, "UPLOAD_DIR", tmp_path / "uploads")
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ==================== Biotronik XML ====================

def lead_section(serial, location=None, model="Solia S 60", implant_date="2019-05-14"):
    location_value = f'<value name="LOCATION">{location}</value>' if location else ""
    return f"""
        <section name="LEAD">
          <value name="SERIAL_NUM">{serial}</value>
          <value name="MANUFACTURER">BIOTRONIK</value>
          <value name="MODEL">{model}</value>
          <value name="IMPLANT_DATE">{implant_date}</value>
          {location_value}
        </section>"""


XML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<biotronik-ieee11073-export>
  <dataset>
    <section name="MDC">
      <section name="ATTR">
        <section name="PATIENT">
          <value name="NAME">Doe^Jane</value>
          <value name="BIRTHDATE">1970-01-01</value>
          <value name="ID">10001</value>
        </section>
      </section>
      <section name="IDC">
        <section name="DEV">
          <value name="SERIAL_NUM">68123456</value>
          <value name="MODEL">Intica 7 HF-T</value>
          <value name="MANUFACTURER">BIOTRONIK</value>
          <value name="IMPLANT_DATE">20190514</value>
        </section>
        <section name="SESS">
          <value name="DATE">2024-03-14T10:22:05+01:00</value>
        </section>
        __LEADS__
        <section name="STAT">
          <section name="BRADY">
            <value name="RA_PERCENT_PACED">12</value>
            <value name="RV_PERCENT_PACED">98</value>
          </section>
          <section name="AT">
            <value name="BURDEN_PERCENT">1.5</value>
            <value name="COUNT">3</value>
          </section>
          <section name="TACHYTHERAPY">
            <value name="ATP_DELIVERED_RECENT">2</value>
            <value name="SHOCKS_DELIVERED_RECENT">0</value>
          </section>
          <section name="CRT">
            <value name="BIV_PERCENT_PACED">97</value>
          </section>
          <section name="ARRHYTHMIA">
            <value name="PVC_COUNT">120</value>
            <value name="NSVT_COUNT">0</value>
            <section name="EPISODE">
              <value name="TYPE">AT/AF</value>
              <value name="NAME">AF episode</value>
              <value name="COUNT">2</value>
              <value name="DURATION">360</value>
            </section>
          </section>
        </section>
        <section name="MSMT">
          <section name="BATTERY">
            <value name="STATUS">Beginning of Life</value>
            <value name="REMAINING_PERCENTAGE">85</value>
            <value name="VOLTAGE">3.05</value>
          </section>
          <section name="LEADCHNL_RA">
            <section name="SENSING">
              <value name="INTR_AMPL_MEAN">2.8</value>
            </section>
            <section name="PACING_THRESHOLD">
              <value name="AMPLITUDE">0.7</value>
              <value name="PULSEWIDTH">0.4</value>
            </section>
            <section name="IMPEDANCE">
              <value name="VALUE">520</value>
            </section>
          </section>
          <section name="LEADCHNL_RV">
            <section name="SENSING">
              <value name="INTR_AMPL_MEAN">11.2</value>
            </section>
            <section name="PACING_THRESHOLD">
              <value name="AMPLITUDE">0.9</value>
              <value name="PULSEWIDTH">0.4</value>
            </section>
            <section name="IMPEDANCE">
              <value name="VALUE">610</value>
            </section>
          </section>
          <section name="LEADHVCHNL">
            <value name="IMPEDANCE">65</value>
          </section>
        </section>
        <section name="SET">
          <section name="BRADY">
            <value name="LOWRATE">60</value>
            <value name="VENDOR_MODE">DDD</value>
            <value name="MAX_TRACKING_RATE">130</value>
            <value name="MAX_SENSOR_RATE">120</value>
            <value name="AT_MODE_SWITCH_RATE">170</value>
            <value name="SAV">140</value>
            <value name="PAV">180</value>
          </section>
          <section name="TACHYTHERAPY">
            <value name="VSTAT">__VSTAT__</value>
          </section>
          <section name="ZONE">
            <value name="VENDOR_TYPE">BIO-Zone_VT1</value>
            <value name="DETECTION_INTERVAL">400</value>
            <value name="TYPE_ATP_1">Burst</value>
            <value name="NUM_ATP_SEQS_1">3</value>
            <value name="TYPE_ATP_2">Ramp</value>
            <value name="NUM_ATP_SEQS_2">2</value>
            <value name="SHOCK_ENERGY_1">20</value>
            <value name="SHOCK_ENERGY_2">40</value>
            <value name="SHOCK_ENERGY_3">40</value>
            <value name="MAX_NUM_SHOCKS_3">6</value>
          </section>
          <section name="ZONE">
            <value name="VENDOR_TYPE">BIO-Zone_VT2</value>
            <value name="DETECTION_INTERVAL">340</value>
            <value name="SHOCK_ENERGY_1">0</value>
            <value name="SHOCK_ENERGY_2">0</value>
            <value name="SHOCK_ENERGY_3">0</value>
            <value name="MAX_NUM_SHOCKS_3">6</value>
          </section>
          <section name="ZONE">
            <value name="VENDOR_TYPE">BIO-Zone_VF</value>
            <value name="DETECTION_INTERVAL">300</value>
            <value name="TYPE_ATP_1">ATP One Shot</value>
            <value name="SHOCK_ENERGY_1">40</value>
            <value name="SHOCK_ENERGY_2">40</value>
            <value name="SHOCK_ENERGY_3">40</value>
            <value name="NUM_SHOCKS_3">6</value>
          </section>
        </section>
        __EXTRA__
      </section>
    </section>
  </dataset>
</biotronik-ieee11073-export>
"""


@pytest.fixture
def make_xml_export():
    """Build a Biotronik export; leads are (serial, location) pairs."""
    def build(leads=(("A", None), ("B", None), ("C", None)), extra="", vstat="On"):
        lead_xml = "".join(lead_section(serial, location) for serial, location in leads)
        document = (
            XML_TEMPLATE
            .replace("__LEADS__", lead_xml)
            .replace("__EXTRA__", extra)
            .replace("__VSTAT__", vstat)
        )
        return document.encode("utf-8")
    return build


@pytest.fixture
def xml_export(make_xml_export):
    return make_xml_export()


# ==================== Abbott LOG ====================

LOG_RECORDS = [
    ("2430", "Patient Name", "Jane Doe"),
    ("105", "Session Date", "3/14/2024 10:22:05 AM"),
    ("2431", "Date of Birth", "1/1/1970"),
    ("202", "Serial Number", "1234567"),
    ("200", "Model", "CD3357-40C"),
    ("2442", "Implant Date", "5/14/2019"),
    ("2468", "RA Lead Serial", "BBA123456"),
    ("2456", "RA Lead Manufacturer", "Abbott"),
    ("2458", "RA Lead Model", "LPA1200M"),
    ("2459", "RA Lead Implant Date", "5/14/2019"),
    ("2469", "RV Lead Serial", "CAV987654"),
    ("2460", "RV Lead Manufacturer", "Abbott"),
    ("2461", "RV Lead Model", "LDA3200"),
    ("301", "Mode", "DDDR"),
    ("302", "Base Rate", "1000 ms"),
    ("323", "Max Track Rate", "130 bpm"),
    ("406", "Max Sensor Rate", "120 bpm"),
    ("2754", "AT/AF Episodes", "4"),
    ("2682", "A Paced", "23 %"),
    ("2681", "V Paced", "2 %"),
    ("519", "Battery Voltage", "2.98 V"),
    ("2745", "Charge Time", "8.9"),
    ("512", "RA Impedance", "450 Ohm"),
    ("2721", "RA Sensing", "3.2 mV"),
    ("849", "RA Threshold", "0.75 V"),
    ("1611", "RA Pulse Width", "0.4 ms"),
    ("507", "RV Impedance", "510 Ohm"),
    ("1606", "RV Threshold", "1.0 V"),
    ("1620", "RV Threshold (alt)", "1.5 V"),
    ("2103", "VT1 Detection", "400 ms"),
    ("2320", "VT1 ATP", "Burst"),
    ("2291", "VT1 Bursts", "3"),
    ("2327", "VT1 Shock 1", "25 J"),
    ("2329", "VT1 Shock 2", "36 J"),
    ("2331", "VT1 Shock 3", "36 J"),
    ("2323", "VT1 Max Shocks", "3"),
    ("2361", "VT2 Shock 1", "0 J"),
    ("2363", "VT2 Shock 2", "0 J"),
    ("2365", "VT2 Shock 3", "0 J"),
    ("2357", "VT2 Max Shocks", "2"),
    ("2101", "VF Detection", "300 ms"),
    ("2382", "VF Shock 1", "36 J"),
    ("2384", "VF Shock 2", "36 J"),
    ("2386", "VF Shock 3", "36 J"),
]


def build_log(records):
    return "\r\n".join(FS.join(record) for record in records).encode("utf-8")


@pytest.fixture
def log_export():
    return build_log(LOG_RECORDS)


# ==================== Boston Scientific BNK ====================

BNK_LINES = [
    "SAVE DATE: 14 Mar 2024",
    "# Zoom bank export",
    "PatientFirstName,Jane",
    "PatientLastName,Doe",
    "PatientBirthDay,1",
    "PatientBirthMonth,1",
    "PatientBirthYear,1970",
    "SystemSerialNumber,123456",
    "SystemName,DYNAGEN X4 CRT-D",
    "PatientData.ImplantDay,14",
    "PatientData.ImplantMonth,5",
    "PatientData.ImplantYear,2019",
    "PatientLeadASerialNum,RA111",
    "PatientLeadAManufacturer,Boston Scientific",
    "PatientLeadAModelNum,4480",
    "PatientData.LeadA.ImplantMonth,5",
    "PatientData.LeadA.ImplantYear,2019",
    "PatientLeadV1SerialNum,RV222",
    "PatientLeadV1Manufacturer,Boston Scientific",
    "PatientLeadV1ModelNum,0692",
    "PatientData.Lead1.ImplantMonth,5",
    "PatientData.Lead1.ImplantYear,2019",
    "PatientLeadV2SerialNum,LV333",
    "PatientLeadV2Manufacturer,Boston Scientific",
    "PatientLeadV2ModelNum,4677",
    "PatientData.Lead2.ImplantMonth,6",
    "PatientData.Lead2.ImplantYear,2020",
    "BdyNormBradyMode,DDD",
    "NormParams.LRLIntvl,1000",
    "NormParams.MTRIntvl,462",
    "NormParams.MSRIntvl,500",
    "BatteryStatus.BatteryPhase,Beginning of Life",
    "BatteryLongevityParams.TimeToERI,102",
    "CapformChargeTime,8.2",
    "ManualLeadImpedData.RAMsmt.Msmt,520",
    "ManualIntrinsicResult.RAMsmt.Msmt,3.1",
    "InterPaceThreshResult.RAMsmt.Amplitude,2500",
    "InterPaceThreshResult.RAMsmt.PulseWidth,0.4",
    "ManualLeadImpedData.RVMsmt.Msmt,640",
    "InterPaceThreshResult.RVMsmt.Amplitude,750",
    "ShockImpedanceLastMeas0,",
    "ShockImpedanceLastMeas1,58",
    "DetectVT1Interval,375",
    "DetectVTInterval,333",
    "DetectVFInterval,300",
    "VT1ATP1NumberOfBursts,3",
    "VT1ATP2NumberOfBursts,0",
    "VT1Shock1Energy,25",
    "VT1Shock2Energy,31",
    "VT1MaxShockEnergy,41",
    "VTachyConstParam.VThpySelection.MaxNumShocks[VT1Zone],6",
    "VTATP1NumberOfBursts,2",
    "VTShock1Energy,0",
    "VTShock2Energy,0",
    "VTherapyParams.VTMaxShockEnergy,41",
    "VTachyConstParam.VThpySelection.MaxNumShocks[VTZone],5",
    "VTherapyParams.VFATPEnable,1",
    "VFShock1Energy,41",
    "VFShock2Energy,0",
    "VTachyConstParam.VThpySelection.MaxNumShocks[VFZone],8",
]


def build_bnk(lines):
    return "\n".join(lines).encode("utf-8")


@pytest.fixture
def bnk_export():
    return build_bnk(BNK_LINES)
