"""
Device Clinic - Boston Scientific BNK Parser

Zoom bank files are a text dump:

    SAVE DATE: 14 Mar 2024
    # comment
    Key,Value

Rates are stored as intervals in ms, pacing thresholds as mV-style integers
and longevity in months; everything is converted to the ParsedData units.
"""
import logging
import re
from typing import Dict, Optional

from ... import config
from ...errors import MalformedInput
from ...schemas import Chamber, ParsedData, TachyZone
from ..normalize import (
    battery_status,
    build_iso_date,
    calculate_remaining_shocks,
    coerce_bpm_from_interval,
    convert_threshold,
    decode_text,
    split_lines,
    format_burst_count,
    format_energy,
    months_to_years,
)

logger = logging.getLogger(__name__)

MANUFACTURER = "Boston Scientific"

SAVE_DATE_RE = re.compile(r"SAVE DATE:\s*(\d+)\s+(\w+)\s+(\d{4})")

# Bank lead prefix / implant-date prefix per chamber
LEAD_KEYS = {
    Chamber.RA: ("PatientLeadA", "PatientData.LeadA"),
    Chamber.RV: ("PatientLeadV1", "PatientData.Lead1"),
    Chamber.LV: ("PatientLeadV2", "PatientData.Lead2"),
}

# Bank zone prefix, detection-interval key and shock-budget key per zone
ZONE_KEYS = {
    TachyZone.VT1: ("VT1", "DetectVT1Interval", "VTachyConstParam.VThpySelection.MaxNumShocks[VT1Zone]"),
    TachyZone.VT2: ("VT", "DetectVTInterval", "VTachyConstParam.VThpySelection.MaxNumShocks[VTZone]"),
    TachyZone.VF: ("VF", "DetectVFInterval", "VTachyConstParam.VThpySelection.MaxNumShocks[VFZone]"),
}

MAX_SHOCK_ENERGY_KEYS = {
    TachyZone.VT1: "VT1MaxShockEnergy",
    TachyZone.VT2: "VTherapyParams.VTMaxShockEnergy",
}


def read_bank(content: bytes):
    """Split a bank file into its header line and the Key,Value mapping."""
    lines = split_lines(decode_text(content))
    if not lines or "SAVE DATE:" not in lines[0]:
        raise MalformedInput("BNK header is missing its SAVE DATE line", line=1)

    values: Dict[str, str] = {}
    for line in lines[1:]:
        if line.startswith("#") or "," not in line:
            continue
        key, value = line.split(",", 1)
        values[key.strip()] = value.strip()
    return lines[0], values


def _header_date(header: str) -> Optional[str]:
    match = SAVE_DATE_RE.search(header)
    if not match:
        logger.warning(f"Could not read SAVE DATE from header {header!r}")
        return None
    day, month, year = match.groups()
    iso = build_iso_date(year, month, day)
    return f"{iso}T00:00:00Z" if iso else None


def _date_from_keys(values: Dict[str, str], prefix: str, with_day: bool = True) -> Optional[str]:
    """Assemble a date from <prefix>Day/Month/Year keys; missing day means the 1st."""
    month = values.get(f"{prefix}Month")
    year = values.get(f"{prefix}Year")
    if month is None or year is None:
        return None
    day = values.get(f"{prefix}Day") if with_day else None
    if with_day and day is None:
        return None
    return build_iso_date(year, month, day or 1)


def _interval_bpm(value: Optional[str]) -> Optional[int]:
    return coerce_bpm_from_interval(value) if value is not None else None


def parse_boston_bnk(content: bytes) -> ParsedData:
    """Parse a Boston Scientific .bnk bank file into ParsedData."""
    header, values = read_bank(content)
    parsed = ParsedData(report_date=_header_date(header))

    # Patient
    first, last = values.get("PatientFirstName"), values.get("PatientLastName")
    if first is not None and last is not None:
        parsed.name = f"{first} {last}".strip()
    parsed.dob = _date_from_keys(values, "PatientBirth")

    # Device
    parsed.mdc_idc_dev_manufacturer = MANUFACTURER
    parsed.mdc_idc_dev_serial_number = values.get("SystemSerialNumber")
    parsed.mdc_idc_dev_model = values.get("SystemName")
    parsed.mdc_idc_dev_implant_date = _date_from_keys(values, "PatientData.Implant")

    for chamber, (lead_prefix, implant_prefix) in LEAD_KEYS.items():
        key = chamber.key
        setattr(parsed, f"mdc_idc_dev_{key}_serial_number", values.get(f"{lead_prefix}SerialNum"))
        setattr(parsed, f"mdc_idc_dev_{key}_manufacturer", values.get(f"{lead_prefix}Manufacturer"))
        setattr(parsed, f"mdc_idc_dev_{key}_model", values.get(f"{lead_prefix}ModelNum"))
        setattr(
            parsed, f"mdc_idc_dev_{key}_implant_date",
            _date_from_keys(values, f"{implant_prefix}.Implant", with_day=False),
        )

    # Brady
    parsed.mdc_idc_set_brady_mode = values.get("BdyNormBradyMode")
    parsed.mdc_idc_set_brady_lowrate = _interval_bpm(values.get("NormParams.LRLIntvl"))
    parsed.mdc_idc_set_brady_max_tracking_rate = _interval_bpm(values.get("NormParams.MTRIntvl"))
    parsed.mdc_idc_set_brady_max_sensor_rate = _interval_bpm(values.get("NormParams.MSRIntvl"))

    # Battery
    parsed.mdc_idc_batt_status = battery_status(values.get("BatteryStatus.BatteryPhase"))
    parsed.mdc_idc_batt_remaining = months_to_years(values.get("BatteryLongevityParams.TimeToERI"))
    parsed.mdc_idc_cap_charge_time = values.get("CapformChargeTime")

    # Measurements
    for chamber in Chamber:
        msmt = f"{chamber.value}Msmt"
        parsed.set_msmt(chamber, "impedance_mean", values.get(f"ManualLeadImpedData.{msmt}.Msmt"))
        parsed.set_msmt(chamber, "sensing_mean", values.get(f"ManualIntrinsicResult.{msmt}.Msmt"))
        parsed.set_msmt(
            chamber, "pacing_threshold",
            convert_threshold(values.get(f"InterPaceThreshResult.{msmt}.Amplitude")),
        )
        parsed.set_msmt(chamber, "pw", values.get(f"InterPaceThreshResult.{msmt}.PulseWidth"))

    parsed.mdc_idc_msmt_hv_impedance_mean = (
        values.get("ShockImpedanceLastMeas0") or values.get("ShockImpedanceLastMeas1")
    )

    _parse_tachy(values, parsed)

    logger.debug(f"Zoom bank parsed: {len(values)} keys, serial={parsed.mdc_idc_dev_serial_number}")
    return parsed


# ==================== Tachy Zones ====================

def _burst_atp(parsed: ParsedData, zone: TachyZone, slot: int, bursts: Optional[str]) -> None:
    if bursts is None:
        return
    parsed.set_zone(zone, f"therapy_{slot}_no_bursts", format_burst_count(bursts))
    if bursts.strip() != "0":
        parsed.set_zone(zone, f"therapy_{slot}_atp", "Burst")


def _parse_tachy(values: Dict[str, str], parsed: ParsedData) -> None:
    for zone, (prefix, interval_key, max_shocks_key) in ZONE_KEYS.items():
        interval = _interval_bpm(values.get(interval_key))
        if interval is not None:
            parsed.set_zone(zone, "detection_interval", str(interval))

        shock_1 = values.get(f"{prefix}Shock1Energy")
        shock_2 = values.get(f"{prefix}Shock2Energy")
        remaining = calculate_remaining_shocks(zone.value, values.get(max_shocks_key), [shock_1, shock_2])

        if zone is TachyZone.VF:
            if values.get("VTherapyParams.VFATPEnable") == "1":
                parsed.vf_therapy_1_atp = "Burst"
            parsed.vf_therapy_2_energy = format_energy(shock_1)
            if shock_2 is not None and shock_2.strip() != "0":
                parsed.vf_therapy_3_energy = format_energy(shock_2)
            parsed.vf_therapy_4_energy = config.BNK_VF_MAX_ENERGY
            parsed.vf_therapy_4_max_num_shocks = remaining
            continue

        _burst_atp(parsed, zone, 1, values.get(f"{prefix}ATP1NumberOfBursts"))
        _burst_atp(parsed, zone, 2, values.get(f"{prefix}ATP2NumberOfBursts"))
        parsed.set_zone(zone, "therapy_3_energy", format_energy(shock_1))
        parsed.set_zone(zone, "therapy_4_energy", format_energy(shock_2))
        parsed.set_zone(zone, "therapy_5_energy", format_energy(values.get(MAX_SHOCK_ENERGY_KEYS[zone])))
        parsed.set_zone(zone, "therapy_5_max_num_shocks", remaining)
