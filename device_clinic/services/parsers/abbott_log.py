"""
Device Clinic - Abbott Merlin LOG Parser

Merlin exports are line records of three fields split by the ASCII File
Separator (0x1C): numeric code, label, value. Only the code and the value
are used. Every field is optional; codes absent from the file leave the
corresponding ParsedData field unset.
"""
import logging
from typing import Callable, Dict, Optional, Tuple

from ...errors import MalformedInput
from ...schemas import ParsedData, TachyZone
from ..normalize import (
    coerce_rate,
    decode_text,
    split_lines,
    format_energy,
    format_shock_count,
    strip_units,
    to_iso_date,
    to_rfc3339_utc,
)
from ..tachy_zones import apply_shocks_off_rule

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\x1c"
MANUFACTURER = "Abbott"
VF_MAX_SHOCKS_DEFAULT = "x 4"


def _shock_count(value: Optional[str]) -> Optional[str]:
    return format_shock_count(strip_units(value))


# (codes tried in order, ParsedData attribute, converter applied to the raw value)
LOG_FIELDS: Tuple[Tuple[Tuple[str, ...], str, Callable[[Optional[str]], object]], ...] = (
    # Patient / device
    (("2430",), "name", strip_units),
    (("105",), "report_date", to_rfc3339_utc),
    (("2431",), "dob", to_iso_date),
    (("202",), "mdc_idc_dev_serial_number", strip_units),
    (("200",), "mdc_idc_dev_model", strip_units),
    (("2442",), "mdc_idc_dev_implant_date", to_iso_date),

    # Leads
    (("2468",), "mdc_idc_dev_ra_serial_number", strip_units),
    (("2456",), "mdc_idc_dev_ra_manufacturer", strip_units),
    (("2457", "2458"), "mdc_idc_dev_ra_model", strip_units),
    (("2459",), "mdc_idc_dev_ra_implant_date", to_iso_date),
    (("2470", "2469"), "mdc_idc_dev_rv_serial_number", strip_units),
    (("2460",), "mdc_idc_dev_rv_manufacturer", strip_units),
    (("2461", "2462"), "mdc_idc_dev_rv_model", strip_units),
    (("2463",), "mdc_idc_dev_rv_implant_date", to_iso_date),
    (("2471",), "mdc_idc_dev_lv_serial_number", strip_units),
    (("2464",), "mdc_idc_dev_lv_manufacturer", strip_units),
    (("2465", "2466"), "mdc_idc_dev_lv_model", strip_units),
    (("2467",), "mdc_idc_dev_lv_implant_date", to_iso_date),

    # Brady settings
    (("301",), "mdc_idc_set_brady_mode", strip_units),
    (("302",), "mdc_idc_set_brady_lowrate", coerce_rate),
    (("406",), "mdc_idc_set_brady_max_sensor_rate", coerce_rate),
    (("323",), "mdc_idc_set_brady_max_tracking_rate", coerce_rate),

    # Statistics
    (("2754",), "mdc_idc_stat_ataf_count", strip_units),
    (("2682",), "mdc_idc_stat_brady_ra_percent_paced", strip_units),
    (("2681",), "mdc_idc_stat_brady_rv_percent_paced", strip_units),

    # Battery
    (("519",), "mdc_idc_batt_volt", strip_units),
    (("2745",), "mdc_idc_cap_charge_time", strip_units),
    (("533",), "mdc_idc_batt_remaining", strip_units),

    # Measurements
    (("512",), "mdc_idc_msmt_ra_impedance_mean", strip_units),
    (("2721",), "mdc_idc_msmt_ra_sensing_mean", strip_units),
    (("1610", "849"), "mdc_idc_msmt_ra_pacing_threshold", strip_units),
    (("1611",), "mdc_idc_msmt_ra_pw", strip_units),
    (("507",), "mdc_idc_msmt_rv_impedance_mean", strip_units),
    (("2722",), "mdc_idc_msmt_rv_sensing_mean", strip_units),
    (("1606", "1620"), "mdc_idc_msmt_rv_pacing_threshold", strip_units),
    (("1607",), "mdc_idc_msmt_rv_pw", strip_units),
    (("2720",), "mdc_idc_msmt_lv_impedance_mean", strip_units),
    (("2723",), "mdc_idc_msmt_lv_sensing_mean", strip_units),
    (("1616", "3009"), "mdc_idc_msmt_lv_pacing_threshold", strip_units),
    (("1617",), "mdc_idc_msmt_lv_pw", strip_units),

    # VT1 zone
    (("2103",), "vt1_detection_interval", strip_units),
    (("2320",), "vt1_therapy_1_atp", strip_units),
    (("2291",), "vt1_therapy_1_no_bursts", strip_units),
    (("2327",), "vt1_therapy_3_energy", format_energy),
    (("2329",), "vt1_therapy_4_energy", format_energy),
    (("2331",), "vt1_therapy_5_energy", format_energy),
    (("2323",), "vt1_therapy_5_max_num_shocks", _shock_count),

    # VT2 zone
    (("2102",), "vt2_detection_interval", strip_units),
    (("2354",), "vt2_therapy_1_atp", strip_units),
    (("2341",), "vt2_therapy_1_no_bursts", strip_units),
    (("2361",), "vt2_therapy_3_energy", format_energy),
    (("2363",), "vt2_therapy_4_energy", format_energy),
    (("2365",), "vt2_therapy_5_energy", format_energy),
    (("2357",), "vt2_therapy_5_max_num_shocks", _shock_count),

    # VF zone
    (("2101",), "vf_detection_interval", strip_units),
    (("2387",), "vf_therapy_1_atp", strip_units),
    (("2382",), "vf_therapy_2_energy", format_energy),
    (("2384",), "vf_therapy_3_energy", format_energy),
    (("2386",), "vf_therapy_4_energy", format_energy),
)


def read_records(content: bytes) -> Dict[str, str]:
    """code -> value for every three-field record; later duplicates win."""
    records: Dict[str, str] = {}
    for line_number, line in enumerate(split_lines(decode_text(content)), start=1):
        parts = line.split(FIELD_SEPARATOR)
        if len(parts) < 3:
            continue
        code = parts[0].strip()
        if not code.isdigit():
            raise MalformedInput(f"Non-numeric record code {code!r}", line=line_number)
        records[code] = parts[2].strip()
    return records


def parse_abbott_log(content: bytes) -> ParsedData:
    """Parse an Abbott Merlin .log export into ParsedData."""
    records = read_records(content)
    parsed = ParsedData()

    for codes, field, convert in LOG_FIELDS:
        for code in codes:
            if code in records:
                setattr(parsed, field, convert(records[code]))
                break

    parsed.mdc_idc_dev_manufacturer = MANUFACTURER
    parsed.vf_therapy_4_max_num_shocks = VF_MAX_SHOCKS_DEFAULT

    for zone in TachyZone:
        apply_shocks_off_rule(parsed, zone)

    logger.debug(f"Merlin export parsed: {len(records)} records, serial={parsed.mdc_idc_dev_serial_number}")
    return parsed
