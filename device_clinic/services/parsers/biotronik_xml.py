"""
Device Clinic - Biotronik XML Parser

Reads the IEEE 11073 nomenclature export written by Biotronik programmers.
The document is a tree of named <section> elements holding <value> leaves:

    <biotronik-ieee11073-export>
      <dataset>
        <section name="MDC">
          <section name="ATTR"> ... PATIENT ... </section>
          <section name="IDC"> DEV / SESS / LEAD* / STAT / MSMT / SET </section>
        </section>
      </dataset>
    </biotronik-ieee11073-export>

Sections this module does not know are skipped.
"""
import logging
from typing import Callable, Dict, List, Optional, Tuple

from lxml import etree

from ...errors import MalformedInput
from ...schemas import ArrhythmiaEvent, Chamber, LeadRecord, ParsedData, TachyZone
from ..lead_assignment import assign_chambers
from ..normalize import (
    battery_status,
    clean_text,
    coerce_bpm,
    coerce_float,
    coerce_int,
    format_energy,
    format_shock_count,
    to_iso_date,
    to_rfc3339_utc,
)
from ..tachy_zones import apply_shocks_off_rule

logger = logging.getLogger(__name__)

ROOT_TAG = "biotronik-ieee11073-export"

Converter = Callable[[Optional[str]], object]
FieldMap = Dict[str, Tuple[str, Converter]]

# ==================== Mapping Tables ====================

STAT_FIELDS: Dict[str, FieldMap] = {
    "BRADY": {
        "RA_PERCENT_PACED": ("mdc_idc_stat_brady_ra_percent_paced", clean_text),
        "RV_PERCENT_PACED": ("mdc_idc_stat_brady_rv_percent_paced", clean_text),
        "LV_PERCENT_PACED": ("mdc_idc_stat_brady_lv_percent_paced", clean_text),
        "BIV_PERCENT_PACED": ("mdc_idc_stat_brady_biv_percent_paced", clean_text),
    },
    "AT": {
        "BURDEN_PERCENT": ("mdc_idc_stat_ataf_burden_percent", clean_text),
        "COUNT": ("mdc_idc_stat_ataf_count", clean_text),
    },
    "TACHYTHERAPY": {
        "ATP_DELIVERED_RECENT": ("mdc_idc_stat_atp_delivered_recent", clean_text),
        "SHOCKS_DELIVERED_RECENT": ("mdc_idc_stat_shocks_delivered_recent", clean_text),
    },
    "CRT": {
        "BIV_PERCENT_PACED": ("mdc_idc_stat_brady_biv_percent_paced", clean_text),
        "LV_PERCENT_PACED": ("mdc_idc_stat_brady_lv_percent_paced", clean_text),
    },
    "ARRHYTHMIA": {
        "PVC_COUNT": ("mdc_idc_stat_pvc_count", clean_text),
        "NSVT_COUNT": ("mdc_idc_stat_nsvt_count", clean_text),
    },
}

BATTERY_FIELDS: FieldMap = {
    "STATUS": ("mdc_idc_batt_status", battery_status),
    "REMAINING_PERCENTAGE": ("mdc_idc_batt_percentage", clean_text),
    "VOLTAGE": ("mdc_idc_batt_volt", clean_text),
    "REMAINING": ("mdc_idc_batt_remaining", clean_text),
    "CHARGE_TIME": ("mdc_idc_cap_charge_time", clean_text),
}

BRADY_SETTINGS: FieldMap = {
    "LOWRATE": ("mdc_idc_set_brady_lowrate", coerce_bpm),
    "VENDOR_MODE": ("mdc_idc_set_brady_mode", clean_text),
    "MAX_TRACKING_RATE": ("mdc_idc_set_brady_max_tracking_rate", coerce_bpm),
    "MAX_SENSOR_RATE": ("mdc_idc_set_brady_max_sensor_rate", coerce_bpm),
    "AT_MODE_SWITCH_RATE": ("mdc_idc_set_brady_mode_switch_rate", clean_text),
    "SAV": ("mdc_idc_dev_sav", clean_text),
    "PAV": ("mdc_idc_dev_pav", clean_text),
}

LEAD_CHANNELS = {
    "LEADCHNL_RA": Chamber.RA,
    "LEADCHNL_RV": Chamber.RV,
    "LEADCHNL_LV": Chamber.LV,
}

_VT_ZONE_FIELDS: FieldMap = {
    "DETECTION_INTERVAL": ("detection_interval", clean_text),
    "TYPE_ATP_1": ("therapy_1_atp", clean_text),
    "NUM_ATP_SEQS_1": ("therapy_1_no_bursts", clean_text),
    "TYPE_ATP_2": ("therapy_2_atp", clean_text),
    "NUM_ATP_SEQS_2": ("therapy_2_no_bursts", clean_text),
    "SHOCK_ENERGY_1": ("therapy_3_energy", format_energy),
    "SHOCK_ENERGY_2": ("therapy_4_energy", format_energy),
    "SHOCK_ENERGY_3": ("therapy_5_energy", format_energy),
    "MAX_NUM_SHOCKS_3": ("therapy_5_max_num_shocks", format_shock_count),
}

ZONE_TYPES = {
    "BIO-Zone_VT1": TachyZone.VT1,
    "BIO-Zone_VT2": TachyZone.VT2,
    "BIO-Zone_VF": TachyZone.VF,
}

ZONE_FIELDS: Dict[TachyZone, FieldMap] = {
    TachyZone.VT1: _VT_ZONE_FIELDS,
    TachyZone.VT2: _VT_ZONE_FIELDS,
    TachyZone.VF: {
        "DETECTION_INTERVAL": ("detection_interval", clean_text),
        "TYPE_ATP_1": ("therapy_1_atp", clean_text),
        "NUM_ATP_SEQS_1": ("therapy_1_no_bursts", clean_text),
        "SHOCK_ENERGY_1": ("therapy_2_energy", format_energy),
        "SHOCK_ENERGY_2": ("therapy_3_energy", format_energy),
        "SHOCK_ENERGY_3": ("therapy_4_energy", format_energy),
        "NUM_SHOCKS_3": ("therapy_4_max_num_shocks", format_shock_count),
    },
}

# Alternate value names written by older exports
DEVICE_NAMES = {
    "serial_number": ("SERIAL_NUM", "SERIAL"),
    "manufacturer": ("MANUFACTURER", "MFG"),
    "model": ("MODEL",),
    "implant_date": ("IMPLANT_DATE", "IMPLANT_DT"),
}


# ==================== Tree Helpers ====================

def _make_parser() -> etree.XMLParser:
    return etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


def _byte_offset(content: bytes, line: int, column: int) -> int:
    """Translate a (1-based line, 1-based column) position into a byte offset."""
    lines = content.splitlines(keepends=True)
    offset = sum(len(text) for text in lines[: max(line - 1, 0)])
    return offset + max(column - 1, 0)


def _local_name(element) -> Optional[str]:
    """Tag without its namespace; None for comments and processing instructions."""
    if not isinstance(element.tag, str):
        return None
    return etree.QName(element).localname


def _children(node, tag: str) -> List:
    """Direct children by local tag name, namespaced or not."""
    if node is None:
        return []
    return [child for child in node.iterchildren() if _local_name(child) == tag]


def _sections(node, name: str) -> List:
    if node is None:
        return []
    return [child for child in _children(node, "section") if child.get("name") == name]


def _section(node, name: str):
    found = _sections(node, name)
    return found[0] if found else None


def _values(node) -> Dict[str, str]:
    """value name -> text for the direct <value> children (last one wins)."""
    if node is None:
        return {}
    return {
        value.get("name"): (value.text or "").strip()
        for value in _children(node, "value")
        if value.get("name")
    }


def _first(values: Dict[str, str], names) -> Optional[str]:
    for name in names:
        if name in values:
            return values[name]
    return None


def _apply(parsed: ParsedData, values: Dict[str, str], field_map: FieldMap) -> None:
    for name, (field, convert) in field_map.items():
        if name in values:
            setattr(parsed, field, convert(values[name]))


# ==================== Parser ====================

def parse_biotronik_xml(content: bytes) -> ParsedData:
    """Parse a Biotronik IEEE 11073 XML export into ParsedData."""
    try:
        root = etree.fromstring(content, _make_parser())
    except etree.XMLSyntaxError as e:
        line, column = e.position
        raise MalformedInput(f"Invalid XML: {e.msg}", offset=_byte_offset(content, line, column)) from e

    if _local_name(root) != ROOT_TAG:
        raise MalformedInput(f"Unexpected root element <{_local_name(root)}>, expected <{ROOT_TAG}>", offset=0)

    parsed = ParsedData()
    datasets = _children(root, "dataset")
    dataset = datasets[0] if datasets else None
    mdc = _section(dataset, "MDC")
    if mdc is None:
        logger.warning("XML export has no MDC section; nothing to extract")
        return parsed

    for attr in _sections(mdc, "ATTR"):
        for patient in _sections(attr, "PATIENT"):
            _parse_patient(patient, parsed)

    idc = _section(mdc, "IDC")
    if idc is None:
        logger.warning("XML export has no IDC section")
        return parsed

    for dev in _sections(idc, "DEV"):
        _parse_device(dev, parsed)

    for sess in _sections(idc, "SESS"):
        sess_values = _values(sess)
        stamp = _first(sess_values, ("DATE", "DTM"))
        if stamp is not None:
            parsed.report_date = to_rfc3339_utc(stamp)

    leads = [_lead_record(lead) for lead in _sections(idc, "LEAD")]
    for chamber, lead in assign_chambers(leads).items():
        parsed.set_lead(chamber, lead)

    for stat in _sections(idc, "STAT"):
        _parse_stat(stat, parsed)

    for msmt in _sections(idc, "MSMT"):
        _parse_msmt(msmt, parsed)

    for settings in _sections(idc, "SET"):
        _parse_settings(settings, parsed)

    logger.debug(
        f"Biotronik export parsed: serial={parsed.mdc_idc_dev_serial_number} "
        f"leads={len(leads)} arrhythmias={len(parsed.arrhythmias)}"
    )
    return parsed


def _parse_patient(patient, parsed: ParsedData) -> None:
    values = _values(patient)
    if "NAME" in values:
        parsed.name = values["NAME"]
    if "BIRTHDATE" in values:
        parsed.dob = to_iso_date(values["BIRTHDATE"])
    if "ID" in values:
        parsed.mrn = values["ID"]


def _parse_device(dev, parsed: ParsedData) -> None:
    values = _values(dev)
    serial = _first(values, DEVICE_NAMES["serial_number"])
    manufacturer = _first(values, DEVICE_NAMES["manufacturer"])
    model = _first(values, DEVICE_NAMES["model"])
    implant_date = _first(values, DEVICE_NAMES["implant_date"])

    if serial is not None:
        parsed.mdc_idc_dev_serial_number = serial
    if manufacturer is not None:
        parsed.mdc_idc_dev_manufacturer = manufacturer
    if model is not None:
        parsed.mdc_idc_dev_model = model
    if implant_date is not None:
        parsed.mdc_idc_dev_implant_date = to_iso_date(implant_date)


def _lead_record(lead) -> LeadRecord:
    values = _values(lead)
    implant_date = _first(values, DEVICE_NAMES["implant_date"])
    location = (values.get("LOCATION") or "").upper()
    return LeadRecord(
        serial_number=_first(values, DEVICE_NAMES["serial_number"]),
        manufacturer=_first(values, DEVICE_NAMES["manufacturer"]),
        model=_first(values, DEVICE_NAMES["model"]),
        implant_date=to_iso_date(implant_date) if implant_date is not None else None,
        location=Chamber(location) if location in Chamber.__members__ else None,
    )


# ---------- STAT ----------

def _parse_stat(stat, parsed: ParsedData) -> None:
    for subsection in _children(stat, "section"):
        name = subsection.get("name")
        field_map = STAT_FIELDS.get(name)
        if field_map is None:
            continue
        values = _values(subsection)
        _apply(parsed, values, field_map)

        if name == "BRADY":
            _derive_percent_paced(values, parsed)
        elif name == "ARRHYTHMIA":
            _collect_arrhythmias(subsection, values, parsed)


def _derive_percent_paced(values: Dict[str, str], parsed: ParsedData) -> None:
    """Fall back to the AV pacing-pattern percentages when per-chamber ones are missing."""
    ap_vp = coerce_float(values.get("AP_VP_PERCENT"))
    ap_vs = coerce_float(values.get("AP_VS_PERCENT"))
    as_vp = coerce_float(values.get("AS_VP_PERCENT"))

    if parsed.mdc_idc_stat_brady_ra_percent_paced is None and (ap_vp is not None or ap_vs is not None):
        parsed.mdc_idc_stat_brady_ra_percent_paced = f"{(ap_vp or 0) + (ap_vs or 0):g}"
    if parsed.mdc_idc_stat_brady_rv_percent_paced is None and (ap_vp is not None or as_vp is not None):
        parsed.mdc_idc_stat_brady_rv_percent_paced = f"{(ap_vp or 0) + (as_vp or 0):g}"


def _collect_arrhythmias(section, values: Dict[str, str], parsed: ParsedData) -> None:
    for code, name in (("PVC_COUNT", "PVC"), ("NSVT_COUNT", "NSVT")):
        count = coerce_int(values.get(code))
        if count:
            parsed.arrhythmias.append(ArrhythmiaEvent(name=name, type="Ventricular", count=count))

    for episode in _sections(section, "EPISODE"):
        episode_values = _values(episode)
        name = episode_values.get("NAME") or episode_values.get("TYPE")
        if not name:
            logger.warning("Skipping arrhythmia episode without NAME or TYPE")
            continue
        parsed.arrhythmias.append(ArrhythmiaEvent(
            name=name,
            type=episode_values.get("TYPE"),
            count=coerce_int(episode_values.get("COUNT")),
            duration=coerce_int(episode_values.get("DURATION")),
        ))


# ---------- MSMT ----------

def _parse_msmt(msmt, parsed: ParsedData) -> None:
    for subsection in _children(msmt, "section"):
        name = subsection.get("name")
        if name == "BATTERY":
            _apply(parsed, _values(subsection), BATTERY_FIELDS)
        elif name in LEAD_CHANNELS:
            _parse_lead_channel(subsection, LEAD_CHANNELS[name], parsed)
        elif name == "LEADHVCHNL":
            impedance = _values(subsection).get("IMPEDANCE")
            if impedance is None:
                impedance = _values(_section(subsection, "IMPEDANCE")).get("VALUE")
            if impedance is not None:
                parsed.mdc_idc_msmt_hv_impedance_mean = impedance


def _parse_lead_channel(channel, chamber: Chamber, parsed: ParsedData) -> None:
    for subsection in _children(channel, "section"):
        name = subsection.get("name")
        values = _values(subsection)
        if name == "SENSING" and "INTR_AMPL_MEAN" in values:
            parsed.set_msmt(chamber, "sensing_mean", values["INTR_AMPL_MEAN"])
        elif name == "PACING_THRESHOLD":
            if "AMPLITUDE" in values:
                parsed.set_msmt(chamber, "pacing_threshold", values["AMPLITUDE"])
            if "PULSEWIDTH" in values:
                parsed.set_msmt(chamber, "pw", values["PULSEWIDTH"])
        elif name == "IMPEDANCE" and "VALUE" in values:
            parsed.set_msmt(chamber, "impedance_mean", values["VALUE"])


# ---------- SET ----------

def _parse_settings(settings, parsed: ParsedData) -> None:
    _apply(parsed, _values(_section(settings, "BRADY")), BRADY_SETTINGS)

    tachy_on = any(_values(t).get("VSTAT") == "On" for t in _sections(settings, "TACHYTHERAPY"))
    if not tachy_on:
        logger.debug("Tachy therapy not enabled; zones skipped")
        return

    for zone_section in _sections(settings, "ZONE"):
        values = _values(zone_section)
        zone = ZONE_TYPES.get(values.get("VENDOR_TYPE"))
        if zone is None:
            logger.debug(f"Skipping zone with vendor type {values.get('VENDOR_TYPE')!r}")
            continue

        parsed.set_zone(zone, "active", "On")
        for name, (field, convert) in ZONE_FIELDS[zone].items():
            if name in values:
                parsed.set_zone(zone, field, convert(values[name]))
        apply_shocks_off_rule(parsed, zone)
