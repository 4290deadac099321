"""
Device Clinic - Unit & Value Normalisation

Shared by every interrogation parser: unit stripping, rate/interval
inversion, threshold scaling, date canonicalisation and the shock budget
arithmetic. Conversion failures never raise out of the coerce_* helpers;
they return None so the caller leaves the field unset and keeps parsing.
"""
import logging
import re
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

# Longest first so " mV" is not mistaken for " V"
UNIT_SUFFIXES = (" Ohm", " bpm", " mV", " ms", " V", " %", " J")

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

BATTERY_PHASES = {
    "beginning of life": "BOL",
    "beginning of service": "BOL",
    "bol": "BOL",
    "bos": "BOL",
    "middle of life": "MOL",
    "mol": "MOL",
    "elective replacement": "ERI",
    "elective replacement indicator": "ERI",
    "eri": "ERI",
    "rrt": "ERI",
    "end of life": "EOL",
    "end of service": "EOL",
    "eol": "EOL",
    "eos": "EOL",
}

_NUMBER_RE = re.compile(r"^[-+]?\d+(\.\d+)?$")
_LEADING_NUMBER_RE = re.compile(r"^\s*([-+]?\d+(?:\.\d+)?)")
_COMPACT_DATE_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})(?:T(\d{2})(\d{2})(\d{2})?)?")
_LINE_BREAK_RE = re.compile(r"\r\n|\r|\n")

DATETIME_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",   # Merlin session stamp
    "%m/%d/%Y %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
    "%m/%d/%Y",
)

DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d %b %Y",
    "%d-%b-%Y",
)


# ==================== Text Cleanup ====================

def decode_text(content: bytes) -> str:
    """Decode a text export; programmers write UTF-8 or Latin-1."""
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Export is not UTF-8, decoding as Latin-1")
        return content.decode("latin-1")


def split_lines(text: str) -> List[str]:
    """
    Split on CR, LF and CRLF only.

    str.splitlines() also breaks on 0x1C-0x1E, form feed and NEL, which
    occur inside records (0x1C is the Merlin field separator).
    """
    lines = _LINE_BREAK_RE.split(text)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def clean_text(value: Optional[str]) -> Optional[str]:
    """Trim whitespace; None stays None."""
    if value is None:
        return None
    return value.strip()


def strip_units(value: Optional[str]) -> Optional[str]:
    """Trim a trailing unit token such as ' V' or ' Ohm'."""
    if value is None:
        return None
    value = value.strip()
    for suffix in UNIT_SUFFIXES:
        if value.endswith(suffix):
            return value[: -len(suffix)].strip()
    return value


def is_number(value: Optional[str]) -> bool:
    return value is not None and bool(_NUMBER_RE.match(value.strip()))


def coerce_float(value) -> Optional[float]:
    """Leading number of a value ('4.2 years' -> 4.2), else None."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    if not match:
        return None
    return float(match.group(1))


def coerce_int(value) -> Optional[int]:
    number = coerce_float(value)
    if number is None:
        return None
    return int(round(number))


# ==================== Rates & Thresholds ====================

def ms_to_bpm(ms: int) -> int:
    """
    Invert a millisecond interval into beats per minute.

    Python's round() rounds halves to even. Undefined for ms <= 0.
    """
    if ms <= 0:
        raise ValueError(f"interval must be positive, got {ms}")
    return round(60000 / ms)


def coerce_bpm_from_interval(value: Optional[str]) -> Optional[int]:
    """ms interval string -> bpm, or None when the interval is unusable."""
    ms = coerce_float(strip_units(value))
    if ms is None or ms <= 0:
        if value is not None:
            logger.warning(f"Ignoring unusable interval value {value!r}")
        return None
    bpm = ms_to_bpm(ms)
    return bpm if bpm > 0 else None


def coerce_bpm(value: Optional[str]) -> Optional[int]:
    """A rate already in bpm ('60', '60 bpm', '60.0'), else None."""
    bpm = coerce_int(strip_units(value))
    if bpm is None or bpm <= 0:
        if value is not None:
            logger.warning(f"Ignoring non-positive or non-numeric rate {value!r}")
        return None
    return bpm


def coerce_rate(value: Optional[str]) -> Optional[int]:
    """Rate in bpm; values carrying an ' ms' unit are intervals and get inverted."""
    if value is None:
        return None
    if value.strip().endswith(" ms"):
        return coerce_bpm_from_interval(value)
    return coerce_bpm(value)


def convert_threshold(value: Optional[str]) -> Optional[str]:
    """
    Scale a millivolt-style integer to volts with three decimals.

    '2500' -> '2.500'. Non-numeric input is returned unchanged.
    """
    if value is None:
        return None
    try:
        volts = float(value.strip()) / 1000.0
    except ValueError:
        return value
    return f"{volts:.3f}"


# ==================== Dates ====================

def month_number(name: str) -> int:
    """'Jan' -> 1 ... 'Dec' -> 12; accepts 'Sept' and full month names."""
    key = name.strip().lower()
    if key in MONTHS:
        return MONTHS[key]
    if key[:3] in MONTHS and len(key) > 3:
        return MONTHS[key[:3]]
    raise ValueError(f"Unknown month name: {name!r}")


def build_iso_date(year, month, day=1) -> Optional[str]:
    """Assemble YYYY-MM-DD from parts; month may be a number or a name."""
    try:
        month_value = int(month) if str(month).strip().isdigit() else month_number(str(month))
        return date(int(year), month_value, int(day)).isoformat()
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not build date from {year!r}/{month!r}/{day!r}: {e}")
        return None


def _parse_datetime(value: str) -> Optional[datetime]:
    text = value.strip()
    if not text:
        return None

    compact = _COMPACT_DATE_RE.match(text)
    if compact:
        year, month, day, hour, minute, second = compact.groups()
        try:
            return datetime(
                int(year), int(month), int(day),
                int(hour or 0), int(minute or 0), int(second or 0),
            )
        except ValueError:
            return None

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def to_iso_date(value: Optional[str]) -> Optional[str]:
    """Canonicalise a calendar date to YYYY-MM-DD, dropping any time part."""
    if value is None:
        return None
    text = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue
    parsed = _parse_datetime(text)
    if parsed is None:
        logger.warning(f"Unrecognised date {value!r}")
        return None
    return parsed.date().isoformat()


def to_rfc3339_utc(value: Optional[str]) -> Optional[str]:
    """Canonicalise a timestamp to RFC 3339 in UTC; naive stamps are taken as UTC."""
    if value is None:
        return None
    parsed = _parse_datetime(value)
    if parsed is None:
        logger.warning(f"Unrecognised timestamp {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ==================== Battery ====================

def battery_status(value: Optional[str]) -> Optional[str]:
    """Vendor battery phase -> BOL/MOL/ERI/EOL; unknown phrases pass through."""
    if value is None:
        return None
    return BATTERY_PHASES.get(value.strip().lower(), value.strip())


def months_to_years(value: Optional[str]) -> Optional[str]:
    """Remaining longevity in months -> '4.2 years'."""
    months = coerce_float(value)
    if months is None:
        return None
    return f"{months / 12.0:.1f} years"


# ==================== Tachy Therapy ====================

def format_energy(value: Optional[str]) -> Optional[str]:
    """Shock energy with an explicit ' J' suffix; non-numeric values are dropped."""
    stripped = strip_units(value)
    if stripped is None:
        return None
    if not is_number(stripped):
        logger.debug(f"Dropping non-numeric energy {value!r}")
        return None
    return f"{stripped} J"


def format_burst_count(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return f"x {value.strip()}"


def format_shock_count(value: Optional[str]) -> Optional[str]:
    """Bare integers become 'x N'; 'Off' and already formatted values are kept."""
    if value is None:
        return None
    text = value.strip()
    if text.isdigit():
        return f"x {int(text)}"
    return text


def energy_is_zero(value: Optional[str]) -> bool:
    number = coerce_float(strip_units(value))
    return number is not None and number == 0


def calculate_remaining_shocks(zone: str, max_shocks, configured: Iterable) -> str:
    """
    Remaining shock budget for a zone.

    'Off' when every configured shock energy is zero, otherwise
    'x N' with N = max_shocks - number of non-zero configured shocks,
    clamped at zero.
    """
    energies = [coerce_float(strip_units(str(e))) if e is not None else None for e in configured]
    used = sum(1 for energy in energies if energy is not None and energy > 0)
    if used == 0:
        logger.debug(f"{zone}: no shock energies configured, budget Off")
        return "Off"

    maximum = coerce_int(max_shocks) or 0
    remaining = max(0, maximum - used)
    logger.debug(f"{zone}: max {maximum}, configured {used}, remaining {remaining}")
    return f"x {remaining}"
