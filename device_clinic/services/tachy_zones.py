"""
Device Clinic - Tachy Zone Layout

Per-zone mapping of where the shock therapies live in ParsedData. VT zones
deliver shocks as therapies 3-5 with the budget on therapy 5; the VF zone
starts shocking at therapy 2 and carries its budget on therapy 4.
"""
import logging
from typing import NamedTuple, Tuple

from ..schemas import ParsedData, TachyZone
from .normalize import energy_is_zero

logger = logging.getLogger(__name__)


class ZoneLayout(NamedTuple):
    energy_fields: Tuple[str, ...]
    max_shocks_field: str


ZONE_LAYOUT = {
    TachyZone.VT1: ZoneLayout(("therapy_3_energy", "therapy_4_energy", "therapy_5_energy"), "therapy_5_max_num_shocks"),
    TachyZone.VT2: ZoneLayout(("therapy_3_energy", "therapy_4_energy", "therapy_5_energy"), "therapy_5_max_num_shocks"),
    TachyZone.VF: ZoneLayout(("therapy_2_energy", "therapy_3_energy", "therapy_4_energy"), "therapy_4_max_num_shocks"),
}


def apply_shocks_off_rule(parsed: ParsedData, zone: TachyZone) -> None:
    """A zone whose reported shock energies are all zero has its budget Off."""
    layout = ZONE_LAYOUT[zone]
    energies = [parsed.zone(zone, field) for field in layout.energy_fields]
    present = [energy for energy in energies if energy is not None]
    if present and all(energy_is_zero(energy) for energy in present):
        logger.debug(f"{zone.value}: all shock energies zero, budget Off")
        parsed.set_zone(zone, layout.max_shocks_field, "Off")
