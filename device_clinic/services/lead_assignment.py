"""
Device Clinic - Lead to Chamber Assignment

Some exports never say which chamber a lead sits in. For those, leads are
placed by document order: 1st RA, 2nd RV, 3rd LV, extras dropped. A lead
that names its location claims that slot first.
"""
import logging
from typing import Dict, List

from ..schemas import Chamber, LeadRecord

logger = logging.getLogger(__name__)

CHAMBER_ORDER = (Chamber.RA, Chamber.RV, Chamber.LV)


def assign_chambers(leads: List[LeadRecord]) -> Dict[Chamber, LeadRecord]:
    """Map leads onto at most three chambers."""
    assigned: Dict[Chamber, LeadRecord] = {}
    unplaced: List[LeadRecord] = []

    for lead in leads:
        if lead.location is not None and lead.location not in assigned:
            assigned[lead.location] = lead
        else:
            unplaced.append(lead)

    free_slots = [chamber for chamber in CHAMBER_ORDER if chamber not in assigned]
    for chamber, lead in zip(free_slots, unplaced):
        assigned[chamber] = lead

    dropped = len(unplaced) - min(len(unplaced), len(free_slots))
    if dropped:
        logger.info(f"Dropped {dropped} lead(s) beyond the three chamber slots")

    return {chamber: assigned[chamber] for chamber in CHAMBER_ORDER if chamber in assigned}
