"""Point harvesting: object-list walk, text sanitization and unit symbols."""

from bac_inventory.harvest.enumerator import HarvestReport, HarvestStatus, PointEnumerator
from bac_inventory.harvest.sanitize import sanitize_text
from bac_inventory.harvest.units import unit_symbol

__all__ = [
    "HarvestReport",
    "HarvestStatus",
    "PointEnumerator",
    "sanitize_text",
    "unit_symbol",
]
