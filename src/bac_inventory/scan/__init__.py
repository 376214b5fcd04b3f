"""Scan orchestration: bounded fan-out of discovery and harvest.

Public API:

- :class:`ScanOrchestrator` -- ``discover``, ``scan_range`` and ``harvest_many``.
- :class:`TargetDevice`, :class:`ScanSession`, :class:`ScanProgress`,
  :class:`ScanStage` -- session records and progress updates.
- :class:`HarvestBatch`, :class:`BatchReport`, :class:`DeviceOutcome` --
  harvest batch results.
"""

from bac_inventory.scan.orchestrator import ScanOrchestrator
from bac_inventory.scan.report import BatchReport, DeviceOutcome, HarvestBatch
from bac_inventory.scan.session import ScanProgress, ScanSession, ScanStage, TargetDevice

__all__ = [
    "BatchReport",
    "DeviceOutcome",
    "HarvestBatch",
    "ScanOrchestrator",
    "ScanProgress",
    "ScanSession",
    "ScanStage",
    "TargetDevice",
]
