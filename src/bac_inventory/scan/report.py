"""Per-device outcomes of a harvest batch."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from bac_inventory.harvest.enumerator import HarvestReport
    from bac_inventory.types.points import HarvestedPoint


class DeviceOutcome(Enum):
    """How one device fared in a harvest batch."""

    SUCCEEDED = "succeeded"
    EMPTY = "empty"
    DIRECTORY_FAILED = "directory_failed"
    UNRESOLVED = "unresolved"
    ERROR = "error"
    TIMED_OUT = "timed_out"


@dataclass
class BatchReport:
    """Outcome and harvest report of every device in a batch."""

    outcomes: dict[str, DeviceOutcome] = field(default_factory=dict)
    reports: dict[str, HarvestReport] = field(default_factory=dict)

    def record(
        self,
        device_key: str,
        outcome: DeviceOutcome,
        report: HarvestReport | None = None,
    ) -> None:
        """Record the outcome of one device."""
        self.outcomes[device_key] = outcome
        if report is not None:
            self.reports[device_key] = report

    def count(self, outcome: DeviceOutcome) -> int:
        """Number of devices that ended with *outcome*."""
        return sum(1 for o in self.outcomes.values() if o is outcome)

    @property
    def succeeded(self) -> int:
        return self.count(DeviceOutcome.SUCCEEDED)

    @property
    def empty(self) -> int:
        return self.count(DeviceOutcome.EMPTY)

    @property
    def directory_failures(self) -> int:
        return self.count(DeviceOutcome.DIRECTORY_FAILED)

    @property
    def unresolved(self) -> int:
        return self.count(DeviceOutcome.UNRESOLVED)

    @property
    def errors(self) -> int:
        return self.count(DeviceOutcome.ERROR)

    @property
    def timed_out(self) -> int:
        return self.count(DeviceOutcome.TIMED_OUT)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "succeeded": self.succeeded,
            "empty": self.empty,
            "directory_failures": self.directory_failures,
            "unresolved": self.unresolved,
            "errors": self.errors,
            "timed_out": self.timed_out,
            "devices": {key: outcome.value for key, outcome in self.outcomes.items()},
        }


class HarvestBatch(Mapping[str, list["HarvestedPoint"]]):
    """Read-only ``device_key -> points`` mapping plus the batch report.

    Only devices whose directory was read appear as keys; an empty list
    is a live device without points.  Everything else is in :attr:`report`.
    """

    def __init__(self, points: dict[str, list[HarvestedPoint]], report: BatchReport) -> None:
        self._points = points
        self.report = report

    def __getitem__(self, device_key: str) -> list[HarvestedPoint]:
        return self._points[device_key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._points)

    def __len__(self) -> int:
        return len(self._points)

    def __repr__(self) -> str:
        return f"HarvestBatch({len(self)} device(s), {self.report.to_dict()!r})"
