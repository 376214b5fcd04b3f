"""Scan session records and progress reporting."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from bac_inventory.network.address import BACNET_PORT

if TYPE_CHECKING:
    from bac_inventory.discovery.frames import DiscoveredDevice
    from bac_inventory.network.address import AddressScope


class ScanStage(Enum):
    """Pipeline stage a progress update belongs to."""

    DISCOVERING = "discovering"
    RESOLVING = "resolving"
    HARVESTING = "harvesting"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class ScanProgress:
    """Progress update passed to a scan's progress callback."""

    stage: ScanStage
    done: int
    total: int
    message: str = ""


ProgressCallback = Callable[[ScanProgress], None]


@dataclass(frozen=True, slots=True)
class TargetDevice:
    """A device to harvest, as listed in the facility device list.

    Devices whose instance is not known yet are resolved by IP first.
    """

    device_key: str
    """Catalog key of the device (``DEVICE_SEQ``)."""

    ip: str
    device_id: int | None = None
    port: int = BACNET_PORT
    name: str = ""

    @classmethod
    def from_discovered(cls, device: DiscoveredDevice, device_key: str | None = None) -> TargetDevice:
        """Target a discovered device, keyed by its instance unless *device_key* is given."""
        return cls(
            device_key=device_key if device_key is not None else str(device.device_id),
            ip=device.ip,
            device_id=device.device_id,
            port=device.port,
        )


@dataclass(frozen=True, slots=True)
class ScanSession:
    """One orchestration call: what it targets and how wide it fans out."""

    scope: AddressScope | None = None
    devices: tuple[TargetDevice, ...] = ()
    per_host_timeout: float = 1.5
    max_parallelism: int = 6
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "session_id": self.session_id,
            "scope": str(self.scope) if self.scope is not None else None,
            "devices": len(self.devices),
            "per_host_timeout": self.per_host_timeout,
            "max_parallelism": self.max_parallelism,
            "started_at": self.started_at.isoformat(),
        }
