"""Runtime configuration for scans."""

from __future__ import annotations

from dataclasses import dataclass, field

from bac_inventory.app.reader import BIPPropertyReader
from bac_inventory.discovery.transport import MIN_DISCOVERY_TIMEOUT, DiscoveryTransport
from bac_inventory.network.address import BACNET_PORT
from bac_inventory.types.points import CatalogIdentifiers


@dataclass(frozen=True, slots=True)
class InventoryConfig:
    """Configuration for discovery, harvest and reconciliation."""

    interface: str = "0.0.0.0"
    local_port: int = 0
    device_port: int = BACNET_PORT
    discovery_timeout: float = 2.0  # seconds
    resolve_timeout: float = 1.5  # seconds
    poll_interval: float = 0.1  # seconds
    sweep_batch_size: int = 25
    sweep_batch_delay: float = 0.005  # seconds
    max_parallelism: int = 6
    apdu_timeout: float = 3.0  # seconds
    apdu_retries: int = 1
    defaults: CatalogIdentifiers = field(default_factory=CatalogIdentifiers)
    """Identifiers given to additions on a device with no catalog rows."""

    def __post_init__(self) -> None:
        if not 0 <= self.local_port <= 0xFFFF or not 0 < self.device_port <= 0xFFFF:
            msg = f"Invalid UDP port: local={self.local_port} device={self.device_port}"
            raise ValueError(msg)
        if self.discovery_timeout < MIN_DISCOVERY_TIMEOUT:
            msg = f"discovery_timeout must be >= {MIN_DISCOVERY_TIMEOUT}, got {self.discovery_timeout}"
            raise ValueError(msg)
        if self.resolve_timeout <= 0 or self.poll_interval <= 0 or self.apdu_timeout <= 0:
            msg = "resolve_timeout, poll_interval and apdu_timeout must be positive"
            raise ValueError(msg)
        if self.sweep_batch_size < 1 or self.max_parallelism < 1:
            msg = "sweep_batch_size and max_parallelism must be >= 1"
            raise ValueError(msg)
        if self.sweep_batch_delay < 0 or self.apdu_retries < 0:
            msg = "sweep_batch_delay and apdu_retries must not be negative"
            raise ValueError(msg)

    def make_transport(self, *, ephemeral: bool = False) -> DiscoveryTransport:
        """Create a discovery transport from this configuration.

        :param ephemeral: Bind an ephemeral port regardless of
            :attr:`local_port`, for transports that run concurrently.
        """
        return DiscoveryTransport(
            interface=self.interface,
            local_port=0 if ephemeral else self.local_port,
            device_port=self.device_port,
            batch_size=self.sweep_batch_size,
            batch_delay=self.sweep_batch_delay,
        )

    def make_reader(self) -> BIPPropertyReader:
        """Create an unopened property reader from this configuration.

        Readers always bind an ephemeral port so concurrent device
        harvests never share a socket.
        """
        return BIPPropertyReader(
            interface=self.interface,
            apdu_timeout=self.apdu_timeout,
            apdu_retries=self.apdu_retries,
        )
