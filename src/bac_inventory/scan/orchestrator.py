"""Bounded-parallel discovery and harvest fan-out."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from bac_inventory.cancel import CancelToken
from bac_inventory.config import InventoryConfig
from bac_inventory.discovery.frames import DiscoveredDevice
from bac_inventory.errors import ScanCancelledError
from bac_inventory.harvest.enumerator import HarvestReport, HarvestStatus, PointEnumerator
from bac_inventory.network.address import AddressScope
from bac_inventory.scan.report import BatchReport, DeviceOutcome, HarvestBatch
from bac_inventory.scan.session import ScanProgress, ScanSession, ScanStage, TargetDevice

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from contextlib import AbstractAsyncContextManager

    from bac_inventory.app.reader import PropertyReader
    from bac_inventory.discovery.transport import DiscoveryTransport
    from bac_inventory.scan.session import ProgressCallback
    from bac_inventory.types.points import HarvestedPoint

logger = logging.getLogger(__name__)

MAX_RECOMMENDED_PARALLELISM = 50
"""Above this, field switches and embedded stacks start dropping packets."""

_OUTCOMES = {
    HarvestStatus.OK: DeviceOutcome.SUCCEEDED,
    HarvestStatus.EMPTY: DeviceOutcome.EMPTY,
    HarvestStatus.DIRECTORY_FAILED: DeviceOutcome.DIRECTORY_FAILED,
}


def check_parallelism(max_parallelism: int) -> int:
    """Validate a caller-supplied degree of parallelism.

    :raises ValueError: If *max_parallelism* is below 1.
    """
    if max_parallelism < 1:
        msg = f"max_parallelism must be >= 1, got {max_parallelism}"
        raise ValueError(msg)
    if max_parallelism > MAX_RECOMMENDED_PARALLELISM:
        logger.warning(
            "max_parallelism=%d exceeds the recommended %d; expect dropped packets",
            max_parallelism,
            MAX_RECOMMENDED_PARALLELISM,
        )
    return max_parallelism


class ScanOrchestrator:
    """Runs discovery and harvest across many hosts with isolation.

    Work is admitted through an :class:`asyncio.Semaphore`; each host
    gets its own discovery endpoint and each device its own property
    reader, so one hanging host cannot stall the others.  A failure on
    one host is logged and counted, never raised out of the batch.
    Cancellation through a :class:`CancelToken` is the one exception:
    it raises :class:`ScanCancelledError` from the top-level call.
    """

    def __init__(
        self,
        config: InventoryConfig | None = None,
        *,
        transport_factory: Callable[[], DiscoveryTransport] | None = None,
        reader_factory: Callable[[], AbstractAsyncContextManager[PropertyReader]] | None = None,
        progress: ProgressCallback | None = None,
    ) -> None:
        """Initialise the orchestrator.

        :param config: Scan configuration; defaults apply when omitted.
        :param transport_factory: Creates a discovery transport per
            operation.  Defaults to :meth:`InventoryConfig.make_transport`.
        :param reader_factory: Creates a property reader per device, used
            as an async context manager.  Defaults to
            :meth:`InventoryConfig.make_reader`.
        :param progress: Optional callback receiving :class:`ScanProgress`.
        """
        self._config = config or InventoryConfig()
        self._transport_factory = transport_factory or (
            lambda: self._config.make_transport(ephemeral=True)
        )
        self._reader_factory = reader_factory or self._config.make_reader
        self._progress = progress
        self.last_session: ScanSession | None = None

    @property
    def config(self) -> InventoryConfig:
        """The scan configuration."""
        return self._config

    def _report(self, stage: ScanStage, done: int, total: int, message: str = "") -> None:
        if self._progress is not None:
            self._progress(ScanProgress(stage, done, total, message))

    async def discover(
        self,
        scope: AddressScope,
        timeout: float | None = None,
        cancel: CancelToken | None = None,
    ) -> list[DiscoveredDevice]:
        """Run one discovery round over *scope*.

        :param scope: Target network.
        :param timeout: Round budget; defaults to the configured discovery timeout.
        :param cancel: Cancellation token.
        :returns: Discovered devices, one per device instance.
        """
        timeout = timeout if timeout is not None else self._config.discovery_timeout
        self.last_session = ScanSession(scope=scope, per_host_timeout=timeout)
        self._report(ScanStage.DISCOVERING, 0, 1, str(scope))
        devices = await self._transport_factory().discover(scope, timeout, cancel)
        self._report(ScanStage.COMPLETED, 1, 1, f"{len(devices)} device(s) found")
        return devices

    async def scan_range(
        self,
        addresses: AddressScope | Iterable[str],
        max_parallelism: int | None = None,
        per_host_timeout: float | None = None,
        cancel: CancelToken | None = None,
        *,
        round_timeout: float | None = None,
    ) -> list[DiscoveredDevice]:
        """Resolve every address with its own unicast Who-Is.

        :param addresses: A scope (each of its host addresses is queried) or IP strings.
        :param max_parallelism: Hosts queried at once.
        :param per_host_timeout: Resolve budget per host.
        :param cancel: Cancellation token.
        :param round_timeout: Overall budget; hosts still pending when it
            expires are abandoned without error.
        :returns: Devices that answered, deduplicated by instance.
        :raises ScanCancelledError: If *cancel* fires.
        """
        hosts = addresses.hosts() if isinstance(addresses, AddressScope) else list(addresses)
        parallelism = check_parallelism(max_parallelism or self._config.max_parallelism)
        per_host = per_host_timeout if per_host_timeout is not None else self._config.resolve_timeout
        poll_interval = min(self._config.poll_interval, per_host)
        cancel = cancel or CancelToken()
        cancel.raise_if_cancelled()
        self.last_session = ScanSession(
            scope=addresses if isinstance(addresses, AddressScope) else None,
            per_host_timeout=per_host,
            max_parallelism=parallelism,
        )

        semaphore = asyncio.Semaphore(parallelism)
        found: dict[int, DiscoveredDevice] = {}
        done = 0

        async def query(ip: str) -> None:
            nonlocal done
            async with semaphore:
                cancel.raise_if_cancelled()
                try:
                    device = await self._transport_factory().resolve(
                        ip, timeout=per_host, poll_interval=poll_interval, cancel=cancel
                    )
                except ScanCancelledError:
                    raise
                except Exception as exc:
                    logger.warning("Query of %s failed: %s", ip, exc)
                    device = None
            if device is not None and found.setdefault(device.device_id, device) is not device:
                logger.debug("Device %d also answered at %s", device.device_id, ip)
            done += 1
            self._report(ScanStage.RESOLVING, done, len(hosts), ip)

        tasks = [asyncio.create_task(query(ip)) for ip in hosts]
        if not await _run_all(tasks, round_timeout, cancel):
            logger.info(
                "Round deadline reached with %d of %d host(s) queried", done, len(hosts)
            )

        self._report(ScanStage.COMPLETED, done, len(hosts), f"{len(found)} device(s) found")
        logger.info("Range scan of %d host(s) found %d device(s)", len(hosts), len(found))
        return list(found.values())

    async def harvest_many(
        self,
        devices: Iterable[TargetDevice | DiscoveredDevice],
        max_parallelism: int | None = None,
        cancel: CancelToken | None = None,
        *,
        deadline: float | None = None,
    ) -> HarvestBatch:
        """Harvest many devices in parallel.

        Devices without a known instance are resolved by IP first.

        :param devices: Targets; discovered devices are keyed by instance.
        :param max_parallelism: Devices harvested at once.
        :param cancel: Cancellation token.
        :param deadline: Overall budget in seconds; devices still running
            when it expires are recorded as timed out.
        :returns: Points per device key plus the :class:`BatchReport`.
        :raises ScanCancelledError: If *cancel* fires.
        """
        parallelism = check_parallelism(max_parallelism or self._config.max_parallelism)
        cancel = cancel or CancelToken()
        cancel.raise_if_cancelled()

        targets: list[TargetDevice] = []
        seen: set[str] = set()
        for device in devices:
            target = (
                TargetDevice.from_discovered(device)
                if isinstance(device, DiscoveredDevice)
                else device
            )
            if target.device_key in seen:
                logger.warning("Duplicate device key %s ignored", target.device_key)
                continue
            seen.add(target.device_key)
            targets.append(target)

        self.last_session = ScanSession(devices=tuple(targets), max_parallelism=parallelism)
        semaphore = asyncio.Semaphore(parallelism)
        report = BatchReport()
        points: dict[str, list[HarvestedPoint]] = {}
        done = 0

        async def harvest_one(target: TargetDevice) -> None:
            nonlocal done
            async with semaphore:
                cancel.raise_if_cancelled()
                try:
                    outcome, harvest_report = await self._harvest_target(target, cancel)
                except ScanCancelledError:
                    raise
                except Exception as exc:
                    logger.warning(
                        "Harvest of device %s at %s failed: %s", target.device_key, target.ip, exc
                    )
                    report.record(target.device_key, DeviceOutcome.ERROR)
                else:
                    report.record(target.device_key, outcome, harvest_report)
                    if outcome in (DeviceOutcome.SUCCEEDED, DeviceOutcome.EMPTY):
                        assert harvest_report is not None
                        points[target.device_key] = harvest_report.points
            done += 1
            self._report(ScanStage.HARVESTING, done, len(targets), target.device_key)

        tasks = [asyncio.create_task(harvest_one(t)) for t in targets]
        await _run_all(tasks, deadline, cancel)
        for target in targets:
            if target.device_key not in report.outcomes:
                logger.warning("Harvest of device %s abandoned at deadline", target.device_key)
                report.record(target.device_key, DeviceOutcome.TIMED_OUT)

        self._report(ScanStage.COMPLETED, done, len(targets))
        logger.info(
            "Harvest batch: %d succeeded, %d empty, %d directory failure(s), "
            "%d unresolved, %d error(s), %d timed out",
            report.succeeded,
            report.empty,
            report.directory_failures,
            report.unresolved,
            report.errors,
            report.timed_out,
        )
        return HarvestBatch(points, report)

    async def _harvest_target(
        self,
        target: TargetDevice,
        cancel: CancelToken,
    ) -> tuple[DeviceOutcome, HarvestReport | None]:
        device_id = target.device_id
        if device_id is None:
            resolved = await self._transport_factory().resolve(
                target.ip,
                timeout=self._config.resolve_timeout,
                poll_interval=self._config.poll_interval,
                cancel=cancel,
            )
            if resolved is None:
                logger.warning("Device %s at %s did not answer Who-Is", target.device_key, target.ip)
                return DeviceOutcome.UNRESOLVED, None
            device_id = resolved.device_id

        async with self._reader_factory() as reader:
            enumerator = PointEnumerator(reader, port=target.port)
            harvest_report = await cancel.guard(
                enumerator.harvest_device(target.ip, device_id, cancel)
            )
        return _OUTCOMES[harvest_report.status], harvest_report


async def _run_all(
    tasks: list[asyncio.Task[None]],
    timeout: float | None,
    cancel: CancelToken,
) -> bool:
    """Wait for *tasks*; return ``False`` if *timeout* cut the wait short."""
    if not tasks:
        return True
    try:
        await cancel.guard(asyncio.gather(*tasks), timeout)
    except TimeoutError:
        return False
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return True
