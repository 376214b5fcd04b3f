"""Datagram-level Who-Is/I-Am discovery over asyncio UDP."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

from bac_inventory.cancel import CancelToken
from bac_inventory.discovery.frames import (
    DiscoveredDevice,
    DiscoveryScope,
    encode_discovery_request,
    try_decode_discovery_response,
)
from bac_inventory.errors import ScanCancelledError
from bac_inventory.network.address import BACNET_PORT

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from bac_inventory.network.address import AddressScope

logger = logging.getLogger(__name__)

MIN_DISCOVERY_TIMEOUT = 0.3
"""Shortest discovery round, in seconds; devices need time to answer a sweep."""

RESEND_EVERY_POLLS = 5
"""A targeted resolve re-sends its Who-Is after this many silent polls."""

Datagram = tuple[bytes, tuple[str, int]]


class _DiscoveryProtocol(asyncio.DatagramProtocol):
    """Queues every datagram received on the discovery socket."""

    def __init__(self, queue: asyncio.Queue[Datagram]) -> None:
        self._queue = queue

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Queue an incoming datagram for the receive loop."""
        self._queue.put_nowait((data, addr))

    def error_received(self, exc: Exception) -> None:
        """ICMP errors from swept addresses mean nothing answers there."""
        logger.debug("Discovery socket error: %s", exc)


class DiscoveryTransport:
    """Runs Who-Is rounds from one ephemeral UDP endpoint per call.

    Every :meth:`discover` or :meth:`resolve` call opens and closes its
    own datagram endpoint, so concurrent calls never share a socket.
    """

    def __init__(
        self,
        *,
        interface: str = "0.0.0.0",
        local_port: int = 0,
        device_port: int = BACNET_PORT,
        batch_size: int = 25,
        batch_delay: float = 0.005,
    ) -> None:
        """Initialise the transport.

        :param interface: Local address to bind.
        :param local_port: Local UDP port, ``0`` for an ephemeral port.
        :param device_port: UDP port devices listen on (47808 on real networks).
        :param batch_size: Unicast sweep sends per batch.
        :param batch_delay: Pause between sweep batches, in seconds.
        """
        if batch_size < 1:
            msg = f"batch_size must be >= 1, got {batch_size}"
            raise ValueError(msg)
        self._interface = interface
        self._local_port = local_port
        self._device_port = device_port
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    @contextlib.asynccontextmanager
    async def _open(self) -> AsyncIterator[tuple[asyncio.DatagramTransport, asyncio.Queue[Datagram]]]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Datagram] = asyncio.Queue()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _DiscoveryProtocol(queue),
            local_addr=(self._interface, self._local_port),
            allow_broadcast=True,
        )
        try:
            yield transport, queue
        finally:
            transport.close()

    def _send(self, transport: asyncio.DatagramTransport, frame: bytes, host: str) -> None:
        try:
            transport.sendto(frame, (host, self._device_port))
        except OSError as exc:
            logger.debug("Send to %s failed: %s", host, exc)

    async def discover(
        self,
        scope: AddressScope,
        timeout: float = 2.0,
        cancel: CancelToken | None = None,
    ) -> list[DiscoveredDevice]:
        """Run one discovery round over *scope*.

        Sends the broadcast-scope Who-Is to each broadcast address of the
        scope, sweeps its host addresses with the unicast-scope Who-Is in
        paced batches, and collects I-Am replies until *timeout* elapses.
        The sweep runs alongside reception and is abandoned when the round
        ends, so the timeout bounds the whole round.

        :param scope: Target network.
        :param timeout: Round budget in seconds (>= 0.3).
        :param cancel: Cancellation token for the enclosing scan.
        :returns: One entry per responding device, first reply wins.
        :raises ValueError: If *timeout* is below :data:`MIN_DISCOVERY_TIMEOUT`.
        :raises ScanCancelledError: If *cancel* fires during the round.
        """
        if timeout < MIN_DISCOVERY_TIMEOUT:
            msg = f"Discovery timeout must be >= {MIN_DISCOVERY_TIMEOUT}s, got {timeout}"
            raise ValueError(msg)
        cancel = cancel or CancelToken()
        cancel.raise_if_cancelled()
        loop = asyncio.get_running_loop()

        async with self._open() as (transport, queue):
            deadline = loop.time() + timeout
            if scope.broadcast:
                frame = encode_discovery_request(DiscoveryScope.BROADCAST)
                for address in scope.broadcast_addresses():
                    self._send(transport, frame, address)

            sweep = None
            if scope.sweep:
                sweep = asyncio.create_task(self._sweep(transport, scope.hosts(), cancel))
            try:
                found = await self._collect(queue, deadline, cancel)
            finally:
                if sweep is not None:
                    sweep.cancel()
                    with contextlib.suppress(asyncio.CancelledError, ScanCancelledError):
                        await sweep

        logger.info("Discovery of %s found %d device(s)", scope, len(found))
        return list(found.values())

    async def resolve(
        self,
        ip: str,
        timeout: float = 1.5,
        poll_interval: float = 0.1,
        cancel: CancelToken | None = None,
    ) -> DiscoveredDevice | None:
        """Resolve the device at *ip* with a unicast Who-Is.

        Waits at most *timeout* seconds, polled in *poll_interval*
        increments, re-sending the request every
        :data:`RESEND_EVERY_POLLS` silent polls.  Only an I-Am whose
        sender is *ip* is accepted.

        :param ip: Device IP address.
        :param timeout: Maximum wait in seconds.
        :param poll_interval: Poll increment in seconds.
        :param cancel: Cancellation token for the enclosing scan.
        :returns: The device, or ``None`` if nothing answered in time.
        :raises ScanCancelledError: If *cancel* fires first.
        """
        if timeout <= 0 or poll_interval <= 0:
            msg = "timeout and poll_interval must be positive"
            raise ValueError(msg)
        cancel = cancel or CancelToken()
        loop = asyncio.get_running_loop()
        polls = max(1, round(timeout / poll_interval))
        frame = encode_discovery_request(DiscoveryScope.UNICAST)

        async with self._open() as (transport, queue):
            for attempt in range(polls):
                if attempt % RESEND_EVERY_POLLS == 0:
                    self._send(transport, frame, ip)
                poll_deadline = loop.time() + poll_interval
                while (remaining := poll_deadline - loop.time()) > 0:
                    try:
                        data, addr = await cancel.guard(queue.get(), remaining)
                    except TimeoutError:
                        break
                    if addr[0] != ip:
                        continue
                    device = try_decode_discovery_response(data, addr)
                    if device is not None:
                        logger.debug("Resolved %s to device %d", ip, device.device_id)
                        return device

        logger.debug("No I-Am from %s within %.2fs", ip, timeout)
        return None

    async def _sweep(
        self,
        transport: asyncio.DatagramTransport,
        hosts: list[str],
        cancel: CancelToken,
    ) -> None:
        frame = encode_discovery_request(DiscoveryScope.UNICAST)
        for start in range(0, len(hosts), self._batch_size):
            for host in hosts[start : start + self._batch_size]:
                self._send(transport, frame, host)
            await cancel.sleep(self._batch_delay)
        logger.debug("Unicast sweep sent %d request(s)", len(hosts))

    async def _collect(
        self,
        queue: asyncio.Queue[Datagram],
        deadline: float,
        cancel: CancelToken,
    ) -> dict[int, DiscoveredDevice]:
        loop = asyncio.get_running_loop()
        found: dict[int, DiscoveredDevice] = {}
        while (remaining := deadline - loop.time()) > 0:
            try:
                data, addr = await cancel.guard(queue.get(), remaining)
            except TimeoutError:
                break
            device = try_decode_discovery_response(data, addr)
            if device is None:
                continue
            if device.device_id in found:
                logger.debug("Duplicate I-Am for device %d from %s", device.device_id, addr[0])
                continue
            logger.debug("I-Am from device %d at %s", device.device_id, addr[0])
            found[device.device_id] = device
        return found
