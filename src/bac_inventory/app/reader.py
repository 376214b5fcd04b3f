"""ReadProperty client over BACnet/IP.

The harvester only needs one capability from a protocol stack: read a
property of an object on a device and get typed values back.  That
capability is the :class:`PropertyReader` protocol; :class:`BIPPropertyReader`
implements it with a single asyncio datagram endpoint, correlating
responses to requests by ``(peer, invoke_id)`` the way a client
transaction state machine does (Clause 5.4.4).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from bac_inventory.encoding.apdu import (
    AbortPDU,
    ComplexAckPDU,
    ConfirmedRequestPDU,
    ErrorPDU,
    RejectPDU,
    decode_apdu,
    encode_apdu,
)
from bac_inventory.encoding.primitives import decode_application_values
from bac_inventory.network.npdu import decode_npdu, encode_npdu
from bac_inventory.services.errors import (
    BACnetAbortError,
    BACnetError,
    BACnetRejectError,
    BACnetTimeoutError,
)
from bac_inventory.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_inventory.transport.bvll import decode_bvll, encode_bvll
from bac_inventory.types.enums import AbortReason, BvlcFunction, ConfirmedServiceChoice

if TYPE_CHECKING:
    from types import TracebackType

    from bac_inventory.network.address import BIPAddress
    from bac_inventory.types.enums import PropertyIdentifier
    from bac_inventory.types.primitives import ObjectIdentifier
    from bac_inventory.types.values import PropertyValue

logger = logging.getLogger(__name__)

Peer = tuple[str, int]


class PropertyReader(Protocol):
    """Reads one property of one object on a device."""

    async def read_property(
        self,
        address: BIPAddress,
        object_id: ObjectIdentifier,
        property_id: PropertyIdentifier,
        array_index: int | None = None,
    ) -> list[PropertyValue]:
        """Read a property and return its decoded application values.

        :raises BACnetError: The device answered with an Error-PDU.
        :raises BACnetRejectError: The device rejected the request.
        :raises BACnetAbortError: The transaction was aborted.
        :raises BACnetTimeoutError: No answer after all retries.
        """
        ...


@dataclass
class _Transaction:
    invoke_id: int
    peer: Peer
    frame: bytes
    future: asyncio.Future[bytes]
    retry_count: int = 0
    timeout_handle: asyncio.TimerHandle | None = None


class _ReaderProtocol(asyncio.DatagramProtocol):
    def __init__(self, reader: BIPPropertyReader) -> None:
        self._reader = reader

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._reader._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        logger.debug("Reader socket error: %s", exc)


class BIPPropertyReader:
    """ReadProperty client bound to one local UDP endpoint.

    Use as an async context manager::

        async with BIPPropertyReader(apdu_timeout=3.0) as reader:
            values = await reader.read_property(address, oid, PropertyIdentifier.OBJECT_NAME)

    Segmented responses are not reassembled; a device that segments its
    answer fails the read with :class:`BACnetAbortError`.
    """

    def __init__(
        self,
        *,
        interface: str = "0.0.0.0",
        local_port: int = 0,
        apdu_timeout: float = 3.0,
        apdu_retries: int = 1,
        max_apdu_length: int = 1476,
    ) -> None:
        """Initialise the reader.

        :param interface: Local address to bind.
        :param local_port: Local UDP port, ``0`` for an ephemeral port.
        :param apdu_timeout: Seconds to wait for a response before retry.
        :param apdu_retries: Maximum number of retransmissions.
        :param max_apdu_length: Largest APDU this client accepts.
        """
        self._interface = interface
        self._local_port = local_port
        self._timeout = apdu_timeout
        self._retries = apdu_retries
        self._max_apdu_length = max_apdu_length
        self._transport: asyncio.DatagramTransport | None = None
        self._transactions: dict[tuple[Peer, int], _Transaction] = {}
        self._next_invoke_id = 0

    async def open(self) -> None:
        """Open the datagram endpoint."""
        if self._transport is not None:
            return
        loop = asyncio.get_running_loop()
        self._transport, _ = await loop.create_datagram_endpoint(
            lambda: _ReaderProtocol(self),
            local_addr=(self._interface, self._local_port),
        )

    async def close(self) -> None:
        """Close the endpoint and fail any outstanding requests."""
        for txn in list(self._transactions.values()):
            self._cancel_timeout(txn)
            if not txn.future.done():
                txn.future.set_exception(BACnetTimeoutError("Reader closed"))
        self._transactions.clear()
        if self._transport is not None:
            self._transport.close()
            self._transport = None

    async def __aenter__(self) -> BIPPropertyReader:
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _allocate_invoke_id(self, peer: Peer) -> int:
        """Allocate the next free invoke ID (0-255) for *peer*."""
        for _ in range(256):
            iid = self._next_invoke_id
            self._next_invoke_id = (self._next_invoke_id + 1) & 0xFF
            if (peer, iid) not in self._transactions:
                return iid
        msg = "No available invoke IDs for this peer"
        raise RuntimeError(msg)

    async def read_property(
        self,
        address: BIPAddress,
        object_id: ObjectIdentifier,
        property_id: PropertyIdentifier,
        array_index: int | None = None,
    ) -> list[PropertyValue]:
        """Read a property and return its decoded application values.

        Args:
            address: Device address.
            object_id: Object to read.
            property_id: Property to read.
            array_index: Optional array index; ``0`` reads an array's length.

        Returns:
            Application values found in the ACK, in wire order.

        Raises:
            BACnetError: The device answered with an Error-PDU.
            BACnetRejectError: The device rejected the request.
            BACnetAbortError: The transaction was aborted, including a
                segmented answer this client cannot reassemble.
            BACnetTimeoutError: No answer after all retries.
            ValueError: The ACK could not be decoded.
        """
        if self._transport is None:
            msg = "Reader is not open"
            raise RuntimeError(msg)

        peer = (address.host, address.port)
        request = ReadPropertyRequest(object_id, property_id, array_index)
        loop = asyncio.get_running_loop()
        invoke_id = self._allocate_invoke_id(peer)
        pdu = ConfirmedRequestPDU(
            invoke_id=invoke_id,
            service_choice=ConfirmedServiceChoice.READ_PROPERTY,
            service_request=request.encode(),
            max_apdu_length=self._max_apdu_length,
        )
        frame = encode_bvll(
            BvlcFunction.ORIGINAL_UNICAST_NPDU,
            encode_npdu(encode_apdu(pdu), expecting_reply=True),
        )
        txn = _Transaction(invoke_id, peer, frame, loop.create_future())
        key = (peer, invoke_id)
        self._transactions[key] = txn

        try:
            self._send(txn)
            service_ack = await txn.future
        finally:
            self._transactions.pop(key, None)
            self._cancel_timeout(txn)

        ack = ReadPropertyACK.decode(service_ack)
        return decode_application_values(ack.property_value)

    def _send(self, txn: _Transaction) -> None:
        assert self._transport is not None
        try:
            self._transport.sendto(txn.frame, txn.peer)
        except OSError as exc:
            logger.debug("Send to %s:%d failed: %s", txn.peer[0], txn.peer[1], exc)
        loop = asyncio.get_running_loop()
        txn.timeout_handle = loop.call_later(
            self._timeout, self._on_timeout, (txn.peer, txn.invoke_id)
        )

    def _cancel_timeout(self, txn: _Transaction) -> None:
        if txn.timeout_handle:
            txn.timeout_handle.cancel()
            txn.timeout_handle = None

    def _on_timeout(self, key: tuple[Peer, int]) -> None:
        txn = self._transactions.get(key)
        if not txn or txn.future.done():
            return
        if txn.retry_count < self._retries:
            txn.retry_count += 1
            logger.debug(
                "Retrying invoke_id=%d to %s (attempt %d/%d)",
                txn.invoke_id,
                txn.peer[0],
                txn.retry_count,
                self._retries,
            )
            self._send(txn)
        else:
            txn.future.set_exception(
                BACnetTimeoutError(f"No response from {txn.peer[0]} after {self._retries} retries")
            )

    def _on_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            bvll = decode_bvll(data)
            npdu = decode_npdu(bvll.data)
            if npdu.is_network_message:
                return
            pdu = decode_apdu(npdu.apdu)
        except (ValueError, IndexError) as exc:
            logger.debug("Ignoring datagram from %s: %s", addr[0], exc)
            return

        source = bvll.originating_address
        peer = (source.host, source.port) if source is not None else (addr[0], addr[1])

        match pdu:
            case ComplexAckPDU(invoke_id=invoke_id, segmented=True):
                self._fail(peer, invoke_id, BACnetAbortError(AbortReason.SEGMENTATION_NOT_SUPPORTED))
            case ComplexAckPDU(invoke_id=invoke_id, service_ack=service_ack):
                txn = self._transactions.get((peer, invoke_id))
                if txn and not txn.future.done():
                    self._cancel_timeout(txn)
                    txn.future.set_result(service_ack)
            case ErrorPDU(invoke_id=invoke_id, error_class=error_class, error_code=error_code):
                self._fail(peer, invoke_id, BACnetError(error_class, error_code))
            case RejectPDU(invoke_id=invoke_id, reject_reason=reason):
                self._fail(peer, invoke_id, BACnetRejectError(reason))
            case AbortPDU(invoke_id=invoke_id, abort_reason=reason):
                self._fail(peer, invoke_id, BACnetAbortError(reason))
            case _:
                logger.debug("Ignoring %s from %s", type(pdu).__name__, peer[0])

    def _fail(self, peer: Peer, invoke_id: int, exc: Exception) -> None:
        txn = self._transactions.get((peer, invoke_id))
        if txn and not txn.future.done():
            self._cancel_timeout(txn)
            txn.future.set_exception(exc)
