"""Shared test utilities for bac-inventory tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from bac_inventory.discovery.frames import DiscoveryScope, encode_synthetic_iam_frame
from bac_inventory.encoding.apdu import (
    ComplexAckPDU,
    ConfirmedRequestPDU,
    ErrorPDU,
    UnconfirmedRequestPDU,
    decode_apdu,
    encode_apdu,
)
from bac_inventory.encoding.primitives import (
    encode_application_character_string,
    encode_application_enumerated,
    encode_application_object_id,
    encode_application_unsigned,
)
from bac_inventory.network.npdu import decode_npdu, encode_npdu
from bac_inventory.services.errors import BACnetError
from bac_inventory.services.read_property import ReadPropertyACK, ReadPropertyRequest
from bac_inventory.transport.bvll import decode_bvll, encode_bvll
from bac_inventory.types.enums import (
    BvlcFunction,
    ConfirmedServiceChoice,
    ErrorClass,
    ErrorCode,
    ObjectType,
    PropertyIdentifier,
    UnconfirmedServiceChoice,
)
from bac_inventory.types.primitives import ObjectIdentifier
from bac_inventory.types.values import (
    EnumeratedValue,
    NumberValue,
    ObjectIdValue,
    PropertyValue,
    TextValue,
)

PropertyKey = tuple[ObjectIdentifier, PropertyIdentifier, int | None]
Response = list[PropertyValue] | Exception


@dataclass(frozen=True)
class FakePoint:
    """An object as a fake device exposes it."""

    object_type: ObjectType
    instance: int
    name: str | None = None
    description: str | None = None
    units: int | None = None
    state_texts: tuple[str, ...] | None = None

    @property
    def oid(self) -> ObjectIdentifier:
        return ObjectIdentifier(self.object_type, self.instance)


def device_properties(device_id: int, points: list[FakePoint]) -> dict[PropertyKey, Response]:
    """Property table of a device exposing *points* in its object list."""
    device = ObjectIdentifier(ObjectType.DEVICE, device_id)
    table: dict[PropertyKey, Response] = {
        (device, PropertyIdentifier.OBJECT_LIST, 0): [NumberValue(len(points))],
    }
    for i, point in enumerate(points, start=1):
        table[(device, PropertyIdentifier.OBJECT_LIST, i)] = [ObjectIdValue(point.oid)]
        if point.name is not None:
            table[(point.oid, PropertyIdentifier.OBJECT_NAME, None)] = [TextValue(point.name)]
        if point.description is not None:
            table[(point.oid, PropertyIdentifier.DESCRIPTION, None)] = [
                TextValue(point.description)
            ]
        if point.units is not None:
            table[(point.oid, PropertyIdentifier.UNITS, None)] = [EnumeratedValue(point.units)]
        if point.state_texts is not None:
            table[(point.oid, PropertyIdentifier.STATE_TEXT, None)] = [
                TextValue(t) for t in point.state_texts
            ]
    return table


def unknown_property() -> BACnetError:
    return BACnetError(ErrorClass.PROPERTY, ErrorCode.UNKNOWN_PROPERTY)


class ScriptedReader:
    """In-memory :class:`PropertyReader` answering from per-host property tables.

    A missing entry answers like a device without the property.
    Exceptions in a table are raised.
    """

    def __init__(
        self,
        devices: dict[str, dict[PropertyKey, Response]],
        *,
        delays: dict[str, float] | None = None,
    ) -> None:
        self.devices = devices
        self.delays = delays or {}
        self.calls: list[tuple[str, PropertyKey]] = []
        self.opened = 0
        self.closed = 0

    async def __aenter__(self) -> ScriptedReader:
        self.opened += 1
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.closed += 1

    async def read_property(self, address, object_id, property_id, array_index=None):
        key = (object_id, property_id, array_index)
        self.calls.append((address.host, key))
        delay = self.delays.get(address.host)
        if delay:
            await asyncio.sleep(delay)
        response = self.devices.get(address.host, {}).get(key)
        if response is None:
            raise unknown_property()
        if isinstance(response, Exception):
            raise response
        return list(response)


def encode_values(values: list[PropertyValue]) -> bytes:
    """Application-encode values the way a device would put them in an ACK."""
    buf = bytearray()
    for value in values:
        match value:
            case TextValue(text=text):
                buf += encode_application_character_string(text)
            case NumberValue(number=int(number)):
                buf += encode_application_unsigned(number)
            case EnumeratedValue(code=code):
                buf += encode_application_enumerated(code)
            case ObjectIdValue(object_id=oid):
                buf += encode_application_object_id(oid.object_type, oid.instance_number)
            case _:
                msg = f"Cannot encode {value!r}"
                raise TypeError(msg)
    return bytes(buf)


def unicast(apdu: bytes) -> bytes:
    return encode_bvll(BvlcFunction.ORIGINAL_UNICAST_NPDU, encode_npdu(apdu))


class FakeBACnetDevice(asyncio.DatagramProtocol):
    """A BACnet/IP device on a loopback UDP port.

    Answers Who-Is with I-Am and ReadProperty from a property table.
    """

    def __init__(
        self,
        device_id: int,
        properties: dict[PropertyKey, Response] | None = None,
        *,
        vendor_id: int = 999,
        answer_who_is: bool = True,
        answer_reads: bool = True,
    ) -> None:
        self.device_id = device_id
        self.vendor_id = vendor_id
        self.properties = properties or {}
        self.answer_who_is = answer_who_is
        self.answer_reads = answer_reads
        self.who_is_count = 0
        self.read_count = 0
        self.transport: asyncio.DatagramTransport | None = None
        self.host = "127.0.0.1"
        self.port = 0

    async def start(self, host: str = "127.0.0.1") -> FakeBACnetDevice:
        loop = asyncio.get_running_loop()
        self.transport, _ = await loop.create_datagram_endpoint(
            lambda: self, local_addr=(host, 0)
        )
        self.host, self.port = self.transport.get_extra_info("sockname")[:2]
        return self

    def stop(self) -> None:
        if self.transport is not None:
            self.transport.close()
            self.transport = None

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        try:
            pdu = decode_apdu(decode_npdu(decode_bvll(data).data).apdu)
        except ValueError:
            return
        match pdu:
            case UnconfirmedRequestPDU(service_choice=UnconfirmedServiceChoice.WHO_IS):
                self.who_is_count += 1
                if self.answer_who_is:
                    frame = encode_synthetic_iam_frame(
                        self.device_id, self.vendor_id, scope=DiscoveryScope.UNICAST
                    )
                    self._reply(frame, addr)
            case ConfirmedRequestPDU(service_choice=ConfirmedServiceChoice.READ_PROPERTY):
                self.read_count += 1
                if self.answer_reads:
                    self._reply(unicast(self._read(pdu)), addr)

    def _read(self, pdu: ConfirmedRequestPDU) -> bytes:
        request = ReadPropertyRequest.decode(pdu.service_request)
        key = (
            request.object_identifier,
            request.property_identifier,
            request.property_array_index,
        )
        response = self.properties.get(key)
        if response is None or isinstance(response, Exception):
            error_class, error_code = ErrorClass.PROPERTY, ErrorCode.UNKNOWN_PROPERTY
            if isinstance(response, BACnetError):
                error_class, error_code = response.error_class, response.error_code
            return encode_apdu(
                ErrorPDU(pdu.invoke_id, pdu.service_choice, error_class, error_code)
            )
        ack = ReadPropertyACK(
            request.object_identifier,
            request.property_identifier,
            request.property_array_index,
            encode_values(response),
        )
        return encode_apdu(ComplexAckPDU(pdu.invoke_id, pdu.service_choice, ack.encode()))

    def _reply(self, frame: bytes, addr: tuple[str, int]) -> None:
        if self.transport is not None:
            self.transport.sendto(frame, addr)
