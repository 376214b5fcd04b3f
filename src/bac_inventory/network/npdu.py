"""NPDU encoding and decoding per ASHRAE 135-2016 Clause 6.

This client only originates local (unrouted) NPDUs, but replies from
devices behind a router carry source (SNET/SADR) and occasionally
destination fields; those are parsed and skipped so the APDU is reached.
"""

from __future__ import annotations

from dataclasses import dataclass

from bac_inventory.encoding.tags import as_memoryview

BACNET_PROTOCOL_VERSION = 1

_CONTROL_NETWORK_MESSAGE = 0x80
_CONTROL_DESTINATION = 0x20
_CONTROL_SOURCE = 0x08
_CONTROL_EXPECTING_REPLY = 0x04


@dataclass(frozen=True, slots=True)
class NPDU:
    """Decoded Network Protocol Data Unit (Clause 6.2)."""

    is_network_message: bool = False
    """``True`` for network-layer messages, ``False`` for application-layer APDUs."""

    expecting_reply: bool = False
    """``True`` when the sender expects a reply."""

    source_network: int | None = None
    """SNET of a routed message, ``None`` when local."""

    source_address: bytes = b""
    """SADR of a routed message."""

    destination_network: int | None = None
    """DNET when present."""

    apdu: bytes = b""
    """Application-layer APDU payload, empty for network messages."""


def encode_npdu(apdu: bytes, *, expecting_reply: bool = False) -> bytes:
    """Encode a local NPDU wrapping *apdu*.

    :param apdu: Application-layer payload.
    :param expecting_reply: Set for confirmed requests.
    :returns: Version octet, control octet and the APDU.
    """
    control = _CONTROL_EXPECTING_REPLY if expecting_reply else 0
    return bytes([BACNET_PROTOCOL_VERSION, control]) + apdu


def decode_npdu(data: memoryview | bytes) -> NPDU:
    """Decode raw bytes into an :class:`NPDU`.

    :param data: Raw NPDU bytes (at least 2 bytes required).
    :returns: The decoded :class:`NPDU`.
    :raises ValueError: If the data is truncated or the protocol version
        is not 1.
    """
    data = as_memoryview(data)
    if len(data) < 2:
        msg = f"NPDU data too short: need at least 2 bytes, got {len(data)}"
        raise ValueError(msg)

    version = data[0]
    if version != BACNET_PROTOCOL_VERSION:
        msg = f"Unsupported BACnet protocol version: {version}"
        raise ValueError(msg)

    control = data[1]
    offset = 2
    destination_network = None
    source_network = None
    source_address = b""

    if control & _CONTROL_DESTINATION:
        if offset + 3 > len(data):
            msg = "NPDU too short for destination"
            raise ValueError(msg)
        destination_network = int.from_bytes(data[offset : offset + 2], "big")
        dlen = data[offset + 2]
        offset += 3 + dlen

    if control & _CONTROL_SOURCE:
        if offset + 3 > len(data):
            msg = "NPDU too short for source"
            raise ValueError(msg)
        source_network = int.from_bytes(data[offset : offset + 2], "big")
        slen = data[offset + 2]
        offset += 3
        if slen == 0 or offset + slen > len(data):
            msg = f"NPDU source address invalid or truncated: SLEN={slen}"
            raise ValueError(msg)
        source_address = bytes(data[offset : offset + slen])
        offset += slen

    if control & _CONTROL_DESTINATION:
        offset += 1  # hop count

    if offset > len(data):
        msg = "NPDU header runs past end of data"
        raise ValueError(msg)

    is_network_message = bool(control & _CONTROL_NETWORK_MESSAGE)
    return NPDU(
        is_network_message=is_network_message,
        expecting_reply=bool(control & _CONTROL_EXPECTING_REPLY),
        source_network=source_network,
        source_address=source_address,
        destination_network=destination_network,
        apdu=b"" if is_network_message else bytes(data[offset:]),
    )
