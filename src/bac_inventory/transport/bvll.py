"""BACnet/IP virtual link layer framing (Annex J).

Only the functions an inventory client meets are understood: its own
Original-Unicast/Original-Broadcast requests, and replies that arrive
either directly or relayed by a BBMD as Forwarded-NPDU.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from bac_inventory.network.address import BIPAddress
from bac_inventory.types.enums import BvlcFunction

BVLC_TYPE_BACNET_IP = 0x81
BVLL_HEADER_LENGTH = 4

_HEADER = struct.Struct("!BBH")
_ORIGINATOR_LENGTH = 6


@dataclass(frozen=True, slots=True)
class BvllMessage:
    """One BVLL frame with its NPDU."""

    function: BvlcFunction
    data: bytes
    """The NPDU carried by the frame."""
    originating_address: BIPAddress | None = None
    """Original sender of a Forwarded-NPDU; ``None`` for direct frames."""


def encode_bvll(function: BvlcFunction, payload: bytes) -> bytes:
    """Frame an NPDU for UDP transmission."""
    return _HEADER.pack(BVLC_TYPE_BACNET_IP, function, BVLL_HEADER_LENGTH + len(payload)) + payload


def decode_bvll(data: memoryview | bytes) -> BvllMessage:
    """Unframe a received datagram.

    Trailing octets beyond the declared length are ignored.

    :param data: Raw UDP payload.
    :returns: The decoded :class:`BvllMessage`.
    :raises ValueError: If the header is short, not BACnet/IP, names an
        unknown function or declares an impossible length.
    """
    if len(data) < BVLL_HEADER_LENGTH:
        msg = f"BVLL frame too short: {len(data)} byte(s)"
        raise ValueError(msg)
    bvlc_type, code, length = _HEADER.unpack_from(data)
    if bvlc_type != BVLC_TYPE_BACNET_IP:
        msg = f"Invalid BVLC type: {bvlc_type:#x}"
        raise ValueError(msg)
    function = BvlcFunction(code)
    if not BVLL_HEADER_LENGTH <= length <= len(data):
        msg = f"Invalid BVLL length: declared {length}, actual {len(data)}"
        raise ValueError(msg)

    body = bytes(data[BVLL_HEADER_LENGTH:length])
    if function != BvlcFunction.FORWARDED_NPDU:
        return BvllMessage(function, body)
    if len(body) < _ORIGINATOR_LENGTH:
        msg = f"Forwarded-NPDU too short: {length} byte(s)"
        raise ValueError(msg)
    return BvllMessage(
        function,
        body[_ORIGINATOR_LENGTH:],
        originating_address=BIPAddress.decode(body[:_ORIGINATOR_LENGTH]),
    )
