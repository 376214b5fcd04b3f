"""Who-Is / I-Am frame codec for device discovery.

Pure functions with no I/O.  Requests are fixed 8-byte frames; responses
are parsed field by field with a bounds check on every access, and any
datagram that is not a well-formed I-Am from a device object yields
``None``.  Foreign or damaged traffic on the BACnet port is routine on a
shared broadcast segment, so the decoder never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from bac_inventory.encoding.apdu import UnconfirmedRequestPDU, encode_apdu
from bac_inventory.encoding.primitives import (
    TAG_ENUMERATED,
    TAG_OBJECT_IDENTIFIER,
    TAG_UNSIGNED,
    decode_object_identifier,
    decode_unsigned,
    encode_application_enumerated,
    encode_application_object_id,
    encode_application_unsigned,
)
from bac_inventory.encoding.tags import TagClass, as_memoryview, decode_tag
from bac_inventory.network.address import BACNET_PORT, BIPAddress
from bac_inventory.network.npdu import decode_npdu, encode_npdu
from bac_inventory.transport.bvll import BVLC_TYPE_BACNET_IP, decode_bvll, encode_bvll
from bac_inventory.types.enums import (
    BvlcFunction,
    ObjectType,
    PduType,
    Segmentation,
    UnconfirmedServiceChoice,
)
from bac_inventory.types.primitives import MAX_INSTANCE

logger = logging.getLogger(__name__)

WHO_IS_FRAME_LENGTH = 8
MIN_I_AM_FRAME_LENGTH = 15
"""Shortest datagram that can hold a BVLL + NPDU + I-Am header and object id."""


class DiscoveryScope(IntEnum):
    """Scope indicator of a discovery frame, valued by its BVLC function code."""

    UNICAST = 0x0A
    BROADCAST = 0x0B


_REPLY_SCOPES = frozenset(int(s) for s in DiscoveryScope)


@dataclass(frozen=True, slots=True)
class DiscoveredDevice:
    """A device that answered Who-Is with I-Am.

    Identified by :attr:`device_id`; one discovery session keeps only
    the first answer per device.
    """

    device_id: int
    """Device object instance the device reports for itself (22-bit)."""

    ip: str
    """IP address the I-Am came from."""

    vendor_id: int
    """BACnet vendor identifier (16-bit)."""

    max_apdu_length: int
    """Largest APDU the device accepts, in bytes."""

    segmentation: Segmentation
    """Segmentation capability advertised in the I-Am."""

    port: int = BACNET_PORT
    """UDP port the I-Am came from."""

    @property
    def address(self) -> BIPAddress:
        """The device's BACnet/IP address."""
        return BIPAddress(self.ip, self.port)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "device_id": self.device_id,
            "ip": self.ip,
            "port": self.port,
            "vendor_id": self.vendor_id,
            "max_apdu_length": self.max_apdu_length,
            "segmentation": self.segmentation.name.lower(),
        }


def encode_discovery_request(scope: DiscoveryScope) -> bytes:
    """Build the 8-byte Who-Is frame for *scope*.

    Layout: BVLC marker ``0x81``, scope (``0x0B`` broadcast / ``0x0A``
    unicast), length ``0x0008``, NPDU version ``0x01``, control ``0x00``,
    unconfirmed-request ``0x10`` and Who-Is ``0x08``.  No device range
    limits are included, so every device answers.
    """
    apdu = encode_apdu(UnconfirmedRequestPDU(UnconfirmedServiceChoice.WHO_IS, b""))
    return encode_bvll(BvlcFunction(scope), encode_npdu(apdu))


def encode_synthetic_iam_frame(
    device_id: int,
    vendor_id: int,
    max_apdu_length: int = 1476,
    segmentation: Segmentation = Segmentation.NONE,
    scope: DiscoveryScope = DiscoveryScope.UNICAST,
) -> bytes:
    """Build an I-Am frame as a device would send it.

    :param device_id: Device instance (0-4194303).
    :param vendor_id: Vendor identifier (0-65535).
    :param max_apdu_length: Max APDU length accepted (0-65535).
    :param segmentation: Segmentation capability.
    :param scope: Whether the frame is addressed as broadcast or unicast.
    :returns: Complete BVLL datagram.
    :raises ValueError: If a field is out of range.
    """
    if not 0 <= device_id <= MAX_INSTANCE:
        msg = f"Device instance must be 0-{MAX_INSTANCE}, got {device_id}"
        raise ValueError(msg)
    if not 0 <= vendor_id <= 0xFFFF:
        msg = f"Vendor identifier must be 0-65535, got {vendor_id}"
        raise ValueError(msg)
    if not 0 <= max_apdu_length <= 0xFFFF:
        msg = f"Max APDU length must be 0-65535, got {max_apdu_length}"
        raise ValueError(msg)
    payload = (
        encode_application_object_id(ObjectType.DEVICE, device_id)
        + encode_application_unsigned(max_apdu_length)
        + encode_application_enumerated(segmentation)
        + encode_application_unsigned(vendor_id)
    )
    apdu = encode_apdu(UnconfirmedRequestPDU(UnconfirmedServiceChoice.I_AM, payload))
    return encode_bvll(BvlcFunction(scope), encode_npdu(apdu))


def try_decode_discovery_response(
    data: bytes | memoryview,
    sender: tuple[str, int] | BIPAddress,
) -> DiscoveredDevice | None:
    """Decode an I-Am datagram, or return ``None`` if it is not one.

    Checks, in order: minimum length, BVLC marker, scope byte, NPDU
    version, unconfirmed-request and I-Am service markers, and that the
    announced object is a device.  Routed replies (NPDU with SNET/SADR)
    are accepted; network-layer messages are not.

    :param data: Raw UDP payload.
    :param sender: ``(host, port)`` the datagram came from.
    :returns: The announcing device, or ``None``.
    """
    try:
        return _decode_i_am(as_memoryview(data), sender)
    except (ValueError, IndexError) as exc:
        logger.debug("Ignoring datagram from %s: %s", sender, exc)
        return None


def _decode_i_am(
    data: memoryview,
    sender: tuple[str, int] | BIPAddress,
) -> DiscoveredDevice | None:
    if len(data) < MIN_I_AM_FRAME_LENGTH:
        return None
    if data[0] != BVLC_TYPE_BACNET_IP or data[1] not in _REPLY_SCOPES:
        return None

    npdu = decode_npdu(decode_bvll(data).data)
    if npdu.is_network_message:
        return None
    apdu = npdu.apdu
    if (
        len(apdu) < 2
        or (apdu[0] >> 4) != PduType.UNCONFIRMED_REQUEST
        or apdu[1] != UnconfirmedServiceChoice.I_AM
    ):
        return None

    body = memoryview(apdu)
    offset = 2

    content, offset = _read_application(body, offset, TAG_OBJECT_IDENTIFIER, 4, 4)
    obj_type, instance = decode_object_identifier(content)
    if obj_type != ObjectType.DEVICE:
        return None

    content, offset = _read_application(body, offset, TAG_UNSIGNED, 1, 4)
    max_apdu_length = decode_unsigned(content)

    content, offset = _read_application(body, offset, TAG_ENUMERATED, 1, 1)
    segmentation = Segmentation(content[0])

    content, offset = _read_application(body, offset, TAG_UNSIGNED, 1, 4)
    vendor_id = decode_unsigned(content)

    if max_apdu_length > 0xFFFF or vendor_id > 0xFFFF:
        return None

    host, port = (sender.host, sender.port) if isinstance(sender, BIPAddress) else sender[:2]
    return DiscoveredDevice(
        device_id=instance,
        ip=host,
        vendor_id=vendor_id,
        max_apdu_length=max_apdu_length,
        segmentation=segmentation,
        port=port,
    )


def _read_application(
    body: memoryview,
    offset: int,
    tag_number: int,
    min_length: int,
    max_length: int,
) -> tuple[memoryview, int]:
    """Read one application-tagged field, checking its tag and length bounds."""
    tag, offset = decode_tag(body, offset)
    if tag.cls != TagClass.APPLICATION or tag.number != tag_number:
        msg = f"Expected application tag {tag_number}, got {tag.number}"
        raise ValueError(msg)
    if not min_length <= tag.length <= max_length or offset + tag.length > len(body):
        msg = f"Application tag {tag_number} has bad length {tag.length}"
        raise ValueError(msg)
    return body[offset : offset + tag.length], offset + tag.length
