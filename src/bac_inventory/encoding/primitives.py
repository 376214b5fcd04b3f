"""Primitive value codecs (ASHRAE 135 Clause 20.2).

Covers what an I-Am and a ReadProperty exchange carry: unsigned, signed,
real and double numbers, character strings, enumerations and object
identifiers.  Decoded property values come back as the tagged variant
in :mod:`bac_inventory.types.values`.
"""

from __future__ import annotations

import logging
import struct

from bac_inventory.encoding.tags import TagClass, as_memoryview, decode_tag, encode_tag
from bac_inventory.types.enums import ObjectType
from bac_inventory.types.primitives import ObjectIdentifier
from bac_inventory.types.values import (
    EnumeratedValue,
    NumberValue,
    ObjectIdValue,
    OpaqueValue,
    PropertyValue,
    TextValue,
)

logger = logging.getLogger(__name__)

TAG_NULL = 0
TAG_BOOLEAN = 1
TAG_UNSIGNED = 2
TAG_SIGNED = 3
TAG_REAL = 4
TAG_DOUBLE = 5
TAG_CHARACTER_STRING = 7
TAG_ENUMERATED = 9
TAG_OBJECT_IDENTIFIER = 12

_CHARSETS: dict[int, str] = {
    0x00: "utf-8",
    0x01: "iso2022_jp",
    0x02: "iso2022_jp",
    0x03: "utf-32-be",
    0x04: "utf-16-be",
    0x05: "iso-8859-1",
}
"""Character-set octet to Python codec."""

_FALLBACK_CHARSET = "iso-8859-1"

_MAX_DECODED_VALUES = 10_000
"""Upper bound on elements decoded from one property value."""


def encode_unsigned(value: int) -> bytes:
    """Minimum-length big-endian octets of a 32-bit unsigned value.

    :raises ValueError: If *value* does not fit in 0..2**32-1.
    """
    if not 0 <= value <= 0xFFFFFFFF:
        msg = f"Unsigned value out of range 0..4294967295: {value}"
        raise ValueError(msg)
    return value.to_bytes(max(1, -(-value.bit_length() // 8)), "big")


def decode_unsigned(data: memoryview | bytes) -> int:
    return int.from_bytes(data, "big")


def _encode_signed(value: int) -> bytes:
    if not -0x80000000 <= value <= 0x7FFFFFFF:
        msg = f"Signed value out of 32-bit range: {value}"
        raise ValueError(msg)
    magnitude = value if value >= 0 else ~value
    return value.to_bytes(magnitude.bit_length() // 8 + 1, "big", signed=True)


def _unpack_float(fmt: str, data: memoryview | bytes) -> float:
    size = struct.calcsize(fmt)
    if len(data) < size:
        msg = f"Floating-point value needs {size} bytes, got {len(data)}"
        raise ValueError(msg)
    result: float = struct.unpack_from(fmt, data)[0]
    return result


def encode_character_string(value: str, charset: int = 0) -> bytes:
    """Charset octet followed by *value* in that charset."""
    codec = _CHARSETS.get(charset)
    if codec is None:
        msg = f"Unsupported character set: 0x{charset:02x}"
        raise ValueError(msg)
    return bytes([charset]) + value.encode(codec)


def decode_character_string(data: memoryview | bytes) -> str:
    """Decode character-string contents.

    Undecodable bytes become U+FFFD instead of raising: field devices
    often mislabel their strings, and the harvester clears damaged
    fields itself.  An unknown charset octet is read as latin-1.

    :raises ValueError: If the charset octet is missing.
    """
    if not data:
        msg = "Character string has no charset octet"
        raise ValueError(msg)
    codec = _CHARSETS.get(data[0])
    if codec is None:
        logger.warning("Unknown character set 0x%02x, reading as latin-1", data[0])
        codec = _FALLBACK_CHARSET
    return bytes(data[1:]).decode(codec, errors="replace")


def decode_enumerated(data: memoryview | bytes) -> int:
    return decode_unsigned(data)


def encode_object_identifier(obj_type: int, instance: int) -> bytes:
    return ObjectIdentifier(ObjectType(obj_type), instance).encode()


def decode_object_identifier(data: memoryview | bytes) -> tuple[int, int]:
    """Split four octets into ``(object_type, instance)``.

    :raises ValueError: If fewer than four octets are given.
    """
    if len(data) < 4:
        msg = f"Object identifier needs 4 bytes, got {len(data)}"
        raise ValueError(msg)
    raw = int.from_bytes(data[:4], "big")
    return raw >> 22, raw & 0x3FFFFF


def encode_application_tagged(tag_number: int, data: bytes) -> bytes:
    return encode_tag(tag_number, TagClass.APPLICATION, len(data)) + data


def encode_context_tagged(tag_number: int, data: bytes) -> bytes:
    return encode_tag(tag_number, TagClass.CONTEXT, len(data)) + data


def encode_application_unsigned(value: int) -> bytes:
    return encode_application_tagged(TAG_UNSIGNED, encode_unsigned(value))


def encode_application_signed(value: int) -> bytes:
    return encode_application_tagged(TAG_SIGNED, _encode_signed(value))


def encode_application_real(value: float) -> bytes:
    return encode_application_tagged(TAG_REAL, struct.pack(">f", value))


def encode_application_character_string(value: str, charset: int = 0) -> bytes:
    return encode_application_tagged(TAG_CHARACTER_STRING, encode_character_string(value, charset))


def encode_application_enumerated(value: int) -> bytes:
    return encode_application_tagged(TAG_ENUMERATED, encode_unsigned(value))


def encode_application_object_id(obj_type: int, instance: int) -> bytes:
    return encode_application_tagged(
        TAG_OBJECT_IDENTIFIER, encode_object_identifier(obj_type, instance)
    )


def _decode_content(tag_number: int, content: memoryview) -> PropertyValue:
    match tag_number:
        case 2:
            return NumberValue(decode_unsigned(content))
        case 3:
            return NumberValue(int.from_bytes(content, "big", signed=True))
        case 4:
            return NumberValue(_unpack_float(">f", content))
        case 5:
            return NumberValue(_unpack_float(">d", content))
        case 7:
            return TextValue(decode_character_string(content))
        case 9:
            return EnumeratedValue(decode_enumerated(content))
        case 12:
            obj_type, instance = decode_object_identifier(content)
            return ObjectIdValue(ObjectIdentifier(ObjectType(obj_type), instance))
        case _:
            return OpaqueValue(tag_number, bytes(content))


def decode_application_values(data: bytes | memoryview) -> list[PropertyValue]:
    """Decode a run of application-tagged elements, in wire order.

    Numbers (tags 2-5) become :class:`NumberValue`, character strings
    :class:`TextValue`, enumerations :class:`EnumeratedValue` and object
    identifiers :class:`ObjectIdValue`.  Any other datatype is kept as
    :class:`OpaqueValue`; Null and Boolean have no content octets.

    :raises ValueError: On a context tag, a truncated element, or more
        than :data:`_MAX_DECODED_VALUES` elements.
    """
    data = as_memoryview(data)
    values: list[PropertyValue] = []
    offset = 0
    while offset < len(data):
        if len(values) == _MAX_DECODED_VALUES:
            msg = f"More than {_MAX_DECODED_VALUES} values in one property"
            raise ValueError(msg)
        tag, offset = decode_tag(data, offset)
        if tag.cls != TagClass.APPLICATION:
            msg = f"Context tag {tag.number} where an application value was expected"
            raise ValueError(msg)
        if tag.number in (TAG_NULL, TAG_BOOLEAN):
            values.append(OpaqueValue(tag.number, b""))
            continue
        end = offset + tag.length
        if end > len(data):
            msg = f"Tag {tag.number} claims {tag.length} bytes, {len(data) - offset} remain"
            raise ValueError(msg)
        values.append(_decode_content(tag.number, data[offset:end]))
        offset = end
    return values
