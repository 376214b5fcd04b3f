"""Tag headers of the BACnet encoding (ASHRAE 135 Clause 20.2.1).

Every I-Am field and every ReadProperty argument starts with a tag
header.  Decoding is bounds-checked throughout: a datagram from the
network is untrusted, and any overrun is a :class:`ValueError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import IntEnum

logger = logging.getLogger(__name__)

_LVT_EXTENDED = 5
_LVT_OPENING = 6
_LVT_CLOSING = 7
_EXTENDED_NUMBER = 0x0F


class TagClass(IntEnum):
    """Application tags name a datatype; context tags name a field."""

    APPLICATION = 0
    CONTEXT = 1


@dataclass(frozen=True, slots=True)
class Tag:
    """One decoded tag header."""

    number: int
    cls: TagClass
    length: int
    """Content octets that follow (the raw L/V/T for application booleans)."""
    is_opening: bool = False
    is_closing: bool = False

    @property
    def is_delimiter(self) -> bool:
        """Whether this is a context opening or closing tag."""
        return self.is_opening or self.is_closing


def as_memoryview(data: bytes | memoryview) -> memoryview:
    """Wrap *data* for slicing without copies."""
    return data if isinstance(data, memoryview) else memoryview(data)


def _header(tag_number: int, cls: TagClass, lvt: int) -> bytearray:
    if tag_number <= 14:
        return bytearray([(tag_number << 4) | (cls << 3) | lvt])
    return bytearray([(_EXTENDED_NUMBER << 4) | (cls << 3) | lvt, tag_number])


def encode_tag(tag_number: int, cls: TagClass, length: int) -> bytes:
    """Encode the header of a tag with *length* content octets.

    :raises ValueError: If *tag_number* is outside 0-254 or *length* is negative.
    """
    if not 0 <= tag_number <= 254:
        msg = f"Tag number must be 0-254, got {tag_number}"
        raise ValueError(msg)
    if length < 0:
        msg = f"Tag length must be non-negative, got {length}"
        raise ValueError(msg)

    if length < _LVT_EXTENDED:
        return bytes(_header(tag_number, cls, length))

    out = _header(tag_number, cls, _LVT_EXTENDED)
    if length <= 253:
        out.append(length)
    elif length <= 0xFFFF:
        out.append(254)
        out += length.to_bytes(2, "big")
    else:
        out.append(255)
        out += length.to_bytes(4, "big")
    return bytes(out)


def encode_opening_tag(tag_number: int) -> bytes:
    """Encode the context opening tag *tag_number*."""
    return bytes(_header(tag_number, TagClass.CONTEXT, _LVT_OPENING))


def encode_closing_tag(tag_number: int) -> bytes:
    """Encode the context closing tag *tag_number*."""
    return bytes(_header(tag_number, TagClass.CONTEXT, _LVT_CLOSING))


def _take(buf: memoryview, offset: int, count: int) -> int:
    """Read a *count*-octet big-endian integer at *offset*."""
    if offset + count > len(buf):
        msg = f"Tag header truncated: need {count} byte(s) at offset {offset} of {len(buf)}"
        raise ValueError(msg)
    return int.from_bytes(buf[offset : offset + count], "big")


def decode_tag(buf: memoryview | bytes, offset: int) -> tuple[Tag, int]:
    """Decode the tag header at *offset*.

    :returns: ``(tag, offset of the first content octet)``.
    :raises ValueError: If the header runs past the end of *buf*.
    """
    buf = as_memoryview(buf)
    initial = _take(buf, offset, 1)
    offset += 1
    cls = TagClass((initial >> 3) & 0x01)
    lvt = initial & 0x07

    number = initial >> 4
    if number == _EXTENDED_NUMBER:
        number = _take(buf, offset, 1)
        offset += 1

    if cls == TagClass.CONTEXT and lvt in (_LVT_OPENING, _LVT_CLOSING):
        opening = lvt == _LVT_OPENING
        return Tag(number, cls, 0, is_opening=opening, is_closing=not opening), offset

    if lvt < _LVT_EXTENDED:
        return Tag(number, cls, lvt), offset

    length = _take(buf, offset, 1)
    offset += 1
    if length == 254:
        length = _take(buf, offset, 2)
        offset += 2
    elif length == 255:
        length = _take(buf, offset, 4)
        offset += 4
    return Tag(number, cls, length), offset


def extract_context_value(
    data: memoryview | bytes,
    offset: int,
    tag_number: int,
) -> tuple[bytes, int]:
    """Return the octets between an opening tag and its matching closing tag.

    :param data: Buffer to read from.
    :param offset: Position just past the opening tag *tag_number*.
    :param tag_number: Number of the enclosing tag pair.
    :returns: ``(enclosed octets, offset past the closing tag)``.
    :raises ValueError: If the pair is not closed or closes with another number.
    """
    data = as_memoryview(data)
    start = offset
    depth = 0
    while offset < len(data):
        tag, after = decode_tag(data, offset)
        if tag.is_opening:
            depth += 1
        elif tag.is_closing and depth:
            depth -= 1
        elif tag.is_closing:
            if tag.number != tag_number:
                msg = f"Expected closing tag {tag_number}, got {tag.number}"
                raise ValueError(msg)
            return bytes(data[start:offset]), after
        else:
            after += tag.length
        offset = after
    msg = f"Missing closing tag {tag_number}"
    logger.debug(msg)
    raise ValueError(msg)
