"""ReadProperty service per ASHRAE 135-2016 Clause 15.5."""

from __future__ import annotations

from dataclasses import dataclass

from bac_inventory.encoding.primitives import (
    decode_object_identifier,
    decode_unsigned,
    encode_context_tagged,
    encode_object_identifier,
    encode_unsigned,
)
from bac_inventory.encoding.tags import (
    TagClass,
    as_memoryview,
    decode_tag,
    encode_closing_tag,
    encode_opening_tag,
    extract_context_value,
)
from bac_inventory.types.enums import ObjectType, PropertyIdentifier
from bac_inventory.types.primitives import ObjectIdentifier


def _encode_header(
    object_identifier: ObjectIdentifier,
    property_identifier: PropertyIdentifier,
    property_array_index: int | None,
) -> bytearray:
    buf = bytearray()
    # [0] object-identifier
    buf.extend(
        encode_context_tagged(
            0,
            encode_object_identifier(
                object_identifier.object_type,
                object_identifier.instance_number,
            ),
        )
    )
    # [1] property-identifier
    buf.extend(encode_context_tagged(1, encode_unsigned(property_identifier)))
    # [2] property-array-index (optional)
    if property_array_index is not None:
        buf.extend(encode_context_tagged(2, encode_unsigned(property_array_index)))
    return buf


def _decode_header(
    data: memoryview,
) -> tuple[ObjectIdentifier, PropertyIdentifier, int | None, int]:
    """Decode the [0] object, [1] property and optional [2] index fields."""
    tag, offset = decode_tag(data, 0)
    if tag.cls != TagClass.CONTEXT or tag.number != 0:
        msg = f"Expected context tag 0 (object-identifier), got {tag.number}"
        raise ValueError(msg)
    obj_type, instance = decode_object_identifier(data[offset : offset + tag.length])
    offset += tag.length
    object_identifier = ObjectIdentifier(ObjectType(obj_type), instance)

    tag, offset = decode_tag(data, offset)
    if tag.cls != TagClass.CONTEXT or tag.number != 1:
        msg = f"Expected context tag 1 (property-identifier), got {tag.number}"
        raise ValueError(msg)
    property_identifier = PropertyIdentifier(decode_unsigned(data[offset : offset + tag.length]))
    offset += tag.length

    property_array_index = None
    if offset < len(data):
        tag, next_offset = decode_tag(data, offset)
        if tag.cls == TagClass.CONTEXT and tag.number == 2 and not tag.is_delimiter:
            property_array_index = decode_unsigned(data[next_offset : next_offset + tag.length])
            offset = next_offset + tag.length

    return object_identifier, property_identifier, property_array_index, offset


@dataclass(frozen=True, slots=True)
class ReadPropertyRequest:
    """ReadProperty-Request service parameters (Clause 15.5.1.1).

    ::

        ReadProperty-Request ::= SEQUENCE {
            objectIdentifier    [0] BACnetObjectIdentifier,
            propertyIdentifier  [1] BACnetPropertyIdentifier,
            propertyArrayIndex  [2] Unsigned OPTIONAL
        }
    """

    object_identifier: ObjectIdentifier
    property_identifier: PropertyIdentifier
    property_array_index: int | None = None

    def encode(self) -> bytes:
        """Encode ReadProperty-Request service parameters."""
        return bytes(
            _encode_header(
                self.object_identifier, self.property_identifier, self.property_array_index
            )
        )

    @classmethod
    def decode(cls, data: memoryview | bytes) -> ReadPropertyRequest:
        """Decode ReadProperty-Request from service request bytes.

        Args:
            data: Raw service request bytes.

        Returns:
            Decoded ReadPropertyRequest.
        """
        object_identifier, property_identifier, index, _ = _decode_header(as_memoryview(data))
        return cls(
            object_identifier=object_identifier,
            property_identifier=property_identifier,
            property_array_index=index,
        )


@dataclass(frozen=True, slots=True)
class ReadPropertyACK:
    """ReadProperty-ACK service parameters (Clause 15.5.1.2).

    ::

        ReadProperty-ACK ::= SEQUENCE {
            objectIdentifier    [0] BACnetObjectIdentifier,
            propertyIdentifier  [1] BACnetPropertyIdentifier,
            propertyArrayIndex  [2] Unsigned OPTIONAL,
            propertyValue       [3] ABSTRACT-SYNTAX.&TYPE
        }

    ``property_value`` holds the raw application-tagged bytes found
    between the opening and closing context tag 3.
    """

    object_identifier: ObjectIdentifier
    property_identifier: PropertyIdentifier
    property_array_index: int | None = None
    property_value: bytes = b""

    def encode(self) -> bytes:
        """Encode ReadProperty-ACK service parameters."""
        buf = _encode_header(
            self.object_identifier, self.property_identifier, self.property_array_index
        )
        buf.extend(encode_opening_tag(3))
        buf.extend(self.property_value)
        buf.extend(encode_closing_tag(3))
        return bytes(buf)

    @classmethod
    def decode(cls, data: memoryview | bytes) -> ReadPropertyACK:
        """Decode ReadProperty-ACK from service ACK bytes.

        Args:
            data: Raw service ACK bytes.

        Returns:
            Decoded ReadPropertyACK.

        Raises:
            ValueError: If the ACK is truncated or the value is not
                enclosed in context tag 3.
        """
        data = as_memoryview(data)
        object_identifier, property_identifier, index, offset = _decode_header(data)

        tag, offset = decode_tag(data, offset)
        if not (tag.is_opening and tag.number == 3):
            msg = "ReadProperty-ACK: expected opening tag 3"
            raise ValueError(msg)
        property_value, _ = extract_context_value(data, offset, 3)

        return cls(
            object_identifier=object_identifier,
            property_identifier=property_identifier,
            property_array_index=index,
            property_value=property_value,
        )
