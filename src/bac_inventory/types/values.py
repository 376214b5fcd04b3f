"""Tagged property values returned by ReadProperty.

A property's datatype depends on the application tag the device sent
back, so decoded values are a closed union of small frozen dataclasses.
Callers ``match`` on the variant instead of probing ``isinstance`` on
raw Python objects::

    match value:
        case TextValue(text):
            ...
        case EnumeratedValue(code):
            ...
"""

from __future__ import annotations

from dataclasses import dataclass

from bac_inventory.types.primitives import ObjectIdentifier


@dataclass(frozen=True, slots=True)
class TextValue:
    """CharacterString (application tag 7)."""

    text: str


@dataclass(frozen=True, slots=True)
class NumberValue:
    """Unsigned, Signed, Real or Double (application tags 2, 3, 4, 5)."""

    number: int | float


@dataclass(frozen=True, slots=True)
class EnumeratedValue:
    """Enumerated (application tag 9), e.g. engineering units."""

    code: int


@dataclass(frozen=True, slots=True)
class ObjectIdValue:
    """BACnetObjectIdentifier (application tag 12)."""

    object_id: ObjectIdentifier


@dataclass(frozen=True, slots=True)
class OpaqueValue:
    """Any other application datatype, kept as its tag number and raw content."""

    tag_number: int
    content: bytes


PropertyValue = TextValue | NumberValue | EnumeratedValue | ObjectIdValue | OpaqueValue


def value_as_text(value: PropertyValue | None) -> str | None:
    """Render a property value as text, or ``None`` when there is nothing to show."""
    match value:
        case None:
            return None
        case TextValue(text=text):
            return text
        case NumberValue(number=number):
            return str(number)
        case EnumeratedValue(code=code):
            return str(code)
        case ObjectIdValue(object_id=object_id):
            return str(object_id)
        case OpaqueValue():
            return None
