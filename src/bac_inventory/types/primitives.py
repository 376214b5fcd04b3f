"""Object identifiers (ASHRAE 135 Clause 20.2.14)."""

from __future__ import annotations

from dataclasses import dataclass

from bac_inventory.types.enums import ObjectType

MAX_INSTANCE = 0x3FFFFF
"""Largest 22-bit instance number."""

_INSTANCE_BITS = 22


@dataclass(frozen=True, slots=True)
class ObjectIdentifier:
    """Names one object in a device: its type and instance number."""

    object_type: ObjectType
    instance_number: int

    def __post_init__(self) -> None:
        if self.instance_number < 0 or self.instance_number > MAX_INSTANCE:
            msg = f"Instance number must be 0-{MAX_INSTANCE}, got {self.instance_number}"
            raise ValueError(msg)

    def encode(self) -> bytes:
        """Pack into the four-octet wire form."""
        return ((int(self.object_type) << _INSTANCE_BITS) | self.instance_number).to_bytes(4, "big")

    def __str__(self) -> str:
        kind = self.object_type.name.lower().replace("_", "-")
        return f"{kind},{self.instance_number}"
