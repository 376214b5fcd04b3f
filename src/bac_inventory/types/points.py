"""Monitorable point types and synthetic point identifiers.

A synthetic point ID (``"AI-12"``) is the key that correlates an object
harvested from a device with its catalog row across scans.  Only the nine
input/output/value object types below are inventoried.

The module also holds the inventory records compared during
reconciliation: points harvested from a device and rows already in the
catalog.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from bac_inventory.types.enums import ObjectType
from bac_inventory.types.primitives import MAX_INSTANCE, ObjectIdentifier


class PointType(IntEnum):
    """Inventoried object types, valued by their catalog ``OBJ_TYPE`` code."""

    AI = 0
    AO = 1
    AV = 2
    BI = 3
    BO = 4
    BV = 5
    MSI = 6
    MSO = 7
    MSV = 8

    @property
    def prefix(self) -> str:
        """Synthetic ID prefix, e.g. ``"AI"``."""
        return self.name

    @property
    def object_type(self) -> ObjectType:
        """The protocol object type this point type stands for."""
        return _TO_OBJECT_TYPE[self]

    @property
    def is_analog(self) -> bool:
        """Analog points carry a decimal value and engineering units."""
        return self <= PointType.AV

    @property
    def is_multistate(self) -> bool:
        """Multi-state points carry state-text labels."""
        return self >= PointType.MSI

    @classmethod
    def from_object_type(cls, object_type: int) -> PointType | None:
        """Return the point type for *object_type*, or ``None`` if not inventoried."""
        return _FROM_OBJECT_TYPE.get(object_type)


_TO_OBJECT_TYPE: dict[PointType, ObjectType] = {
    PointType.AI: ObjectType.ANALOG_INPUT,
    PointType.AO: ObjectType.ANALOG_OUTPUT,
    PointType.AV: ObjectType.ANALOG_VALUE,
    PointType.BI: ObjectType.BINARY_INPUT,
    PointType.BO: ObjectType.BINARY_OUTPUT,
    PointType.BV: ObjectType.BINARY_VALUE,
    PointType.MSI: ObjectType.MULTI_STATE_INPUT,
    PointType.MSO: ObjectType.MULTI_STATE_OUTPUT,
    PointType.MSV: ObjectType.MULTI_STATE_VALUE,
}

_FROM_OBJECT_TYPE: dict[int, PointType] = {int(v): k for k, v in _TO_OBJECT_TYPE.items()}

STATE_TEXT_SLOTS = 10
"""Number of state-text columns a multi-state point carries."""


def format_synthetic_id(point_type: PointType, instance: int) -> str:
    """Build the synthetic point ID ``"{prefix}-{instance}"``."""
    return f"{point_type.prefix}-{instance}"


def parse_synthetic_id(synthetic_id: str) -> ObjectIdentifier:
    """Map a synthetic point ID back to its protocol object identifier.

    :param synthetic_id: An ID such as ``"MSV-3"``.
    :returns: The matching :class:`ObjectIdentifier`.
    :raises ValueError: If the prefix is unknown or the instance is not
        a valid 22-bit number.
    """
    point_type, instance = _split_synthetic_id(synthetic_id)
    return ObjectIdentifier(point_type.object_type, instance)


def canonical_synthetic_id(synthetic_id: str) -> str:
    """Normalize a stored ID such as ``" ai-07 "`` to ``"AI-7"``.

    :raises ValueError: If the ID is malformed.
    """
    return format_synthetic_id(*_split_synthetic_id(synthetic_id))


def _split_synthetic_id(synthetic_id: str) -> tuple[PointType, int]:
    prefix, sep, instance_text = synthetic_id.strip().partition("-")
    prefix = prefix.strip().upper()
    instance_text = instance_text.strip()
    if not sep or prefix not in PointType.__members__ or not instance_text.isdigit():
        msg = f"Malformed synthetic point ID: {synthetic_id!r}"
        raise ValueError(msg)
    instance = int(instance_text)
    if instance > MAX_INSTANCE:
        msg = f"Instance out of range in synthetic point ID: {synthetic_id!r}"
        raise ValueError(msg)
    return PointType[prefix], instance


@dataclass(frozen=True, slots=True)
class HarvestedPoint:
    """One inventoried object as read from a live device.

    Multi-state points always carry exactly :data:`STATE_TEXT_SLOTS`
    state texts (missing labels are empty strings); other types carry none.
    """

    point_type: PointType
    instance: int
    name: str = ""
    description: str = ""
    unit: str = ""
    """Display symbol, e.g. ``"°C"``."""
    state_texts: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.point_type.is_multistate:
            texts = tuple(self.state_texts[:STATE_TEXT_SLOTS])
            texts += ("",) * (STATE_TEXT_SLOTS - len(texts))
            object.__setattr__(self, "state_texts", texts)
        elif self.state_texts:
            msg = f"{self.point_type.prefix} points carry no state texts"
            raise ValueError(msg)

    @property
    def synthetic_id(self) -> str:
        """Catalog correlation key, e.g. ``"AI-12"``."""
        return format_synthetic_id(self.point_type, self.instance)

    @property
    def object_id(self) -> ObjectIdentifier:
        """The protocol identifier of the object."""
        return ObjectIdentifier(self.point_type.object_type, self.instance)

    @property
    def decimal(self) -> bool:
        """Whether the point holds a decimal (analog) value."""
        return self.point_type.is_analog

    @property
    def type_code(self) -> int:
        """Catalog ``OBJ_TYPE`` code."""
        return int(self.point_type)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "synthetic_id": self.synthetic_id,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "decimal": self.decimal,
            "type_code": self.type_code,
            "state_texts": list(self.state_texts),
        }


@dataclass(frozen=True, slots=True)
class CatalogIdentifiers:
    """Catalog-assigned identifiers shared by every point of one device."""

    server_id: int = 0
    system_id: int = 0
    order_id: int = 0


@dataclass(frozen=True, slots=True)
class CatalogRow:
    """A previously persisted point for one device."""

    device_key: str
    synthetic_id: str
    point_type: PointType
    name: str = ""
    description: str = ""
    unit: str = ""
    decimal: bool = False
    state_texts: tuple[str, ...] = ()
    server_id: int = 0
    system_id: int = 0
    order_id: int = 0
    stored_id: str = ""
    """``SYSTEM_PT_ID`` as written in the catalog, when not in canonical form."""

    @property
    def type_code(self) -> int:
        """Catalog ``OBJ_TYPE`` code."""
        return int(self.point_type)

    @property
    def catalog_key(self) -> str:
        """The ``SYSTEM_PT_ID`` text that addresses this row in the catalog."""
        return self.stored_id or self.synthetic_id

    @property
    def identifiers(self) -> CatalogIdentifiers:
        """The row's catalog identifiers."""
        return CatalogIdentifiers(self.server_id, self.system_id, self.order_id)

    @classmethod
    def from_point(
        cls,
        device_key: str,
        point: HarvestedPoint,
        identifiers: CatalogIdentifiers,
    ) -> CatalogRow:
        """Build the catalog row an addition of *point* creates."""
        return cls(
            device_key=device_key,
            synthetic_id=point.synthetic_id,
            point_type=point.point_type,
            name=point.name,
            description=point.description,
            unit=point.unit,
            decimal=point.decimal,
            state_texts=point.state_texts,
            server_id=identifiers.server_id,
            system_id=identifiers.system_id,
            order_id=identifiers.order_id,
        )
