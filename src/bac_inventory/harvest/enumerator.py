"""Per-device point enumeration over ReadProperty."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from bac_inventory.harvest.sanitize import sanitize_text
from bac_inventory.harvest.units import unit_symbol
from bac_inventory.network.address import BACNET_PORT, BIPAddress
from bac_inventory.services.errors import BACnetBaseError, BACnetError
from bac_inventory.types.enums import ObjectType, PropertyIdentifier
from bac_inventory.types.points import HarvestedPoint, PointType
from bac_inventory.types.primitives import ObjectIdentifier
from bac_inventory.types.values import (
    EnumeratedValue,
    NumberValue,
    ObjectIdValue,
    PropertyValue,
    TextValue,
    value_as_text,
)

if TYPE_CHECKING:
    from bac_inventory.app.reader import PropertyReader
    from bac_inventory.cancel import CancelToken

logger = logging.getLogger(__name__)


class HarvestStatus(Enum):
    """How a device harvest ended."""

    OK = "ok"
    """The directory was read and at least one point was listed."""

    EMPTY = "empty"
    """The device answered with an empty object list: live, no points."""

    DIRECTORY_FAILED = "directory_failed"
    """The object-list count could not be read; nothing is trusted."""


@dataclass(frozen=True, slots=True)
class HarvestReport:
    """Outcome of one device harvest."""

    ip: str
    device_id: int
    status: HarvestStatus
    object_count: int = 0
    """Object-list length the device reported."""
    points: list[HarvestedPoint] = field(default_factory=list)
    skipped: int = 0
    """Objects of types that are not inventoried."""
    failed: int = 0
    """Objects dropped because a required read failed."""
    object_index: dict[str, ObjectIdentifier] = field(default_factory=dict)
    """Synthetic point ID to protocol identifier for this device session."""

    @property
    def harvested(self) -> int:
        """Number of points harvested."""
        return len(self.points)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "ip": self.ip,
            "device_id": self.device_id,
            "status": self.status.value,
            "object_count": self.object_count,
            "harvested": self.harvested,
            "skipped": self.skipped,
            "failed": self.failed,
            "points": [p.to_dict() for p in self.points],
        }


class PointEnumerator:
    """Walks a device's object list and reads the attributes of each point.

    Stateless per call: each :meth:`harvest_device` builds its own point
    index and report, so one enumerator may serve several devices as long
    as its reader does.
    """

    def __init__(self, reader: PropertyReader, *, port: int = BACNET_PORT) -> None:
        """Initialise the enumerator.

        :param reader: Protocol client used for every read.
        :param port: UDP port of the devices.
        """
        self._reader = reader
        self._port = port

    async def harvest(self, ip: str, device_id: int) -> list[HarvestedPoint]:
        """Harvest every inventoried point of a device.

        An empty list means either an empty device or a failed directory
        read; use :meth:`harvest_device` to tell them apart.
        """
        report = await self.harvest_device(ip, device_id)
        return report.points

    async def harvest_device(
        self,
        ip: str,
        device_id: int,
        cancel: CancelToken | None = None,
    ) -> HarvestReport:
        """Harvest a device and report how it went.

        Reads the object-list length (array index 0), then each entry by
        index.  A failed length read aborts the device with
        :attr:`HarvestStatus.DIRECTORY_FAILED`.  Failures on one object
        are logged and the walk continues with the next index.

        :param ip: Device IP address.
        :param device_id: Device object instance.
        :param cancel: Checked before every object.
        :returns: The :class:`HarvestReport`.
        :raises ScanCancelledError: If *cancel* fires mid-walk.
        """
        address = BIPAddress(ip, self._port)
        device_oid = ObjectIdentifier(ObjectType.DEVICE, device_id)

        try:
            values = await self._reader.read_property(
                address, device_oid, PropertyIdentifier.OBJECT_LIST, array_index=0
            )
        except (BACnetBaseError, ValueError) as exc:
            logger.warning("Object list of device %d at %s unreadable: %s", device_id, ip, exc)
            return HarvestReport(ip, device_id, HarvestStatus.DIRECTORY_FAILED)

        match values:
            case [NumberValue(number=int(count))] if count >= 0:
                pass
            case _:
                logger.warning(
                    "Device %d at %s returned a malformed object-list length: %r",
                    device_id,
                    ip,
                    values,
                )
                return HarvestReport(ip, device_id, HarvestStatus.DIRECTORY_FAILED)

        if count == 0:
            logger.info("Device %d at %s has an empty object list", device_id, ip)
            return HarvestReport(ip, device_id, HarvestStatus.EMPTY)

        points: list[HarvestedPoint] = []
        index: dict[str, ObjectIdentifier] = {}
        skipped = failed = 0

        for i in range(1, count + 1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                oid = await self._read_list_entry(address, device_oid, i)
            except (BACnetBaseError, ValueError) as exc:
                logger.warning("Device %d object-list[%d] unreadable: %s", device_id, i, exc)
                failed += 1
                continue

            point_type = PointType.from_object_type(oid.object_type)
            if point_type is None:
                logger.debug("Skipping %s on device %d", oid, device_id)
                skipped += 1
                continue

            try:
                point = await self._read_point(address, point_type, oid)
            except (BACnetBaseError, ValueError) as exc:
                logger.warning("Dropping %s on device %d: %s", oid, device_id, exc)
                failed += 1
                continue

            points.append(point)
            index.setdefault(point.synthetic_id, oid)

        logger.info(
            "Harvested %d point(s) from device %d at %s (%d skipped, %d failed)",
            len(points),
            device_id,
            ip,
            skipped,
            failed,
        )
        return HarvestReport(
            ip,
            device_id,
            HarvestStatus.OK,
            object_count=count,
            points=points,
            skipped=skipped,
            failed=failed,
            object_index=index,
        )

    async def _read_list_entry(
        self,
        address: BIPAddress,
        device_oid: ObjectIdentifier,
        i: int,
    ) -> ObjectIdentifier:
        values = await self._reader.read_property(
            address, device_oid, PropertyIdentifier.OBJECT_LIST, array_index=i
        )
        match values:
            case [ObjectIdValue(object_id=oid)]:
                return oid
            case _:
                msg = f"expected an object identifier, got {values!r}"
                raise ValueError(msg)

    async def _read_point(
        self,
        address: BIPAddress,
        point_type: PointType,
        oid: ObjectIdentifier,
    ) -> HarvestedPoint:
        """Read one point; name failures propagate, absent optional properties are blank."""
        name_values = await self._reader.read_property(address, oid, PropertyIdentifier.OBJECT_NAME)
        name = _first_text(name_values)

        description = _first_text(
            await self._read_optional(address, oid, PropertyIdentifier.DESCRIPTION)
        )

        unit = ""
        if point_type.is_analog:
            match await self._read_optional(address, oid, PropertyIdentifier.UNITS):
                case [EnumeratedValue(code=code), *_]:
                    unit = unit_symbol(code)
                case _:
                    unit = unit_symbol(None)

        state_texts: tuple[str, ...] = ()
        if point_type.is_multistate:
            values = await self._read_optional(address, oid, PropertyIdentifier.STATE_TEXT)
            state_texts = tuple(
                sanitize_text(v.text) for v in values if isinstance(v, TextValue)
            )

        return HarvestedPoint(
            point_type=point_type,
            instance=oid.instance_number,
            name=sanitize_text(name),
            description=sanitize_text(description),
            unit=unit,
            state_texts=state_texts,
        )

    async def _read_optional(
        self,
        address: BIPAddress,
        oid: ObjectIdentifier,
        property_id: PropertyIdentifier,
    ) -> list[PropertyValue]:
        """Read a property the object may not have; an Error-PDU reads as empty."""
        try:
            return await self._reader.read_property(address, oid, property_id)
        except BACnetError as exc:
            logger.debug("%s of %s unavailable: %s", property_id.name, oid, exc)
            return []


def _first_text(values: list[PropertyValue]) -> str | None:
    return value_as_text(values[0]) if values else None
