"""Set reconciliation of harvested points against the catalog.

Every synthetic point ID from either side lands in exactly one bucket:
addition (harvested only), change (both sides, some tracked column
differs), removal (catalog only) or unchanged.  A result that breaks the
partition raises :class:`ReconciliationInvariantError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from bac_inventory.errors import ReconciliationInvariantError
from bac_inventory.types.points import CatalogIdentifiers, CatalogRow, HarvestedPoint

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

TRACKED_COLUMNS: tuple[str, ...] = ("name", "description", "unit", "decimal", "type_code")
"""Compared columns, in the order changes are reported."""

ColumnValue = str | int | bool


@dataclass(frozen=True, slots=True)
class FieldChange:
    """One differing tracked column of a point present on both sides."""

    synthetic_id: str
    column: str
    old_value: ColumnValue
    new_value: ColumnValue
    catalog_id: str = ""
    """Stored ID of the catalog row, when not in canonical form."""


@dataclass(frozen=True, slots=True)
class PointAddition:
    """A harvested point with no catalog row, plus the identifiers it inherits."""

    point: HarvestedPoint
    identifiers: CatalogIdentifiers

    @property
    def synthetic_id(self) -> str:
        return self.point.synthetic_id


def _unique(ids: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(ids))


@dataclass(frozen=True, slots=True)
class ReconciliationResult:
    """Classification of one device's points."""

    device_key: str
    additions: list[PointAddition] = field(default_factory=list)
    changes: list[FieldChange] = field(default_factory=list)
    removals: list[CatalogRow] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        buckets = {
            "additions": [a.synthetic_id for a in self.additions],
            "changes": self.changed_ids,
            "removals": [r.synthetic_id for r in self.removals],
            "unchanged": list(self.unchanged),
        }
        owner: dict[str, str] = {}
        for bucket, ids in buckets.items():
            if len(set(ids)) != len(ids):
                msg = f"Device {self.device_key}: duplicate synthetic ID in {bucket}"
                raise ReconciliationInvariantError(msg)
            for sid in ids:
                if sid in owner:
                    msg = (
                        f"Device {self.device_key}: {sid} classified as both "
                        f"{owner[sid]} and {bucket}"
                    )
                    raise ReconciliationInvariantError(msg)
                owner[sid] = bucket

    @property
    def changed_ids(self) -> list[str]:
        """Synthetic IDs with at least one change, in first-change order."""
        return _unique(c.synthetic_id for c in self.changes)

    @property
    def all_ids(self) -> set[str]:
        """Every synthetic ID the result classifies."""
        return (
            {a.synthetic_id for a in self.additions}
            | set(self.changed_ids)
            | {r.synthetic_id for r in self.removals}
            | set(self.unchanged)
        )

    @property
    def has_mutations(self) -> bool:
        """Whether the catalog needs any change for this device."""
        return bool(self.additions or self.changes or self.removals)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-friendly dict."""
        return {
            "device_key": self.device_key,
            "additions": [a.point.to_dict() for a in self.additions],
            "changes": [
                {
                    "synthetic_id": c.synthetic_id,
                    "column": c.column,
                    "old_value": c.old_value,
                    "new_value": c.new_value,
                }
                for c in self.changes
            ],
            "removals": [r.synthetic_id for r in self.removals],
            "unchanged": len(self.unchanged),
        }


def diff_point(row: CatalogRow, point: HarvestedPoint) -> list[FieldChange]:
    """Compare the tracked columns of a catalog row and a harvested point."""
    changes = []
    for column in TRACKED_COLUMNS:
        old = getattr(row, column)
        new = getattr(point, column)
        if old != new:
            changes.append(FieldChange(point.synthetic_id, column, old, new, row.stored_id))
    return changes


def reconcile(
    catalog_rows: Iterable[CatalogRow],
    harvested: Iterable[HarvestedPoint],
    *,
    device_key: str,
    defaults: CatalogIdentifiers | None = None,
) -> ReconciliationResult:
    """Classify harvested points against the catalog rows of one device.

    Additions inherit the identifiers of the device's first catalog row,
    or *defaults* when the device has none.  Rows for other devices and
    repeated synthetic IDs on either side are ignored with a warning.

    Args:
        catalog_rows: Catalog rows of the device.
        harvested: Points just harvested from the device.
        device_key: Catalog key of the device.
        defaults: Identifiers for a device with no catalog rows.

    Returns:
        The :class:`ReconciliationResult`.

    Raises:
        ReconciliationInvariantError: If the classification does not
            cover both inputs exactly once.
    """
    lookup: dict[str, CatalogRow] = {}
    for row in catalog_rows:
        if row.device_key != device_key:
            logger.warning(
                "Ignoring catalog row %s of device %s while reconciling %s",
                row.synthetic_id,
                row.device_key,
                device_key,
            )
            continue
        if row.synthetic_id in lookup:
            logger.warning("Duplicate catalog row %s on device %s", row.synthetic_id, device_key)
            continue
        lookup[row.synthetic_id] = row

    catalog_ids = set(lookup)
    identifiers = (
        next(iter(lookup.values())).identifiers
        if lookup
        else (defaults or CatalogIdentifiers())
    )

    additions: list[PointAddition] = []
    changes: list[FieldChange] = []
    unchanged: list[str] = []
    seen: set[str] = set()

    for point in harvested:
        sid = point.synthetic_id
        if sid in seen:
            logger.warning("Duplicate harvested point %s on device %s", sid, device_key)
            continue
        seen.add(sid)

        row = lookup.pop(sid, None)
        if row is None:
            logger.info("Device %s: new point %s (%s)", device_key, sid, point.name)
            additions.append(PointAddition(point, identifiers))
            continue

        diffs = diff_point(row, point)
        if not diffs:
            logger.debug("Device %s: %s unchanged", device_key, sid)
            unchanged.append(sid)
            continue
        for change in diffs:
            logger.info(
                "Device %s: %s %s %r -> %r",
                device_key,
                sid,
                change.column,
                change.old_value,
                change.new_value,
            )
        changes.extend(diffs)

    removals = list(lookup.values())
    for row in removals:
        logger.info("Device %s: point %s no longer on device", device_key, row.synthetic_id)

    result = ReconciliationResult(
        device_key=device_key,
        additions=additions,
        changes=changes,
        removals=removals,
        unchanged=unchanged,
    )
    if result.all_ids != catalog_ids | seen:
        msg = f"Device {device_key}: classification does not cover catalog and harvest"
        raise ReconciliationInvariantError(msg)
    return result
