"""Catalog store boundary.

The pipeline reads a device's catalog rows and applies the mutations
reconciliation produced, through the narrow :class:`CatalogStore`
protocol.  Mutations for one device are applied all-or-nothing.
"""

from __future__ import annotations

import csv
import dataclasses
import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from bac_inventory.errors import CatalogError
from bac_inventory.network.address import BACNET_PORT
from bac_inventory.reconcile.statements import (
    CATALOG_TABLE,
    COLUMN_NAMES,
    STATUS_COLUMNS,
    Mutation,
    MutationKind,
)
from bac_inventory.scan.session import TargetDevice
from bac_inventory.types.points import (
    CatalogRow,
    HarvestedPoint,
    PointType,
    canonical_synthetic_id,
    parse_synthetic_id,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

_ATTRIBUTES = {column: attr for attr, column in COLUMN_NAMES.items()}

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {CATALOG_TABLE} (
    DEVICE_SEQ TEXT NOT NULL,
    SYSTEM_PT_ID TEXT NOT NULL,
    OBJ_NAME TEXT NOT NULL DEFAULT '',
    OBJ_DESC TEXT NOT NULL DEFAULT '',
    OBJ_UNIT TEXT NOT NULL DEFAULT '',
    OBJ_TYPE INTEGER NOT NULL,
    OBJ_DECIMAL INTEGER NOT NULL DEFAULT 0,
    {", ".join(f"{c} TEXT NOT NULL DEFAULT ''" for c in STATUS_COLUMNS)},
    SERVER_ID INTEGER NOT NULL DEFAULT 0,
    SYSTEM_ID INTEGER NOT NULL DEFAULT 0,
    ORDER_ID INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (DEVICE_SEQ, SYSTEM_PT_ID)
)
"""

_SELECT_COLUMNS = (
    "DEVICE_SEQ",
    "SYSTEM_PT_ID",
    "OBJ_NAME",
    "OBJ_DESC",
    "OBJ_UNIT",
    "OBJ_TYPE",
    "OBJ_DECIMAL",
    *STATUS_COLUMNS,
    "SERVER_ID",
    "SYSTEM_ID",
    "ORDER_ID",
)


class CatalogStore(Protocol):
    """Read/apply access to the persisted point catalog."""

    def rows_for(self, device_key: str) -> list[CatalogRow]:
        """Return the catalog rows of one device."""
        ...

    def apply(self, device_key: str, mutations: Sequence[Mutation]) -> None:
        """Apply one device's mutations atomically.

        :raises CatalogError: If any mutation fails; none are applied.
        """
        ...


def _point_type(type_code: object, synthetic_id: str) -> PointType:
    """Catalog type code, falling back to the synthetic ID prefix."""
    try:
        return PointType(int(str(type_code)))
    except ValueError:
        return PointType[synthetic_id.partition("-")[0]]


def _int(value: object, default: int = 0) -> int:
    if isinstance(value, int):
        return int(value)
    text = str(value).strip()
    return int(text) if text else default


def _state_texts(point_type: PointType, texts: Iterable[str]) -> tuple[str, ...]:
    return tuple(texts) if point_type.is_multistate else ()


class MemoryCatalogStore:
    """In-memory catalog, used for dry runs and tests."""

    def __init__(self, rows: Iterable[CatalogRow] = ()) -> None:
        self._rows: dict[str, dict[str, CatalogRow]] = {}
        for row in rows:
            self._rows.setdefault(row.device_key, {}).setdefault(row.synthetic_id, row)

    def rows_for(self, device_key: str) -> list[CatalogRow]:
        return list(self._rows.get(device_key, {}).values())

    def apply(self, device_key: str, mutations: Sequence[Mutation]) -> None:
        staged = dict(self._rows.get(device_key, {}))
        for mutation in mutations:
            if mutation.device_key != device_key:
                msg = f"Mutation for device {mutation.device_key} applied to {device_key}"
                raise CatalogError(msg)
            values = dict(mutation.columns)
            sid = mutation.synthetic_id
            match mutation.kind:
                case MutationKind.INSERT:
                    if sid not in staged:
                        staged[sid] = _row_from_columns(values)
                case MutationKind.UPDATE:
                    if sid in staged:
                        staged[sid] = _updated(staged[sid], values)
                case MutationKind.DELETE:
                    staged.pop(sid, None)
        self._rows[device_key] = staged


def _row_from_columns(values: dict[str, object]) -> CatalogRow:
    """Build a row from catalog columns; the point ID is canonicalized.

    :raises ValueError: If ``SYSTEM_PT_ID`` is malformed.
    """
    stored = str(values["SYSTEM_PT_ID"])
    sid = canonical_synthetic_id(stored)
    point_type = _point_type(values["OBJ_TYPE"], sid)
    return CatalogRow(
        device_key=str(values["DEVICE_SEQ"]),
        synthetic_id=sid,
        point_type=point_type,
        name=str(values.get("OBJ_NAME", "")),
        description=str(values.get("OBJ_DESC", "")),
        unit=str(values.get("OBJ_UNIT", "")),
        decimal=bool(_int(values.get("OBJ_DECIMAL", 0))),
        state_texts=_state_texts(point_type, (str(values.get(c, "")) for c in STATUS_COLUMNS)),
        server_id=_int(values.get("SERVER_ID", 0)),
        system_id=_int(values.get("SYSTEM_ID", 0)),
        order_id=_int(values.get("ORDER_ID", 0)),
        stored_id=stored if stored != sid else "",
    )


def _updated(row: CatalogRow, values: dict[str, object]) -> CatalogRow:
    changes: dict[str, object] = {}
    for column, value in values.items():
        attr = _ATTRIBUTES.get(column)
        if attr is None:
            msg = f"Column {column} is not updatable"
            raise CatalogError(msg)
        if attr == "type_code":
            changes["point_type"] = PointType(int(str(value)))
        elif attr == "decimal":
            changes["decimal"] = bool(value)
        else:
            changes[attr] = value
    return dataclasses.replace(row, **changes)


class SqliteCatalogStore:
    """Catalog in a SQLite database, one transaction per device."""

    def __init__(self, path: str | Path) -> None:
        """Open (and create if needed) the catalog database at *path*."""
        try:
            self._conn = sqlite3.connect(str(path), isolation_level=None)
            self._conn.execute(_SCHEMA)
        except sqlite3.Error as exc:
            msg = f"Cannot open catalog {path}: {exc}"
            raise CatalogError(msg) from exc

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> SqliteCatalogStore:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def rows_for(self, device_key: str) -> list[CatalogRow]:
        sql = (
            f"SELECT {', '.join(_SELECT_COLUMNS)} FROM {CATALOG_TABLE} "
            "WHERE DEVICE_SEQ = ? ORDER BY ORDER_ID, rowid"
        )
        try:
            cursor = self._conn.execute(sql, (device_key,))
            return [_row_from_columns(dict(zip(_SELECT_COLUMNS, r, strict=True))) for r in cursor]
        except sqlite3.Error as exc:
            msg = f"Cannot read catalog rows of device {device_key}: {exc}"
            raise CatalogError(msg) from exc

    def apply(self, device_key: str, mutations: Sequence[Mutation]) -> None:
        if not mutations:
            return
        try:
            self._conn.execute("BEGIN TRANSACTION")
            for mutation in mutations:
                if mutation.device_key != device_key:
                    msg = f"Mutation for device {mutation.device_key} applied to {device_key}"
                    raise CatalogError(msg)
                self._conn.execute(*mutation.to_parameterized())
            self._conn.execute("COMMIT")
        except (sqlite3.Error, CatalogError) as exc:
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            logger.warning("Rolled back %d mutation(s) on device %s: %s", len(mutations), device_key, exc)
            if isinstance(exc, CatalogError):
                raise
            msg = f"Cannot apply mutations to device {device_key}: {exc}"
            raise CatalogError(msg) from exc
        logger.info("Applied %d mutation(s) to device %s", len(mutations), device_key)


def read_snapshot_csv(path: str | Path, device_key: str | None = None) -> list[CatalogRow]:
    """Load a snapshot CSV as catalog rows.

    Accepts the snapshot layout this package writes and the older layout
    without ``OBJ_UNIT``.  Rows with a malformed ``SYSTEM_PT_ID`` are
    skipped with a warning.

    :param path: CSV file, UTF-8 with or without BOM.
    :param device_key: Keep only rows of this device.
    :returns: The rows, in file order.
    :raises CatalogError: If the file cannot be read or lacks a required column.
    """
    required = {"SYSTEM_PT_ID", "OBJ_NAME", "OBJ_TYPE", "DEVICE_SEQ"}
    rows: list[CatalogRow] = []
    try:
        with Path(path).open(encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            missing = required - set(reader.fieldnames or ())
            if missing:
                msg = f"{path}: missing column(s) {', '.join(sorted(missing))}"
                raise CatalogError(msg)
            for line_no, record in enumerate(reader, start=2):
                if device_key is not None and record["DEVICE_SEQ"] != device_key:
                    continue
                try:
                    rows.append(_row_from_columns({k: v or "" for k, v in record.items() if k}))
                except ValueError as exc:
                    logger.warning("%s line %d skipped: %s", path, line_no, exc)
    except OSError as exc:
        msg = f"Cannot read snapshot {path}: {exc}"
        raise CatalogError(msg) from exc
    return rows


def points_from_rows(rows: Iterable[CatalogRow]) -> list[HarvestedPoint]:
    """Turn snapshot rows back into harvested points."""
    return [
        HarvestedPoint(
            point_type=row.point_type,
            instance=parse_synthetic_id(row.synthetic_id).instance_number,
            name=row.name,
            description=row.description,
            unit=row.unit,
            state_texts=row.state_texts,
        )
        for row in rows
    ]


def read_device_list(path: str | Path) -> list[TargetDevice]:
    """Load the facility device list, one device to harvest per row.

    Columns are ``DEVICE_SEQ`` and ``DEVICE_IP`` (required), ``DEVICE_PORT``
    (blank means 47808), ``DEVICE_INSTANCE`` (blank means resolve by IP)
    and ``DEVICE_CINFO`` (a free-text label).  Rows without an IP or with
    an unreadable number are skipped with a warning.

    :raises CatalogError: If the file cannot be read or lacks a required column.
    """
    devices: list[TargetDevice] = []
    try:
        with Path(path).open(encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            missing = {"DEVICE_SEQ", "DEVICE_IP"} - set(reader.fieldnames or ())
            if missing:
                msg = f"{path}: missing column(s) {', '.join(sorted(missing))}"
                raise CatalogError(msg)
            for line_no, record in enumerate(reader, start=2):
                key = (record["DEVICE_SEQ"] or "").strip()
                ip = (record["DEVICE_IP"] or "").strip()
                if not key or not ip:
                    logger.warning("%s line %d skipped: no device key or IP", path, line_no)
                    continue
                try:
                    instance = (record.get("DEVICE_INSTANCE") or "").strip()
                    devices.append(
                        TargetDevice(
                            device_key=key,
                            ip=ip,
                            device_id=int(instance) if instance else None,
                            port=_int(record.get("DEVICE_PORT") or "", BACNET_PORT),
                            name=(record.get("DEVICE_CINFO") or "").strip(),
                        )
                    )
                except ValueError as exc:
                    logger.warning("%s line %d skipped: %s", path, line_no, exc)
    except OSError as exc:
        msg = f"Cannot read device list {path}: {exc}"
        raise CatalogError(msg) from exc
    logger.info("Loaded %d device(s) from %s", len(devices), path)
    return devices
