"""Per-device evidence files and daily summaries.

Every run writes new files named after the device key and a run
timestamp; an existing file is never overwritten.  A write failure is
logged and reported as ``None`` so the rest of a batch carries on.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from bac_inventory.reconcile.merge import artifact_name, daily_name, merge_daily
from bac_inventory.reconcile.statements import STATUS_COLUMNS, render_script
from bac_inventory.types.points import STATE_TEXT_SLOTS

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from bac_inventory.reconcile.engine import ReconciliationResult
    from bac_inventory.types.points import HarvestedPoint

logger = logging.getLogger(__name__)

SNAPSHOT_COLUMNS: tuple[str, ...] = (
    "SYSTEM_PT_ID",
    "OBJ_NAME",
    "OBJ_DESC",
    "OBJ_UNIT",
    "OBJ_TYPE",
    "DEVICE_SEQ",
    "DEVICE_ID",
    "OBJ_DECIMAL",
    *STATUS_COLUMNS,
    "DATETIME",
)

HISTORY_COLUMNS: tuple[str, ...] = (
    "DATETIME",
    "DEVICE_SEQ",
    "SYSTEM_PT_ID",
    "ACTION",
    "COLUMN",
    "OLD_VALUE",
    "NEW_VALUE",
)

SNAPSHOT = "snapshot"
DELTA = "delta"
HISTORY = "history"

CSV_ENCODING = "utf-8-sig"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True, slots=True)
class WrittenArtifacts:
    """Paths written for one device; ``None`` where nothing was written."""

    snapshot: Path | None = None
    delta: Path | None = None
    history: Path | None = None
    script: Path | None = None


def _csv_text(columns: Iterable[str], rows: Iterable[Iterable[object]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(columns)
    writer.writerows(rows)
    return buf.getvalue()


def _value_text(value: object) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def snapshot_rows(
    device_key: str,
    points: Iterable[HarvestedPoint],
    stamp: datetime,
    device_id: int | None = None,
) -> list[list[str]]:
    """Rows of a snapshot CSV, one per point, in :data:`SNAPSHOT_COLUMNS` order."""
    rows = []
    for point in points:
        texts = point.state_texts or ("",) * STATE_TEXT_SLOTS
        rows.append(
            [
                point.synthetic_id,
                point.name,
                point.description,
                point.unit,
                str(point.type_code),
                device_key,
                "" if device_id is None else str(device_id),
                _value_text(point.decimal),
                *texts,
                stamp.strftime(TIMESTAMP_FORMAT),
            ]
        )
    return rows


def history_rows(result: ReconciliationResult, stamp: datetime) -> list[list[str]]:
    """Rows of a history CSV: every addition, change and removal of *result*."""
    when = stamp.strftime(TIMESTAMP_FORMAT)
    key = result.device_key
    rows = [[when, key, a.synthetic_id, "INSERT", "", "", a.point.name] for a in result.additions]
    rows.extend(
        [when, key, c.synthetic_id, "UPDATE", c.column, _value_text(c.old_value), _value_text(c.new_value)]
        for c in result.changes
    )
    rows.extend([when, key, r.synthetic_id, "DELETE", "", r.name, ""] for r in result.removals)
    return rows


class ArtifactWriter:
    """Writes snapshot, delta and history artifacts into one directory."""

    def __init__(self, directory: str | Path, *, clock: Callable[[], datetime] | None = None) -> None:
        """Initialise the writer.

        :param directory: Output directory, created on first write.
        :param clock: Returns the run timestamp; defaults to local time.
        """
        self._directory = Path(directory)
        self._clock = clock or datetime.now

    @property
    def directory(self) -> Path:
        return self._directory

    def _reserve(self, name: str) -> Path:
        """Return a path for *name* that does not exist yet."""
        path = self._directory / name
        stem, suffix = path.stem, path.suffix
        n = 1
        while path.exists():
            path = self._directory / f"{stem}_{n}{suffix}"
            n += 1
        return path

    def _write(self, name: str, text: str, encoding: str) -> Path | None:
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            path = self._reserve(name)
            with path.open("x", encoding=encoding, newline="") as f:
                f.write(text)
        except OSError as exc:
            logger.warning("Could not write artifact %s: %s", name, exc)
            return None
        logger.debug("Wrote %s", path)
        return path

    def write_snapshot(
        self,
        device_key: str,
        points: Iterable[HarvestedPoint],
        *,
        device_id: int | None = None,
        stamp: datetime | None = None,
    ) -> Path | None:
        """Write every harvested point of a device as a snapshot CSV."""
        stamp = stamp or self._clock()
        text = _csv_text(SNAPSHOT_COLUMNS, snapshot_rows(device_key, points, stamp, device_id))
        return self._write(artifact_name(SNAPSHOT, device_key, stamp, "csv"), text, CSV_ENCODING)

    def write_delta(
        self,
        device_key: str,
        result: ReconciliationResult,
        *,
        device_id: int | None = None,
        stamp: datetime | None = None,
    ) -> Path | None:
        """Write the additions of *result* in snapshot format.

        Nothing is written when there are no additions.
        """
        if not result.additions:
            return None
        stamp = stamp or self._clock()
        points = [a.point for a in result.additions]
        text = _csv_text(SNAPSHOT_COLUMNS, snapshot_rows(device_key, points, stamp, device_id))
        return self._write(artifact_name(DELTA, device_key, stamp, "csv"), text, CSV_ENCODING)

    def write_history(
        self,
        device_key: str,
        result: ReconciliationResult,
        *,
        stamp: datetime | None = None,
    ) -> tuple[Path | None, Path | None]:
        """Write the change history CSV and its paired mutation script.

        Nothing is written when the catalog needs no change.

        :returns: ``(history csv path, script path)``.
        """
        if not result.has_mutations:
            return None, None
        stamp = stamp or self._clock()
        csv_path = self._write(
            artifact_name(HISTORY, device_key, stamp, "csv"),
            _csv_text(HISTORY_COLUMNS, history_rows(result, stamp)),
            CSV_ENCODING,
        )
        sql_path = self._write(
            artifact_name(HISTORY, device_key, stamp, "sql"),
            render_script(result, generated_at=stamp),
            "utf-8",
        )
        return csv_path, sql_path

    def write_all(
        self,
        device_key: str,
        points: Iterable[HarvestedPoint],
        result: ReconciliationResult,
        *,
        device_id: int | None = None,
    ) -> WrittenArtifacts:
        """Write the snapshot, delta and history artifacts of one device run."""
        stamp = self._clock()
        history, script = self.write_history(device_key, result, stamp=stamp)
        return WrittenArtifacts(
            snapshot=self.write_snapshot(device_key, points, device_id=device_id, stamp=stamp),
            delta=self.write_delta(device_key, result, device_id=device_id, stamp=stamp),
            history=history,
            script=script,
        )

    def merge_day(self, day: date) -> list[Path]:
        """Merge the day's history CSVs and scripts into daily summaries.

        :returns: Paths of the summaries written.
        """
        written = []
        for ext, encoding in (("csv", CSV_ENCODING), ("sql", "utf-8")):
            try:
                sources = sorted(self._directory.glob(f"{HISTORY}_*.{ext}"))
                artifacts = [(p.name, p.read_text(encoding=encoding)) for p in sources]
            except OSError as exc:
                logger.warning("Could not read %s artifacts in %s: %s", ext, self._directory, exc)
                continue
            merged = merge_daily(artifacts, day)
            if not merged:
                continue
            path = self._write(daily_name(HISTORY, day, ext), merged, encoding)
            if path is not None:
                logger.info("Merged daily %s summary %s", ext, path.name)
                written.append(path)
        return written
