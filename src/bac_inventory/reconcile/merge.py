"""Daily merge of per-device artifacts, and the artifact naming scheme."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

DAILY_MARKER = "DAILY"

_DEVICE_ARTIFACT = re.compile(
    r"^(?P<kind>[a-z]+)_(?P<device_key>.+)_(?P<day>\d{8})_(?P<time>\d{6})(?:_\d+)?\.(?P<ext>\w+)$"
)
_DAILY_ARTIFACT = re.compile(rf"^(?P<kind>[a-z]+)_{DAILY_MARKER}_(?P<day>\d{{8}})(?:_\d+)?\.(?P<ext>\w+)$")


def artifact_name(kind: str, device_key: str, stamp: datetime, ext: str) -> str:
    """File name of one device's artifact: ``{kind}_{device_key}_{YYYYMMDD_HHMMSS}.{ext}``."""
    return f"{kind}_{device_key}_{stamp:%Y%m%d_%H%M%S}.{ext}"


def daily_name(kind: str, day: date, ext: str) -> str:
    """File name of a daily summary: ``{kind}_DAILY_{YYYYMMDD}.{ext}``."""
    return f"{kind}_{DAILY_MARKER}_{day:%Y%m%d}.{ext}"


def is_daily_summary(name: str) -> bool:
    """Whether *name* is a daily summary rather than a per-device artifact."""
    return _DAILY_ARTIFACT.match(name) is not None


def artifact_day(name: str) -> date | None:
    """Run day embedded in a per-device artifact name, or ``None``."""
    m = _DEVICE_ARTIFACT.match(name)
    if m is None:
        return None
    try:
        return datetime.strptime(m["day"], "%Y%m%d").date()
    except ValueError:
        return None


def merge_daily(artifacts: Iterable[tuple[str, str]], day: date) -> str:
    """Concatenate the same-day per-device artifacts into one summary.

    Pure: takes ``(file name, content)`` pairs and returns the merged
    content.  Artifacts from other days, unrecognised names and existing
    daily summaries are skipped, so merging twice never includes a
    summary in itself.  CSV contents keep only the first header line;
    other contents are joined with a ``-- source:`` line naming each file.

    :param artifacts: ``(file name, content)`` pairs of one artifact kind.
    :param day: Day to merge.
    :returns: Merged content (empty when nothing matched).
    :raises ValueError: If the artifacts mix file extensions.
    """
    parts: list[str] = []
    header: str | None = None
    extension: str | None = None

    for name, content in artifacts:
        if is_daily_summary(name):
            logger.debug("Skipping daily summary %s", name)
            continue
        if artifact_day(name) != day:
            continue
        ext = name.rsplit(".", 1)[-1].lower()
        if extension is None:
            extension = ext
        elif ext != extension:
            msg = f"Cannot merge .{ext} artifact {name} into .{extension} summary"
            raise ValueError(msg)

        if ext == "csv":
            lines = content.lstrip("\ufeff").splitlines(keepends=True)
            if not lines:
                continue
            if header is None:
                header = lines[0]
                parts.append(_terminated(header))
            elif lines[0].rstrip("\r\n") != header.rstrip("\r\n"):
                logger.warning("Header of %s differs from the summary header", name)
            parts.extend(_terminated(line) for line in lines[1:])
        else:
            parts.append(f"-- source: {name}\n")
            parts.append(_terminated(content))

    return "".join(parts)


def _terminated(text: str) -> str:
    return text if text.endswith("\n") else text + "\n"
