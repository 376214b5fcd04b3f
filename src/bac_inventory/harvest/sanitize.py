"""Text cleanup for strings read from field devices."""

from __future__ import annotations

import re

REPLACEMENT_CHARACTER = "\ufffd"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f]")


def sanitize_text(value: str | None) -> str:
    """Clean one text field for the catalog.

    A field holding the decode-failure replacement character is cleared
    entirely; it cannot be partially salvaged.  Otherwise control
    characters 0x00-0x1F are removed and surrounding whitespace trimmed.

    >>> sanitize_text("\\tSupply Temp\\x00 ")
    'Supply Temp'
    """
    if value is None or REPLACEMENT_CHARACTER in value:
        return ""
    return _CONTROL_CHARS.sub("", value).strip()
