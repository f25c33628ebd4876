"""Duration strings ("30min", "1h", "2d") to milliseconds.

No I/O: this module only transforms data.
"""

from __future__ import annotations

import re
from datetime import timedelta

from cadence.core.errors import FormatError

_MINUTE_MS = 60 * 1000
_HOUR_MS = 60 * _MINUTE_MS
_DAY_MS = 24 * _HOUR_MS

_UNIT_MS = {
    "min": _MINUTE_MS,
    "h": _HOUR_MS,
    "d": _DAY_MS,
    "day": _DAY_MS,
    "days": _DAY_MS,
}

_OFFSET_RE = re.compile(r"^\+?(\d+)(min|h|days|day|d)$", re.IGNORECASE)


def parse_offset(offset_text: str) -> int:
    """Parse ``<integer><unit>`` (optional leading ``+``) into milliseconds.

    Units: min, h, d, day, days (case-insensitive).

    Raises FormatError on any other shape.
    """
    if not isinstance(offset_text, str):
        raise FormatError(f"Offset must be a string, got {type(offset_text).__name__}")

    match = _OFFSET_RE.match(offset_text.strip())
    if match is None:
        raise FormatError(f"Invalid time offset: {offset_text!r}")

    value, unit = match.groups()
    return int(value) * _UNIT_MS[unit.lower()]


def parse_offset_delta(offset_text: str) -> timedelta:
    """Same as parse_offset, as a timedelta."""
    return timedelta(milliseconds=parse_offset(offset_text))
