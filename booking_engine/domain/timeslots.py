"""
Time-of-day normalisation.

Customers pick from display labels such as ``"2:00 PM"``.  Labels are
resolved against a closed table; 24-hour strings (``"14:00"`` or
``"14:00:00"``) are also understood.  Anything else comes back as
``Raw`` so the caller has to decide what an unknown label means instead
of trusting the string.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import time
from typing import Union

MINUTES_PER_DAY = 24 * 60

_FIRST_SLOT = 7 * 60  # 7:00 AM
_LAST_SLOT = 21 * 60 + 30  # 9:30 PM
_SLOT_STEP = 30

_TWENTY_FOUR_HOUR = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)(?::([0-5]\d))?$")


@dataclass(frozen=True)
class Known:
    minutes: int


@dataclass(frozen=True)
class Raw:
    text: str


ParsedTime = Union[Known, Raw]


def format_label(minutes: int) -> str:
    """``840`` -> ``"2:00 PM"``."""
    hour, minute = divmod(minutes, 60)
    suffix = "AM" if hour < 12 else "PM"
    display_hour = hour % 12 or 12
    return f"{display_hour}:{minute:02d} {suffix}"


def _build_slot_labels() -> dict[str, int]:
    return {
        format_label(m): m for m in range(_FIRST_SLOT, _LAST_SLOT + 1, _SLOT_STEP)
    }


# Supported slot labels -> minutes since midnight
SLOT_LABELS: dict[str, int] = _build_slot_labels()
_SLOT_LOOKUP = {label.upper(): m for label, m in SLOT_LABELS.items()}


def parse_time_label(text: str) -> ParsedTime:
    cleaned = " ".join(text.split()).upper()
    if cleaned in _SLOT_LOOKUP:
        return Known(_SLOT_LOOKUP[cleaned])

    match = _TWENTY_FOUR_HOUR.match(cleaned)
    if match:
        return Known(int(match.group(1)) * 60 + int(match.group(2)))

    return Raw(text)


def time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def minutes_to_time(minutes: int) -> time:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f"{minutes} is outside a single day")
    return time(hour=minutes // 60, minute=minutes % 60)


def format_minutes(minutes: int) -> str:
    """``840`` -> ``"14:00"``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"
