"""
Slot Conflict Checker
=====================

Bookings are compared as half-open minute intervals on a single day::

    [start, start + duration)

Two intervals conflict iff ``s1 < e2 and s2 < e1``.  Touching intervals
(one ends exactly when the other starts) do not conflict.

Callers pass bookings already filtered to the same calendar date, the
same resource (one technician, or the whole day when no technician
filter applies) and non-cancelled status.  This module is pure and
does not protect against concurrent writers on its own; the booking
service wraps it in a lock and the table carries a unique index.

Complexity: O(n) per check, n = bookings on that day for the resource.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

DEFAULT_DURATION_MINUTES = 60


@dataclass(frozen=True)
class Interval:
    start_minutes: int
    duration_minutes: int = DEFAULT_DURATION_MINUTES

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    @classmethod
    def from_booking(
        cls, start_minutes: int, duration_minutes: Optional[int]
    ) -> "Interval":
        """Stored bookings without an explicit duration use the policy default."""
        return cls(start_minutes, duration_minutes or DEFAULT_DURATION_MINUTES)


def intervals_overlap(a: Interval, b: Interval) -> bool:
    return a.start_minutes < b.end_minutes and b.start_minutes < a.end_minutes


def count_overlapping(
    existing: Iterable[Interval],
    candidate_start: int,
    candidate_duration: int = DEFAULT_DURATION_MINUTES,
) -> int:
    candidate = Interval(candidate_start, candidate_duration)
    return sum(1 for booking in existing if intervals_overlap(booking, candidate))


def has_conflict(
    existing: Iterable[Interval],
    candidate_start: int,
    candidate_duration: int = DEFAULT_DURATION_MINUTES,
) -> bool:
    candidate = Interval(candidate_start, candidate_duration)
    return any(intervals_overlap(booking, candidate) for booking in existing)
