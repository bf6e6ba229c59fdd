"""
Technician Availability Matcher
===============================

First-free-wins over a caller-supplied candidate order.

1. **Eligibility** -- the caller narrows the roster to active
   technicians holding an assignable role (``eligible_technicians``),
   sorted by id so repeated runs over the same data assign the same
   person.
2. **Capacity** -- a slot is full when no candidate is left free for the
   requested interval (``slot_is_saturated``).  Each technician counts
   once however many of their bookings overlap the request.
3. **Matching** -- walk the candidates in order and return the first one
   whose bookings for the day leave the requested interval free.

``None`` is a normal outcome: it tells the booking service there is no
one to assign.

Complexity: O(T x B) where T = candidates and B = bookings per technician.
"""

from __future__ import annotations

from itertools import chain
from typing import Iterable, Mapping, Optional, Sequence

from .conflicts import (
    DEFAULT_DURATION_MINUTES,
    Interval,
    count_overlapping,
    has_conflict,
)
from .entities import Technician


def eligible_technicians(
    technicians: Iterable[Technician], allowed_roles: Iterable[str]
) -> list[Technician]:
    roles = {role.lower() for role in allowed_roles}
    return sorted(
        (t for t in technicians if t.is_active and t.role.lower() in roles),
        key=lambda t: t.id,
    )


def free_technicians(
    candidates: Sequence[Technician],
    bookings_by_technician: Mapping[int, Sequence[Interval]],
    candidate_start: int,
    duration: int = DEFAULT_DURATION_MINUTES,
) -> list[Technician]:
    return [
        technician
        for technician in candidates
        if not has_conflict(
            bookings_by_technician.get(technician.id, ()), candidate_start, duration
        )
    ]


def find_available_technician(
    candidates: Sequence[Technician],
    bookings_by_technician: Mapping[int, Sequence[Interval]],
    candidate_start: int,
    duration: int = DEFAULT_DURATION_MINUTES,
) -> Optional[Technician]:
    for technician in candidates:
        existing = bookings_by_technician.get(technician.id, ())
        if not has_conflict(existing, candidate_start, duration):
            return technician
    return None


def slot_is_saturated(
    candidates: Sequence[Technician],
    bookings_by_technician: Mapping[int, Sequence[Interval]],
    unassigned: Sequence[Interval],
    candidate_start: int,
    duration: int = DEFAULT_DURATION_MINUTES,
) -> bool:
    """
    True when the requested interval cannot take another booking.

    With a roster, every overlapping unassigned booking still needs one of
    the free technicians, so the slot is full once they have used them
    all.  With no roster the day is a single resource and any overlapping
    booking fills it.
    """
    if not candidates:
        everything = chain(unassigned, *bookings_by_technician.values())
        return has_conflict(everything, candidate_start, duration)

    free = free_technicians(candidates, bookings_by_technician, candidate_start, duration)
    return len(free) <= count_overlapping(unassigned, candidate_start, duration)
