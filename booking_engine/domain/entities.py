"""
Domain entities and value objects.

Patterns used
-------------
- **State Pattern** on appointment status: ``ensure_transition`` enforces
  the lifecycle table in ``enums.APPOINTMENT_TRANSITIONS``.
- ``TechnicianLocation.accepts`` encapsulates the stale-report guard:
  a position older than the stored one never overwrites it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

from .enums import APPOINTMENT_TRANSITIONS, AppointmentStatus, RequesterKind
from .exceptions import InvalidStateTransition


def ensure_transition(
    current: AppointmentStatus, new_status: AppointmentStatus
) -> None:
    """Raise unless *current* -> *new_status* is a legal lifecycle step."""
    allowed = APPOINTMENT_TRANSITIONS.get(current, set())
    if new_status not in allowed:
        raise InvalidStateTransition(
            f"Cannot transition from {current.value} to {new_status.value}"
        )


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (SQLite round-trips) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Location:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class Requester:
    """Caller identity as resolved by the upstream auth layer."""

    kind: RequesterKind = RequesterKind.ANONYMOUS
    id: Optional[int] = None
    role: Optional[str] = None

    @property
    def is_customer(self) -> bool:
        return self.kind == RequesterKind.CUSTOMER and self.id is not None

    @property
    def is_team(self) -> bool:
        return self.kind == RequesterKind.TEAM


@dataclass(frozen=True)
class PositionReport:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    battery_level: Optional[int] = None
    address: Optional[str] = None
    recorded_at: Optional[datetime] = None


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Technician:
    id: int
    name: str = ""
    phone: Optional[str] = None
    role: str = "technician"
    is_active: bool = True


@dataclass
class TechnicianLocation:
    technician_id: int
    location: Location
    last_updated_at: datetime
    is_active: bool = True

    def accepts(self, recorded_at: datetime) -> bool:
        """A report is applied unless it is older than what we hold."""
        return as_utc(recorded_at) >= as_utc(self.last_updated_at)

    def is_stale(self, now: datetime, max_age_seconds: int) -> bool:
        return (as_utc(now) - as_utc(self.last_updated_at)).total_seconds() > max_age_seconds


# ── Results ───────────────────────────────────────────────────────────


@dataclass
class BookingResult:
    appointment: object  # ORM row; kept opaque to the domain layer
    technician: Optional[Technician]
    message: str


@dataclass
class PositionAck:
    technician_id: int
    accepted: bool
    last_updated_at: datetime


@dataclass
class SyncSummary:
    technician_id: int
    accepted: int = 0
    discarded: int = 0
    last_updated_at: Optional[datetime] = None


@dataclass
class LiveView:
    appointment_id: int
    status: AppointmentStatus
    customer_can_track: bool
    scheduled_date: date
    scheduled_time_start: time
    latitude: float
    longitude: float
    last_updated_at: datetime
    accuracy: Optional[float] = None
    address: Optional[str] = None
    technician_name: Optional[str] = None
    technician_phone: Optional[str] = None
    distance_meters: Optional[float] = None
    distance_km: Optional[float] = None
    estimated_travel_minutes: Optional[int] = None
    estimated_arrival_at: Optional[datetime] = None
    battery_level: Optional[int] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


@dataclass
class NotAvailable:
    """Defined empty result: the request was valid but there is nothing to show."""

    appointment_id: int
    reason: str  # "status" | "location"
    message: str
    status: Optional[AppointmentStatus] = None
