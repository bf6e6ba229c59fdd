"""
Booking Orchestrator
====================

``create_booking`` runs these steps, each of which can stop the request:

1. **Validate** customer id, date and time label (``ValidationError``).
2. **Normalise** the label to minutes since midnight.  A label outside
   the slot table that is not a 24-hour time is rejected.
3. **Lock** the calendar date so no other request can check and insert
   for that day at the same time.  A request waits up to
   ``booking_lock_wait_seconds`` for the holder, then gives up with the
   retryable ``BookingBusyError``.
4. **Self-conflict check** against the day's non-cancelled bookings,
   grouped by technician.  The slot is saturated when no eligible
   technician is free for the requested interval.  Saturated ->
   ``SlotUnavailableError`` with suggested alternatives.
5. **Assign** the first free eligible technician, or nobody.
6. **Persist** with status ``scheduled`` and commit while still holding
   the lock.  The partial unique index turns a lost race into
   ``SlotUnavailableError``.
7. **Notify** the customer, best effort.

``reschedule_booking`` repeats steps 1-6 for the new date and time,
ignoring the appointment being moved, and resets it to ``scheduled``.

Saturation policy
-----------------
Technician A holding 9:00 and 10:00 does not block a 9:30 request while
technician B is free: B gets it.  With only A on the roster the same
request is refused rather than stored unassigned.  An appointment is
created without a technician only when nobody on the roster is eligible
and the day is otherwise free at that time.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Any, AsyncIterator, Iterable, NoReturn, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.config import settings
from booking_engine.domain.assignment import (
    eligible_technicians,
    find_available_technician,
    slot_is_saturated,
)
from booking_engine.domain.conflicts import Interval
from booking_engine.domain.entities import (
    BookingResult,
    Requester,
    Technician,
    ensure_transition,
)
from booking_engine.domain.enums import (
    RESCHEDULABLE_STATUSES,
    AppointmentStatus,
    NotificationKind,
)
from booking_engine.domain.exceptions import (
    BookingBusyError,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    SlotUnavailableError,
    ValidationError,
)
from booking_engine.domain.timeslots import (
    MINUTES_PER_DAY,
    SLOT_LABELS,
    Known,
    format_label,
    minutes_to_time,
    parse_time_label,
    time_to_minutes,
)
from booking_engine.infrastructure.locks import LockProvider
from booking_engine.infrastructure.models import AppointmentModel
from booking_engine.infrastructure.notifications import NotificationSender
from booking_engine.infrastructure.repositories import (
    AppointmentRepository,
    CustomerRepository,
    TechnicianRepository,
)

logger = logging.getLogger(__name__)

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 8 * 60
DEFAULT_SERVICE_TYPE = "Annual Test"


def _interval(appointment: AppointmentModel) -> Interval:
    return Interval.from_booking(
        time_to_minutes(appointment.scheduled_time_start),
        appointment.estimated_duration,
    )


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD") from None


def _group_by_technician(
    bookings: Iterable[AppointmentModel],
) -> tuple[dict[int, list[Interval]], list[Interval]]:
    """Split one day's bookings into per-technician intervals and unassigned ones."""
    by_technician: dict[int, list[Interval]] = defaultdict(list)
    unassigned: list[Interval] = []
    for appointment in bookings:
        if appointment.technician_id is None:
            unassigned.append(_interval(appointment))
        else:
            by_technician[appointment.technician_id].append(_interval(appointment))
    return by_technician, unassigned


def free_slot_labels(
    bookings: Iterable[AppointmentModel],
    roster: Sequence[Technician],
    duration: int,
) -> list[str]:
    """Slot labels on one day that can still take a booking of *duration*."""
    by_technician, unassigned = _group_by_technician(bookings)
    return [
        label
        for label, minutes in SLOT_LABELS.items()
        if minutes + duration <= MINUTES_PER_DAY
        and not slot_is_saturated(roster, by_technician, unassigned, minutes, duration)
    ]


class BookingService:
    def __init__(
        self,
        session: AsyncSession,
        locks: LockProvider,
        notifier: NotificationSender,
        today: Optional[date] = None,
    ):
        self.session = session
        self.locks = locks
        self.notifier = notifier
        self.today = today or date.today()
        self.appointments = AppointmentRepository(session)
        self.customers = CustomerRepository(session)
        self.technicians = TechnicianRepository(session)

    # ── Create ────────────────────────────────────────────────────────

    async def create_booking(
        self,
        *,
        customer_id: Optional[int],
        scheduled_date: Any,
        time_label: Optional[str],
        service_type: Optional[str] = None,
        device_id: Optional[str] = None,
        notes: Optional[str] = None,
        duration_minutes: Optional[int] = None,
    ) -> BookingResult:
        if not customer_id or not scheduled_date or not time_label:
            raise ValidationError("Customer ID, date, and time are required")

        day, start, duration = self._validate_slot(
            scheduled_date, time_label, duration_minutes
        )

        customer = await self.customers.get_by_id(customer_id)
        if customer is None:
            raise NotFound("Customer not found")

        async with self._date_lock(day):
            appointment, technician = await self._reserve(
                customer_id=customer_id,
                day=day,
                start=start,
                duration=duration,
                service_type=service_type or DEFAULT_SERVICE_TYPE,
                device_id=device_id,
                notes=notes,
            )

        logger.info(
            "Booked appointment %s on %s at %s (technician=%s)",
            appointment.id,
            day,
            format_label(start),
            technician.id if technician else None,
        )

        await self._notify(
            customer_id,
            NotificationKind.APPOINTMENT_CONFIRMATION,
            {
                "appointment_id": appointment.id,
                "date": day.isoformat(),
                "time": format_label(start),
                "service_type": appointment.service_type,
                "technician_name": technician.name if technician else None,
            },
        )

        if technician:
            message = f"Appointment booked successfully with technician {technician.name}"
        else:
            message = "Appointment booked successfully (no available technician assigned)"
        return BookingResult(appointment=appointment, technician=technician, message=message)

    def _validate_slot(
        self, scheduled_date: Any, time_label: str, duration_minutes: Optional[int]
    ) -> tuple[date, int, int]:
        day = _parse_date(scheduled_date)
        if day < self.today:
            raise ValidationError("Cannot book appointments in the past")

        parsed = parse_time_label(time_label)
        if not isinstance(parsed, Known):
            raise ValidationError(
                f'Invalid time "{parsed.text}". Use a slot like "9:00 AM" or "14:30"'
            )
        start = parsed.minutes

        duration = duration_minutes or settings.default_duration_minutes
        if not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
            raise ValidationError("Duration must be between 15 minutes and 8 hours")
        if start + duration > MINUTES_PER_DAY:
            raise ValidationError("Appointment must finish on the same day")
        return day, start, duration

    @asynccontextmanager
    async def _date_lock(self, day: date) -> AsyncIterator[None]:
        lock = self.locks.lock(
            f"booking:{day.isoformat()}", settings.booking_lock_ttl_seconds
        )
        if not await lock.acquire(timeout=settings.booking_lock_wait_seconds):
            logger.warning("Timed out waiting for the booking lock on %s", day)
            raise BookingBusyError(
                "Another booking for this date is in progress. Please try again."
            )
        try:
            yield
        finally:
            await lock.release()

    async def _reserve(
        self,
        *,
        customer_id: int,
        day: date,
        start: int,
        duration: int,
        service_type: str,
        device_id: Optional[str],
        notes: Optional[str],
    ) -> tuple[AppointmentModel, Optional[Technician]]:
        """Steps 4-6.  Must run while the date lock is held."""
        technician = await self._pick_technician(day, start, duration)

        try:
            appointment = await self.appointments.create_appointment(
                customer_id=customer_id,
                technician_id=technician.id if technician else None,
                scheduled_date=day,
                scheduled_time_start=minutes_to_time(start),
                estimated_duration=duration,
                service_type=service_type,
                device_id=device_id,
                special_instructions=notes,
            )
            # Commit before the lock is released so the next request sees this row
            await self.session.commit()
        except IntegrityError:
            await self._lost_race(day, start)

        return appointment, technician

    async def _pick_technician(
        self,
        day: date,
        start: int,
        duration: int,
        moving: Optional[AppointmentModel] = None,
    ) -> Optional[Technician]:
        """
        Saturation check and match for one interval.  *moving* is left out
        of the day's bookings and its technician is tried first.
        """
        existing = await self.appointments.get_active_for_date(day)
        roster = await self._roster()
        if moving is not None:
            existing = [a for a in existing if a.id != moving.id]
            roster = sorted(roster, key=lambda t: t.id != moving.technician_id)

        by_technician, unassigned = _group_by_technician(existing)
        if slot_is_saturated(roster, by_technician, unassigned, start, duration):
            raise SlotUnavailableError(
                "Time slot is no longer available",
                alternatives=await self.suggest_alternatives(
                    day, duration, exclude_id=moving.id if moving else None
                ),
            )
        return find_available_technician(roster, by_technician, start, duration)

    async def _lost_race(self, day: date, start: int) -> NoReturn:
        await self.session.rollback()
        logger.warning("Slot %s %s taken by a concurrent booking", day, format_label(start))
        raise SlotUnavailableError(
            "This time slot was just booked by another customer. "
            "Please select a different time."
        ) from None

    async def _roster(self) -> list[Technician]:
        return eligible_technicians(
            await self.technicians.list_team(), settings.assignable_roles
        )

    # ── Availability ──────────────────────────────────────────────────

    async def available_slots(self, day: Any, duration: Optional[int] = None) -> list[str]:
        day = _parse_date(day)
        duration = duration or settings.default_duration_minutes
        roster = await self._roster()
        bookings = await self.appointments.get_active_for_date(day)
        return free_slot_labels(bookings, roster, duration)

    async def suggest_alternatives(
        self,
        day: date,
        duration: int,
        limit: int = 3,
        exclude_id: Optional[int] = None,
    ) -> list[dict[str, str]]:
        """
        Up to *limit* free slots: the requested day first, then the
        following ``alternative_search_days`` days.  Past days are skipped.
        """
        last_day = day + timedelta(days=settings.alternative_search_days)
        roster = await self._roster()
        by_day: dict[date, list[AppointmentModel]] = defaultdict(list)
        for appointment in await self.appointments.get_active_for_range(day, last_day):
            if appointment.id != exclude_id:
                by_day[appointment.scheduled_date].append(appointment)

        alternatives: list[dict[str, str]] = []
        current = max(day, self.today)
        while current <= last_day and len(alternatives) < limit:
            for label in free_slot_labels(by_day[current], roster, duration):
                alternatives.append({"date": current.isoformat(), "time": label})
                if len(alternatives) >= limit:
                    break
            current += timedelta(days=1)
        return alternatives

    # ── Reschedule ────────────────────────────────────────────────────

    async def reschedule_booking(
        self,
        appointment_id: int,
        requester: Requester,
        *,
        scheduled_date: Any,
        time_label: Optional[str],
        duration_minutes: Optional[int] = None,
    ) -> BookingResult:
        """
        Move a scheduled or confirmed appointment to a new date and time.

        The new slot goes through the same lock, saturation check and
        technician match as a fresh booking.  Customers cannot move a
        visit on its own day.
        """
        if not scheduled_date or not time_label:
            raise ValidationError("Date and time are required")

        appointment = await self._get_for(appointment_id, requester)
        status = AppointmentStatus(appointment.status)
        if status not in RESCHEDULABLE_STATUSES:
            raise InvalidStateTransition(
                f"Cannot reschedule an appointment that is {status.value}"
            )
        if requester.is_customer and appointment.scheduled_date <= self.today:
            raise ValidationError(
                "Appointments can only be rescheduled at least one day in advance"
            )

        day, start, duration = self._validate_slot(
            scheduled_date, time_label, duration_minutes or appointment.estimated_duration
        )
        previous = {
            "previous_date": appointment.scheduled_date.isoformat(),
            "previous_time": format_label(time_to_minutes(appointment.scheduled_time_start)),
        }

        async with self._date_lock(day):
            technician = await self._pick_technician(day, start, duration, moving=appointment)
            appointment.technician_id = technician.id if technician else None
            appointment.scheduled_date = day
            appointment.scheduled_time_start = minutes_to_time(start)
            appointment.estimated_duration = duration
            appointment.status = AppointmentStatus.SCHEDULED
            # ETA cache belongs to the old visit
            appointment.travel_distance_km = None
            appointment.estimated_arrival_at = None
            try:
                await self.session.commit()
            except IntegrityError:
                await self._lost_race(day, start)

        logger.info(
            "Rescheduled appointment %s to %s at %s (technician=%s)",
            appointment.id,
            day,
            format_label(start),
            technician.id if technician else None,
        )
        await self._notify(
            appointment.customer_id,
            NotificationKind.APPOINTMENT_RESCHEDULED,
            {
                "appointment_id": appointment.id,
                **previous,
                "date": day.isoformat(),
                "time": format_label(start),
                "technician_name": technician.name if technician else None,
            },
        )
        return BookingResult(
            appointment=appointment,
            technician=technician,
            message="Appointment rescheduled successfully",
        )

    # ── Cancel ────────────────────────────────────────────────────────

    async def cancel_booking(
        self, appointment_id: int, requester: Requester, reason: Optional[str] = None
    ) -> AppointmentModel:
        appointment = await self._get_for(appointment_id, requester)

        ensure_transition(AppointmentStatus(appointment.status), AppointmentStatus.CANCELLED)
        appointment.status = AppointmentStatus.CANCELLED
        appointment.cancellation_reason = reason
        await self.session.flush()

        logger.info("Cancelled appointment %s", appointment_id)
        await self._notify(
            appointment.customer_id,
            NotificationKind.APPOINTMENT_CANCELLED,
            {
                "appointment_id": appointment.id,
                "date": appointment.scheduled_date.isoformat(),
                "time": format_label(time_to_minutes(appointment.scheduled_time_start)),
                "reason": reason,
            },
        )
        return appointment

    async def _get_for(self, appointment_id: int, requester: Requester) -> AppointmentModel:
        """Load an appointment the requester may change: team, or its own customer."""
        appointment = await self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")
        if not requester.is_team and not (
            requester.is_customer and requester.id == appointment.customer_id
        ):
            raise Forbidden("Access denied")
        return appointment

    # ── Side effects ──────────────────────────────────────────────────

    async def _notify(
        self, customer_id: int, kind: NotificationKind, payload: dict[str, Any]
    ) -> None:
        try:
            await self.notifier.send(customer_id, kind, payload)
        except Exception:
            logger.exception(
                "Failed to send %s notification to customer %s", kind.value, customer_id
            )
