"""
Live Location & ETA Service
===========================

Technicians' phones poll ``report_position`` with their latest fix; the
engine keeps exactly one live row per technician.  Customers and staff
poll ``get_live_view`` for an appointment and receive the position plus
a straight-line ETA.

Stale-report guard
------------------
Reports can arrive out of order (mobile retries, offline batches).  A
report timestamped earlier than the stored ``last_updated_at`` is
dropped so a delayed fix never moves the technician backwards.

ETA
---
    estimated_travel_minutes = round(distance_km / average_speed_kmh x 60)

with ``average_speed_kmh`` = 50 by default.  ``get_live_view`` writes
the result back onto the appointment row as a cache for list screens.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.config import settings
from booking_engine.domain.distance import (
    distance_meters,
    estimate_travel_minutes,
    round_km,
)
from booking_engine.domain.entities import (
    LiveView,
    Location,
    NotAvailable,
    PositionAck,
    PositionReport,
    Requester,
    SyncSummary,
    TechnicianLocation,
    as_utc,
)
from booking_engine.domain.enums import TRACKABLE_STATUSES, AppointmentStatus
from booking_engine.domain.exceptions import Forbidden, NotFound
from booking_engine.infrastructure.models import (
    AppointmentModel,
    TechnicianCurrentLocationModel,
)
from booking_engine.infrastructure.repositories import (
    AppointmentRepository,
    CustomerRepository,
    TechnicianLocationRepository,
    TechnicianRepository,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_entity(row: TechnicianCurrentLocationModel) -> TechnicianLocation:
    return TechnicianLocation(
        technician_id=row.technician_id,
        location=Location(row.latitude, row.longitude),
        last_updated_at=row.last_updated_at,
        is_active=row.is_active,
    )


class TrackingService:
    def __init__(
        self,
        session: AsyncSession,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session = session
        self.clock = clock
        self.appointments = AppointmentRepository(session)
        self.customers = CustomerRepository(session)
        self.technicians = TechnicianRepository(session)
        self.locations = TechnicianLocationRepository(session)

    # ── Position reports ──────────────────────────────────────────────

    async def report_position(
        self, technician_id: int, report: PositionReport
    ) -> PositionAck:
        await self._require_technician(technician_id)
        return await self._apply(technician_id, report)

    async def sync_positions(
        self, technician_id: int, reports: Iterable[PositionReport]
    ) -> SyncSummary:
        """Apply a batch buffered offline by the mobile client, oldest first."""
        await self._require_technician(technician_id)
        now = self.clock()
        summary = SyncSummary(technician_id=technician_id)
        for report in sorted(
            reports,
            key=lambda r: min(as_utc(r.recorded_at), now) if r.recorded_at else now,
        ):
            ack = await self._apply(technician_id, report)
            if ack.accepted:
                summary.accepted += 1
            else:
                summary.discarded += 1
            summary.last_updated_at = ack.last_updated_at
        return summary

    async def stop_tracking(self, technician_id: int) -> None:
        row = await self.locations.get(technician_id)
        if row is None:
            raise NotFound("No location on record for this technician")
        row.is_active = False
        await self.session.flush()
        logger.info("Technician %s stopped sharing location", technician_id)

    async def _apply(self, technician_id: int, report: PositionReport) -> PositionAck:
        now = self.clock()
        recorded_at = now
        if report.recorded_at is not None:
            recorded_at = min(as_utc(report.recorded_at), now)
            if recorded_at < as_utc(report.recorded_at):
                logger.warning(
                    "Clamped future position timestamp for technician %s (%s)",
                    technician_id,
                    report.recorded_at,
                )
        row = await self.locations.get(technician_id)
        if row is not None and not _to_entity(row).accepts(recorded_at):
            logger.debug(
                "Discarding stale position for technician %s (%s < %s)",
                technician_id,
                recorded_at,
                row.last_updated_at,
            )
            return PositionAck(technician_id, False, row.last_updated_at)

        row = await self.locations.upsert(technician_id, report, recorded_at)
        return PositionAck(technician_id, True, row.last_updated_at)

    async def _require_technician(self, technician_id: int) -> None:
        if await self.technicians.get_by_id(technician_id) is None:
            raise NotFound("Technician not found")

    # ── Live view ─────────────────────────────────────────────────────

    async def get_live_view(
        self, appointment_id: int, requester: Requester
    ) -> Union[LiveView, NotAvailable]:
        appointment = await self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")

        self._authorize_view(appointment, requester)

        status = AppointmentStatus(appointment.status)
        if status not in TRACKABLE_STATUSES:
            return NotAvailable(
                appointment_id=appointment.id,
                reason="status",
                message="Location tracking not available for this appointment status",
                status=status,
            )

        now = self.clock()
        row = None
        if appointment.technician_id is not None:
            row = await self.locations.get(appointment.technician_id)
        if (
            row is None
            or not row.is_active
            or _to_entity(row).is_stale(now, settings.location_stale_after_seconds)
        ):
            return NotAvailable(
                appointment_id=appointment.id,
                reason="location",
                message="Technician location not available",
                status=status,
            )

        distance_m: Optional[float] = None
        minutes: Optional[int] = None
        customer = await self.customers.get_by_id(appointment.customer_id)
        if (
            customer is not None
            and customer.latitude is not None
            and customer.longitude is not None
        ):
            distance_m = distance_meters(
                customer.latitude, customer.longitude, row.latitude, row.longitude
            )
            minutes = estimate_travel_minutes(distance_m, settings.average_speed_kmh)

        arrival = now + timedelta(minutes=minutes) if minutes is not None else None
        self._refresh_cache(appointment, row, distance_m, arrival)
        await self.session.flush()

        technician = await self.technicians.get_by_id(appointment.technician_id)
        return LiveView(
            appointment_id=appointment.id,
            status=status,
            customer_can_track=appointment.customer_can_track,
            scheduled_date=appointment.scheduled_date,
            scheduled_time_start=appointment.scheduled_time_start,
            latitude=row.latitude,
            longitude=row.longitude,
            last_updated_at=row.last_updated_at,
            accuracy=row.accuracy,
            address=row.address,
            technician_name=technician.name if technician else None,
            technician_phone=technician.phone if technician else None,
            distance_meters=distance_m,
            distance_km=round_km(distance_m) if distance_m is not None else None,
            estimated_travel_minutes=minutes,
            estimated_arrival_at=arrival,
            battery_level=row.battery_level,
            speed=row.speed,
            heading=row.heading,
        )

    @staticmethod
    def _authorize_view(appointment: AppointmentModel, requester: Requester) -> None:
        if requester.is_team:
            return
        if requester.is_customer and requester.id == appointment.customer_id:
            if not appointment.customer_can_track:
                raise Forbidden("Location tracking not enabled for this appointment")
            return
        raise Forbidden("Access denied")

    @staticmethod
    def _refresh_cache(
        appointment: AppointmentModel,
        row: TechnicianCurrentLocationModel,
        distance_m: Optional[float],
        arrival: Optional[datetime],
    ) -> None:
        appointment.technician_latitude = row.latitude
        appointment.technician_longitude = row.longitude
        appointment.technician_last_location_at = row.last_updated_at
        appointment.travel_distance_km = (
            round_km(distance_m) if distance_m is not None else None
        )
        appointment.estimated_arrival_at = arrival

    # ── Consent ───────────────────────────────────────────────────────

    async def set_tracking_consent(
        self, appointment_id: int, requester: Requester, enabled: bool
    ) -> AppointmentModel:
        allowed = {role.lower() for role in settings.tracking_consent_roles}
        if not requester.is_team or (requester.role or "").lower() not in allowed:
            raise Forbidden("Access denied")

        appointment = await self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFound("Appointment not found")

        appointment.customer_can_track = enabled
        await self.session.flush()
        logger.info(
            "Location tracking %s for appointment %s",
            "enabled" if enabled else "disabled",
            appointment_id,
        )
        return appointment
