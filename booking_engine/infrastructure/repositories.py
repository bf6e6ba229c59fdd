"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    AppointmentModel,
    CustomerModel,
    TeamUserModel,
    TechnicianCurrentLocationModel,
)
from booking_engine.domain.entities import PositionReport, Technician
from booking_engine.domain.enums import AppointmentStatus


class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_appointment(
        self,
        *,
        customer_id: int,
        scheduled_date: date,
        scheduled_time_start: time,
        estimated_duration: int,
        technician_id: int | None = None,
        device_id: str | None = None,
        service_type: str = "Annual Test",
        special_instructions: str | None = None,
    ) -> AppointmentModel:
        appointment = AppointmentModel(
            customer_id=customer_id,
            technician_id=technician_id,
            device_id=device_id,
            scheduled_date=scheduled_date,
            scheduled_time_start=scheduled_time_start,
            estimated_duration=estimated_duration,
            service_type=service_type,
            special_instructions=special_instructions,
            status=AppointmentStatus.SCHEDULED,
            customer_can_track=False,
        )
        self.session.add(appointment)
        await self.session.flush()
        return appointment

    async def get_by_id(self, appointment_id: int) -> Optional[AppointmentModel]:
        return await self.session.get(AppointmentModel, appointment_id)

    async def get_active_for_date(self, day: date) -> list[AppointmentModel]:
        """Every non-cancelled booking on *day*, any technician."""
        result = await self.session.execute(
            select(AppointmentModel)
            .where(
                AppointmentModel.scheduled_date == day,
                AppointmentModel.status != AppointmentStatus.CANCELLED,
            )
            .order_by(AppointmentModel.scheduled_time_start, AppointmentModel.id)
        )
        return list(result.scalars().all())

    async def get_active_for_range(
        self, start: date, end: date
    ) -> list[AppointmentModel]:
        result = await self.session.execute(
            select(AppointmentModel).where(
                AppointmentModel.scheduled_date >= start,
                AppointmentModel.scheduled_date <= end,
                AppointmentModel.status != AppointmentStatus.CANCELLED,
            )
        )
        return list(result.scalars().all())


class CustomerRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, customer_id: int) -> Optional[CustomerModel]:
        return await self.session.get(CustomerModel, customer_id)


class TechnicianRepository:
    """Read-only view over the team directory."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def to_entity(row: TeamUserModel) -> Technician:
        return Technician(
            id=row.id,
            name=row.name,
            phone=row.phone,
            role=row.role,
            is_active=row.is_active,
        )

    async def get_by_id(self, technician_id: int) -> Optional[TeamUserModel]:
        return await self.session.get(TeamUserModel, technician_id)

    async def list_team(self) -> list[Technician]:
        result = await self.session.execute(
            select(TeamUserModel).order_by(TeamUserModel.id)
        )
        return [self.to_entity(row) for row in result.scalars().all()]


class TechnicianLocationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self, technician_id: int
    ) -> Optional[TechnicianCurrentLocationModel]:
        return await self.session.get(TechnicianCurrentLocationModel, technician_id)

    async def upsert(
        self, technician_id: int, report: PositionReport, recorded_at: datetime
    ) -> TechnicianCurrentLocationModel:
        """Overwrite the single live row, creating it on first report."""
        row = await self.get(technician_id)
        if row is None:
            row = TechnicianCurrentLocationModel(technician_id=technician_id)
            self.session.add(row)

        row.latitude = report.latitude
        row.longitude = report.longitude
        row.accuracy = report.accuracy
        row.heading = report.heading
        row.speed = report.speed
        row.battery_level = report.battery_level
        row.address = report.address
        row.last_updated_at = recorded_at
        row.is_active = True
        await self.session.flush()
        return row
