"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``customers``                    -- read-only customer directory
* ``team_users``                   -- read-only technician / staff directory
* ``appointments``                 -- bookings, plus denormalised tracking cache
* ``technician_current_location``  -- one live position row per technician

Indexes
-------
* **Partial unique** on ``appointments (technician_id, scheduled_date,
  scheduled_time_start) WHERE status <> 'cancelled'`` -- storage-level
  guard against double-booking a technician.
* **B-Tree** on ``scheduled_date``, ``status``, ``customer_id``,
  ``technician_id`` for the per-day conflict queries.
"""

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
    text,
)

from .database import Base
from booking_engine.domain.enums import AppointmentStatus


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(40), nullable=True)
    address = Column(String(500), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TeamUserModel(Base):
    __tablename__ = "team_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=True)
    phone = Column(String(40), nullable=True)
    role = Column(String(40), default="technician", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (Index("idx_team_users_active_role", "is_active", "role"),)


class AppointmentModel(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    technician_id = Column(Integer, ForeignKey("team_users.id"), nullable=True)
    device_id = Column(String(64), nullable=True)

    scheduled_date = Column(Date, nullable=False)
    scheduled_time_start = Column(Time, nullable=False)
    estimated_duration = Column(Integer, default=60, nullable=False)

    status = Column(
        Enum(
            AppointmentStatus,
            name="appointmentstatus",
            values_callable=_enum_values,
        ),
        default=AppointmentStatus.SCHEDULED,
        nullable=False,
    )
    service_type = Column(String(100), default="Annual Test", nullable=False)
    special_instructions = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    customer_can_track = Column(Boolean, default=False, nullable=False)

    # Written only by the live-location view
    technician_latitude = Column(Float, nullable=True)
    technician_longitude = Column(Float, nullable=True)
    technician_last_location_at = Column(DateTime(timezone=True), nullable=True)
    travel_distance_km = Column(Float, nullable=True)
    estimated_arrival_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index(
            "uq_appointments_technician_slot",
            "technician_id",
            "scheduled_date",
            "scheduled_time_start",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("idx_appointments_date_status", "scheduled_date", "status"),
        Index("idx_appointments_customer", "customer_id"),
        Index("idx_appointments_technician", "technician_id"),
    )


class TechnicianCurrentLocationModel(Base):
    __tablename__ = "technician_current_location"

    technician_id = Column(Integer, ForeignKey("team_users.id"), primary_key=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    speed = Column(Float, nullable=True)
    address = Column(String(500), nullable=True)
    battery_level = Column(Integer, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_updated_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("idx_tech_location_active", "is_active"),)
