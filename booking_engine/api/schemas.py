"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from booking_engine.domain.enums import AppointmentStatus


# ── Requests ──────────────────────────────────────────────────────────


class BookingCreateRequest(BaseModel):
    # Required fields are checked by the booking service so the error
    # message matches what the portal shows.
    customer_id: Optional[int] = None
    date: Optional[str] = Field(None, description="Service date, YYYY-MM-DD.")
    time: Optional[str] = Field(
        None, description='Slot label such as "2:00 PM", or 24-hour "14:00".'
    )
    service_type: Optional[str] = Field(None, max_length=100)
    device_id: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = Field(None, max_length=2000)
    duration_minutes: Optional[int] = Field(None, ge=15, le=480)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class RescheduleRequest(BaseModel):
    date: Optional[str] = Field(None, description="New service date, YYYY-MM-DD.")
    time: Optional[str] = Field(None, description="New slot label or 24-hour time.")
    duration_minutes: Optional[int] = Field(
        None, ge=15, le=480, description="Defaults to the current duration."
    )


class PositionReportRequest(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, le=360)
    speed: Optional[float] = Field(None, ge=0)
    battery_level: Optional[int] = Field(None, ge=0, le=100)
    address: Optional[str] = Field(None, max_length=500)
    recorded_at: Optional[datetime] = Field(
        None, description="Device timestamp of the fix; defaults to receipt time."
    )


class PositionSyncRequest(BaseModel):
    locations: list[PositionReportRequest] = Field(..., min_length=1, max_length=500)


class TrackingConsentRequest(BaseModel):
    customer_can_track: bool


# ── Responses ─────────────────────────────────────────────────────────


class AppointmentResponse(BaseModel):
    id: int
    customer_id: int
    technician_id: Optional[int] = None
    device_id: Optional[str] = None
    scheduled_date: date
    scheduled_time_start: time
    estimated_duration: int
    status: AppointmentStatus
    service_type: str
    special_instructions: Optional[str] = None
    cancellation_reason: Optional[str] = None
    customer_can_track: bool
    technician_latitude: Optional[float] = None
    technician_longitude: Optional[float] = None
    technician_last_location_at: Optional[datetime] = None
    travel_distance_km: Optional[float] = None
    estimated_arrival_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TechnicianSummary(BaseModel):
    id: int
    name: str


class BookingResponse(BaseModel):
    success: bool = True
    appointment: AppointmentResponse
    technician: Optional[TechnicianSummary] = None
    message: str


class AvailabilityResponse(BaseModel):
    scheduled_date: date
    duration_minutes: int
    slots: list[str]


class PositionAckResponse(BaseModel):
    technician_id: int
    accepted: bool
    last_updated_at: datetime


class SyncSummaryResponse(BaseModel):
    technician_id: int
    accepted: int
    discarded: int
    last_updated_at: Optional[datetime] = None


class LiveLocation(BaseModel):
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    address: Optional[str] = None
    last_updated: datetime
    technician_name: Optional[str] = None
    technician_phone: Optional[str] = None
    distance_meters: Optional[float] = None
    distance_km: Optional[float] = None
    estimated_travel_minutes: Optional[int] = None
    estimated_arrival_at: Optional[datetime] = None
    battery_level: Optional[int] = None
    speed: Optional[float] = None
    heading: Optional[float] = None


class LiveAppointmentSummary(BaseModel):
    id: int
    status: AppointmentStatus
    customer_can_track: bool
    scheduled_date: date
    scheduled_time_start: time


class LiveViewResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    status: Optional[AppointmentStatus] = None
    location: Optional[LiveLocation] = None
    appointment: Optional[LiveAppointmentSummary] = None


class TrackingConsentResponse(BaseModel):
    success: bool = True
    customer_can_track: bool
    message: str


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
