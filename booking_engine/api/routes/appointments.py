"""
Appointment endpoints
=====================

POST  /api/v1/appointments                               -- book a slot
GET   /api/v1/appointments/availability                  -- free slot labels for a date
GET   /api/v1/appointments/{appointment_id}              -- appointment details
PATCH /api/v1/appointments/{appointment_id}/cancel       -- cancel
PATCH /api/v1/appointments/{appointment_id}/reschedule   -- move to another slot
GET   /api/v1/appointments/{appointment_id}/technician-location -- live view
PUT   /api/v1/appointments/{appointment_id}/technician-location -- tracking consent
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from booking_engine.api.dependencies import (
    get_booking_service,
    get_requester,
    get_tracking_service,
)
from booking_engine.api.middleware import limiter
from booking_engine.api.schemas import (
    AppointmentResponse,
    AvailabilityResponse,
    BookingCreateRequest,
    BookingResponse,
    CancelRequest,
    RescheduleRequest,
    LiveAppointmentSummary,
    LiveLocation,
    LiveViewResponse,
    TechnicianSummary,
    TrackingConsentRequest,
    TrackingConsentResponse,
)
from booking_engine.config import settings
from booking_engine.domain.entities import BookingResult, NotAvailable, Requester
from booking_engine.domain.exceptions import Forbidden, NotFound
from booking_engine.services.booking import BookingService
from booking_engine.services.tracking import TrackingService

router = APIRouter(prefix="/appointments", tags=["appointments"])


def _booking_response(result: BookingResult) -> BookingResponse:
    technician = result.technician
    return BookingResponse(
        appointment=AppointmentResponse.model_validate(result.appointment),
        technician=(
            TechnicianSummary(id=technician.id, name=technician.name)
            if technician
            else None
        ),
        message=result.message,
    )


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book an appointment",
    responses={
        404: {"description": "Customer not found."},
        409: {"description": "Slot unavailable; alternatives are suggested."},
        422: {"description": "Missing or malformed booking fields."},
        503: {"description": "Another booking for the date is in progress."},
    },
)
@limiter.limit(settings.booking_rate_limit)
async def create_appointment(
    request: Request,
    body: BookingCreateRequest,
    service: BookingService = Depends(get_booking_service),
):
    result = await service.create_booking(
        customer_id=body.customer_id,
        scheduled_date=body.date,
        time_label=body.time,
        service_type=body.service_type,
        device_id=body.device_id,
        notes=body.notes,
        duration_minutes=body.duration_minutes,
    )
    return _booking_response(result)


@router.get(
    "/availability",
    response_model=AvailabilityResponse,
    summary="List bookable slot labels for a date",
)
@limiter.limit(settings.read_rate_limit)
async def get_availability(
    request: Request,
    day: date = Query(..., alias="date"),
    duration: Optional[int] = Query(None, ge=15, le=480),
    service: BookingService = Depends(get_booking_service),
):
    duration = duration or settings.default_duration_minutes
    slots = await service.available_slots(day, duration)
    return AvailabilityResponse(scheduled_date=day, duration_minutes=duration, slots=slots)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Get appointment details",
)
@limiter.limit(settings.read_rate_limit)
async def get_appointment(
    request: Request,
    appointment_id: int,
    requester: Requester = Depends(get_requester),
    service: BookingService = Depends(get_booking_service),
):
    appointment = await service.appointments.get_by_id(appointment_id)
    if appointment is None:
        raise NotFound("Appointment not found")
    if not requester.is_team and not (
        requester.is_customer and requester.id == appointment.customer_id
    ):
        raise Forbidden("Access denied")
    return appointment


@router.patch(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    summary="Cancel an appointment",
    description=(
        "Cancels a non-terminal appointment and frees its slot. "
        "Customers may cancel only their own appointments."
    ),
)
@limiter.limit(settings.write_rate_limit)
async def cancel_appointment(
    request: Request,
    appointment_id: int,
    body: Optional[CancelRequest] = None,
    requester: Requester = Depends(get_requester),
    service: BookingService = Depends(get_booking_service),
):
    reason = body.reason if body else None
    return await service.cancel_booking(appointment_id, requester, reason)


@router.patch(
    "/{appointment_id}/reschedule",
    response_model=BookingResponse,
    summary="Move an appointment to another slot",
    description=(
        "Re-runs the availability check and technician match for the new "
        "slot and resets the status to scheduled. Customers may move only "
        "their own appointments, and not on the day of the visit."
    ),
    responses={
        409: {"description": "Slot unavailable, or appointment already finished."},
        422: {"description": "Missing or malformed date or time."},
        503: {"description": "Another booking for the date is in progress."},
    },
)
@limiter.limit(settings.write_rate_limit)
async def reschedule_appointment(
    request: Request,
    appointment_id: int,
    body: RescheduleRequest,
    requester: Requester = Depends(get_requester),
    service: BookingService = Depends(get_booking_service),
):
    result = await service.reschedule_booking(
        appointment_id,
        requester,
        scheduled_date=body.date,
        time_label=body.time,
        duration_minutes=body.duration_minutes,
    )
    return _booking_response(result)


@router.get(
    "/{appointment_id}/technician-location",
    response_model=LiveViewResponse,
    summary="Live technician position and ETA",
    responses={
        200: {"description": "Location, or success=false when not available."},
        403: {"description": "Tracking not enabled or access denied."},
    },
)
@limiter.limit(settings.read_rate_limit)
async def get_technician_location(
    request: Request,
    appointment_id: int,
    requester: Requester = Depends(get_requester),
    service: TrackingService = Depends(get_tracking_service),
):
    view = await service.get_live_view(appointment_id, requester)
    if isinstance(view, NotAvailable):
        return LiveViewResponse(success=False, message=view.message, status=view.status)

    return LiveViewResponse(
        success=True,
        location=LiveLocation(
            latitude=view.latitude,
            longitude=view.longitude,
            accuracy=view.accuracy,
            address=view.address,
            last_updated=view.last_updated_at,
            technician_name=view.technician_name,
            technician_phone=view.technician_phone,
            distance_meters=view.distance_meters,
            distance_km=view.distance_km,
            estimated_travel_minutes=view.estimated_travel_minutes,
            estimated_arrival_at=view.estimated_arrival_at,
            battery_level=view.battery_level,
            speed=view.speed,
            heading=view.heading,
        ),
        appointment=LiveAppointmentSummary(
            id=view.appointment_id,
            status=view.status,
            customer_can_track=view.customer_can_track,
            scheduled_date=view.scheduled_date,
            scheduled_time_start=view.scheduled_time_start,
        ),
    )


@router.put(
    "/{appointment_id}/technician-location",
    response_model=TrackingConsentResponse,
    summary="Enable or disable customer tracking",
)
@limiter.limit(settings.write_rate_limit)
async def set_tracking_consent(
    request: Request,
    appointment_id: int,
    body: TrackingConsentRequest,
    requester: Requester = Depends(get_requester),
    service: TrackingService = Depends(get_tracking_service),
):
    appointment = await service.set_tracking_consent(
        appointment_id, requester, body.customer_can_track
    )
    state = "enabled" if appointment.customer_can_track else "disabled"
    return TrackingConsentResponse(
        customer_can_track=appointment.customer_can_track,
        message=f"Location tracking {state} for appointment",
    )
