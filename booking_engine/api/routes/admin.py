"""
Admin / observability endpoints
===============================

GET /api/v1/admin/schedule?date=YYYY-MM-DD -- non-cancelled bookings for a day
GET /api/v1/admin/health                   -- simple health check
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.dependencies import get_db, get_requester
from booking_engine.api.middleware import limiter
from booking_engine.api.schemas import AppointmentResponse, HealthResponse
from booking_engine.config import settings
from booking_engine.domain.entities import Requester
from booking_engine.domain.exceptions import Forbidden
from booking_engine.infrastructure.repositories import AppointmentRepository

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/schedule",
    response_model=list[AppointmentResponse],
    summary="List the day's active bookings, earliest first",
)
@limiter.limit(settings.read_rate_limit)
async def get_schedule(
    request: Request,
    day: date = Query(..., alias="date"),
    requester: Requester = Depends(get_requester),
    db: AsyncSession = Depends(get_db),
):
    if not requester.is_team:
        raise Forbidden("Access denied")
    return await AppointmentRepository(db).get_active_for_date(day)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
