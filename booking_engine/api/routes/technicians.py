"""
Technician location endpoints (polled by the field app)
=======================================================

POST   /api/v1/technicians/{technician_id}/location      -- report current position
POST   /api/v1/technicians/{technician_id}/location/sync -- upload positions buffered offline
DELETE /api/v1/technicians/{technician_id}/location      -- stop sharing (off shift)
"""

from fastapi import APIRouter, Depends, Request, Response

from booking_engine.api.dependencies import get_tracking_service
from booking_engine.api.middleware import limiter
from booking_engine.api.schemas import (
    PositionAckResponse,
    PositionReportRequest,
    PositionSyncRequest,
    SyncSummaryResponse,
)
from booking_engine.config import settings
from booking_engine.domain.entities import PositionReport
from booking_engine.services.tracking import TrackingService

router = APIRouter(prefix="/technicians", tags=["technicians"])


def _to_report(body: PositionReportRequest) -> PositionReport:
    return PositionReport(**body.model_dump())


@router.post(
    "/{technician_id}/location",
    response_model=PositionAckResponse,
    summary="Report the technician's current position",
    description=(
        "Upserts the technician's single live position. A report older than "
        "the stored one is acknowledged with accepted=false and ignored."
    ),
)
@limiter.limit(settings.write_rate_limit)
async def report_location(
    request: Request,
    technician_id: int,
    body: PositionReportRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    ack = await service.report_position(technician_id, _to_report(body))
    return PositionAckResponse(
        technician_id=ack.technician_id,
        accepted=ack.accepted,
        last_updated_at=ack.last_updated_at,
    )


@router.post(
    "/{technician_id}/location/sync",
    response_model=SyncSummaryResponse,
    summary="Upload positions recorded while offline",
)
@limiter.limit(settings.write_rate_limit)
async def sync_locations(
    request: Request,
    technician_id: int,
    body: PositionSyncRequest,
    service: TrackingService = Depends(get_tracking_service),
):
    summary = await service.sync_positions(
        technician_id, [_to_report(item) for item in body.locations]
    )
    return SyncSummaryResponse(
        technician_id=summary.technician_id,
        accepted=summary.accepted,
        discarded=summary.discarded,
        last_updated_at=summary.last_updated_at,
    )


@router.delete(
    "/{technician_id}/location",
    status_code=204,
    summary="Stop sharing location",
)
@limiter.limit(settings.write_rate_limit)
async def stop_tracking(
    request: Request,
    technician_id: int,
    service: TrackingService = Depends(get_tracking_service),
):
    await service.stop_tracking(technician_id)
    return Response(status_code=204)
