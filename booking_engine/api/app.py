"""
FastAPI application factory.

* Registers routes for appointments, technician locations and admin.
* Maps business errors to HTTP status codes; storage failures become a
  generic 500 so clients can tell them apart from business rejections.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError

from booking_engine.api.middleware import limiter
from booking_engine.api.routes import admin, appointments, technicians
from booking_engine.domain.exceptions import (
    BookingBusyError,
    BookingEngineError,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    SlotUnavailableError,
    ValidationError,
)
from booking_engine.infrastructure.database import engine
from booking_engine.infrastructure.locks import LocalLockRegistry
from booking_engine.infrastructure.notifications import build_notification_sender
from booking_engine.infrastructure.redis_client import close_redis

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[BookingEngineError], int] = {
    ValidationError: 422,
    NotFound: 404,
    Forbidden: 403,
    SlotUnavailableError: 409,
    InvalidStateTransition: 409,
    BookingBusyError: 503,
}


async def booking_error_handler(request: Request, exc: BookingEngineError):
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 400
    )
    content: dict = {"detail": str(exc)}
    if isinstance(exc, SlotUnavailableError):
        content["suggested_alternatives"] = exc.alternatives
    headers = {"Retry-After": "1"} if isinstance(exc, BookingBusyError) else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Release pooled DB and Redis connections on shutdown."""
    yield
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Backflow Testing Booking Engine",
        description=(
            "Books backflow-testing appointments without double-booking "
            "technicians, assigns the first free technician, and serves "
            "live technician position and ETA to customers who have been "
            "granted tracking."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Collaborators shared by every request in this process
    app.state.local_locks = LocalLockRegistry()
    app.state.notifier = build_notification_sender()

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Error mapping
    app.add_exception_handler(BookingEngineError, booking_error_handler)
    app.add_exception_handler(SQLAlchemyError, storage_error_handler)

    # Routers
    app.include_router(appointments.router, prefix="/api/v1")
    app.include_router(technicians.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
