"""FastAPI dependency injection helpers."""

from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.config import settings
from booking_engine.domain.entities import Requester
from booking_engine.domain.enums import RequesterKind
from booking_engine.infrastructure.database import async_session_factory
from booking_engine.infrastructure.locks import LockProvider, RedisLockProvider
from booking_engine.infrastructure.notifications import NotificationSender
from booking_engine.infrastructure.redis_client import get_redis
from booking_engine.services.booking import BookingService
from booking_engine.services.tracking import TrackingService


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_lock_provider(request: Request) -> LockProvider:
    if settings.lock_backend == "local":
        return request.app.state.local_locks
    return RedisLockProvider(await get_redis())


def get_notifier(request: Request) -> NotificationSender:
    return request.app.state.notifier


def get_requester(
    x_requester_kind: Optional[str] = Header(None),
    x_requester_id: Optional[int] = Header(None),
    x_requester_role: Optional[str] = Header(None),
) -> Requester:
    """Caller identity forwarded by the auth gateway; missing or unknown -> anonymous."""
    try:
        kind = RequesterKind((x_requester_kind or "anonymous").lower())
    except ValueError:
        kind = RequesterKind.ANONYMOUS
    return Requester(kind=kind, id=x_requester_id, role=x_requester_role)


def get_booking_service(
    db: AsyncSession = Depends(get_db),
    locks: LockProvider = Depends(get_lock_provider),
    notifier: NotificationSender = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, locks, notifier)


def get_tracking_service(db: AsyncSession = Depends(get_db)) -> TrackingService:
    return TrackingService(db)
