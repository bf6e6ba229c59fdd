"""
Concurrency safety tests.

Demonstrates:
1. Distributed lock prevents simultaneous acquire and retries until the
   holder lets go or the wait runs out (mocked Redis).
2. The in-process lock refuses a second holder for the same date unless
   it is willing to wait.
3. The partial unique index rejects a second live booking for the same
   technician and start time, and the booking service reports a lost
   race as an unavailable slot.
"""

from __future__ import annotations

import asyncio
from datetime import date, time
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from booking_engine.domain.enums import AppointmentStatus
from booking_engine.domain.exceptions import SlotUnavailableError
from booking_engine.infrastructure.locks import (
    DistributedLock,
    LocalLockRegistry,
    RedisLockProvider,
)
from booking_engine.infrastructure.models import AppointmentModel
from booking_engine.services.booking import BookingService
from tests.factories import add_customer, add_technician

DAY = date(2026, 10, 20)


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "booking:2026-10-20", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "lock:booking:2026-10-20", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "booking:2026-10-20", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_acquire_retries_until_released(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=[None, None, True])

        lock = DistributedLock(mock_redis, "booking:2026-10-20", ttl_seconds=10)
        assert await lock.acquire(timeout=1.0) is True
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_acquire_gives_up_after_timeout(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "booking:2026-10-20", ttl_seconds=10)
        assert await lock.acquire(timeout=0.12) is False
        assert mock_redis.set.await_count >= 2

    @pytest.mark.asyncio
    async def test_release_calls_eval(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "booking:2026-10-20", ttl_seconds=10)
        await lock.acquire()
        await lock.release()

        mock_redis.eval.assert_called_once()
        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "lock:booking:2026-10-20", lock.token)

    def test_provider_hands_out_distinct_tokens(self):
        provider = RedisLockProvider(AsyncMock())
        first = provider.lock("booking:2026-10-20", 30)
        second = provider.lock("booking:2026-10-20", 30)
        assert first.key == second.key
        assert first.token != second.token


class TestLocalLock:
    @pytest.mark.asyncio
    async def test_second_holder_is_refused(self):
        registry = LocalLockRegistry()
        first = registry.lock("booking:2026-10-20")
        second = registry.lock("booking:2026-10-20")

        assert await first.acquire() is True
        assert await second.acquire() is False

        await first.release()
        assert await second.acquire() is True
        await second.release()

    @pytest.mark.asyncio
    async def test_different_dates_do_not_block(self):
        registry = LocalLockRegistry()
        a = registry.lock("booking:2026-10-20")
        b = registry.lock("booking:2026-10-21")

        assert await a.acquire() is True
        assert await b.acquire() is True
        await a.release()
        await b.release()

    @pytest.mark.asyncio
    async def test_release_without_acquire_is_noop(self):
        registry = LocalLockRegistry()
        holder = registry.lock("booking:2026-10-20")
        bystander = registry.lock("booking:2026-10-20")

        assert await holder.acquire() is True
        await bystander.release()
        assert await registry.lock("booking:2026-10-20").acquire() is False
        await holder.release()

    @pytest.mark.asyncio
    async def test_waiter_gets_lock_once_released(self):
        registry = LocalLockRegistry()
        first = registry.lock("booking:2026-10-20")
        second = registry.lock("booking:2026-10-20")
        assert await first.acquire() is True

        async def release_soon():
            await asyncio.sleep(0.05)
            await first.release()

        releaser = asyncio.create_task(release_soon())
        assert await second.acquire(timeout=1.0) is True
        await releaser
        await second.release()

    @pytest.mark.asyncio
    async def test_waiter_times_out_without_holding(self):
        registry = LocalLockRegistry()
        first = registry.lock("booking:2026-10-20")
        second = registry.lock("booking:2026-10-20")
        assert await first.acquire() is True

        assert await second.acquire(timeout=0.05) is False
        await second.release()
        await first.release()
        assert await registry.lock("booking:2026-10-20").acquire() is True


def _row(customer_id, technician_id, status=AppointmentStatus.SCHEDULED):
    return AppointmentModel(
        customer_id=customer_id,
        technician_id=technician_id,
        scheduled_date=DAY,
        scheduled_time_start=time(10, 0),
        estimated_duration=60,
        status=status,
        service_type="Annual Test",
    )


class TestUniqueSlotIndex:
    @pytest.mark.asyncio
    async def test_duplicate_live_booking_rejected(self, db_session):
        tech = await add_technician(db_session, "Alex")
        customer = await add_customer(db_session)
        db_session.add(_row(customer.id, tech.id))
        await db_session.flush()

        db_session.add(_row(customer.id, tech.id))
        with pytest.raises(IntegrityError):
            await db_session.flush()
        await db_session.rollback()

    @pytest.mark.asyncio
    async def test_cancelled_booking_does_not_hold_slot(self, db_session):
        tech = await add_technician(db_session, "Alex")
        customer = await add_customer(db_session)
        db_session.add(_row(customer.id, tech.id, AppointmentStatus.CANCELLED))
        db_session.add(_row(customer.id, tech.id))
        await db_session.flush()

    @pytest.mark.asyncio
    async def test_lost_race_becomes_slot_unavailable(self, db_session, locks, notifier):
        tech = await add_technician(db_session, "Alex")
        customer = await add_customer(db_session)
        db_session.add(_row(customer.id, tech.id))
        await db_session.commit()

        service = BookingService(db_session, locks, notifier, today=date(2026, 10, 18))
        # The conflict check misses the committed row, as it would when a
        # writer outside the date lock got there first.
        with patch.object(
            service.appointments, "get_active_for_date", AsyncMock(return_value=[])
        ):
            with pytest.raises(SlotUnavailableError, match="just booked"):
                await service.create_booking(
                    customer_id=customer.id, scheduled_date=DAY, time_label="10:00 AM"
                )

        assert notifier.sent == []
        assert await locks.lock(f"booking:{DAY.isoformat()}").acquire() is True
