"""
Integration tests for the REST API endpoints.

Uses an in-memory SQLite database; the DB session, lock provider and
notifier dependencies are overridden so no PostgreSQL / Redis is needed.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from booking_engine.domain.enums import AppointmentStatus
from booking_engine.domain.exceptions import BookingBusyError
from booking_engine.infrastructure.database import Base
from booking_engine.infrastructure.locks import LocalLockRegistry
from booking_engine.infrastructure.models import AppointmentModel
from booking_engine.services.booking import BookingService
from tests.factories import (
    RecordingNotifier,
    SqliteSessionFactory,
    add_customer,
    add_technician,
    sqlite_engine,
)

FUTURE = (date.today() + timedelta(days=14)).isoformat()

CUSTOMER = {"X-Requester-Kind": "customer", "X-Requester-Id": "1"}
OTHER_CUSTOMER = {"X-Requester-Kind": "customer", "X-Requester-Id": "2"}
STAFF = {"X-Requester-Kind": "team", "X-Requester-Id": "10", "X-Requester-Role": "admin"}


# ── Fixture ───────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client():
    """AsyncClient backed by SQLite with one technician and two customers."""
    async with sqlite_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Seed
    async with SqliteSessionFactory() as session:
        await add_technician(session, "Alex", phone="253-555-0101")
        await add_customer(session, "Meridian Dental", latitude=47.25, longitude=-122.45)
        await add_customer(session, "Stadium Bakery")
        await session.commit()

    # DB session dependency
    async def _test_db():
        async with SqliteSessionFactory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    from booking_engine.api.app import create_app
    from booking_engine.api.dependencies import get_db, get_lock_provider, get_notifier
    from booking_engine.api.middleware import limiter

    limiter.reset()
    locks = LocalLockRegistry()
    notifier = RecordingNotifier()

    app = create_app()
    app.dependency_overrides[get_db] = _test_db
    app.dependency_overrides[get_lock_provider] = lambda: locks
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    async with sqlite_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _book(client: AsyncClient, time_label: str = "10:00 AM", customer_id: int = 1):
    return await client.post(
        "/api/v1/appointments",
        json={"customer_id": customer_id, "date": FUTURE, "time": time_label},
    )


async def _set_status(appointment_id: int, status: AppointmentStatus):
    async with SqliteSessionFactory() as session:
        appointment = await session.get(AppointmentModel, appointment_id)
        appointment.status = status
        await session.commit()


# ── Tests ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_create_appointment_returns_201(client: AsyncClient):
    resp = await _book(client)
    assert resp.status_code == 201
    data = resp.json()
    assert data["success"] is True
    assert data["appointment"]["status"] == "scheduled"
    assert data["appointment"]["scheduled_time_start"] == "10:00:00"
    assert data["technician"] == {"id": 1, "name": "Alex"}
    assert data["message"] == "Appointment booked successfully with technician Alex"


@pytest.mark.asyncio
async def test_conflicting_booking_returns_409_with_alternatives(client: AsyncClient):
    await _book(client, "10:00 AM")
    resp = await _book(client, "10:30 AM", customer_id=2)
    assert resp.status_code == 409
    body = resp.json()
    assert body["detail"] == "Time slot is no longer available"
    assert 0 < len(body["suggested_alternatives"]) <= 3
    assert {"date", "time"} <= set(body["suggested_alternatives"][0])


@pytest.mark.asyncio
async def test_busy_date_returns_503_with_retry_after(client: AsyncClient):
    busy = BookingBusyError("Another booking for this date is in progress. Please try again.")
    with patch.object(BookingService, "create_booking", AsyncMock(side_effect=busy)):
        resp = await _book(client)
    assert resp.status_code == 503
    assert resp.headers["retry-after"] == "1"
    assert "try again" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_missing_fields_returns_422(client: AsyncClient):
    resp = await client.post("/api/v1/appointments", json={"customer_id": 1})
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Customer ID, date, and time are required"


@pytest.mark.asyncio
async def test_unknown_time_label_returns_422(client: AsyncClient):
    resp = await _book(client, "whenever")
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_customer_returns_404(client: AsyncClient):
    resp = await _book(client, customer_id=999)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_availability(client: AsyncClient):
    await _book(client, "10:00 AM")
    resp = await client.get("/api/v1/appointments/availability", params={"date": FUTURE})
    assert resp.status_code == 200
    data = resp.json()
    assert data["duration_minutes"] == 60
    assert "10:00 AM" not in data["slots"]
    assert "11:00 AM" in data["slots"]


@pytest.mark.asyncio
async def test_get_appointment_access(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]

    assert (await client.get(f"/api/v1/appointments/{appointment_id}", headers=CUSTOMER)).status_code == 200
    assert (await client.get(f"/api/v1/appointments/{appointment_id}", headers=STAFF)).status_code == 200
    assert (await client.get(f"/api/v1/appointments/{appointment_id}", headers=OTHER_CUSTOMER)).status_code == 403
    assert (await client.get(f"/api/v1/appointments/{appointment_id}")).status_code == 403


@pytest.mark.asyncio
async def test_get_appointment_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/appointments/9999", headers=STAFF)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_cancel_then_cancel_again_fails(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]

    resp = await client.patch(
        f"/api/v1/appointments/{appointment_id}/cancel",
        json={"reason": "Sold the property"},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"
    assert resp.json()["cancellation_reason"] == "Sold the property"

    resp = await client.patch(f"/api/v1/appointments/{appointment_id}/cancel", headers=CUSTOMER)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_tracking_flow(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]

    # Customer may not track until staff enables it
    resp = await client.put(
        f"/api/v1/appointments/{appointment_id}/technician-location",
        json={"customer_can_track": True},
        headers=CUSTOMER,
    )
    assert resp.status_code == 403

    resp = await client.put(
        f"/api/v1/appointments/{appointment_id}/technician-location",
        json={"customer_can_track": True},
        headers=STAFF,
    )
    assert resp.status_code == 200
    assert resp.json()["customer_can_track"] is True

    resp = await client.post(
        "/api/v1/technicians/1/location",
        json={"latitude": 47.24, "longitude": -122.44, "battery_level": 77},
    )
    assert resp.status_code == 200
    assert resp.json()["accepted"] is True

    # Still scheduled: no position is shown
    resp = await client.get(
        f"/api/v1/appointments/{appointment_id}/technician-location", headers=CUSTOMER
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["location"] is None

    await _set_status(appointment_id, AppointmentStatus.IN_PROGRESS)

    resp = await client.get(
        f"/api/v1/appointments/{appointment_id}/technician-location", headers=CUSTOMER
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    location = data["location"]
    assert location["technician_name"] == "Alex"
    assert 1_300 < location["distance_meters"] < 1_400
    assert location["estimated_travel_minutes"] == 2
    assert location["battery_level"] == 77
    assert data["appointment"]["status"] == "in_progress"


@pytest.mark.asyncio
async def test_location_view_without_consent_is_403(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]
    resp = await client.get(
        f"/api/v1/appointments/{appointment_id}/technician-location", headers=CUSTOMER
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_location_sync_and_stop(client: AsyncClient):
    now = datetime.now(timezone.utc)
    resp = await client.post(
        "/api/v1/technicians/1/location/sync",
        json={
            "locations": [
                {"latitude": 47.20, "longitude": -122.30, "recorded_at": now.isoformat()},
                {
                    "latitude": 47.10,
                    "longitude": -122.20,
                    "recorded_at": (now - timedelta(minutes=3)).isoformat(),
                },
            ]
        },
    )
    assert resp.status_code == 200
    assert resp.json()["accepted"] == 2

    resp = await client.post(
        "/api/v1/technicians/1/location",
        json={
            "latitude": 47.0,
            "longitude": -122.0,
            "recorded_at": (now - timedelta(minutes=10)).isoformat(),
        },
    )
    assert resp.json()["accepted"] is False

    resp = await client.delete("/api/v1/technicians/1/location")
    assert resp.status_code == 204


@pytest.mark.asyncio
async def test_location_for_unknown_technician_is_404(client: AsyncClient):
    resp = await client.post(
        "/api/v1/technicians/999/location", json={"latitude": 47.24, "longitude": -122.44}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_out_of_range_coordinates_rejected(client: AsyncClient):
    resp = await client.post(
        "/api/v1/technicians/1/location", json={"latitude": 91, "longitude": -122.44}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_schedule_is_staff_only(client: AsyncClient):
    await _book(client, "10:00 AM")
    await _book(client, "8:00 AM")

    resp = await client.get("/api/v1/admin/schedule", params={"date": FUTURE}, headers=STAFF)
    assert resp.status_code == 200
    assert [a["scheduled_time_start"] for a in resp.json()] == ["08:00:00", "10:00:00"]

    resp = await client.get("/api/v1/admin/schedule", params={"date": FUTURE}, headers=CUSTOMER)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_reschedule_moves_appointment(client: AsyncClient):
    appointment_id = (await _book(client, "10:00 AM")).json()["appointment"]["id"]

    resp = await client.patch(
        f"/api/v1/appointments/{appointment_id}/reschedule",
        json={"date": FUTURE, "time": "2:00 PM"},
        headers=CUSTOMER,
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["appointment"]["scheduled_time_start"] == "14:00:00"
    assert data["appointment"]["status"] == "scheduled"
    assert data["technician"] == {"id": 1, "name": "Alex"}
    assert data["message"] == "Appointment rescheduled successfully"

    slots = (
        await client.get("/api/v1/appointments/availability", params={"date": FUTURE})
    ).json()["slots"]
    assert "10:00 AM" in slots
    assert "2:00 PM" not in slots


@pytest.mark.asyncio
async def test_reschedule_conflict_returns_409_with_alternatives(client: AsyncClient):
    await _book(client, "10:00 AM")
    appointment_id = (await _book(client, "1:00 PM", customer_id=2)).json()["appointment"]["id"]

    resp = await client.patch(
        f"/api/v1/appointments/{appointment_id}/reschedule",
        json={"date": FUTURE, "time": "10:30 AM"},
        headers=OTHER_CUSTOMER,
    )
    assert resp.status_code == 409
    assert resp.json()["suggested_alternatives"]


@pytest.mark.asyncio
async def test_reschedule_cancelled_appointment_returns_409(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]
    await _set_status(appointment_id, AppointmentStatus.CANCELLED)

    resp = await client.patch(
        f"/api/v1/appointments/{appointment_id}/reschedule",
        json={"date": FUTURE, "time": "2:00 PM"},
        headers=STAFF,
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_reschedule_by_other_customer_returns_403(client: AsyncClient):
    appointment_id = (await _book(client)).json()["appointment"]["id"]
    resp = await client.patch(
        f"/api/v1/appointments/{appointment_id}/reschedule",
        json={"date": FUTURE, "time": "2:00 PM"},
        headers=OTHER_CUSTOMER,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_write_endpoints_have_their_own_rate_limit(client: AsyncClient):
    # 30/minute for writes, well below the 100/minute read allowance
    for _ in range(30):
        resp = await client.patch("/api/v1/appointments/9999/cancel", headers=STAFF)
        assert resp.status_code == 404

    resp = await client.patch("/api/v1/appointments/9999/cancel", headers=STAFF)
    assert resp.status_code == 429

    resp = await client.get("/api/v1/appointments/9999", headers=STAFF)
    assert resp.status_code == 404
