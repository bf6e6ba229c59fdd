"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 4 team users (3 technicians, 1 office manager)
  - 8 customers around Puyallup / Tacoma, WA
  - 6 appointments spread over the next few days
  - 1 live technician position with tracking enabled on today's job
"""

import asyncio
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import text

from booking_engine.domain.enums import AppointmentStatus
from booking_engine.infrastructure.database import async_session_factory, engine
from booking_engine.infrastructure.models import (
    AppointmentModel,
    CustomerModel,
    TeamUserModel,
    TechnicianCurrentLocationModel,
)


TEAM = [
    {"name": "Dana Whitfield", "email": "dana@example.com", "phone": "253-555-0101", "role": "technician"},
    {"name": "Luis Ortega", "email": "luis@example.com", "phone": "253-555-0102", "role": "technician"},
    {"name": "Sam Kowalski", "email": "sam@example.com", "phone": "253-555-0103", "role": "technician"},
    {"name": "Robin Hale", "email": "robin@example.com", "phone": "253-555-0100", "role": "manager"},
]

CUSTOMERS = [
    {"name": "Meridian Dental", "address": "401 S Meridian, Puyallup, WA", "lat": 47.1854, "lng": -122.2929},
    {"name": "Pioneer Park Apartments", "address": "330 S Meridian, Puyallup, WA", "lat": 47.1880, "lng": -122.2945},
    {"name": "Stadium Bakery", "address": "2 N Tacoma Ave, Tacoma, WA", "lat": 47.2655, "lng": -122.4469},
    {"name": "Proctor Hardware", "address": "2610 N Proctor St, Tacoma, WA", "lat": 47.2707, "lng": -122.4846},
    {"name": "Sumner Feed & Seed", "address": "1014 Main St, Sumner, WA", "lat": 47.2032, "lng": -122.2401},
    {"name": "Fife Truck Wash", "address": "5915 Pacific Hwy E, Fife, WA", "lat": 47.2393, "lng": -122.3571},
    {"name": "South Hill Laundromat", "address": "3500 S Meridian, Puyallup, WA", "lat": 47.1432, "lng": -122.2938},
    {"name": "Lakewood Nursery", "address": "8800 Steilacoom Blvd, Lakewood, WA", "lat": 47.1719, "lng": -122.5185},
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM team_users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Team ──────────────────────────────────────────────────────
        team_models = []
        for t in TEAM:
            m = TeamUserModel(name=t["name"], email=t["email"], phone=t["phone"], role=t["role"])
            session.add(m)
            team_models.append(m)
        await session.flush()
        print(f"  Created {len(team_models)} team users")

        # ── Customers ─────────────────────────────────────────────────
        customer_models = []
        for c in CUSTOMERS:
            m = CustomerModel(
                name=c["name"],
                address=c["address"],
                latitude=c["lat"],
                longitude=c["lng"],
            )
            session.add(m)
            customer_models.append(m)
        await session.flush()
        print(f"  Created {len(customer_models)} customers")

        # ── Appointments ──────────────────────────────────────────────
        today = date.today()
        dana, luis, sam = team_models[0], team_models[1], team_models[2]
        appointments_data = [
            # Today's route for Dana; customer may follow along
            {
                "customer": customer_models[0], "technician": dana,
                "day": today, "start": time(9, 0),
                "status": AppointmentStatus.TRAVELING, "can_track": True,
            },
            {
                "customer": customer_models[1], "technician": dana,
                "day": today, "start": time(11, 0),
                "status": AppointmentStatus.CONFIRMED, "can_track": False,
            },
            {
                "customer": customer_models[2], "technician": luis,
                "day": today, "start": time(9, 0),
                "status": AppointmentStatus.IN_PROGRESS, "can_track": False,
            },
            # Upcoming
            {
                "customer": customer_models[3], "technician": sam,
                "day": today + timedelta(days=1), "start": time(14, 0),
                "status": AppointmentStatus.SCHEDULED, "can_track": False,
            },
            {
                "customer": customer_models[4], "technician": luis,
                "day": today + timedelta(days=2), "start": time(10, 30),
                "status": AppointmentStatus.SCHEDULED, "can_track": False,
            },
            # Cancelled; its slot is free again
            {
                "customer": customer_models[5], "technician": sam,
                "day": today + timedelta(days=1), "start": time(8, 0),
                "status": AppointmentStatus.CANCELLED, "can_track": False,
            },
        ]

        for a in appointments_data:
            session.add(
                AppointmentModel(
                    customer_id=a["customer"].id,
                    technician_id=a["technician"].id,
                    scheduled_date=a["day"],
                    scheduled_time_start=a["start"],
                    estimated_duration=60,
                    status=a["status"],
                    service_type="Annual Test",
                    customer_can_track=a["can_track"],
                    cancellation_reason=(
                        "Customer rescheduled"
                        if a["status"] == AppointmentStatus.CANCELLED
                        else None
                    ),
                )
            )
        await session.flush()
        print(f"  Created {len(appointments_data)} appointments")

        # ── Live position (Dana, en route to Meridian Dental) ─────────
        session.add(
            TechnicianCurrentLocationModel(
                technician_id=dana.id,
                latitude=47.2001,
                longitude=-122.3010,
                accuracy=12.0,
                heading=180.0,
                speed=13.4,
                battery_level=82,
                address="River Rd & N Meridian, Puyallup, WA",
                is_active=True,
                last_updated_at=datetime.now(timezone.utc),
            )
        )
        await session.flush()
        print("  Created 1 technician location")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
