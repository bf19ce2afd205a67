#!/usr/bin/env python3
"""Create tables and sample data for local development, then print bearer tokens."""

import asyncio
import logging
from datetime import timedelta

from sqlalchemy import func, select

from travelcore.core.database import async_session_factory, close_db, init_db, utcnow
from travelcore.core.dependencies import create_access_token
from travelcore.models import (
    Booking,
    BookingStatus,
    ItineraryItem,
    Tour,
    TourDeparture,
    TourStatus,
    User,
    UserRole,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_sample_data() -> dict:
    """Insert an operator, two travellers and a running tour. Returns users by key."""
    async with async_session_factory() as db:
        existing = await db.scalar(select(func.count()).select_from(User))
        if existing:
            logger.info("Sample data already exists, skipping...")
            users = (await db.execute(select(User))).scalars()
            return {user.email: user for user in users}

        owner = User(email="owner@example.com", full_name="Olga Operator", role=UserRole.OWNER)
        alice = User(email="alice@example.com", full_name="Alice Traveller", display_name="Alice")
        bob = User(email="bob@example.com", full_name="Bob Traveller", display_name="Bob")
        db.add_all([owner, alice, bob])

        tour = Tour(
            title="Northern Lights Adventure",
            slug="northern-lights-adventure",
            description="Experience the Aurora Borealis in Iceland with expert guides",
            status=TourStatus.PUBLISHED,
        )
        db.add(tour)
        await db.flush()

        now = utcnow()
        # One departure already under way so reminders and alerts have an audience
        running = TourDeparture(
            tour_id=tour.id,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=4),
            capacity_total=12,
            booked_count=3,
            price_amount=129900,
            price_currency="USD",
        )
        db.add(running)
        for week in range(1, 4):
            starts_at = now + timedelta(days=week * 7)
            db.add(TourDeparture(
                tour_id=tour.id,
                starts_at=starts_at,
                ends_at=starts_at + timedelta(days=5),
                capacity_total=12,
                price_amount=129900,
                price_currency="USD",
            ))
        await db.flush()

        for user, count in ((alice, 2), (bob, 1)):
            db.add(Booking(
                user_id=user.id,
                departure_id=running.id,
                status=BookingStatus.CONFIRMED,
                traveller_count=count,
                total_amount=129900 * count,
                currency="USD",
                contact_name=user.full_name,
                contact_phone="+354 555 0100",
                contact_email=user.email,
                confirmed_at=now,
            ))

        db.add_all([
            ItineraryItem(
                tour_id=tour.id,
                day_number=1,
                title="Golden Circle drive",
                location="Thingvellir",
                scheduled_time=now + timedelta(minutes=20),
            ),
            ItineraryItem(
                tour_id=tour.id,
                day_number=2,
                title="Aurora watch",
                location="Vik",
                scheduled_time=now + timedelta(days=1, hours=10),
                is_emergency_relevant=True,
            ),
        ])

        await db.commit()
        logger.info("Sample data created successfully!")
        return {user.email: user for user in (owner, alice, bob)}


async def main():
    logger.info("Creating tables...")
    await init_db()

    users = await create_sample_data()
    for email, user in sorted(users.items()):
        print(f"{email:<20} {UserRole(user.role).value:<10} {create_access_token(user.id)}")

    await close_db()
    logger.info("You can now start the API server with: uvicorn travelcore.main:app --reload")


if __name__ == "__main__":
    asyncio.run(main())
