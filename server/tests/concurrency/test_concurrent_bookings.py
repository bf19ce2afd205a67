"""Concurrent reservations and cancellations against one departure."""

import asyncio

import pytest
from sqlalchemy import func, select

from conftest import add_booking, add_departure, add_tour, add_user
from travelcore.core.exceptions import AlreadyCancelledError, CapacityExceededError
from travelcore.models import Booking, BookingStatus, TourDeparture
from travelcore.services.capacity_ledger import BookingFields, CapacityLedger


def fields_for(user):
    return BookingFields(
        user_id=user.id,
        contact_name=user.full_name,
        contact_phone="+1 555 0100",
        contact_email=user.email,
    )


async def reserve_in_own_session(session_factory, departure_id, seats, user):
    async with session_factory() as session:
        return await CapacityLedger(session).reserve(departure_id, seats, fields_for(user))


async def release_in_own_session(session_factory, booking_id):
    async with session_factory() as session:
        return await CapacityLedger(session).release(booking_id)


async def ledger_state(session_factory, departure_id):
    async with session_factory() as session:
        departure = await session.get(TourDeparture, departure_id)
        live_seats = await session.scalar(
            select(func.coalesce(func.sum(Booking.traveller_count), 0)).where(
                Booking.departure_id == departure_id,
                Booking.status != BookingStatus.CANCELLED,
            )
        )
        return departure.booked_count, live_seats


@pytest.mark.asyncio
async def test_two_pairs_race_for_two_seats(file_session_factory):
    async with file_session_factory() as session:
        alice = await add_user(session, "alice@example.com")
        bob = await add_user(session, "bob@example.com")
        tour = await add_tour(session)
        departure = await add_departure(session, tour, capacity=2)

    results = await asyncio.gather(
        reserve_in_own_session(file_session_factory, departure.id, 2, alice),
        reserve_in_own_session(file_session_factory, departure.id, 2, bob),
        return_exceptions=True,
    )

    booked = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, CapacityExceededError)]
    assert len(booked) == 1
    assert len(rejected) == 1
    # Seen after the winner committed, not before
    assert rejected[0].extensions["remaining_seats"] == 0
    assert rejected[0].extensions["requested_seats"] == 2
    assert rejected[0].detail == "Only 0 spots available"

    booked_count, live_seats = await ledger_state(file_session_factory, departure.id)
    assert booked_count == live_seats == 2


@pytest.mark.asyncio
async def test_two_pairs_race_for_three_seats(file_session_factory):
    async with file_session_factory() as session:
        alice = await add_user(session, "alice@example.com")
        bob = await add_user(session, "bob@example.com")
        tour = await add_tour(session)
        departure = await add_departure(session, tour, capacity=3)

    results = await asyncio.gather(
        reserve_in_own_session(file_session_factory, departure.id, 2, alice),
        reserve_in_own_session(file_session_factory, departure.id, 2, bob),
        return_exceptions=True,
    )

    booked = [r for r in results if isinstance(r, Booking)]
    rejected = [r for r in results if isinstance(r, CapacityExceededError)]
    assert len(booked) == 1
    assert len(rejected) == 1
    assert rejected[0].extensions["remaining_seats"] == 1

    booked_count, live_seats = await ledger_state(file_session_factory, departure.id)
    assert booked_count == live_seats == 2


@pytest.mark.asyncio
async def test_many_single_seat_bookings_never_oversell(file_session_factory):
    async with file_session_factory() as session:
        travellers = [await add_user(session, f"traveller{i}@example.com") for i in range(12)]
        tour = await add_tour(session)
        departure = await add_departure(session, tour, capacity=5)

    results = await asyncio.gather(
        *(reserve_in_own_session(file_session_factory, departure.id, 1, t) for t in travellers),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Booking) for r in results) == 5
    assert sum(isinstance(r, CapacityExceededError) for r in results) == 7

    booked_count, live_seats = await ledger_state(file_session_factory, departure.id)
    assert booked_count == live_seats == 5


@pytest.mark.asyncio
async def test_double_cancel_releases_seats_once(file_session_factory):
    async with file_session_factory() as session:
        alice = await add_user(session, "alice@example.com")
        bob = await add_user(session, "bob@example.com")
        tour = await add_tour(session)
        departure = await add_departure(session, tour, capacity=6)
        booking = await add_booking(session, alice, departure, traveller_count=3)
        await add_booking(session, bob, departure, traveller_count=2)

    results = await asyncio.gather(
        release_in_own_session(file_session_factory, booking.id),
        release_in_own_session(file_session_factory, booking.id),
        return_exceptions=True,
    )

    assert sum(isinstance(r, Booking) for r in results) == 1
    assert sum(isinstance(r, AlreadyCancelledError) for r in results) == 1

    booked_count, live_seats = await ledger_state(file_session_factory, departure.id)
    assert booked_count == live_seats == 2


@pytest.mark.asyncio
async def test_cancel_and_rebook_interleaved(file_session_factory):
    async with file_session_factory() as session:
        alice = await add_user(session, "alice@example.com")
        bob = await add_user(session, "bob@example.com")
        tour = await add_tour(session)
        departure = await add_departure(session, tour, capacity=2)
        booking = await add_booking(session, alice, departure, traveller_count=2)

    results = await asyncio.gather(
        release_in_own_session(file_session_factory, booking.id),
        reserve_in_own_session(file_session_factory, departure.id, 2, bob),
        return_exceptions=True,
    )

    # The reservation succeeds only if it ran after the release
    assert isinstance(results[0], Booking)
    assert isinstance(results[1], (Booking, CapacityExceededError))

    booked_count, live_seats = await ledger_state(file_session_factory, departure.id)
    assert booked_count == live_seats
    assert booked_count <= 2
