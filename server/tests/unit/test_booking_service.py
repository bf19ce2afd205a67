"""Unit tests for the booking lifecycle."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import FakeWebSocket, add_booking, add_departure, add_tour
from travelcore.core.dependencies import Principal
from travelcore.core.exceptions import (
    AlreadyCancelledError,
    NotBookableError,
    NotFoundError,
    ValidationError,
)
from travelcore.models import BookingStatus, Notification, NotificationType, TourDeparture, TourStatus, UserRole
from travelcore.realtime import Connection
from travelcore.realtime.hub import user_room
from travelcore.schemas.booking import CreateBookingRequest
from travelcore.services.booking_service import BookingService


def principal_for(user) -> Principal:
    return Principal(
        user_id=user.id,
        role=UserRole(user.role),
        email=user.email,
        display_name=user.full_name,
    )


def booking_request(departure_id, traveller_count: int = 2) -> CreateBookingRequest:
    return CreateBookingRequest(
        departure_id=departure_id,
        traveller_count=traveller_count,
        contact_name="Alice Traveller",
        contact_phone="+1 555 0100",
        contact_email="alice@example.com",
        special_requests="Vegetarian meals",
    )


@pytest.mark.asyncio
async def test_create_booking_loads_departure_and_tour(test_session, traveller, departure, tour):
    service = BookingService(test_session)

    booking = await service.create_booking(principal_for(traveller), booking_request(departure.id))

    assert booking.status == BookingStatus.PENDING
    assert booking.user_id == traveller.id
    assert booking.special_requests == "Vegetarian meals"
    assert booking.departure.id == departure.id
    assert booking.departure.tour.title == tour.title


@pytest.mark.asyncio
async def test_create_booking_on_draft_tour_is_not_bookable(test_session, traveller):
    draft = await add_tour(test_session, slug="draft-tour", status=TourStatus.DRAFT)
    departure = await add_departure(test_session, draft)

    with pytest.raises(NotBookableError) as exc_info:
        await BookingService(test_session).create_booking(principal_for(traveller), booking_request(departure.id))

    assert exc_info.value.problem_details["tour_status"] == "DRAFT"


@pytest.mark.asyncio
async def test_create_booking_unknown_departure(test_session, traveller):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).create_booking(principal_for(traveller), booking_request(uuid4()))


@pytest.mark.asyncio
async def test_other_users_booking_is_not_visible(test_session, traveller, other_traveller, owner, departure):
    booking = await add_booking(test_session, traveller, departure)
    service = BookingService(test_session)

    with pytest.raises(NotFoundError):
        await service.get_booking(booking.id, principal_for(other_traveller))
    with pytest.raises(NotFoundError):
        await service.cancel_booking(booking.id, principal_for(other_traveller))

    seen_by_owner = await service.get_booking(booking.id, principal_for(owner))
    assert seen_by_owner.id == booking.id


@pytest.mark.asyncio
async def test_list_bookings_only_returns_own(test_session, traveller, other_traveller, departure):
    await add_booking(test_session, traveller, departure)
    await add_booking(test_session, traveller, departure, status=BookingStatus.PENDING)
    await add_booking(test_session, other_traveller, departure)
    service = BookingService(test_session)

    items, total = await service.list_bookings(principal_for(traveller))
    assert total == 2
    assert {b.user_id for b in items} == {traveller.id}

    pending, total = await service.list_bookings(principal_for(traveller), status=BookingStatus.PENDING)
    assert total == 1
    assert pending[0].status == BookingStatus.PENDING

    everything, total = await service.list_all_bookings(tour_id=departure.tour_id)
    assert total == 3


@pytest.mark.asyncio
async def test_confirm_notifies_traveller_once(
    test_session, hub, email_dispatcher, email_outbox, traveller, departure
):
    booking = await add_booking(test_session, traveller, departure, status=BookingStatus.PENDING)
    socket = FakeWebSocket()
    connection = Connection(socket)
    hub.register(connection)
    hub.join(connection, user_room(traveller.id))
    service = BookingService(test_session, hub, email_dispatcher)

    confirmed = await service.update_booking_status(booking.id, BookingStatus.CONFIRMED)

    assert confirmed.status == BookingStatus.CONFIRMED
    assert confirmed.confirmed_at is not None

    notifications = (await test_session.execute(select(Notification))).scalars().all()
    assert len(notifications) == 1
    assert notifications[0].type == NotificationType.BOOKING_UPDATE.value
    assert notifications[0].title == "Booking Confirmed!"
    assert notifications[0].booking_id == booking.id

    pushed = socket.events("notification:new")
    assert len(pushed) == 1
    assert pushed[0]["title"] == "Booking Confirmed!"

    assert len(email_outbox.sent) == 1
    assert email_outbox.sent[0].to == traveller.email
    assert str(booking.id) in email_outbox.sent[0].text

    # Repeating the confirmation changes nothing and sends nothing
    again = await service.update_booking_status(booking.id, BookingStatus.CONFIRMED)
    assert again.status == BookingStatus.CONFIRMED
    notifications = (await test_session.execute(select(Notification))).scalars().all()
    assert len(notifications) == 1
    assert len(email_outbox.sent) == 1


@pytest.mark.asyncio
async def test_owner_cancel_releases_seats_and_notifies(test_session, hub, traveller, departure):
    booking = await add_booking(test_session, traveller, departure, traveller_count=3)
    service = BookingService(test_session, hub)

    cancelled = await service.update_booking_status(booking.id, BookingStatus.CANCELLED)

    assert cancelled.status == BookingStatus.CANCELLED
    refreshed = await test_session.scalar(
        select(TourDeparture)
        .where(TourDeparture.id == departure.id)
        .execution_options(populate_existing=True)
    )
    assert refreshed.booked_count == 0
    notification = await test_session.scalar(select(Notification))
    assert notification.title == "Booking Cancelled"

    with pytest.raises(AlreadyCancelledError):
        await service.update_booking_status(booking.id, BookingStatus.CONFIRMED)
    with pytest.raises(AlreadyCancelledError):
        await service.update_booking_status(booking.id, BookingStatus.CANCELLED)


@pytest.mark.asyncio
async def test_update_status_rejects_pending(test_session, traveller, departure):
    booking = await add_booking(test_session, traveller, departure)

    with pytest.raises(ValidationError):
        await BookingService(test_session).update_booking_status(booking.id, BookingStatus.PENDING)


@pytest.mark.asyncio
async def test_update_status_unknown_booking(test_session):
    with pytest.raises(NotFoundError):
        await BookingService(test_session).update_booking_status(uuid4(), BookingStatus.CONFIRMED)
