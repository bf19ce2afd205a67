"""Unit tests for the active-traveller resolver."""

from datetime import timedelta

import pytest

from conftest import add_booking, add_departure, add_tour
from travelcore.models import BookingStatus
from travelcore.services.traveller_resolver import ResolveScope, TravellerResolver


@pytest.mark.asyncio
async def test_resolve_scopes(test_session, tour, traveller, other_traveller, owner, running_departure):
    future = await add_departure(test_session, tour)
    finished = await add_departure(
        test_session, tour, starts_in=-timedelta(days=10), duration=timedelta(days=2)
    )
    await add_booking(test_session, traveller, running_departure)
    await add_booking(test_session, other_traveller, future, status=BookingStatus.PENDING)
    await add_booking(test_session, owner, finished)

    resolver = TravellerResolver(test_session)

    active = await resolver.resolve(tour.id, ResolveScope.ACTIVE_WINDOW)
    assert {t.user_id for t in active} == {traveller.id}

    not_ended = await resolver.resolve(tour.id, ResolveScope.NOT_ENDED)
    assert {t.user_id for t in not_ended} == {traveller.id, other_traveller.id}

    everyone = await resolver.resolve(tour.id, ResolveScope.ANY)
    assert {t.user_id for t in everyone} == {traveller.id, other_traveller.id, owner.id}


@pytest.mark.asyncio
async def test_resolve_ignores_cancelled_and_dedupes(test_session, tour, traveller, other_traveller, running_departure):
    second = await add_departure(test_session, tour, starts_in=-timedelta(hours=2))
    await add_booking(test_session, traveller, running_departure)
    await add_booking(test_session, traveller, second)
    await add_booking(test_session, other_traveller, running_departure, status=BookingStatus.CANCELLED)

    recipients = await TravellerResolver(test_session).resolve(tour.id, ResolveScope.ACTIVE_WINDOW)

    assert len(recipients) == 1
    (recipient,) = recipients
    assert recipient.user_id == traveller.id
    assert recipient.email == traveller.email
    assert recipient.display_name == traveller.full_name


@pytest.mark.asyncio
async def test_resolve_is_scoped_to_tour(test_session, tour, traveller, running_departure):
    other_tour = await add_tour(test_session, slug="other-tour")
    await add_booking(test_session, traveller, running_departure)

    assert await TravellerResolver(test_session).resolve(other_tour.id) == set()


@pytest.mark.asyncio
async def test_has_booking_respects_status_filter(test_session, tour, traveller, departure):
    await add_booking(test_session, traveller, departure, status=BookingStatus.PENDING)
    resolver = TravellerResolver(test_session)

    assert await resolver.has_booking(traveller.id, tour.id)
    assert not await resolver.has_booking(traveller.id, tour.id, statuses=(BookingStatus.CONFIRMED,))


@pytest.mark.asyncio
async def test_tours_for_traveller_needs_confirmed_running_departure(
    test_session, tour, traveller, running_departure
):
    other_tour = await add_tour(test_session, slug="later-tour")
    later = await add_departure(test_session, other_tour)
    await add_booking(test_session, traveller, running_departure)
    await add_booking(test_session, traveller, later)

    resolver = TravellerResolver(test_session)

    assert await resolver.tours_for_traveller(traveller.id) == [tour.id]
    assert await resolver.tours_with_active_departures() == [tour.id]
    assert await resolver.tours_with_active_departures([other_tour.id]) == []
