"""Unit tests for the real-time hub and WebSocket gateway."""

import asyncio
import json
from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from conftest import FakeWebSocket, add_booking, add_departure, add_tour, add_user
from travelcore.core.dependencies import create_access_token
from travelcore.models import BookingStatus
from travelcore.realtime import Connection, ConnectionState
from travelcore.realtime.gateway import CLOSE_IDLE, CLOSE_UNAUTHORIZED, RealtimeGateway
from travelcore.realtime.hub import tour_room, user_room


def registered(hub, room=None, fail_sends=False):
    socket = FakeWebSocket(fail_sends=fail_sends)
    connection = Connection(socket)
    hub.register(connection)
    if room:
        hub.join(connection, room)
    return connection, socket


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestHub:
    @pytest.mark.asyncio
    async def test_emit_to_tour_reaches_only_members(self, hub):
        tour_id = uuid4()
        _, member = registered(hub, tour_room(tour_id))
        _, outsider = registered(hub, tour_room(uuid4()))

        delivered = await hub.emit_to_tour(tour_id, "itinerary:updated", {"action": "added"})

        assert delivered == 1
        assert member.sent == [{"event": "itinerary:updated", "data": {"action": "added"}}]
        assert outsider.sent == []

    @pytest.mark.asyncio
    async def test_emit_to_user_reaches_every_connection_of_that_user(self, hub):
        user_id = uuid4()
        _, phone = registered(hub, user_room(user_id))
        _, laptop = registered(hub, user_room(user_id))

        assert await hub.emit_to_user(user_id, "notification:new", {}) == 2
        assert len(phone.sent) == len(laptop.sent) == 1

    @pytest.mark.asyncio
    async def test_emit_to_all(self, hub):
        registered(hub)
        registered(hub, user_room(uuid4()))

        assert await hub.emit_to_all("maintenance", None) == 2

    @pytest.mark.asyncio
    async def test_failed_write_drops_connection_without_raising(self, hub):
        tour_id = uuid4()
        broken, _ = registered(hub, tour_room(tour_id), fail_sends=True)
        _, healthy = registered(hub, tour_room(tour_id))

        delivered = await hub.emit_to_tour(tour_id, "emergency:new", {"x": 1})

        assert delivered == 1
        assert len(healthy.sent) == 1
        assert broken.state == ConnectionState.CLOSED
        assert not hub.is_member(broken, tour_room(tour_id))
        assert hub.connection_count == 1

    @pytest.mark.asyncio
    async def test_connection_dropped_after_failed_write_cannot_rejoin(self, hub):
        broken, socket = registered(hub, tour_room("t"), fail_sends=True)

        await hub.emit_to_tour("t", "itinerary:updated", {})

        assert socket.close_code == 1011
        hub.join(broken, tour_room("u"))
        assert hub.members(tour_room("u")) == set()
        assert broken.rooms == set()

    @pytest.mark.asyncio
    async def test_emit_to_empty_room(self, hub):
        assert await hub.emit_to_tour(uuid4(), "itinerary:updated", {}) == 0

    def test_discard_is_idempotent(self, hub):
        connection, _ = registered(hub, "tour:a")
        hub.join(connection, "user:b")

        hub.discard(connection)
        hub.discard(connection)

        assert connection.rooms == set()
        assert hub.members("tour:a") == set()
        assert hub.connection_count == 0


class TestGateway:
    @pytest.mark.asyncio
    async def test_invalid_token_closes_with_4401(self, gateway, hub):
        socket = FakeWebSocket()

        await gateway.serve(socket, "not-a-jwt")

        assert socket.close_code == CLOSE_UNAUTHORIZED
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_missing_token_closes_with_4401(self, gateway):
        socket = FakeWebSocket()

        await gateway.serve(socket, None)

        assert socket.close_code == CLOSE_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_inactive_user_is_rejected(self, gateway, test_session):
        user = await add_user(test_session, "gone@example.com")
        user.is_active = False
        await test_session.commit()
        socket = FakeWebSocket()

        await gateway.serve(socket, create_access_token(user.id))

        assert socket.close_code == CLOSE_UNAUTHORIZED

    @pytest.mark.asyncio
    async def test_traveller_auto_joins_running_tours(
        self, gateway, hub, test_session, tour, traveller, running_departure
    ):
        later_tour = await add_tour(test_session, slug="later")
        await add_departure(test_session, later_tour)
        await add_booking(test_session, traveller, running_departure)

        socket = FakeWebSocket()
        task = asyncio.create_task(gateway.serve(socket, create_access_token(traveller.id)))
        await wait_until(lambda: hub.connection_count == 1 and hub.members(tour_room(tour.id)))

        (connection,) = hub.members(user_room(traveller.id))
        assert connection.state == ConnectionState.SUBSCRIBED
        assert connection.rooms == {user_room(traveller.id), tour_room(tour.id)}

        socket.disconnect()
        await task
        assert hub.connection_count == 0
        assert hub.members(tour_room(tour.id)) == set()

    @pytest.mark.asyncio
    async def test_owner_auto_joins_every_running_tour(self, gateway, hub, test_session, tour, owner, running_departure):
        socket = FakeWebSocket()
        task = asyncio.create_task(gateway.serve(socket, create_access_token(owner.id)))
        await wait_until(lambda: bool(hub.members(tour_room(tour.id))))

        socket.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_ping_and_join_leave(self, gateway, hub, test_session, tour, traveller, departure):
        await add_booking(test_session, traveller, departure, status=BookingStatus.CONFIRMED)
        unbooked = await add_tour(test_session, slug="unbooked")

        socket = FakeWebSocket()
        task = asyncio.create_task(gateway.serve(socket, create_access_token(traveller.id)))
        await wait_until(lambda: hub.connection_count == 1)
        (connection,) = hub.members(user_room(traveller.id))

        socket.push_text(json.dumps({"event": "ping"}))
        await wait_until(lambda: socket.events("pong"))

        socket.push_text(json.dumps({"event": "join:tour", "data": str(unbooked.id)}))
        socket.push_text("{not json")
        socket.push_text(json.dumps(["not", "an", "object"]))
        socket.push_text(json.dumps({"event": "join:tour", "data": str(tour.id)}))
        await wait_until(lambda: socket.events("joined:tour"))

        assert socket.events("joined:tour") == [{"tourId": str(tour.id)}]
        assert hub.is_member(connection, tour_room(tour.id))
        assert not hub.is_member(connection, tour_room(unbooked.id))

        socket.push_text(json.dumps({"event": "leave:tour", "data": {"tourId": str(tour.id)}}))
        await wait_until(lambda: not hub.is_member(connection, tour_room(tour.id)))

        socket.disconnect()
        await task

    @pytest.mark.asyncio
    async def test_pending_booking_cannot_join(self, gateway, test_session, tour, traveller, departure):
        await add_booking(test_session, traveller, departure, status=BookingStatus.PENDING)
        socket = FakeWebSocket()
        connection = Connection(socket)
        connection.principal = await gateway.authenticate(create_access_token(traveller.id))

        assert not await gateway.can_join_tour(connection.principal, tour.id)

    @pytest.mark.asyncio
    async def test_ended_booking_cannot_join(self, gateway, test_session, tour, traveller):
        finished = await add_departure(
            test_session, tour, starts_in=-timedelta(days=9), duration=timedelta(days=2)
        )
        await add_booking(test_session, traveller, finished)
        principal = await gateway.authenticate(create_access_token(traveller.id))

        assert not await gateway.can_join_tour(principal, tour.id)

    @pytest.mark.asyncio
    async def test_idle_connection_is_closed(self, hub, session_factory, traveller):
        gateway = RealtimeGateway(hub, session_factory, idle_timeout_seconds=0.05)
        socket = FakeWebSocket()

        await gateway.serve(socket, create_access_token(traveller.id))

        assert socket.close_code == CLOSE_IDLE
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_failed_push_ends_the_socket_loop(self, gateway, hub, test_session, tour, traveller, departure):
        await add_booking(test_session, traveller, departure, status=BookingStatus.CONFIRMED)
        socket = FakeWebSocket()
        task = asyncio.create_task(gateway.serve(socket, create_access_token(traveller.id)))
        await wait_until(lambda: hub.connection_count == 1)
        (connection,) = hub.members(user_room(traveller.id))

        socket.fail_sends = True
        assert await hub.emit_to_user(traveller.id, "notification:new", {}) == 0

        # Frames that were already in flight are not honoured
        socket.push_text(json.dumps({"event": "join:tour", "data": str(tour.id)}))
        await asyncio.wait_for(task, timeout=2)

        assert connection.state == ConnectionState.CLOSED
        assert not hub.is_member(connection, tour_room(tour.id))
        assert hub.members(user_room(traveller.id)) == set()
        assert hub.connection_count == 0

    @pytest.mark.asyncio
    async def test_storage_error_during_auth_closes_with_4401(self, hub, traveller):
        def broken_session_factory():
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        gateway = RealtimeGateway(hub, broken_session_factory, idle_timeout_seconds=5)
        socket = FakeWebSocket()

        await gateway.serve(socket, create_access_token(traveller.id))

        assert socket.close_code == CLOSE_UNAUTHORIZED
        assert hub.connection_count == 0
