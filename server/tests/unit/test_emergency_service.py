"""Unit tests for emergency alerts."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from conftest import FakeWebSocket, add_booking, add_user
from travelcore.core.exceptions import NotFoundError
from travelcore.models import AlertSeverity, BookingStatus, Notification, NotificationType
from travelcore.realtime import Connection
from travelcore.realtime.hub import user_room
from travelcore.schemas.emergency import CreateEmergencyAlertRequest
from travelcore.services.email_service import EmailDispatcher
from travelcore.services.emergency_service import EmergencyService


def alert_request(tour_id, **overrides) -> CreateEmergencyAlertRequest:
    values = dict(
        tour_id=tour_id,
        title="Road closure",
        message="Route 1 is closed; the bus leaves at 7 instead.",
        severity=AlertSeverity.CRITICAL,
    )
    values.update(overrides)
    return CreateEmergencyAlertRequest(**values)


@pytest.mark.asyncio
async def test_alert_reaches_three_travellers_with_email_offline(test_session, hub, tour, running_departure, departure):
    travellers = [await add_user(test_session, f"t{i}@example.com") for i in range(3)]
    await add_booking(test_session, travellers[0], running_departure)
    await add_booking(test_session, travellers[1], running_departure, status=BookingStatus.PENDING)
    await add_booking(test_session, travellers[2], departure)

    sockets = []
    for user in travellers[:2]:
        socket = FakeWebSocket()
        connection = Connection(socket)
        hub.register(connection)
        hub.join(connection, user_room(user.id))
        sockets.append(socket)

    service = EmergencyService(test_session, hub, EmailDispatcher(None))
    alert, result = await service.create_alert(alert_request(tour.id))

    assert alert.is_active
    assert result.notified == 3
    assert result.pushed == 2
    assert result.emailed == 0
    assert result.email_failures == 3

    rows = (await test_session.execute(select(Notification))).scalars().all()
    assert {n.user_id for n in rows} == {u.id for u in travellers}
    assert all(n.type == NotificationType.EMERGENCY_ALERT.value for n in rows)
    assert all(n.title == "🚨 Road closure" for n in rows)

    for socket in sockets:
        (payload,) = socket.events("emergency:new")
        assert payload["tourId"] == str(tour.id)
        assert payload["alert"]["id"] == str(alert.id)
        assert payload["alert"]["severity"] == "critical"


@pytest.mark.asyncio
async def test_alert_emails_every_recipient(test_session, hub, email_dispatcher, email_outbox, tour, traveller, running_departure):
    await add_booking(test_session, traveller, running_departure)

    _, result = await EmergencyService(test_session, hub, email_dispatcher).create_alert(alert_request(tour.id))

    assert result.emailed == 1
    (email,) = email_outbox.sent
    assert email.to == traveller.email
    assert email.subject == f"🚨 URGENT: Road closure - {tour.title}"
    assert "#dc3545" in email.html


@pytest.mark.asyncio
async def test_alert_for_unknown_tour(test_session, hub):
    with pytest.raises(NotFoundError):
        await EmergencyService(test_session, hub).create_alert(alert_request(uuid4()))


@pytest.mark.asyncio
async def test_deactivate_is_idempotent(test_session, tour):
    service = EmergencyService(test_session)
    alert, _ = await service.create_alert(alert_request(tour.id))

    first = await service.deactivate_alert(alert.id)
    assert not first.is_active
    deactivated_at = first.deactivated_at
    assert deactivated_at is not None

    second = await service.deactivate_alert(alert.id)
    assert not second.is_active
    assert second.deactivated_at == deactivated_at

    assert await service.list_active(tour.id) == []


@pytest.mark.asyncio
async def test_deactivate_unknown_alert(test_session):
    with pytest.raises(NotFoundError):
        await EmergencyService(test_session).deactivate_alert(uuid4())


@pytest.mark.asyncio
async def test_list_active_newest_first(test_session, tour):
    service = EmergencyService(test_session)
    older, _ = await service.create_alert(alert_request(tour.id, title="Older"))
    newer, _ = await service.create_alert(alert_request(tour.id, title="Newer", severity=AlertSeverity.LOW))

    active = await service.list_active(tour.id)

    assert [a.id for a in active] == [newer.id, older.id]
