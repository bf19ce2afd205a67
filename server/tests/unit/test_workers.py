"""Unit tests for background workers."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from conftest import add_booking
from travelcore.core.database import utcnow
from travelcore.models import ItineraryItem, Notification, NotificationType
from travelcore.services.notification_service import FanOutEvent, NotificationService
from travelcore.services.traveller_resolver import ActiveTraveller
from travelcore.workers import BaseWorker, ItineraryReminderWorker, NotificationRetentionWorker, WorkerManager


@pytest.mark.asyncio
async def test_reminder_worker_sends_due_reminders(session_factory, test_session, hub, tour, traveller, running_departure):
    await add_booking(test_session, traveller, running_departure)
    test_session.add(ItineraryItem(
        tour_id=tour.id,
        day_number=1,
        title="Ice cave",
        scheduled_time=utcnow() + timedelta(minutes=15),
    ))
    await test_session.commit()

    worker = ItineraryReminderWorker(hub=hub, session_factory=session_factory, minutes_ahead=30)
    await worker.process()

    notification = await test_session.scalar(select(Notification))
    assert notification.type == NotificationType.ITINERARY_REMINDER.value
    assert notification.user_id == traveller.id


@pytest.mark.asyncio
async def test_retention_worker_purges_old_read(session_factory, test_session, traveller):
    await NotificationService(test_session).fan_out(
        [ActiveTraveller(traveller.id, traveller.email, traveller.full_name)],
        FanOutEvent(type=NotificationType.GENERAL, title="Old", message="Old news"),
    )
    await test_session.execute(
        update(Notification).values(is_read=True, created_at=utcnow() - timedelta(days=45))
    )
    await test_session.commit()

    await NotificationRetentionWorker(session_factory=session_factory, retention_days=30).process()

    assert await test_session.scalar(select(Notification)) is None


@pytest.mark.asyncio
async def test_worker_loop_survives_errors():
    calls = []

    class FlakyWorker(BaseWorker):
        async def process(self):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("first run fails")

    worker = FlakyWorker(name="Flaky", interval_seconds=0.01)
    await worker.start()
    while len(calls) < 3:
        await asyncio.sleep(0.01)
    await worker.stop()

    assert not worker.running
    assert len(calls) >= 3


@pytest.mark.asyncio
async def test_manager_starts_and_stops_all(hub, email_dispatcher, session_factory, monkeypatch):
    manager = WorkerManager(hub, email_dispatcher, session_factory)

    async def idle():
        return None

    for worker in manager.workers.values():
        monkeypatch.setattr(worker, "process", idle)

    assert set(manager.get_worker_status()) == {"itinerary_reminder", "notification_retention"}
    assert manager.get_worker("itinerary_reminder").hub is hub

    await manager.start_all()
    assert all(manager.get_worker_status().values())

    await manager.stop_all()
    assert not any(manager.get_worker_status().values())
