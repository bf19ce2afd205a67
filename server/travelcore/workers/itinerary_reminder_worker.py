"""Background worker for upcoming-activity reminders."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.email_service import EmailDispatcher
from ..services.itinerary_service import ItineraryService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class ItineraryReminderWorker(BaseWorker):
    """
    Reminds travellers of itinerary items that start soon.

    Only tours with a departure in progress are scanned, and each item is
    reminded at most once until its time changes.
    """

    def __init__(
        self,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        interval_seconds: float = settings.itinerary_reminder_interval_seconds,
        minutes_ahead: int = settings.itinerary_reminder_minutes_ahead,
    ):
        super().__init__(name="ItineraryReminder", interval_seconds=interval_seconds)
        self.hub = hub
        self.email_dispatcher = email_dispatcher
        self.session_factory = session_factory
        self.minutes_ahead = minutes_ahead

    async def process(self) -> None:
        async with self.session_factory() as db:
            service = ItineraryService(db, self.hub, self.email_dispatcher)
            sent = await service.send_due_reminders(self.minutes_ahead)

        if sent > 0:
            logger.info(
                f"Sent reminders for {sent} itinerary items",
                extra={"items": sent, "worker": self.name}
            )
