"""Worker manager for coordinating background tasks."""

import asyncio
import logging
from typing import Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory
from ..services.email_service import EmailDispatcher
from .base import BaseWorker
from .itinerary_reminder_worker import ItineraryReminderWorker
from .notification_retention_worker import NotificationRetentionWorker

logger = logging.getLogger(__name__)


class WorkerManager:
    """
    Manages background workers for the application.

    Built once per application with the same hub and email dispatcher the
    request handlers use, so reminders reach the same sockets.
    """

    def __init__(
        self,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    ):
        self.hub = hub
        self.email_dispatcher = email_dispatcher
        self.session_factory = session_factory
        self.workers: Dict[str, BaseWorker] = {}
        self._setup_workers()

    def _setup_workers(self) -> None:
        self.workers["itinerary_reminder"] = ItineraryReminderWorker(
            hub=self.hub,
            email_dispatcher=self.email_dispatcher,
            session_factory=self.session_factory,
        )
        self.workers["notification_retention"] = NotificationRetentionWorker(
            session_factory=self.session_factory,
        )

        logger.info(f"Initialized {len(self.workers)} workers")

    async def start_all(self) -> None:
        """Start all workers."""
        logger.info("Starting all workers")

        for name, worker in self.workers.items():
            try:
                await worker.start()
                logger.info(f"Started worker: {name}")
            except Exception as e:
                logger.error(f"Failed to start worker {name}: {str(e)}", exc_info=True)

        logger.info(f"Started {len(self.workers)} workers")

    async def stop_all(self) -> None:
        """Stop all workers gracefully."""
        logger.info("Stopping all workers")

        results = await asyncio.gather(
            *(worker.stop() for worker in self.workers.values()),
            return_exceptions=True
        )

        for name, result in zip(self.workers.keys(), results):
            if isinstance(result, Exception):
                logger.error(f"Error stopping worker {name}: {str(result)}")
            else:
                logger.info(f"Stopped worker: {name}")

        logger.info("All workers stopped")

    def get_worker(self, name: str) -> BaseWorker:
        """
        Get a specific worker by name.

        Raises:
            KeyError: If worker not found
        """
        return self.workers[name]

    def get_worker_status(self) -> Dict[str, bool]:
        return {name: worker.running for name, worker in self.workers.items()}
