"""Background worker that prunes old read notifications."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..services.notification_service import NotificationService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class NotificationRetentionWorker(BaseWorker):
    """Deletes read notifications older than the retention window. Unread ones are kept."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        interval_seconds: float = settings.notification_retention_interval_seconds,
        retention_days: int = settings.notification_retention_days,
    ):
        super().__init__(name="NotificationRetention", interval_seconds=interval_seconds)
        self.session_factory = session_factory
        self.retention_days = retention_days

    async def process(self) -> None:
        async with self.session_factory() as db:
            deleted = await NotificationService(db).purge_read_older_than(self.retention_days)

        if deleted > 0:
            logger.info(
                f"Deleted {deleted} read notifications",
                extra={"deleted": deleted, "worker": self.name}
            )
