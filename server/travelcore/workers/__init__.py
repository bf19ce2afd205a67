"""Background workers for reminders and notification retention."""

from .base import BaseWorker
from .itinerary_reminder_worker import ItineraryReminderWorker
from .manager import WorkerManager
from .notification_retention_worker import NotificationRetentionWorker

__all__ = [
    "BaseWorker",
    "ItineraryReminderWorker",
    "NotificationRetentionWorker",
    "WorkerManager",
]
