"""Notification store and the fan-out engine that feeds it."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import FanOutFailedError, NotFoundError
from ..core.observability import get_logger, metrics_collector
from ..models.notification import Notification, NotificationType
from ..schemas.notification import Notification as NotificationSchema
from .email_service import EmailDispatcher, OutboundEmail
from .traveller_resolver import ActiveTraveller

logger = logging.getLogger(__name__)
fan_out_logger = get_logger("travelcore.fan_out")

NOTIFICATION_PUSH_EVENT = "notification:new"


@dataclass(frozen=True)
class FanOutEvent:
    """
    One logical event to deliver to an audience.

    Every recipient gets a stored notification. The real-time push sends
    ``push_data`` when given, otherwise the recipient's own notification.
    ``email`` renders a per-recipient message; None means no email.
    """

    type: NotificationType
    title: str
    message: str
    tour_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    push_event: str = NOTIFICATION_PUSH_EVENT
    push_data: Optional[dict] = None
    email: Optional[Callable[[ActiveTraveller], OutboundEmail]] = None


@dataclass
class FanOutResult:
    notified: int = 0
    pushed: int = 0
    push_failures: int = 0
    emailed: int = 0
    email_failures: int = 0
    notification_ids: List[UUID] = field(default_factory=list)


class NotificationService:
    """
    Persist notifications and deliver them across side channels.

    ``fan_out`` stores every recipient's row in one bulk insert and one
    commit before any push starts. Once stored, real-time push and email
    are best-effort: their failures are logged and counted, never raised,
    and never roll the rows back. The inbox queries double as the recovery
    path for anything a side channel missed.
    """

    def __init__(
        self,
        db: AsyncSession,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
    ):
        self.db = db
        self.hub = hub
        self.email_dispatcher = email_dispatcher

    async def fan_out(self, recipients: Iterable[ActiveTraveller], event: FanOutEvent) -> FanOutResult:
        """
        Deliver ``event`` to every recipient.

        Raises:
            FanOutFailedError: If the notifications could not be stored;
                nothing is pushed or emailed in that case
        """
        audience = {}
        for recipient in recipients:
            audience.setdefault(recipient.user_id, recipient)
        audience = list(audience.values())

        result = FanOutResult()
        if not audience:
            return result

        now = utcnow()
        rows = [
            {
                "id": uuid.uuid4(),
                "user_id": recipient.user_id,
                "type": event.type.value,
                "title": event.title,
                "message": event.message,
                "is_read": False,
                "read_at": None,
                "tour_id": event.tour_id,
                "booking_id": event.booking_id,
                "created_at": now,
            }
            for recipient in audience
        ]

        try:
            await self.db.execute(insert(Notification), rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            metrics_collector.record_fan_out_failure()
            fan_out_logger.error(
                "Notification persistence failed",
                notification_type=event.type.value,
                recipient_count=len(rows),
                error=str(e),
            )
            raise FanOutFailedError(len(rows), event.type.value) from e

        result.notified = len(rows)
        result.notification_ids = [row["id"] for row in rows]
        metrics_collector.record_notifications_persisted(event.type.value, len(rows))

        outcomes = await asyncio.gather(
            *(self._deliver(recipient, row, event) for recipient, row in zip(audience, rows))
        )
        for pushed, push_failed, emailed, email_failed in outcomes:
            result.pushed += pushed
            result.push_failures += push_failed
            result.emailed += emailed
            result.email_failures += email_failed

        fan_out_logger.info(
            "Fan-out completed",
            notification_type=event.type.value,
            tour_id=str(event.tour_id) if event.tour_id else None,
            notified=result.notified,
            pushed=result.pushed,
            push_failures=result.push_failures,
            emailed=result.emailed,
            email_failures=result.email_failures,
        )
        return result

    async def _deliver(self, recipient: ActiveTraveller, row: dict, event: FanOutEvent) -> Tuple[int, int, int, int]:
        """Push and email one recipient concurrently; returns per-channel success/failure flags."""
        payload = event.push_data
        if payload is None:
            payload = NotificationSchema.model_validate(row).model_dump(mode="json")

        channels = []
        if self.hub is not None:
            channels.append(self.hub.emit_to_user(recipient.user_id, event.push_event, payload))
        wants_email = event.email is not None and self.email_dispatcher is not None
        if wants_email:
            channels.append(self._send_email(recipient, event))

        results = await asyncio.gather(*channels, return_exceptions=True)

        pushed = push_failed = emailed = email_failed = 0
        if self.hub is not None:
            push_result = results[0]
            if isinstance(push_result, BaseException):
                push_failed = 1
                metrics_collector.record_push("failed")
                fan_out_logger.warning(
                    "Real-time push failed",
                    user_id=str(recipient.user_id),
                    event_name=event.push_event,
                    error=str(push_result),
                )
            elif push_result > 0:
                pushed = 1
                metrics_collector.record_push("delivered")
            else:
                metrics_collector.record_push("offline")

        if wants_email:
            email_result = results[-1]
            if email_result is True:
                emailed = 1
            else:
                email_failed = 1
                if isinstance(email_result, BaseException):
                    fan_out_logger.warning(
                        "Email delivery raised",
                        user_id=str(recipient.user_id),
                        error=str(email_result),
                    )

        return pushed, push_failed, emailed, email_failed

    async def _send_email(self, recipient: ActiveTraveller, event: FanOutEvent) -> bool:
        return await self.email_dispatcher.send(event.email(recipient))

    # Inbox

    async def list_notifications(
        self,
        user_id: UUID,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> Tuple[List[Notification], int, int]:
        """Return (page of notifications newest first, total matching, unread count)."""
        conditions = [Notification.user_id == user_id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        items = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = await self.db.scalar(
            select(func.count()).select_from(Notification).where(*conditions)
        )
        unread = await self.unread_count(user_id)
        return list(items.scalars()), total or 0, unread

    async def unread_count(self, user_id: UUID) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        return count or 0

    async def mark_as_read(self, notification_id: UUID, user_id: UUID) -> Notification:
        """
        Mark one of the user's notifications read.

        Raises:
            NotFoundError: If the notification does not exist or belongs to someone else
        """
        notification = await self.db.scalar(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if notification is None:
            raise NotFoundError(resource_type="notification", resource_id=str(notification_id))

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            await self.db.commit()
        return notification

    async def mark_all_as_read(self, user_id: UUID) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(
            "Notifications marked as read",
            extra={"user_id": str(user_id), "updated": result.rowcount}
        )
        return result.rowcount

    async def purge_read_older_than(self, days: int) -> int:
        """Delete read notifications created more than ``days`` ago."""
        cutoff = utcnow() - timedelta(days=days)
        result = await self.db.execute(
            delete(Notification)
            .where(Notification.is_read.is_(True), Notification.created_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(
            "Purged read notifications",
            extra={"deleted": result.rowcount, "older_than_days": days}
        )
        return result.rowcount
