"""Itinerary items and the notifications their changes trigger."""

import logging
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.dependencies import Principal
from ..core.exceptions import AuthorizationError, FanOutFailedError, NotFoundError
from ..models.departure import TourDeparture
from ..models.itinerary import ItineraryItem
from ..models.notification import NotificationType
from ..schemas.itinerary import (
    CreateItineraryItemRequest,
    ItineraryItem as ItineraryItemSchema,
    UpdateItineraryItemRequest,
)
from .email_service import EmailDispatcher
from .notification_service import FanOutEvent, FanOutResult, NotificationService
from .tour_service import TourService
from .traveller_resolver import ResolveScope, TravellerResolver, departure_scope_condition

logger = logging.getLogger(__name__)

ITINERARY_EVENT = "itinerary:updated"


class ItineraryService:
    """
    Owner-managed itinerary with real-time change propagation.

    Every change is broadcast to the tour room. Updates and deletions also
    notify each active traveller individually; additions do not.
    """

    def __init__(
        self,
        db: AsyncSession,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
    ):
        self.db = db
        self.hub = hub
        self.tour_service = TourService(db)
        self.resolver = TravellerResolver(db)
        self.notifications = NotificationService(db, hub, email_dispatcher)

    async def get_itinerary(self, tour_id: UUID, principal: Principal) -> List[ItineraryItem]:
        """
        Items ordered by day then sort order.

        Raises:
            NotFoundError: If the tour does not exist
            AuthorizationError: If the caller has no live booking on the tour and is not an owner
        """
        await self.tour_service.get_tour_by_id_or_raise(tour_id)

        if not principal.is_owner:
            allowed = await self.resolver.has_booking(principal.user_id, tour_id, scope=ResolveScope.ANY)
            if not allowed:
                raise AuthorizationError("You must book this tour to view the itinerary")

        result = await self.db.execute(
            select(ItineraryItem)
            .where(ItineraryItem.tour_id == tour_id)
            .order_by(ItineraryItem.day_number, ItineraryItem.sort_order, ItineraryItem.created_at)
        )
        return list(result.scalars())

    async def get_item_or_raise(self, item_id: UUID) -> ItineraryItem:
        item = await self.db.get(ItineraryItem, item_id)
        if item is None:
            raise NotFoundError(resource_type="itinerary_item", resource_id=str(item_id))
        return item

    async def create_item(self, request: CreateItineraryItemRequest) -> ItineraryItem:
        await self.tour_service.get_tour_by_id_or_raise(request.tour_id)

        item = ItineraryItem(**request.model_dump())
        self.db.add(item)
        await self.db.commit()

        logger.info(
            "Itinerary item created",
            extra={"item_id": str(item.id), "tour_id": str(item.tour_id), "day_number": item.day_number}
        )
        await self._broadcast(item.tour_id, "added", self._payload(item))
        return item

    async def update_item(self, request: UpdateItineraryItemRequest) -> ItineraryItem:
        """Apply the fields present in the request, then broadcast and notify."""
        item = await self.get_item_or_raise(request.item_id)

        changes = request.model_dump(exclude_unset=True, exclude={"item_id"})
        for name, value in changes.items():
            setattr(item, name, value)
        if "scheduled_time" in changes:
            item.reminder_sent = False

        await self.db.commit()

        logger.info(
            "Itinerary item updated",
            extra={"item_id": str(item.id), "tour_id": str(item.tour_id), "fields": sorted(changes)}
        )

        payload = self._payload(item)
        await self._broadcast(item.tour_id, "updated", payload)
        await self._notify_travellers(
            item.tour_id,
            title="Itinerary Updated",
            message=f'The activity "{item.title}" has been updated. Please check the latest details.',
        )
        return item

    async def delete_item(self, item_id: UUID) -> dict:
        """Delete an item; returns its last state."""
        item = await self.get_item_or_raise(item_id)
        tour_id = item.tour_id
        title = item.title
        payload = self._payload(item)

        await self.db.delete(item)
        await self.db.commit()

        logger.info("Itinerary item deleted", extra={"item_id": str(item_id), "tour_id": str(tour_id)})

        await self._broadcast(tour_id, "deleted", payload)
        await self._notify_travellers(
            tour_id,
            title="Itinerary Updated",
            message=f'The activity "{title}" has been removed from the itinerary.',
        )
        return payload

    async def send_due_reminders(self, minutes_ahead: int) -> int:
        """
        Remind active travellers about items starting within ``minutes_ahead``.

        Only tours with a departure running now are considered. Each item is
        reminded once; changing its scheduled time re-arms it.
        """
        now = utcnow()
        cutoff = now + timedelta(minutes=minutes_ahead)
        running = (
            exists()
            .where(TourDeparture.tour_id == ItineraryItem.tour_id)
            .where(departure_scope_condition(ResolveScope.ACTIVE_WINDOW, now))
        )
        result = await self.db.execute(
            select(ItineraryItem)
            .where(
                ItineraryItem.reminder_sent.is_(False),
                ItineraryItem.scheduled_time >= now,
                ItineraryItem.scheduled_time <= cutoff,
                running,
            )
            .order_by(ItineraryItem.scheduled_time)
        )
        # Plain values: a failed fan-out rolls back and expires loaded rows
        due = [
            (item.id, item.tour_id, item.title, item.scheduled_time)
            for item in result.scalars()
        ]

        reminded = 0
        for item_id, tour_id, title, scheduled_time in due:
            recipients = await self.resolver.resolve(tour_id, ResolveScope.ACTIVE_WINDOW)
            try:
                await self.notifications.fan_out(
                    recipients,
                    FanOutEvent(
                        type=NotificationType.ITINERARY_REMINDER,
                        title="Upcoming Activity",
                        message=f"{title} starts at {scheduled_time.strftime('%H:%M')} UTC",
                        tour_id=tour_id,
                    ),
                )
            except FanOutFailedError:
                # Left unmarked so the next sweep tries again
                logger.warning(
                    "Itinerary reminder not stored, will retry",
                    extra={"item_id": str(item_id), "tour_id": str(tour_id)}
                )
                continue

            await self.db.execute(
                update(ItineraryItem)
                .where(ItineraryItem.id == item_id)
                .values(reminder_sent=True)
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            reminded += 1

            logger.info(
                "Itinerary reminder sent",
                extra={"item_id": str(item_id), "tour_id": str(tour_id), "recipients": len(recipients)}
            )

        return reminded

    async def _notify_travellers(self, tour_id: UUID, title: str, message: str) -> FanOutResult:
        recipients = await self.resolver.resolve(tour_id, ResolveScope.NOT_ENDED)
        return await self.notifications.fan_out(
            recipients,
            FanOutEvent(
                type=NotificationType.ITINERARY_UPDATE,
                title=title,
                message=message,
                tour_id=tour_id,
            ),
        )

    async def _broadcast(self, tour_id: UUID, action: str, item: dict) -> None:
        if self.hub is None:
            return
        await self.hub.emit_to_tour(
            tour_id,
            ITINERARY_EVENT,
            {"tourId": str(tour_id), "action": action, "item": item},
        )

    @staticmethod
    def _payload(item: ItineraryItem) -> dict:
        return ItineraryItemSchema.model_validate(item).model_dump(mode="json")
