"""Emergency alerts for everyone on a tour."""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import NotFoundError
from ..models.emergency import AlertSeverity, EmergencyAlert
from ..models.notification import NotificationType
from ..schemas.emergency import CreateEmergencyAlertRequest, EmergencyAlert as EmergencyAlertSchema
from .email_service import EmailDispatcher, emergency_alert_email
from .notification_service import FanOutEvent, FanOutResult, NotificationService
from .tour_service import TourService
from .traveller_resolver import ResolveScope, TravellerResolver

logger = logging.getLogger(__name__)

EMERGENCY_EVENT = "emergency:new"


class EmergencyService:
    """Create, list and deactivate emergency alerts."""

    def __init__(
        self,
        db: AsyncSession,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
    ):
        self.db = db
        self.tour_service = TourService(db)
        self.resolver = TravellerResolver(db)
        self.notifications = NotificationService(db, hub, email_dispatcher)

    async def create_alert(self, request: CreateEmergencyAlertRequest) -> Tuple[EmergencyAlert, FanOutResult]:
        """
        Store an alert and fan it out to every traveller whose departure has not ended.

        Each recipient gets an inbox notification, an ``emergency:new`` push
        and an email. The alert stays stored even if fan-out fails.

        Raises:
            NotFoundError: If the tour does not exist
            FanOutFailedError: If the notifications could not be stored
        """
        tour = await self.tour_service.get_tour_by_id_or_raise(request.tour_id)

        alert = EmergencyAlert(
            tour_id=request.tour_id,
            title=request.title,
            message=request.message,
            severity=request.severity,
            is_active=True,
        )
        self.db.add(alert)
        await self.db.commit()

        severity = AlertSeverity(alert.severity).value
        logger.warning(
            "Emergency alert created",
            extra={"alert_id": str(alert.id), "tour_id": str(alert.tour_id), "severity": severity}
        )

        alert_payload = EmergencyAlertSchema.model_validate(alert).model_dump(mode="json")
        recipients = await self.resolver.resolve(request.tour_id, ResolveScope.NOT_ENDED)
        result = await self.notifications.fan_out(
            recipients,
            FanOutEvent(
                type=NotificationType.EMERGENCY_ALERT,
                title=f"🚨 {alert.title}",
                message=alert.message,
                tour_id=alert.tour_id,
                push_event=EMERGENCY_EVENT,
                push_data={"tourId": str(alert.tour_id), "alert": alert_payload},
                email=lambda recipient: emergency_alert_email(
                    to=recipient.email,
                    name=recipient.display_name,
                    tour_title=tour.title,
                    alert_title=alert.title,
                    alert_message=alert.message,
                    severity=severity,
                ),
            ),
        )
        return alert, result

    async def deactivate_alert(self, alert_id: UUID) -> EmergencyAlert:
        """
        Mark an alert inactive. Deactivating an inactive alert changes nothing.

        Raises:
            NotFoundError: If the alert does not exist
        """
        result = await self.db.execute(
            update(EmergencyAlert)
            .where(EmergencyAlert.id == alert_id, EmergencyAlert.is_active.is_(True))
            .values(is_active=False, deactivated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        alert = await self.db.scalar(
            select(EmergencyAlert)
            .where(EmergencyAlert.id == alert_id)
            .execution_options(populate_existing=True)
        )
        if alert is None:
            raise NotFoundError(resource_type="emergency_alert", resource_id=str(alert_id))

        if result.rowcount == 1:
            logger.info(
                "Emergency alert deactivated",
                extra={"alert_id": str(alert_id), "tour_id": str(alert.tour_id)}
            )
        return alert

    async def list_active(self, tour_id: UUID) -> List[EmergencyAlert]:
        await self.tour_service.get_tour_by_id_or_raise(tour_id)
        result = await self.db.execute(
            select(EmergencyAlert)
            .where(EmergencyAlert.tour_id == tour_id, EmergencyAlert.is_active.is_(True))
            .order_by(EmergencyAlert.created_at.desc())
        )
        return list(result.scalars())
