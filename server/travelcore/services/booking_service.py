"""Booking lifecycle: create, read, list, cancel and owner status transitions."""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.database import utcnow
from ..core.dependencies import Principal
from ..core.exceptions import (
    AlreadyCancelledError,
    NotBookableError,
    NotFoundError,
    ValidationError,
)
from ..models.booking import Booking, BookingStatus
from ..models.departure import TourDeparture
from ..models.notification import NotificationType
from ..models.tour import TourStatus
from ..schemas.booking import CreateBookingRequest
from .capacity_ledger import BookingFields, CapacityLedger
from .email_service import EmailDispatcher, booking_confirmation_email
from .notification_service import FanOutEvent, NotificationService
from .traveller_resolver import ActiveTraveller

logger = logging.getLogger(__name__)


class BookingService:
    """Service for booking-related operations."""

    def __init__(
        self,
        db: AsyncSession,
        hub=None,
        email_dispatcher: Optional[EmailDispatcher] = None,
    ):
        self.db = db
        self.ledger = CapacityLedger(db)
        self.notifications = NotificationService(db, hub, email_dispatcher)

    async def create_booking(self, principal: Principal, request: CreateBookingRequest) -> Booking:
        """
        Book seats on a departure for the calling user.

        Raises:
            NotFoundError: If the departure or its tour does not exist
            NotBookableError: If the tour is not published
            DepartureClosedError: If the departure has started
            CapacityExceededError: If too few seats remain
        """
        departure = await self.db.scalar(
            select(TourDeparture)
            .options(selectinload(TourDeparture.tour))
            .where(TourDeparture.id == request.departure_id)
        )
        if departure is None or departure.tour is None:
            raise NotFoundError(resource_type="departure", resource_id=str(request.departure_id))

        if not departure.tour.is_bookable:
            logger.info(
                "Booking rejected - tour not published",
                extra={"tour_id": str(departure.tour_id), "tour_status": TourStatus(departure.tour.status).value}
            )
            raise NotBookableError(str(departure.tour_id), TourStatus(departure.tour.status).value)

        booking = await self.ledger.reserve(
            request.departure_id,
            request.traveller_count,
            BookingFields(
                user_id=principal.user_id,
                contact_name=request.contact_name,
                contact_phone=request.contact_phone,
                contact_email=request.contact_email,
                special_requests=request.special_requests,
            ),
        )

        logger.info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "user_id": str(principal.user_id),
                "departure_id": str(request.departure_id),
                "traveller_count": request.traveller_count,
            }
        )
        return await self.get_booking_with_departure(booking.id)

    async def get_booking_with_departure(self, booking_id: UUID) -> Optional[Booking]:
        return await self.db.scalar(
            select(Booking)
            .options(selectinload(Booking.departure).selectinload(TourDeparture.tour))
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )

    async def _get_visible_booking(self, booking_id: UUID, principal: Principal) -> Booking:
        # Other users' bookings are reported as missing
        booking = await self.get_booking_with_departure(booking_id)
        if booking is None or (booking.user_id != principal.user_id and not principal.is_owner):
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
        return booking

    async def get_booking(self, booking_id: UUID, principal: Principal) -> Booking:
        return await self._get_visible_booking(booking_id, principal)

    async def cancel_booking(self, booking_id: UUID, principal: Principal) -> Booking:
        """
        Cancel one of the caller's bookings and return its seats.

        Raises:
            NotFoundError: If the booking does not exist or is not the caller's
            AlreadyCancelledError: If it is already cancelled
            DepartureStartedError: If its departure has started
        """
        await self._get_visible_booking(booking_id, principal)
        await self.ledger.release(booking_id)

        logger.info(
            "Booking cancelled",
            extra={"booking_id": str(booking_id), "cancelled_by": str(principal.user_id)}
        )
        return await self.get_booking_with_departure(booking_id)

    async def list_bookings(
        self,
        principal: Principal,
        page: int = 1,
        limit: int = 10,
        status: Optional[BookingStatus] = None,
    ) -> Tuple[List[Booking], int]:
        """The caller's own bookings, newest first."""
        return await self._list(page, limit, status=status, user_id=principal.user_id)

    async def list_all_bookings(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[BookingStatus] = None,
        tour_id: Optional[UUID] = None,
    ) -> Tuple[List[Booking], int]:
        """Every booking, for operators."""
        return await self._list(page, limit, status=status, tour_id=tour_id)

    async def _list(
        self,
        page: int,
        limit: int,
        status: Optional[BookingStatus] = None,
        user_id: Optional[UUID] = None,
        tour_id: Optional[UUID] = None,
    ) -> Tuple[List[Booking], int]:
        conditions = []
        if user_id is not None:
            conditions.append(Booking.user_id == user_id)
        if status is not None:
            conditions.append(Booking.status == status)
        if tour_id is not None:
            conditions.append(
                Booking.departure_id.in_(
                    select(TourDeparture.id).where(TourDeparture.tour_id == tour_id)
                )
            )

        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.departure).selectinload(TourDeparture.tour))
            .where(*conditions)
            .order_by(Booking.created_at.desc(), Booking.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        total = await self.db.scalar(
            select(func.count()).select_from(Booking).where(*conditions)
        )
        return list(result.scalars()), total or 0

    async def update_booking_status(self, booking_id: UUID, status: BookingStatus) -> Booking:
        """
        Operator transition of a booking.

        CONFIRMED is accepted from PENDING, and repeating it is a no-op.
        CANCELLED goes through the capacity ledger so seats come back exactly
        once. A cancelled booking never changes again.

        Raises:
            NotFoundError: If the booking does not exist
            AlreadyCancelledError: If the booking is cancelled
            DepartureStartedError: When cancelling after the departure started
            ValidationError: For any other target status
        """
        if status == BookingStatus.CONFIRMED:
            return await self._confirm(booking_id)
        if status == BookingStatus.CANCELLED:
            return await self._cancel_by_owner(booking_id)
        raise ValidationError(
            detail="A booking can only be moved to CONFIRMED or CANCELLED",
            violations=[{"path": "status", "message": "must be CONFIRMED or CANCELLED"}],
        )

    async def _confirm(self, booking_id: UUID) -> Booking:
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
            .values(status=BookingStatus.CONFIRMED, confirmed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        booking = await self.get_booking_with_departure(booking_id)
        if booking is None:
            raise NotFoundError(resource_type="booking", resource_id=str(booking_id))

        if result.rowcount != 1:
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledError(str(booking_id))
            # Already confirmed
            return booking

        logger.info("Booking confirmed", extra={"booking_id": str(booking_id)})

        departure = booking.departure
        tour = departure.tour
        await self.notifications.fan_out(
            [self._booking_recipient(booking)],
            FanOutEvent(
                type=NotificationType.BOOKING_UPDATE,
                title="Booking Confirmed!",
                message=(
                    f'Your booking for "{tour.title}" has been confirmed. '
                    "Get ready for an amazing journey!"
                ),
                tour_id=tour.id,
                booking_id=booking.id,
                email=lambda recipient: booking_confirmation_email(
                    to=booking.contact_email,
                    name=booking.contact_name,
                    tour_title=tour.title,
                    starts_at=departure.starts_at,
                    ends_at=departure.ends_at,
                    traveller_count=booking.traveller_count,
                    total_amount=booking.total_amount,
                    currency=booking.currency,
                    booking_id=str(booking.id),
                ),
            ),
        )
        return booking

    async def _cancel_by_owner(self, booking_id: UUID) -> Booking:
        await self.ledger.release(booking_id)
        booking = await self.get_booking_with_departure(booking_id)

        logger.info("Booking cancelled by operator", extra={"booking_id": str(booking_id)})

        tour = booking.departure.tour
        await self.notifications.fan_out(
            [self._booking_recipient(booking)],
            FanOutEvent(
                type=NotificationType.BOOKING_UPDATE,
                title="Booking Cancelled",
                message=f'Your booking for "{tour.title}" has been cancelled.',
                tour_id=tour.id,
                booking_id=booking.id,
            ),
        )
        return booking

    @staticmethod
    def _booking_recipient(booking: Booking) -> ActiveTraveller:
        return ActiveTraveller(
            user_id=booking.user_id,
            email=booking.contact_email,
            display_name=booking.contact_name,
        )
