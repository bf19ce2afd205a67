"""Capacity ledger: the only writer of a departure's ``booked_count``."""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..core.exceptions import (
    AlreadyCancelledError,
    CapacityExceededError,
    DepartureClosedError,
    DepartureStartedError,
    InternalServerError,
    NotFoundError,
    ProblemDetailsException,
)
from ..core.observability import metrics_collector
from ..models.booking import LIVE_BOOKING_STATUSES, Booking, BookingStatus
from ..models.departure import TourDeparture
from .departure_service import lock_departure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookingFields:
    """Everything about a new booking except its seats and price."""

    user_id: UUID
    contact_name: str
    contact_phone: str
    contact_email: str
    special_requests: Optional[str] = None


class CapacityLedger:
    """
    Reserves and releases seats on tour departures.

    Each call is one transaction on the given session. The seat count moves
    through a single conditional UPDATE whose row count decides the outcome,
    so the capacity and start-time predicates are always evaluated against
    committed state. Rejections are diagnosed after the fact from the same
    transaction. Nothing is retried here.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve(
        self,
        departure_id: UUID,
        traveller_count: int,
        fields: BookingFields,
    ) -> Booking:
        """
        Take ``traveller_count`` seats and insert a PENDING booking.

        Raises:
            NotFoundError: If the departure does not exist
            DepartureClosedError: If the departure has started
            CapacityExceededError: If fewer seats remain than requested
        """
        if traveller_count < 1:
            raise ValueError("traveller_count must be positive")

        try:
            await lock_departure(self.db, departure_id)
            now = utcnow()

            result = await self.db.execute(
                update(TourDeparture)
                .where(
                    TourDeparture.id == departure_id,
                    TourDeparture.starts_at > now,
                    TourDeparture.booked_count + traveller_count <= TourDeparture.capacity_total,
                )
                .values(booked_count=TourDeparture.booked_count + traveller_count)
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                raise await self._reserve_rejection(departure_id, traveller_count, now)

            departure = await self._load_departure(departure_id)
            booking = Booking(
                user_id=fields.user_id,
                departure_id=departure_id,
                status=BookingStatus.PENDING,
                traveller_count=traveller_count,
                total_amount=departure.price_amount * traveller_count,
                currency=departure.price_currency,
                contact_name=fields.contact_name,
                contact_phone=fields.contact_phone,
                contact_email=fields.contact_email,
                special_requests=fields.special_requests,
                created_at=now,
            )
            self.db.add(booking)
            await self.db.commit()

        except ProblemDetailsException as e:
            await self.db.rollback()
            metrics_collector.record_capacity_rejection(e.code)
            logger.info(
                "Seat reservation rejected",
                extra={
                    "departure_id": str(departure_id),
                    "traveller_count": traveller_count,
                    "reason": e.code,
                }
            )
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Seat reservation failed in storage",
                extra={"departure_id": str(departure_id), "traveller_count": traveller_count},
                exc_info=True
            )
            raise

        metrics_collector.record_booking_created(traveller_count)
        logger.info(
            "Seats reserved",
            extra={
                "booking_id": str(booking.id),
                "departure_id": str(departure_id),
                "traveller_count": traveller_count,
                "booked_count": departure.booked_count,
                "capacity_total": departure.capacity_total,
            }
        )
        return booking

    async def release(self, booking_id: UUID) -> Booking:
        """
        Cancel a live booking and give its seats back, exactly once.

        Raises:
            NotFoundError: If the booking does not exist
            AlreadyCancelledError: If the booking is already cancelled
            DepartureStartedError: If the departure has started
        """
        try:
            booking = await self._load_booking(booking_id)
            if booking is None:
                raise NotFoundError(resource_type="booking", resource_id=str(booking_id))
            if booking.status == BookingStatus.CANCELLED:
                raise AlreadyCancelledError(str(booking_id))

            departure_id = booking.departure_id
            traveller_count = booking.traveller_count

            await lock_departure(self.db, departure_id)
            now = utcnow()

            # Flip the status only while live and before the departure starts
            not_started = select(TourDeparture.id).where(
                TourDeparture.id == departure_id,
                TourDeparture.starts_at > now,
            )
            flipped = await self.db.execute(
                update(Booking)
                .where(
                    Booking.id == booking_id,
                    Booking.status.in_(LIVE_BOOKING_STATUSES),
                    Booking.departure_id.in_(not_started),
                )
                .values(status=BookingStatus.CANCELLED, cancelled_at=now)
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                raise await self._release_rejection(booking_id, departure_id)

            returned = await self.db.execute(
                update(TourDeparture)
                .where(
                    TourDeparture.id == departure_id,
                    TourDeparture.booked_count >= traveller_count,
                )
                .values(booked_count=TourDeparture.booked_count - traveller_count)
                .execution_options(synchronize_session=False)
            )
            if returned.rowcount != 1:
                logger.error(
                    "Departure booked_count lower than a live booking's seats",
                    extra={
                        "booking_id": str(booking_id),
                        "departure_id": str(departure_id),
                        "traveller_count": traveller_count,
                    }
                )
                raise InternalServerError(detail="Seat ledger is inconsistent for this departure")

            await self.db.commit()

        except ProblemDetailsException as e:
            await self.db.rollback()
            metrics_collector.record_capacity_rejection(e.code)
            logger.info(
                "Seat release rejected",
                extra={"booking_id": str(booking_id), "reason": e.code}
            )
            raise
        except SQLAlchemyError:
            await self.db.rollback()
            logger.error(
                "Seat release failed in storage",
                extra={"booking_id": str(booking_id)},
                exc_info=True
            )
            raise

        booking = await self._load_booking(booking_id)
        metrics_collector.record_booking_cancelled()
        logger.info(
            "Seats released",
            extra={
                "booking_id": str(booking_id),
                "departure_id": str(departure_id),
                "traveller_count": traveller_count,
            }
        )
        return booking

    async def _load_departure(self, departure_id: UUID) -> Optional[TourDeparture]:
        # populate_existing: the conditional UPDATEs bypass the identity map
        result = await self.db.execute(
            select(TourDeparture)
            .where(TourDeparture.id == departure_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _load_booking(self, booking_id: UUID) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _reserve_rejection(
        self,
        departure_id: UUID,
        traveller_count: int,
        now,
    ) -> ProblemDetailsException:
        departure = await self._load_departure(departure_id)
        if departure is None:
            return NotFoundError(resource_type="departure", resource_id=str(departure_id))
        if departure.starts_at <= now:
            return DepartureClosedError(str(departure_id), departure.starts_at)
        return CapacityExceededError(
            departure_id=str(departure_id),
            requested_seats=traveller_count,
            remaining_seats=departure.remaining_seats,
            capacity_total=departure.capacity_total,
        )

    async def _release_rejection(self, booking_id: UUID, departure_id: UUID) -> ProblemDetailsException:
        booking = await self._load_booking(booking_id)
        if booking is None:
            return NotFoundError(resource_type="booking", resource_id=str(booking_id))
        if booking.status == BookingStatus.CANCELLED:
            return AlreadyCancelledError(str(booking_id))
        departure = await self._load_departure(departure_id)
        return DepartureStartedError(str(departure_id), departure.starts_at)
