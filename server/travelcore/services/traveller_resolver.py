"""Active-traveller resolution: who currently holds a live booking on a tour."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, List, Optional, Set
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import utcnow
from ..models.booking import LIVE_BOOKING_STATUSES, Booking, BookingStatus
from ..models.departure import TourDeparture
from ..models.user import User


class ResolveScope(str, Enum):
    """Which departures count when resolving a tour's audience."""
    ACTIVE_WINDOW = "ACTIVE_WINDOW"  # starts_at <= now <= ends_at
    NOT_ENDED = "NOT_ENDED"  # ends_at >= now
    ANY = "ANY"


@dataclass(frozen=True)
class ActiveTraveller:
    user_id: UUID
    email: str
    display_name: str


def departure_scope_condition(scope: ResolveScope, now: datetime):
    """SQL predicate on TourDeparture for a scope, evaluated against ``now``."""
    if scope == ResolveScope.ACTIVE_WINDOW:
        return (TourDeparture.starts_at <= now) & (TourDeparture.ends_at >= now)
    if scope == ResolveScope.NOT_ENDED:
        return TourDeparture.ends_at >= now
    return None


class TravellerResolver:
    """
    The single place that answers "who is on this tour right now".

    Results are recomputed on every call from bookings and the clock; the
    active state of a departure is never cached.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def resolve(
        self,
        tour_id: UUID,
        scope: ResolveScope = ResolveScope.NOT_ENDED,
    ) -> Set[ActiveTraveller]:
        """Distinct users with a PENDING or CONFIRMED booking on any in-scope departure."""
        stmt = (
            select(User.id, User.email, User.display_name, User.full_name)
            .join(Booking, Booking.user_id == User.id)
            .join(TourDeparture, TourDeparture.id == Booking.departure_id)
            .where(
                TourDeparture.tour_id == tour_id,
                Booking.status.in_(LIVE_BOOKING_STATUSES),
            )
            .distinct()
        )
        condition = departure_scope_condition(scope, utcnow())
        if condition is not None:
            stmt = stmt.where(condition)

        result = await self.db.execute(stmt)
        return {
            ActiveTraveller(
                user_id=row.id,
                email=row.email,
                display_name=row.display_name or row.full_name,
            )
            for row in result
        }

    async def has_booking(
        self,
        user_id: UUID,
        tour_id: UUID,
        statuses: Iterable[BookingStatus] = LIVE_BOOKING_STATUSES,
        scope: ResolveScope = ResolveScope.NOT_ENDED,
    ) -> bool:
        """Whether the user holds a booking in ``statuses`` on an in-scope departure of the tour."""
        conditions = [
            Booking.user_id == user_id,
            Booking.status.in_(list(statuses)),
            TourDeparture.tour_id == tour_id,
        ]
        condition = departure_scope_condition(scope, utcnow())
        if condition is not None:
            conditions.append(condition)

        stmt = select(
            exists()
            .where(*conditions)
            .where(TourDeparture.id == Booking.departure_id)
        )
        return bool(await self.db.scalar(stmt))

    async def tours_for_traveller(self, user_id: UUID) -> List[UUID]:
        """Tours where the user has a CONFIRMED booking on a departure running now."""
        stmt = (
            select(TourDeparture.tour_id)
            .join(Booking, Booking.departure_id == TourDeparture.id)
            .where(
                Booking.user_id == user_id,
                Booking.status == BookingStatus.CONFIRMED,
                departure_scope_condition(ResolveScope.ACTIVE_WINDOW, utcnow()),
            )
            .distinct()
        )
        result = await self.db.execute(stmt)
        return list(result.scalars())

    async def tours_with_active_departures(self, tour_ids: Optional[Iterable[UUID]] = None) -> List[UUID]:
        """Tours that have at least one departure running now."""
        stmt = (
            select(TourDeparture.tour_id)
            .where(departure_scope_condition(ResolveScope.ACTIVE_WINDOW, utcnow()))
            .distinct()
        )
        if tour_ids is not None:
            stmt = stmt.where(TourDeparture.tour_id.in_(list(tour_ids)))
        result = await self.db.execute(stmt)
        return list(result.scalars())
