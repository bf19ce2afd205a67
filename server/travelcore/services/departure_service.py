"""Departure service for scheduling and searching departures."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import is_postgres
from ..core.exceptions import NotFoundError
from ..models.departure import TourDeparture
from ..schemas.departure import (
    CreateDepartureRequest,
    Departure,
    SearchDeparturesRequest,
    SearchDeparturesResponse,
)
from .tour_service import TourService

logger = logging.getLogger(__name__)


async def lock_departure(db: AsyncSession, departure_id: UUID) -> None:
    """
    Take a transaction-scoped advisory lock on a departure.

    All capacity mutations of one departure queue behind this lock on
    PostgreSQL; it is released automatically at commit or rollback. SQLite
    serializes writers on its own so nothing is taken there.
    """
    if not is_postgres(db):
        return
    await db.execute(
        text("SELECT pg_advisory_xact_lock(hashtext(:departure_id))"),
        {"departure_id": str(departure_id)}
    )
    logger.debug(
        "Acquired advisory lock for departure",
        extra={"departure_id": str(departure_id)}
    )


class DepartureService:
    """Service for departure-related operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.tour_service = TourService(db)

    async def create_departure(self, request: CreateDepartureRequest) -> TourDeparture:
        """
        Schedule a new departure of an existing tour.

        Capacity is fixed here; no seats are booked yet.

        Raises:
            NotFoundError: If tour not found
        """
        await self.tour_service.get_tour_by_id_or_raise(request.tour_id)

        departure = TourDeparture(
            tour_id=request.tour_id,
            starts_at=request.starts_at,
            ends_at=request.ends_at,
            capacity_total=request.capacity_total,
            booked_count=0,
            price_amount=request.price.amount,
            price_currency=request.price.currency
        )

        self.db.add(departure)
        await self.db.commit()

        logger.info(
            "Departure created successfully",
            extra={
                "departure_id": str(departure.id),
                "tour_id": str(departure.tour_id),
                "starts_at": departure.starts_at.isoformat(),
                "capacity_total": departure.capacity_total
            }
        )

        return departure

    async def search_departures(self, request: SearchDeparturesRequest) -> SearchDeparturesResponse:
        """
        Search departures, cursor-paginated by departure id.
        """
        stmt = select(TourDeparture)

        conditions = []

        if request.tour_id:
            conditions.append(TourDeparture.tour_id == request.tour_id)

        if request.date_from:
            conditions.append(
                TourDeparture.starts_at >= datetime.combine(request.date_from, datetime.min.time())
            )

        if request.date_to:
            # Include the entire day
            date_to_end = datetime.combine(request.date_to, datetime.min.time()) + timedelta(days=1)
            conditions.append(TourDeparture.starts_at < date_to_end)

        if request.available_only:
            conditions.append(TourDeparture.booked_count < TourDeparture.capacity_total)

        if conditions:
            stmt = stmt.where(and_(*conditions))

        if request.cursor:
            try:
                cursor_id = UUID(request.cursor)
                stmt = stmt.where(TourDeparture.id > cursor_id)
            except (ValueError, TypeError):
                logger.warning(
                    "Invalid cursor provided in departure search",
                    extra={"cursor": request.cursor}
                )

        # Fetch one extra row to know whether another page exists
        stmt = stmt.order_by(TourDeparture.id).limit(request.limit + 1)

        result = await self.db.execute(stmt)
        departures = list(result.scalars())

        has_next_page = len(departures) > request.limit
        if has_next_page:
            departures = departures[:-1]

        next_cursor = str(departures[-1].id) if has_next_page and departures else None

        logger.info(
            "Departure search completed",
            extra={
                "total_found": len(departures),
                "has_next_page": has_next_page,
                "tour_id": str(request.tour_id) if request.tour_id else None,
                "available_only": request.available_only
            }
        )

        return SearchDeparturesResponse(
            items=[Departure.from_model(d) for d in departures],
            next_cursor=next_cursor
        )

    async def get_departure_by_id(self, departure_id: UUID) -> TourDeparture | None:
        stmt = select(TourDeparture).where(TourDeparture.id == departure_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_departure_by_id_or_raise(self, departure_id: UUID) -> TourDeparture:
        """
        Get departure by ID or raise NotFoundError.

        Raises:
            NotFoundError: If departure not found
        """
        departure = await self.get_departure_by_id(departure_id)
        if not departure:
            logger.warning(
                "Departure not found",
                extra={"departure_id": str(departure_id)}
            )
            raise NotFoundError(
                resource_type="departure",
                resource_id=str(departure_id)
            )
        return departure
