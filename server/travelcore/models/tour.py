"""Tour model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import DateTime, String, Text
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .departure import TourDeparture
    from .itinerary import ItineraryItem


class TourStatus(str, Enum):
    """Tour publication status. Only PUBLISHED tours accept bookings."""
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class Tour(Base):
    """Tour entity representing a tour offering."""

    __tablename__ = "tours"

    # Primary key
    id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), primary_key=True, default=uuid4)

    # Tour information
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[TourStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TourStatus.DRAFT,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(),
        nullable=False,
        default=utcnow,
        onupdate=utcnow
    )

    # Relationships
    departures: Mapped[list["TourDeparture"]] = relationship(
        "TourDeparture",
        back_populates="tour",
        cascade="all, delete-orphan"
    )
    itinerary_items: Mapped[list["ItineraryItem"]] = relationship(
        "ItineraryItem",
        back_populates="tour",
        cascade="all, delete-orphan"
    )

    @property
    def is_bookable(self) -> bool:
        return self.status == TourStatus.PUBLISHED

    def __repr__(self) -> str:
        return f"<Tour(id={self.id}, title='{self.title}', slug='{self.slug}')>"
