"""Tour departure model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .booking import Booking
    from .tour import Tour


class TourDeparture(Base):
    """
    One dated running of a tour with its own fixed seat capacity.

    ``booked_count`` is owned by the capacity ledger: nothing else writes it.
    Whether a departure is "active" is never stored; queries compare
    ``starts_at``/``ends_at`` against the clock at call time.
    """

    __tablename__ = "tour_departures"

    # Primary key
    id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), primary_key=True, default=uuid4)

    # Foreign key to tour
    tour_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("tours.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Schedule
    starts_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, index=True)
    ends_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, index=True)

    # Capacity
    capacity_total: Mapped[int] = mapped_column(Integer, nullable=False)
    booked_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Price per traveller (stored as minor units, e.g., cents)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint("capacity_total >= 0", name="ck_departure_capacity_total_non_negative"),
        CheckConstraint("booked_count >= 0", name="ck_departure_booked_count_non_negative"),
        CheckConstraint("booked_count <= capacity_total", name="ck_departure_booked_count_lte_total"),
        CheckConstraint("ends_at >= starts_at", name="ck_departure_ends_after_start"),
        CheckConstraint("price_amount >= 0", name="ck_departure_price_amount_non_negative"),
        CheckConstraint("length(price_currency) = 3", name="ck_departure_price_currency_length"),
    )

    # Relationships
    tour: Mapped["Tour"] = relationship("Tour", back_populates="departures")
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="departure",
        cascade="all, delete-orphan"
    )

    @property
    def remaining_seats(self) -> int:
        return self.capacity_total - self.booked_count

    def __repr__(self) -> str:
        return (
            f"<TourDeparture(id={self.id}, tour_id={self.tour_id}, "
            f"starts_at={self.starts_at}, booked={self.booked_count}/{self.capacity_total})>"
        )
