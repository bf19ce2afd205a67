"""Booking model definition."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.database import Base, utcnow

if TYPE_CHECKING:
    from .departure import TourDeparture
    from .user import User


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


# Statuses that hold seats on a departure
LIVE_BOOKING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)


class Booking(Base):
    """A traveller's seat reservation on a departure."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    departure_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("tour_departures.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    status: Mapped[BookingStatus] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.PENDING,
        index=True
    )
    traveller_count: Mapped[int] = mapped_column(Integer, nullable=False)

    # Price snapshot (minor units)
    total_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Contact details
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_phone: Mapped[str] = mapped_column(String(50), nullable=False)
    contact_email: Mapped[str] = mapped_column(String(255), nullable=False)
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow, index=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    # Constraints
    __table_args__ = (
        CheckConstraint("traveller_count > 0", name="ck_booking_traveller_count_positive"),
        CheckConstraint("total_amount >= 0", name="ck_booking_total_amount_non_negative"),
    )

    # Relationships
    departure: Mapped["TourDeparture"] = relationship("TourDeparture", back_populates="bookings")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, departure_id={self.departure_id}, "
            f"travellers={self.traveller_count}, status={self.status})>"
        )
