"""Notification model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID as PgUUID
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base, utcnow


class NotificationType(str, Enum):
    """Notification type enumeration."""
    ITINERARY_UPDATE = "ITINERARY_UPDATE"
    ITINERARY_REMINDER = "ITINERARY_REMINDER"
    EMERGENCY_ALERT = "EMERGENCY_ALERT"
    BOOKING_UPDATE = "BOOKING_UPDATE"
    GENERAL = "GENERAL"


class Notification(Base):
    """
    A persisted message in a user's inbox.

    Rows are written in bulk by the fan-out engine and only ever mutated by
    their recipient marking them read. The inbox is the recovery path for
    anything the real-time channel or email failed to deliver.
    """

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(PgUUID(as_uuid=True), primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )

    type: Mapped[NotificationType] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(), nullable=True)

    # Optional context
    tour_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("tours.id", ondelete="SET NULL"),
        nullable=True
    )
    booking_id: Mapped[UUID | None] = mapped_column(
        PgUUID(as_uuid=True),
        ForeignKey("bookings.id", ondelete="SET NULL"),
        nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
