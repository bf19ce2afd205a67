"""Booking-related Pydantic schemas."""

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from ..models.booking import BookingStatus
from .common import Money, PageInfo, PageRequest
from .tour import TourSummary


class BookingContact(BaseModel):
    """Lead traveller contact details."""

    contact_name: str = Field(..., min_length=1, max_length=255)
    contact_phone: str = Field(..., min_length=3, max_length=50)
    contact_email: EmailStr
    special_requests: str | None = Field(None, max_length=2000)


class CreateBookingRequest(BookingContact):
    """Request schema for creating a booking."""

    departure_id: UUID = Field(..., description="Departure to book")
    traveller_count: int = Field(..., ge=1, le=50, description="Number of seats")


class BookingIdRequest(BaseModel):
    """Request schema for operations addressing one booking."""

    booking_id: UUID = Field(..., description="Booking ID")


class ListBookingsRequest(PageRequest):
    status: BookingStatus | None = Field(None, description="Filter by status")


class AdminListBookingsRequest(ListBookingsRequest):
    tour_id: UUID | None = Field(None, description="Filter by tour")


class UpdateBookingStatusRequest(BaseModel):
    """Owner transition: confirm or cancel a booking."""

    booking_id: UUID
    status: Literal["CONFIRMED", "CANCELLED"]


class DepartureSummary(BaseModel):
    """Departure view embedded in bookings."""

    id: UUID
    starts_at: datetime
    ends_at: datetime
    tour: TourSummary

    class Config:
        from_attributes = True


class Booking(BaseModel):
    """Booking response schema."""

    id: UUID = Field(..., description="Unique booking ID")
    user_id: UUID
    departure_id: UUID
    status: BookingStatus = Field(..., description="Booking status")
    traveller_count: int = Field(..., ge=1)
    total: Money
    contact_name: str
    contact_phone: str
    contact_email: str
    special_requests: str | None = None
    created_at: datetime
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None
    departure: DepartureSummary | None = None

    @classmethod
    def from_model(cls, booking, include_departure: bool = True) -> "Booking":
        departure = None
        if include_departure and "departure" in booking.__dict__ and booking.departure is not None:
            departure = DepartureSummary.model_validate(booking.departure)
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            departure_id=booking.departure_id,
            status=booking.status,
            traveller_count=booking.traveller_count,
            total=Money(amount=booking.total_amount, currency=booking.currency),
            contact_name=booking.contact_name,
            contact_phone=booking.contact_phone,
            contact_email=booking.contact_email,
            special_requests=booking.special_requests,
            created_at=booking.created_at,
            confirmed_at=booking.confirmed_at,
            cancelled_at=booking.cancelled_at,
            departure=departure,
        )


class BookingListResponse(BaseModel):
    items: list[Booking]
    page_info: PageInfo
