"""Departure-related Pydantic schemas."""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from .common import Money, PaginatedResponse, UtcDatetime


class CreateDepartureRequest(BaseModel):
    """Request schema for creating a departure."""

    tour_id: UUID = Field(..., description="Associated tour ID")
    starts_at: UtcDatetime = Field(..., description="Departure start time (ISO 8601)")
    ends_at: UtcDatetime = Field(..., description="Departure end time (ISO 8601)")
    capacity_total: int = Field(..., ge=1, le=1000, description="Total capacity")
    price: Money = Field(..., description="Price per traveller")

    @model_validator(mode="after")
    def check_window(self):
        if self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self


class SearchDeparturesRequest(BaseModel):
    """Request schema for searching departures."""

    tour_id: UUID | None = Field(None, description="Filter by tour ID")
    date_from: date | None = Field(None, description="Start date filter")
    date_to: date | None = Field(None, description="End date filter")
    available_only: bool = Field(False, description="Only show departures with remaining seats")
    cursor: str | None = Field(None, description="Pagination cursor")
    limit: int = Field(20, ge=1, le=100, description="Results per page")


class Departure(BaseModel):
    """Departure response schema."""

    id: UUID = Field(..., description="Unique departure ID")
    tour_id: UUID = Field(..., description="Associated tour ID")
    starts_at: datetime = Field(..., description="Departure start time (ISO 8601)")
    ends_at: datetime = Field(..., description="Departure end time (ISO 8601)")
    capacity_total: int = Field(..., ge=0, description="Total capacity")
    booked_count: int = Field(..., ge=0, description="Seats held by live bookings")
    remaining_seats: int = Field(..., ge=0, description="capacity_total - booked_count")
    price: Money = Field(..., description="Price per traveller")

    @classmethod
    def from_model(cls, departure) -> "Departure":
        return cls(
            id=departure.id,
            tour_id=departure.tour_id,
            starts_at=departure.starts_at,
            ends_at=departure.ends_at,
            capacity_total=departure.capacity_total,
            booked_count=departure.booked_count,
            remaining_seats=departure.remaining_seats,
            price=Money(amount=departure.price_amount, currency=departure.price_currency),
        )


class SearchDeparturesResponse(PaginatedResponse):
    """Response schema for departure search."""

    items: list[Departure] = Field(..., description="Found departures")
