"""Itinerary-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from .common import UtcDatetime


class ItineraryItemFields(BaseModel):
    day_number: int = Field(..., ge=1, description="Tour day, starting at 1")
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    scheduled_time: UtcDatetime | None = Field(None, description="When the activity starts (ISO 8601)")
    location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=5000)
    is_emergency_relevant: bool = False
    sort_order: int = Field(0, ge=0)


class CreateItineraryItemRequest(ItineraryItemFields):
    tour_id: UUID


class UpdateItineraryItemRequest(BaseModel):
    """Partial update; only fields present in the body are changed."""

    item_id: UUID
    day_number: int | None = Field(None, ge=1)
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    scheduled_time: UtcDatetime | None = None
    location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=5000)
    is_emergency_relevant: bool | None = None
    sort_order: int | None = Field(None, ge=0)


class ItineraryItemIdRequest(BaseModel):
    item_id: UUID


class GetItineraryRequest(BaseModel):
    tour_id: UUID


class ItineraryItem(BaseModel):
    """Itinerary item response schema."""

    id: UUID
    tour_id: UUID
    day_number: int
    title: str
    description: str | None = None
    scheduled_time: datetime | None = None
    location: str | None = None
    notes: str | None = None
    is_emergency_relevant: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ItineraryResponse(BaseModel):
    tour_id: UUID
    items: list[ItineraryItem]
