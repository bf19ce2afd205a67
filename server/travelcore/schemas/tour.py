"""Tour-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.tour import TourStatus


class CreateTourRequest(BaseModel):
    """Request schema for creating a tour."""

    title: str = Field(..., min_length=1, max_length=255, description="Tour title")
    slug: str = Field(..., min_length=1, max_length=255, pattern=r"^[a-z0-9-]+$", description="URL-friendly slug")
    description: str | None = Field(None, max_length=5000, description="Tour description")
    status: TourStatus = Field(TourStatus.DRAFT, description="Publication status")


class Tour(BaseModel):
    """Tour response schema."""

    id: UUID = Field(..., description="Unique tour ID")
    title: str = Field(..., description="Tour title")
    slug: str = Field(..., description="URL-friendly slug")
    description: str | None = Field(None, description="Tour description")
    status: TourStatus = Field(..., description="Publication status")
    created_at: datetime

    class Config:
        from_attributes = True


class TourSummary(BaseModel):
    """Compact tour view embedded in bookings."""

    id: UUID
    title: str
    slug: str

    class Config:
        from_attributes = True
