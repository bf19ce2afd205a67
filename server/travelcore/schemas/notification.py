"""Notification inbox Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.notification import NotificationType
from .common import PageInfo, PageRequest


class ListNotificationsRequest(PageRequest):
    limit: int = Field(20, ge=1, le=100, description="Results per page")
    unread_only: bool = False


class NotificationIdRequest(BaseModel):
    notification_id: UUID


class Notification(BaseModel):
    """Notification response schema."""

    id: UUID
    type: NotificationType
    title: str
    message: str
    is_read: bool
    read_at: datetime | None = None
    tour_id: UUID | None = None
    booking_id: UUID | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: list[Notification]
    page_info: PageInfo
    unread_count: int


class UnreadCountResponse(BaseModel):
    unread_count: int


class MarkAllReadResponse(BaseModel):
    updated: int
