"""Emergency alert Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from ..models.emergency import AlertSeverity


class CreateEmergencyAlertRequest(BaseModel):
    tour_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1, max_length=5000)
    severity: AlertSeverity = Field(AlertSeverity.HIGH, description="low, medium, high or critical")


class AlertIdRequest(BaseModel):
    alert_id: UUID


class ListActiveAlertsRequest(BaseModel):
    tour_id: UUID


class EmergencyAlert(BaseModel):
    """Emergency alert response schema."""

    id: UUID
    tour_id: UUID
    title: str
    message: str
    severity: AlertSeverity
    is_active: bool
    created_at: datetime
    deactivated_at: datetime | None = None

    class Config:
        from_attributes = True


class CreateEmergencyAlertResponse(BaseModel):
    """Alert plus the delivery summary of its fan-out."""

    alert: EmergencyAlert
    notified: int = Field(..., description="Notifications stored")
    pushed: int = Field(..., description="Recipients reached on the real-time channel")
    emailed: int = Field(..., description="Emails accepted by the mail transport")
