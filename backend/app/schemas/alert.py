"""Alert schemas."""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.models.alert import AlertType


class AlertBase(BaseModel):
    """Base alert schema."""

    token_id: str = Field(..., min_length=1, max_length=200)
    token_symbol: Optional[str] = Field(None, max_length=50)
    token_name: Optional[str] = Field(None, max_length=200)
    price_threshold: float = Field(..., gt=0)
    alert_type: AlertType


class AlertCreate(AlertBase):
    """Schema for creating an alert."""


class AlertUpdate(BaseModel):
    """Schema for updating an alert. Only provided fields change."""

    token_id: Optional[str] = Field(None, min_length=1, max_length=200)
    token_symbol: Optional[str] = Field(None, max_length=50)
    token_name: Optional[str] = Field(None, max_length=200)
    price_threshold: Optional[float] = Field(None, gt=0)
    alert_type: Optional[AlertType] = None
    is_active: Optional[bool] = None

    @field_validator("token_id", "price_threshold", "alert_type", "is_active", mode="before")
    @classmethod
    def reject_null(cls, v, info):
        """Omit a field to leave it unchanged; these columns cannot be cleared."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class AlertResponse(AlertBase):
    """Alert response schema."""

    id: UUID
    is_active: bool
    triggered_count: int
    last_triggered: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AlertHistoryResponse(BaseModel):
    """A recorded trigger."""

    id: UUID
    alert_id: UUID
    alert: Dict[str, Any]
    price: float
    triggered_at: datetime

    class Config:
        from_attributes = True


class AlertSummaryResponse(BaseModel):
    """Alert summary response."""

    total_alerts: int
    active_alerts: int
    triggered_today: int
    total_triggers: int


class AlertDeleteResponse(BaseModel):
    """Number of alerts removed."""

    deleted: int
