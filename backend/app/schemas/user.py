"""User schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class UserResponse(BaseModel):
    """Schema for user response."""

    id: UUID
    email: EmailStr
    display_name: Optional[str] = None
    is_active: bool
    has_push_token: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class PushTokenUpdate(BaseModel):
    """Register or clear the Expo push token of the current device."""

    expo_push_token: Optional[str] = Field(None, max_length=255)
