"""Exchange credential schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ExchangeCredentialCreate(BaseModel):
    """Schema for storing exchange credentials."""

    exchange: str = Field(..., min_length=1, max_length=50)
    label: Optional[str] = Field(None, max_length=100)
    api_key: str = Field(..., min_length=1)
    secret_key: Optional[str] = None
    passphrase: Optional[str] = None


class ExchangeCredentialResponse(BaseModel):
    """Stored credential with masked values only."""

    id: UUID
    exchange: str
    label: Optional[str]
    api_key_masked: str
    has_secret: bool
    has_passphrase: bool
    is_active: bool
    created_at: datetime
