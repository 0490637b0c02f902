"""Pydantic schemas."""

from app.schemas.alert import (
    AlertCreate,
    AlertUpdate,
    AlertResponse,
    AlertHistoryResponse,
    AlertSummaryResponse,
    AlertDeleteResponse,
)
from app.schemas.auth import (
    Token,
    LoginRequest,
    RegisterRequest,
)
from app.schemas.exchange import (
    ExchangeCredentialCreate,
    ExchangeCredentialResponse,
)
from app.schemas.user import (
    PushTokenUpdate,
    UserResponse,
)

__all__ = [
    "AlertCreate",
    "AlertUpdate",
    "AlertResponse",
    "AlertHistoryResponse",
    "AlertSummaryResponse",
    "AlertDeleteResponse",
    "Token",
    "LoginRequest",
    "RegisterRequest",
    "ExchangeCredentialCreate",
    "ExchangeCredentialResponse",
    "PushTokenUpdate",
    "UserResponse",
]
