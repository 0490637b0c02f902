"""Current user endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_current_user
from app.core.database import get_db
from app.models.user import User
from app.schemas.user import PushTokenUpdate, UserResponse

router = APIRouter()


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        display_name=user.display_name,
        is_active=user.is_active,
        has_push_token=bool(user.expo_push_token),
        created_at=user.created_at,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Get the current user's profile."""
    return _to_response(current_user)


@router.put("/me/push-token", response_model=UserResponse)
async def update_push_token(
    data: PushTokenUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Register (or clear with null) the Expo push token for alert pushes."""
    current_user.expo_push_token = data.expo_push_token or None
    db.add(current_user)
    await db.commit()
    await db.refresh(current_user)
    return _to_response(current_user)
