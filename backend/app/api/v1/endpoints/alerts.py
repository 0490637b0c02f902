"""Price alert endpoints."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.api.deps import get_alert_store, get_current_user
from app.core.rate_limit import RATE_LIMITS, limiter
from app.models.user import User
from app.schemas.alert import (
    AlertCreate,
    AlertDeleteResponse,
    AlertHistoryResponse,
    AlertResponse,
    AlertSummaryResponse,
    AlertUpdate,
)
from app.services.alert_store import AlertStore

router = APIRouter()


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Alert not found",
    )


@router.get("/summary", response_model=AlertSummaryResponse)
async def get_alert_summary(
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> AlertSummaryResponse:
    """Get summary of user's alerts."""
    summary = await store.get_alert_summary(current_user.id)
    return AlertSummaryResponse(**summary)


@router.get("/history", response_model=List[AlertHistoryResponse])
async def list_alert_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> List[AlertHistoryResponse]:
    """Recorded triggers, newest first."""
    history = await store.list_history(current_user.id, limit=limit, offset=offset)
    return [AlertHistoryResponse.model_validate(h) for h in history]


@router.get("/", response_model=List[AlertResponse])
async def list_alerts(
    active_only: bool = False,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> List[AlertResponse]:
    """List all alerts for the current user."""
    alerts = await store.list_alerts(current_user.id, active_only=active_only)
    return [AlertResponse.model_validate(a) for a in alerts]


@router.post("/", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMITS["alert_write"])
async def create_alert(
    request: Request,
    alert_in: AlertCreate,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> AlertResponse:
    """Create a new alert."""
    alert = await store.create_alert(current_user.id, alert_in)
    return AlertResponse.model_validate(alert)


@router.delete("/by-token/{token_id}", response_model=AlertDeleteResponse)
async def delete_alerts_by_token(
    token_id: str,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> AlertDeleteResponse:
    """Delete every alert of the current user on one token."""
    deleted = await store.delete_alerts_by_token(current_user.id, token_id)
    return AlertDeleteResponse(deleted=deleted)


@router.get("/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: UUID,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> AlertResponse:
    """Get a specific alert."""
    alert = await store.get_alert(current_user.id, alert_id)
    if not alert:
        raise _not_found()
    return AlertResponse.model_validate(alert)


@router.patch("/{alert_id}", response_model=AlertResponse)
async def update_alert(
    alert_id: UUID,
    alert_in: AlertUpdate,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
) -> AlertResponse:
    """Update an alert."""
    changes = alert_in.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No fields to update",
        )

    alert = await store.update_alert(current_user.id, alert_id, changes)
    if not alert:
        raise _not_found()
    return AlertResponse.model_validate(alert)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_alert(
    alert_id: UUID,
    current_user: User = Depends(get_current_user),
    store: AlertStore = Depends(get_alert_store),
):
    """Delete an alert."""
    if not await store.delete_alert(current_user.id, alert_id):
        raise _not_found()
