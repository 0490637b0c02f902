"""Persistence of alerts and their trigger history."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError

from app.core.database import AsyncSessionLocal
from app.models.alert import Alert
from app.models.alert_history import AlertHistory
from app.models.user import User
from app.schemas.alert import AlertCreate


class AlertStoreError(Exception):
    """A store read or write failed at the database level."""


@dataclass
class UserAlerts:
    """A user and their alerts, oldest first."""

    user_id: UUID
    alerts: List[Alert]
    expo_push_token: Optional[str] = None


@dataclass
class TriggerEvent:
    """An alert crossing its threshold during a pass.

    `alert` is a snapshot of the alert's fields taken before the trigger was
    applied, not a live reference.
    """

    user_id: UUID
    alert_id: UUID
    alert: Dict[str, Any]
    price: float
    triggered_at: datetime
    id: Optional[UUID] = field(default=None)

    def to_message(self) -> Dict[str, Any]:
        """Payload pushed to live channels."""
        return {
            "type": "alert_triggered",
            "data": {
                "alert_id": str(self.alert_id),
                "token_id": self.alert.get("token_id"),
                "token_symbol": self.alert.get("token_symbol"),
                "token_name": self.alert.get("token_name"),
                "alert_type": self.alert.get("alert_type"),
                "price_threshold": self.alert.get("price_threshold"),
                "current_price": self.price,
                "triggered_at": self.triggered_at.isoformat(),
            },
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def alert_snapshot(alert: Alert) -> Dict[str, Any]:
    """JSON-safe copy of an alert's current field values."""
    alert_type = alert.alert_type
    return {
        "id": str(alert.id),
        "token_id": alert.token_id,
        "token_symbol": alert.token_symbol,
        "token_name": alert.token_name,
        "price_threshold": float(alert.price_threshold) if alert.price_threshold is not None else None,
        "alert_type": getattr(alert_type, "value", alert_type),
        "is_active": bool(alert.is_active),
        "triggered_count": int(alert.triggered_count or 0),
        "last_triggered": _iso(alert.last_triggered),
        "created_at": _iso(alert.created_at),
        "updated_at": _iso(alert.updated_at),
    }


class AlertStore:
    """SQL-backed alert store.

    Alerts are addressed by (user_id, alert_id). Each method runs in its own
    session so one failed write never poisons the next one in a pass.
    """

    def __init__(self, session_factory=AsyncSessionLocal):
        self._session_factory = session_factory

    # --- Evaluator interface ---

    async def list_users_with_alerts(self) -> List[UserAlerts]:
        """Every user owning at least one alert, with alerts in creation order."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Alert, User.expo_push_token)
                .join(User, User.id == Alert.user_id)
                .order_by(Alert.user_id, Alert.created_at, Alert.id)
            )
            rows = result.all()

        by_user: Dict[UUID, UserAlerts] = {}
        for alert, push_token in rows:
            entry = by_user.get(alert.user_id)
            if entry is None:
                entry = UserAlerts(user_id=alert.user_id, alerts=[], expo_push_token=push_token)
                by_user[alert.user_id] = entry
            entry.alerts.append(alert)
        return list(by_user.values())

    async def apply_trigger(self, user_id: UUID, alert_id: UUID, timestamp: datetime) -> bool:
        """Record a trigger on one alert. False if the alert no longer exists."""
        async with self._session_factory() as db:
            try:
                result = await db.execute(
                    update(Alert)
                    .where(Alert.id == alert_id, Alert.user_id == user_id)
                    .values(
                        triggered_count=Alert.triggered_count + 1,
                        last_triggered=timestamp,
                        updated_at=timestamp,
                    )
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise AlertStoreError(f"apply_trigger failed for alert {alert_id}: {e}") from e
        return result.rowcount > 0

    async def append_history(self, event: TriggerEvent) -> bool:
        """Insert one trigger history row."""
        async with self._session_factory() as db:
            row = AlertHistory(
                user_id=event.user_id,
                alert_id=event.alert_id,
                alert=event.alert,
                price=event.price,
                triggered_at=event.triggered_at,
            )
            db.add(row)
            try:
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise AlertStoreError(f"append_history failed for alert {event.alert_id}: {e}") from e
            event.id = row.id
        return True

    # --- CRUD interface ---

    async def list_alerts(self, user_id: UUID, active_only: bool = False) -> List[Alert]:
        async with self._session_factory() as db:
            query = select(Alert).where(Alert.user_id == user_id)
            if active_only:
                query = query.where(Alert.is_active == True)  # noqa: E712
            result = await db.execute(query.order_by(Alert.created_at, Alert.id))
            return list(result.scalars().all())

    async def get_alert(self, user_id: UUID, alert_id: UUID) -> Optional[Alert]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Alert).where(Alert.id == alert_id, Alert.user_id == user_id)
            )
            return result.scalar_one_or_none()

    async def create_alert(self, user_id: UUID, data: AlertCreate) -> Alert:
        now = datetime.now(timezone.utc)
        alert = Alert(
            user_id=user_id,
            token_id=data.token_id,
            token_symbol=data.token_symbol,
            token_name=data.token_name,
            price_threshold=data.price_threshold,
            alert_type=data.alert_type,
            is_active=True,
            triggered_count=0,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as db:
            db.add(alert)
            await db.commit()
            await db.refresh(alert)
        return alert

    async def update_alert(
        self, user_id: UUID, alert_id: UUID, changes: Dict[str, Any]
    ) -> Optional[Alert]:
        """Apply a partial update; updated_at is always refreshed."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(Alert).where(Alert.id == alert_id, Alert.user_id == user_id)
            )
            alert = result.scalar_one_or_none()
            if not alert:
                return None
            for key, value in changes.items():
                setattr(alert, key, value)
            alert.updated_at = datetime.now(timezone.utc)
            await db.commit()
            await db.refresh(alert)
            return alert

    async def delete_alert(self, user_id: UUID, alert_id: UUID) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(Alert).where(Alert.id == alert_id, Alert.user_id == user_id)
            )
            await db.commit()
            return result.rowcount > 0

    async def delete_alerts_by_token(self, user_id: UUID, token_id: str) -> int:
        async with self._session_factory() as db:
            result = await db.execute(
                delete(Alert).where(Alert.user_id == user_id, Alert.token_id == token_id)
            )
            await db.commit()
            return result.rowcount

    async def list_history(
        self, user_id: UUID, limit: int = 50, offset: int = 0
    ) -> List[AlertHistory]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(AlertHistory)
                .where(AlertHistory.user_id == user_id)
                .order_by(AlertHistory.triggered_at.desc())
                .offset(offset)
                .limit(limit)
            )
            return list(result.scalars().all())

    async def get_alert_summary(self, user_id: UUID) -> Dict[str, int]:
        alerts = await self.list_alerts(user_id)
        today = datetime.now(timezone.utc).date()
        async with self._session_factory() as db:
            result = await db.execute(
                select(func.count(AlertHistory.id)).where(AlertHistory.user_id == user_id)
            )
            total_triggers = result.scalar() or 0

        return {
            "total_alerts": len(alerts),
            "active_alerts": sum(1 for a in alerts if a.is_active),
            "triggered_today": sum(
                1 for a in alerts
                if a.last_triggered and a.last_triggered.astimezone(timezone.utc).date() == today
            ),
            "total_triggers": int(total_triggers),
        }


# Singleton instance
alert_store = AlertStore()
