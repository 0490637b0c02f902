"""Alert evaluation: one pass over every user's price alerts."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

from app.models.alert import AlertType
from app.services.alert_store import (
    AlertStore,
    TriggerEvent,
    UserAlerts,
    alert_snapshot,
    alert_store,
)
from app.services.notification_service import NotificationDispatcher, notification_dispatcher
from app.services.price_service import PriceService, price_service
from app.services.push_service import PushService, push_service

logger = logging.getLogger(__name__)


@dataclass
class PassResult:
    """Outcome of one evaluation pass."""

    users_checked: int = 0
    alerts_checked: int = 0
    alerts_triggered: int = 0
    triggered: List[TriggerEvent] = field(default_factory=list)

    def summary(self) -> Dict[str, int]:
        return {
            "users_checked": self.users_checked,
            "alerts_checked": self.alerts_checked,
            "alerts_triggered": self.alerts_triggered,
        }


def _alert_type_value(alert) -> Optional[str]:
    alert_type = alert.alert_type
    return getattr(alert_type, "value", alert_type)


def _threshold(alert) -> Optional[float]:
    try:
        value = float(alert.price_threshold)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def is_triggered(alert_type: str, current: float, threshold: float) -> bool:
    """Strict crossing check; equality never triggers."""
    if alert_type == AlertType.PRICE_ABOVE.value:
        return current > threshold
    if alert_type == AlertType.PRICE_BELOW.value:
        return current < threshold
    return False


class AlertService:
    """Runs evaluation passes.

    Collaborators are injected so the same service runs in the API process,
    in Celery workers and in the one-shot script.
    """

    def __init__(
        self,
        store: AlertStore = alert_store,
        prices: PriceService = price_service,
        dispatcher: NotificationDispatcher = notification_dispatcher,
        push: Optional[PushService] = push_service,
    ):
        self.store = store
        self.prices = prices
        self.dispatcher = dispatcher
        self.push = push

    @staticmethod
    def _evaluable(alert) -> bool:
        return bool(alert.is_active) and bool(alert.token_id)

    def _token_ids(self, users: List[UserAlerts]) -> Set[str]:
        return {
            alert.token_id
            for user in users
            for alert in user.alerts
            if self._evaluable(alert)
        }

    async def run_pass(self) -> PassResult:
        """Evaluate every active alert against one batched price fetch.

        A failure to enumerate users propagates. Anything that goes wrong
        for a single alert is logged and the pass moves on.
        """
        now = datetime.now(timezone.utc)
        result = PassResult()

        users = list(await self.store.list_users_with_alerts())
        token_ids = self._token_ids(users)
        prices = await self.prices.fetch_prices(token_ids)

        missing = 0
        for user in users:
            if not user.alerts:
                continue
            result.users_checked += 1

            for alert in user.alerts:
                if not self._evaluable(alert):
                    continue
                result.alerts_checked += 1

                current = prices.get(alert.token_id)
                if current is None:
                    missing += 1
                    continue

                try:
                    event = await self._evaluate(user, alert, current, now)
                except Exception as e:
                    logger.error(
                        f"Error evaluating alert: {type(e).__name__}: {e}",
                        extra={"user_id": str(user.user_id), "alert_id": str(alert.id)},
                    )
                    continue

                if event is not None:
                    result.alerts_triggered += 1
                    result.triggered.append(event)

        if missing:
            logger.warning(
                f"No price resolved for {missing} active alerts this pass",
                extra={"tokens_requested": len(token_ids), "tokens_priced": len(prices)},
            )

        logger.info("Alert pass completed", extra=result.summary())
        return result

    async def _evaluate(
        self, user: UserAlerts, alert, current: float, now: datetime
    ) -> Optional[TriggerEvent]:
        threshold = _threshold(alert)
        if threshold is None:
            logger.warning(
                "Skipping alert with invalid threshold",
                extra={"alert_id": str(alert.id), "threshold": alert.price_threshold},
            )
            return None

        if not is_triggered(_alert_type_value(alert), current, threshold):
            return None

        event = TriggerEvent(
            user_id=user.user_id,
            alert_id=alert.id,
            alert=alert_snapshot(alert),
            price=current,
            triggered_at=now,
        )
        logger.info(
            f"Alert triggered: {alert.token_symbol} {_alert_type_value(alert)} {threshold}",
            extra={"user_id": str(user.user_id), "alert_id": str(alert.id), "price": current},
        )

        await self._persist(event)
        await self._deliver(user, event)
        return event

    async def _persist(self, event: TriggerEvent) -> None:
        # The two writes are independent; a failure in one must not skip the other
        try:
            applied = await self.store.apply_trigger(event.user_id, event.alert_id, event.triggered_at)
            if not applied:
                logger.warning(
                    "Trigger counter not updated: alert no longer exists",
                    extra={"alert_id": str(event.alert_id)},
                )
        except Exception as e:
            logger.error(
                f"Failed to record trigger on alert: {type(e).__name__}: {e}",
                extra={"alert_id": str(event.alert_id)},
            )

        try:
            await self.store.append_history(event)
        except Exception as e:
            logger.error(
                f"Failed to append trigger history: {type(e).__name__}: {e}",
                extra={"alert_id": str(event.alert_id)},
            )

    async def _deliver(self, user: UserAlerts, event: TriggerEvent) -> None:
        try:
            await self.dispatcher.notify(user.user_id, event)
        except Exception as e:
            logger.error(f"Live notification failed: {type(e).__name__}: {e}")

        if self.push is not None and user.expo_push_token:
            await self.push.send_alert_push(user.expo_push_token, event)


# Singleton instance
alert_service = AlertService()
