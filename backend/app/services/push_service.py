"""Expo push notifications for triggered alerts."""

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings
from app.services.alert_store import TriggerEvent

logger = logging.getLogger(__name__)


class PushService:
    """Best-effort delivery of alert triggers to mobile devices via Expo."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        enabled: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.EXPO_PUSH_URL
        self.timeout = timeout or settings.EXPO_PUSH_TIMEOUT
        self.enabled = settings.EXPO_PUSH_ENABLED if enabled is None else enabled
        self._transport = transport

    @staticmethod
    def build_message(push_token: str, event: TriggerEvent) -> Dict[str, Any]:
        alert = event.alert
        threshold = alert.get("price_threshold") or 0.0
        direction = "rose above" if alert.get("alert_type") == "price_above" else "fell below"
        return {
            "to": push_token,
            "title": f"Alert: {alert.get('token_symbol')}",
            "body": (
                f"{alert.get('token_name')} {direction} ${threshold:,.2f}! "
                f"Current price: ${event.price:,.2f}"
            ),
            "data": {
                "type": "alert_triggered",
                "alert_id": str(event.alert_id),
                "token_id": alert.get("token_id"),
                "token_symbol": alert.get("token_symbol"),
                "current_price": event.price,
                "threshold_price": threshold,
            },
            "sound": "default",
            "channelId": "price-alerts",
        }

    async def send_alert_push(self, push_token: Optional[str], event: TriggerEvent) -> bool:
        """Send one push message. Returns False when disabled, skipped or failed."""
        if not self.enabled or not push_token:
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json=self.build_message(push_token, event),
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(
                f"Failed to send push notification: {type(e).__name__}: {e}",
                extra={"user_id": str(event.user_id)},
            )
            return False

        logger.info("Push notification sent", extra={"user_id": str(event.user_id)})
        return True


# Singleton instance
push_service = PushService()
