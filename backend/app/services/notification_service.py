"""Live notification fan-out to connected WebSocket clients."""

import asyncio
import json
import logging
from typing import Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocketState

from app.core.config import settings
from app.services.alert_store import TriggerEvent

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Registry of live channels per user.

    A channel is anything exposing ``async send_text(str)`` and a
    ``client_state``; in practice a Starlette WebSocket. Delivery is best
    effort: a channel that is closed, slow or failing is skipped.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = send_timeout or settings.NOTIFY_SEND_TIMEOUT
        self._channels: Dict[str, Set] = {}
        self._lock = asyncio.Lock()

    @staticmethod
    def _key(user_id) -> str:
        return str(user_id)

    async def register(self, user_id, channel) -> None:
        async with self._lock:
            self._channels.setdefault(self._key(user_id), set()).add(channel)
        logger.info("Channel registered", extra={"user_id": self._key(user_id)})

    async def unregister(self, user_id, channel) -> None:
        key = self._key(user_id)
        async with self._lock:
            channels = self._channels.get(key)
            if channels is None:
                return
            channels.discard(channel)
            if not channels:
                del self._channels[key]
        logger.info("Channel unregistered", extra={"user_id": key})

    def connection_count(self, user_id=None) -> int:
        """Live channels for one user, or for everyone when user_id is None."""
        if user_id is None:
            return sum(len(c) for c in self._channels.values())
        return len(self._channels.get(self._key(user_id), ()))

    async def notify(self, user_id: UUID, event: TriggerEvent) -> bool:
        """Send an alert event to every live channel of a user.

        Returns True if at least one channel accepted the message.
        """
        async with self._lock:
            channels = list(self._channels.get(self._key(user_id), ()))
        if not channels:
            return False

        payload = json.dumps(event.to_message())
        delivered = 0
        for channel in channels:
            if await self._send(channel, payload):
                delivered += 1

        logger.debug(
            "Alert notification dispatched",
            extra={"user_id": self._key(user_id), "channels": len(channels), "delivered": delivered},
        )
        return delivered > 0

    async def _send(self, channel, payload: str) -> bool:
        if getattr(channel, "client_state", None) != WebSocketState.CONNECTED:
            return False
        try:
            await asyncio.wait_for(channel.send_text(payload), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("Notification send timed out")
        except Exception as e:
            logger.debug(f"Notification send failed: {type(e).__name__}: {e}")
        return False

    async def close(self) -> None:
        """Close every registered channel and clear the registry."""
        async with self._lock:
            channels = [c for group in self._channels.values() for c in group]
            self._channels.clear()
        for channel in channels:
            if getattr(channel, "client_state", None) != WebSocketState.CONNECTED:
                continue
            try:
                await channel.close(code=1001)
            except Exception as e:
                logger.debug(f"Error closing channel: {e}")


# Singleton instance
notification_dispatcher = NotificationDispatcher()
