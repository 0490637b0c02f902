"""WebSocket endpoint for live alert notifications."""

import json
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.core.security import token_subject
from app.services.notification_service import notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


def _normalize_user_id(value) -> Optional[str]:
    if not value or not isinstance(value, str):
        return None
    try:
        return str(UUID(value))
    except ValueError:
        return value


async def _send(websocket: WebSocket, payload: dict) -> None:
    await websocket.send_text(json.dumps(payload))


@router.websocket("/ws")
async def websocket_alerts(websocket: WebSocket):
    """WebSocket endpoint for alert notifications.

    Connect to ws://host/api/v1/ws and identify with:
        {"type": "hello", "userId": "<user id>", "token": "<optional JWT>"}
    The server answers {"type": "connected"} and then pushes
    {"type": "alert_triggered", "data": {...}} events.
    Send {"type": "ping"} to receive {"type": "pong"}.
    """
    await websocket.accept()
    user_id: Optional[str] = None

    try:
        while True:
            text = await websocket.receive_text()
            try:
                msg = json.loads(text)
            except json.JSONDecodeError:
                await _send(websocket, {"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await _send(websocket, {"type": "error", "message": "Expected a JSON object"})
                continue

            kind = msg.get("type")

            if kind == "hello":
                requested = _normalize_user_id(msg.get("userId"))
                if requested is None:
                    await _send(websocket, {"type": "error", "message": "userId is required"})
                    continue

                token = msg.get("token")
                if token is not None and (
                    not isinstance(token, str)
                    or _normalize_user_id(token_subject(token)) != requested
                ):
                    logger.warning("WebSocket hello rejected", extra={"user_id": requested})
                    await _send(websocket, {"type": "error", "message": "Unauthorized"})
                    await websocket.close(code=4001, reason="Unauthorized")
                    return

                if user_id is not None and user_id != requested:
                    await notification_dispatcher.unregister(user_id, websocket)
                user_id = requested
                await notification_dispatcher.register(user_id, websocket)
                logger.info("WebSocket client identified", extra={"user_id": user_id})
                await _send(websocket, {"type": "connected", "userId": user_id})

            elif kind == "ping":
                await _send(websocket, {"type": "pong"})

            elif user_id is None:
                await _send(websocket, {"type": "error", "message": "Send hello first"})

            else:
                await _send(websocket, {"type": "error", "message": f"Unknown message type: {kind}"})

    except WebSocketDisconnect:
        pass
    finally:
        if user_id is not None:
            await notification_dispatcher.unregister(user_id, websocket)
