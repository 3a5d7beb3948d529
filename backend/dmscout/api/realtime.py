from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dmscout.api.v1.dependencies import get_notification_bus
from dmscout.infra.realtime.websocket import WebSocketConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def notifications(websocket: WebSocket) -> None:
    """Push channel for job and campaign progress.

    Clients send ``{"type": "authenticate", "userId": ...}`` once; after the
    ack every event published for that user is forwarded as a text frame.
    """
    await websocket.accept()
    bus = get_notification_bus()
    connection = WebSocketConnection(websocket, asyncio.get_running_loop())
    user_id: str | None = None

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Ignoring malformed websocket frame")
                continue
            if not isinstance(message, dict) or message.get("type") != "authenticate":
                continue

            requested = str(message.get("userId") or "").strip()
            if not requested:
                continue
            if user_id is not None and user_id != requested:
                bus.unsubscribe(connection)
            user_id = requested
            bus.subscribe(user_id, connection)
            await websocket.send_text(json.dumps({"type": "authenticated", "userId": user_id}))
    except WebSocketDisconnect:
        logger.debug("WebSocket closed for user %s", user_id)
    finally:
        bus.unsubscribe(connection)
