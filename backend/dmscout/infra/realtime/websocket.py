from __future__ import annotations

import asyncio
import logging

from starlette.websockets import WebSocket, WebSocketState

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """Lets worker threads push frames to a socket owned by the event loop."""

    def __init__(self, websocket: WebSocket, loop: asyncio.AbstractEventLoop):
        self.websocket = websocket
        self.loop = loop

    def is_open(self) -> bool:
        return (
            not self.loop.is_closed()
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send_text(self, text: str) -> None:
        future = asyncio.run_coroutine_threadsafe(self.websocket.send_text(text), self.loop)
        future.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.debug("WebSocket push failed: %s", exc)
