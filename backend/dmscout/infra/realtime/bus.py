"""In-process registry of live push connections keyed by user id."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ConnectionHandle(Protocol):
    def is_open(self) -> bool:
        ...

    def send_text(self, text: str) -> None:
        ...


class NotificationBus:
    """Fire-and-forget fan-out of JSON events to a user's open connections.

    A user may hold several connections at once (one per open tab). The
    registry is mutated by connection lifecycle events and read by runner
    threads, so every access goes through ``self._lock``.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: dict[str, list[ConnectionHandle]] = {}

    def subscribe(self, user_id: str, connection: ConnectionHandle) -> None:
        with self._lock:
            bucket = self._connections.setdefault(user_id, [])
            if not any(item is connection for item in bucket):
                bucket.append(connection)

    def unsubscribe(self, connection: ConnectionHandle) -> None:
        with self._lock:
            for user_id in list(self._connections):
                bucket = [item for item in self._connections[user_id] if item is not connection]
                if bucket:
                    self._connections[user_id] = bucket
                else:
                    del self._connections[user_id]

    def publish(self, user_id: str, event: dict[str, Any]) -> None:
        message = json.dumps(event)
        with self._lock:
            for connection in self._connections.get(user_id, ()):
                try:
                    if not connection.is_open():
                        continue
                    connection.send_text(message)
                except Exception:
                    logger.debug("Dropping event for a broken connection of user %s", user_id, exc_info=True)

    def connection_count(self, user_id: str) -> int:
        with self._lock:
            return len(self._connections.get(user_id, ()))
