from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable

from dmscout.application.errors import ConflictError

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Runs background work detached from the request that started it.

    Each task is registered under a key (``job:<id>``, ``campaign:<id>``);
    a key can only have one live task at a time.
    """

    def __init__(self, *, max_workers: int = 4, synchronous: bool = False):
        self.synchronous = synchronous
        self._executor: ThreadPoolExecutor | None = None
        if not synchronous:
            self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers), thread_name_prefix="dmscout-worker")
        self._lock = threading.Lock()
        self._active: set[str] = set()

    def is_active(self, key: str) -> bool:
        with self._lock:
            return key in self._active

    def _claim(self, key: str) -> None:
        with self._lock:
            if key in self._active:
                raise ConflictError(f"Task {key} is already running")
            self._active.add(key)

    def _release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def _on_done(self, key: str, future: Future) -> None:
        self._release(key)
        if future.cancelled():
            logger.info("Background task %s was cancelled", key)
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Background task %s failed", key, exc_info=exc)

    def submit(self, key: str, fn: Callable[..., Any], /, **kwargs: Any) -> str:
        self._claim(key)

        if self._executor is None:
            try:
                fn(**kwargs)
            except Exception:
                logger.exception("Background task %s failed", key)
            finally:
                self._release(key)
            return key

        try:
            future = self._executor.submit(fn, **kwargs)
        except RuntimeError:
            self._release(key)
            raise
        future.add_done_callback(partial(self._on_done, key))
        return key

    def shutdown(self, *, wait: bool = True) -> None:
        if self._executor is not None:
            # Admitted work is drained, not cancelled; campaign runs exit on their own
            # once the send throttle is closed.
            self._executor.shutdown(wait=wait)
