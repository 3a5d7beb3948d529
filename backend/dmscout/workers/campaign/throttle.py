from __future__ import annotations

import random
import threading

DEFAULT_SEND_RATE = "moderate"


class SendThrottle:
    """Spaces out campaign sends according to the campaign's send rate.

    Waiting happens on an event, so ``close()`` releases every sleeping
    runner at shutdown.
    """

    def __init__(self, delays: dict[str, float], *, jitter: float = 0.5, rng: random.Random | None = None):
        self.delays = dict(delays)
        self.jitter = max(0.0, jitter)
        self._rng = rng or random.Random()
        self._stopped = threading.Event()

    @property
    def closed(self) -> bool:
        return self._stopped.is_set()

    def delay_for(self, send_rate: str) -> float:
        base = self.delays.get(send_rate, self.delays.get(DEFAULT_SEND_RATE, 0.0))
        if base <= 0:
            return 0.0
        return base * (1.0 + self._rng.random() * self.jitter)

    def wait(self, send_rate: str) -> bool:
        """Sleep before the next send. Returns False once the throttle is closed."""
        delay = self.delay_for(send_rate)
        if delay > 0:
            self._stopped.wait(delay)
        return not self._stopped.is_set()

    def close(self) -> None:
        self._stopped.set()
