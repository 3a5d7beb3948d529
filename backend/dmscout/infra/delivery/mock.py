from __future__ import annotations

from dmscout.infra.ports.delivery import DeliveryOutcome, DeliveryPort


class MockDelivery(DeliveryPort):
    """Accepts every message. Used for local runs and tests."""

    provider_name = "mock"

    def __init__(self):
        self.sent: list[tuple[str, str]] = []

    def attempt_send(self, *, handle: str, message: str) -> DeliveryOutcome:
        self.sent.append((handle, message))
        return DeliveryOutcome.delivered()
