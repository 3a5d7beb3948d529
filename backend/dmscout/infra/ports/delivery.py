from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryOutcome:
    sent: bool
    reason: str | None = None

    @classmethod
    def delivered(cls) -> DeliveryOutcome:
        return cls(sent=True)

    @classmethod
    def rejected(cls, reason: str) -> DeliveryOutcome:
        return cls(sent=False, reason=reason or "Delivery rejected")


class DeliveryPort(ABC):
    @abstractmethod
    def attempt_send(self, *, handle: str, message: str) -> DeliveryOutcome:
        """Try to deliver one message. Rejections are returned, not raised."""

    def close(self) -> None:
        """Release pooled connections. Adapters without resources may ignore this."""
