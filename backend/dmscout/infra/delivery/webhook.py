from __future__ import annotations

import logging

import httpx

from dmscout.infra.ports.delivery import DeliveryOutcome, DeliveryPort

logger = logging.getLogger(__name__)

_REJECTION_REASONS = {
    401: "Account restricted",
    403: "Account restricted",
    404: "Recipient not found",
    429: "Rate limited",
}


class WebhookDelivery(DeliveryPort):
    """Hands each message to an external sender service over HTTP.

    The sender answers 2xx when the message went out; any other status is a
    per-item rejection.
    """

    provider_name = "webhook"

    def __init__(self, *, url: str, timeout_seconds: float = 15.0):
        self.url = url
        self._client = httpx.Client(timeout=httpx.Timeout(timeout_seconds))

    def attempt_send(self, *, handle: str, message: str) -> DeliveryOutcome:
        try:
            response = self._client.post(self.url, json={"handle": handle, "message": message})
        except httpx.TimeoutException:
            return DeliveryOutcome.rejected("Delivery timed out")
        except httpx.HTTPError as exc:
            logger.warning("Delivery transport error for %s: %s", handle, exc)
            return DeliveryOutcome.rejected(f"Delivery transport error: {exc.__class__.__name__}")

        if response.is_success:
            return DeliveryOutcome.delivered()

        reason = _REJECTION_REASONS.get(response.status_code, f"Sender returned HTTP {response.status_code}")
        return DeliveryOutcome.rejected(reason)

    def close(self) -> None:
        self._client.close()
