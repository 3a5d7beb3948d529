import httpx
import pytest

from dmscout.api.v1 import dependencies
from dmscout.infra.delivery.mock import MockDelivery
from dmscout.infra.delivery.webhook import WebhookDelivery
from dmscout.infra.fetch.http import HttpPageFetcher
from dmscout.infra.ports.fetch import FetchError


def _webhook(handler) -> WebhookDelivery:
    delivery = WebhookDelivery(url="http://sender.test/send")
    delivery._client = httpx.Client(transport=httpx.MockTransport(handler))
    return delivery


def test_mock_delivery_always_sends():
    delivery = MockDelivery()

    outcome = delivery.attempt_send(handle="@acme", message="Hi")

    assert outcome.sent is True
    assert delivery.sent == [("@acme", "Hi")]


@pytest.mark.parametrize(
    ("status", "reason"),
    [
        (401, "Account restricted"),
        (404, "Recipient not found"),
        (429, "Rate limited"),
        (500, "Sender returned HTTP 500"),
    ],
)
def test_webhook_rejections(status: int, reason: str):
    delivery = _webhook(lambda request: httpx.Response(status))

    outcome = delivery.attempt_send(handle="@acme", message="Hi")

    assert outcome.sent is False
    assert outcome.reason == reason


def test_webhook_posts_handle_and_message():
    seen: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.content)
        return httpx.Response(202)

    outcome = _webhook(handler).attempt_send(handle="@acme", message="Hello there")

    assert outcome.sent is True
    assert b'"handle": "@acme"' in seen[0] or b'"handle":"@acme"' in seen[0]


def test_webhook_timeout_is_a_rejection():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    outcome = _webhook(handler).attempt_send(handle="@acme", message="Hi")

    assert (outcome.sent, outcome.reason) == (False, "Delivery timed out")


def test_page_fetcher_maps_http_errors():
    fetcher = HttpPageFetcher(timeout_seconds=1)
    fetcher._client = httpx.Client(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(503) if request.url.host == "down.dev" else httpx.Response(200, text="<p>ok</p>")
        )
    )

    assert fetcher.fetch("https://up.dev") == "<p>ok</p>"
    with pytest.raises(FetchError, match="HTTP 503"):
        fetcher.fetch("https://down.dev")


def test_webhook_close_releases_the_client():
    delivery = WebhookDelivery(url="http://sender.test/send")

    delivery.close()

    assert delivery._client.is_closed


def test_shutdown_closes_and_rebuilds_the_delivery_client(monkeypatch):
    closed: list[MockDelivery] = []
    monkeypatch.setattr(MockDelivery, "close", lambda self: closed.append(self))
    before = dependencies.get_delivery()

    dependencies.shutdown_workers()

    assert closed == [before]
    assert dependencies.get_delivery() is not before
