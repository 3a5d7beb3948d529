from __future__ import annotations

import httpx

from dmscout.infra.ports.fetch import FetchError, PageFetcherPort


class HttpPageFetcher(PageFetcherPort):
    """Fetch site markup over HTTP(S) with a bounded timeout."""

    def __init__(self, *, timeout_seconds: float = 10.0, user_agent: str | None = None):
        headers = {"User-Agent": user_agent} if user_agent else {}
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            headers=headers,
        )

    def fetch(self, url: str) -> str:
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching {url}") from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(f"HTTP {exc.response.status_code} from {url}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Failed to fetch {url}: {exc}") from exc
        return response.text

    def close(self) -> None:
        self._client.close()
