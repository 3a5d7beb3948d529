from __future__ import annotations

from abc import ABC, abstractmethod


class FetchError(Exception):
    """The target page could not be retrieved."""


class PageFetcherPort(ABC):
    @abstractmethod
    def fetch(self, url: str) -> str:
        """Return the page markup or raise ``FetchError``."""

    def close(self) -> None:
        """Release pooled connections. Adapters without resources may ignore this."""
