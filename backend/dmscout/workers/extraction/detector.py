from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urlsplit

from bs4 import BeautifulSoup

from dmscout.infra.ports.fetch import PageFetcherPort

EXPLICIT_LINK_CONFIDENCE = 95.0
PATTERN_MATCH_CONFIDENCE = 85.0

_PLATFORM_HOSTS = frozenset({"instagram.com", "www.instagram.com"})
_HANDLE_SEGMENT_PATTERN = re.compile(r"^[A-Za-z0-9._]+$")
_PROFILE_URL_PATTERN = re.compile(r"(?<![\w.-])(?:https?://)?(?:www\.)?instagram\.com/([A-Za-z0-9._]+)", re.IGNORECASE)
# "@name" tokens, but not the domain half of an e-mail address.
_AT_HANDLE_PATTERN = re.compile(r"(?<![\w.@/])@([A-Za-z0-9._]+)")
_DEEP_LINK_PATTERN = re.compile(r"ig://user\?username=([A-Za-z0-9._]+)", re.IGNORECASE)
_MARKUP_PATTERNS = (_PROFILE_URL_PATTERN, _AT_HANDLE_PATTERN, _DEEP_LINK_PATTERN)

_MIN_HANDLE_LENGTH = 3
_MAX_HANDLE_LENGTH = 29

# Platform navigation paths, plus CSS at-rules and JSON-LD keys that the
# "@name" pattern would otherwise pick up from inline styles and scripts.
RESERVED_SEGMENTS = frozenset(
    {
        "p",
        "tv",
        "stories",
        "reels",
        "reel",
        "explore",
        "accounts",
        "login",
        "signup",
        "help",
        "about",
        "developer",
        "legal",
        "direct",
        "share",
        "web",
        "media",
        "import",
        "keyframes",
        "charset",
        "supports",
        "font",
        "layer",
        "container",
        "namespace",
        "context",
        "type",
        "graph",
        "vocab",
        "base",
        "language",
        "page",
        "counter",
        "property",
        "scope",
        "starting",
        "viewport",
        "document",
        "apply",
        "tailwind",
    }
)


@dataclass(frozen=True)
class HandleCandidate:
    handle: str
    confidence: float
    source: str


@dataclass(frozen=True)
class Detection:
    outcome: str
    handle: str | None
    confidence: float
    source_url: str
    error: str | None = None


def normalize_candidate(raw: str) -> str | None:
    value = raw.strip().rstrip(".").lower()
    if not _MIN_HANDLE_LENGTH <= len(value) <= _MAX_HANDLE_LENGTH:
        return None
    if value in RESERVED_SEGMENTS:
        return None
    return value


def _profile_segment(href: str) -> str | None:
    """Return the first path segment of a link to the platform host, if it is one."""
    value = href.strip()
    if value.startswith("//"):
        value = f"https:{value}"
    elif "://" not in value:
        value = f"https://{value}"
    try:
        parts = urlsplit(value)
        host = (parts.hostname or "").lower()
    except ValueError:
        return None
    if host not in _PLATFORM_HOSTS:
        return None
    segment = parts.path.strip("/").split("/", 1)[0]
    if not _HANDLE_SEGMENT_PATTERN.match(segment):
        return None
    return segment


def find_candidates(html: str) -> list[HandleCandidate]:
    """Collect handle candidates in priority order: explicit links, then markup patterns."""
    candidates: list[HandleCandidate] = []

    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        segment = _profile_segment(str(anchor.get("href") or ""))
        handle = normalize_candidate(segment) if segment else None
        if handle:
            candidates.append(HandleCandidate(handle, EXPLICIT_LINK_CONFIDENCE, "direct_link"))

    for pattern in _MARKUP_PATTERNS:
        for match in pattern.finditer(html):
            handle = normalize_candidate(match.group(1))
            if handle:
                candidates.append(HandleCandidate(handle, PATTERN_MATCH_CONFIDENCE, "pattern_match"))

    return candidates


def choose_candidate(candidates: list[HandleCandidate]) -> HandleCandidate | None:
    for candidate in candidates:
        if candidate.source == "direct_link":
            return candidate
    return candidates[0] if candidates else None


class HandleDetector:
    """Finds the Instagram handle a website links to."""

    def __init__(self, *, fetcher: PageFetcherPort):
        self.fetcher = fetcher

    @staticmethod
    def source_url_for(domain: str) -> str:
        return f"https://{domain}"

    def detect(self, domain: str) -> Detection:
        source_url = self.source_url_for(domain)
        try:
            html = self.fetcher.fetch(source_url)
            candidates = find_candidates(html)
        except Exception as exc:
            return Detection(
                outcome="error",
                handle=None,
                confidence=0.0,
                source_url=source_url,
                error=str(exc) or exc.__class__.__name__,
            )

        best = choose_candidate(candidates)
        if best is None:
            return Detection(outcome="not_found", handle=None, confidence=0.0, source_url=source_url)

        return Detection(
            outcome="found",
            handle=f"@{best.handle}",
            confidence=best.confidence,
            source_url=source_url,
        )
