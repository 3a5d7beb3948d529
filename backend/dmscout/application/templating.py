from __future__ import annotations

import random
import re
from urllib.parse import urlsplit

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}")
# Innermost "{a|b|c}" group; "{{name}}" placeholders never contain a pipe.
_SPINTAX_PATTERN = re.compile(r"\{([^{}]*\|[^{}]*)\}")
_HANDLE_PATTERN = re.compile(r"^[a-z0-9._]{1,30}$")
_DOMAIN_PATTERN = re.compile(r"^[a-z0-9-]+(\.[a-z0-9-]+)+$")


def normalize_handle(raw: str) -> str | None:
    value = (raw or "").strip().lstrip("@").lower()
    if not _HANDLE_PATTERN.match(value):
        return None
    return f"@{value}"


def normalize_domain(raw: str) -> str | None:
    value = (raw or "").strip().lower()
    if not value:
        return None
    if "://" not in value:
        value = f"http://{value}"
    host = urlsplit(value).hostname or ""
    host = host.removeprefix("www.").rstrip(".")
    if not _DOMAIN_PATTERN.match(host):
        return None
    return host


def normalize_domains(values: list[str]) -> list[str]:
    """Clean a submitted domain list, dropping blanks and duplicates but keeping order."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in values:
        domain = normalize_domain(raw)
        if domain and domain not in seen:
            seen.add(domain)
            out.append(domain)
    return out


def resolve_spintax(content: str, *, rng: random.Random, max_variations: int) -> str:
    limit = max(1, max_variations)

    def _pick(match: re.Match[str]) -> str:
        options = match.group(1).split("|")[:limit]
        return rng.choice(options)

    text = content
    while True:
        resolved = _SPINTAX_PATTERN.sub(_pick, text)
        if resolved == text:
            return resolved
        text = resolved


def render_message(content: str, *, handle: str, max_variations: int = 3) -> str:
    """Render a template for one recipient.

    Spintax choices are seeded by the handle, so rebuilding a campaign yields
    the same message per recipient.
    """
    username = handle.lstrip("@")
    text = resolve_spintax(content, rng=random.Random(username), max_variations=max_variations)
    values = {
        "handle": f"@{username}",
        "username": username,
        "name": username,
    }
    return _PLACEHOLDER_PATTERN.sub(lambda m: values.get(m.group(1).lower(), m.group(0)), text)
