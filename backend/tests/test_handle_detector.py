from dmscout.workers.extraction import HandleDetector
from dmscout.workers.extraction.detector import choose_candidate, find_candidates, normalize_candidate
from tests.fakes import StubFetcher


def test_direct_link_wins_over_text_mentions():
    html = """
    <p>Say hi to @someone_else on the gram</p>
    <a href="https://www.instagram.com/acme.studio/?hl=en">Instagram</a>
    """
    best = choose_candidate(find_candidates(html))

    assert best is not None
    assert best.handle == "acme.studio"
    assert best.source == "direct_link"
    assert best.confidence == 95.0


def test_pattern_match_when_no_anchor_links():
    html = '<script>window.cfg = {"profile": "ig://user?username=Night_Owl"}</script>'
    best = choose_candidate(find_candidates(html))

    assert best is not None
    assert best.handle == "night_owl"
    assert best.confidence == 85.0


def test_reserved_paths_and_css_rules_are_ignored():
    html = """
    <style>@media (max-width: 600px) { body { margin: 0 } } @font-face { }</style>
    <a href="https://instagram.com/explore/">Explore</a>
    <a href="https://instagram.com/accounts/login">Log in</a>
    <p>Write to hello@studio.com</p>
    """
    assert find_candidates(html) == []


def test_handle_length_limits():
    assert normalize_candidate("ab") is None
    assert normalize_candidate("a" * 30) is None
    assert normalize_candidate("Brand.Name.") == "brand.name"


def test_detect_maps_fetch_failures_to_error():
    detection = HandleDetector(fetcher=StubFetcher({})).detect("offline.dev")

    assert detection.outcome == "error"
    assert detection.handle is None
    assert detection.confidence == 0.0
    assert detection.source_url == "https://offline.dev"
    assert "Timed out" in (detection.error or "")


def test_detect_not_found_and_found():
    fetcher = StubFetcher(
        {
            "https://plain.com": "<html><body>Nothing social</body></html>",
            "https://shop.com": '<a href="https://instagram.com/shop_official">IG</a>',
        }
    )
    detector = HandleDetector(fetcher=fetcher)

    missing = detector.detect("plain.com")
    found = detector.detect("shop.com")

    assert (missing.outcome, missing.handle, missing.confidence) == ("not_found", None, 0.0)
    assert (found.outcome, found.handle, found.confidence) == ("found", "@shop_official", 95.0)


def test_more_css_at_rules_and_json_ld_keys_are_ignored():
    html = """
    <style>
      @page { size: A4 }
      @counter-style thumbs { system: cyclic }
      @property --accent { syntax: '<color>' }
    </style>
    <script type="application/ld+json">{"@vocab": "https://schema.org/", "@base": "/"}</script>
    """
    assert find_candidates(html) == []


def test_lookalike_hosts_are_not_profile_links():
    html = """
    <a href="https://notinstagram.com/foo_brand">Fake</a>
    <a href="https://instagram.com.evil.io/bar_brand">Fake</a>
    <p>See https://notinstagram.com/baz_brand</p>
    """
    assert find_candidates(html) == []


def test_scheme_relative_profile_links_count_as_explicit():
    best = choose_candidate(find_candidates('<a href="//www.instagram.com/real_brand">IG</a>'))

    assert best is not None
    assert (best.handle, best.source, best.confidence) == ("real_brand", "direct_link", 95.0)
