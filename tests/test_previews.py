import asyncio

import httpx
import pytest

from placeintel.enrichment.previews import (
    EMPTY_PREVIEW_TTL_SECONDS,
    DomainThrottle,
    PreviewFetcher,
    is_social_url,
)
from placeintel.enrichment.robots import RobotsPolicy
from placeintel.services.cache import TwoTierCache
from placeintel.services.lru_cache import LRUCache

HTML = """
<html><head>
<meta property="og:title" content="Spier Wine Farm">
<meta property="og:description" content="Wine farm and eatery in Stellenbosch.">
<meta property="og:image" content="https://www.spier.co.za/images/cellar.jpg">
</head><body>
<a href="https://www.instagram.com/spierwinefarm/">Instagram</a>
</body></html>
"""


class Recorder:
    def __init__(self, routes):
        self.routes = routes
        self.calls = []

    def __call__(self, request):
        url = str(request.url)
        self.calls.append(url)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        return route()


def _html():
    return httpx.Response(200, text=HTML, headers={"content-type": "text/html; charset=utf-8"})


@pytest.fixture
def build_previews(make_fetcher, clock):
    def factory(routes):
        recorder = Recorder(routes)
        fetcher = make_fetcher(recorder)
        cache = TwoTierCache(LRUCache(clock=clock), clock=clock)
        previews = PreviewFetcher(
            fetcher,
            cache=cache,
            robots=RobotsPolicy(fetcher, user_agent="PlaceIntelBot/1.0"),
            throttle=DomainThrottle(interval=0),
        )
        return previews, recorder, cache

    return factory


def test_website_preview_follows_validated_redirect(build_previews):
    previews, recorder, _ = build_previews({
        "https://spier.co.za/": lambda: httpx.Response(301, headers={"location": "https://www.spier.co.za/"}),
        "https://www.spier.co.za/": _html,
    })

    preview = asyncio.run(previews.fetch_website("spier.co.za/contact?utm_source=maps"))

    assert preview.source_url == "https://www.spier.co.za/"
    assert preview.name == "Spier Wine Farm"
    assert preview.images == ["https://www.spier.co.za/images/cellar.jpg"]
    assert preview.instagram_url == "https://www.instagram.com/spierwinefarm/"
    assert recorder.calls == [
        "https://spier.co.za/robots.txt",
        "https://spier.co.za/",
        "https://www.spier.co.za/",
    ]


def test_redirect_to_private_address_is_blocked(build_previews):
    previews, recorder, _ = build_previews({
        "https://evil.example/": lambda: httpx.Response(302, headers={"location": "http://127.0.0.1/admin"}),
    })

    assert asyncio.run(previews.fetch_website("https://evil.example/")) is None
    assert "http://127.0.0.1/admin" not in recorder.calls


def test_too_many_redirects(build_previews):
    previews, _, _ = build_previews({
        "https://loop.example/": lambda: httpx.Response(302, headers={"location": "https://loop.example/a"}),
        "https://loop.example/a": lambda: httpx.Response(302, headers={"location": "https://loop.example/b"}),
        "https://loop.example/b": lambda: httpx.Response(302, headers={"location": "https://loop.example/c"}),
        "https://loop.example/c": lambda: httpx.Response(302, headers={"location": "https://loop.example/d"}),
        "https://loop.example/d": _html,
    })

    assert asyncio.run(previews.fetch_website("https://loop.example/")) is None


def test_robots_disallow_is_respected_and_cached(build_previews):
    previews, recorder, _ = build_previews({
        "https://private.example/robots.txt": lambda: httpx.Response(200, text="User-agent: *\nDisallow: /\n"),
        "https://private.example/": _html,
    })

    async def scenario():
        first = await previews.fetch_website("https://private.example/")
        second = await previews.fetch_website("https://private.example/")
        return first, second

    first, second = asyncio.run(scenario())
    assert first is None and second is None
    assert recorder.calls == ["https://private.example/robots.txt"]


def test_preview_is_served_from_cache(build_previews):
    previews, recorder, _ = build_previews({"https://www.spier.co.za/": _html})

    async def scenario():
        await previews.fetch_website("https://www.spier.co.za/")
        calls_after_first = len(recorder.calls)
        cached = await previews.fetch_website("https://www.spier.co.za/index.html")
        return calls_after_first, cached

    calls_after_first, cached = asyncio.run(scenario())
    assert cached.name == "Spier Wine Farm"
    assert len(recorder.calls) == calls_after_first


def test_failed_preview_is_cached_briefly(build_previews, clock):
    previews, recorder, cache = build_previews({})

    async def scenario():
        await previews.fetch_website("https://down.example/")
        entry = await cache.get("preview:down.example/")
        return entry

    entry = asyncio.run(scenario())
    assert entry.payload == {"empty": True}
    assert entry.expires_at - entry.created_at == EMPTY_PREVIEW_TTL_SECONDS


def test_non_html_response_is_ignored(build_previews):
    previews, _, _ = build_previews({
        "https://files.example/": lambda: httpx.Response(200, content=b"%PDF", headers={"content-type": "application/pdf"}),
    })
    assert asyncio.run(previews.fetch_website("https://files.example/")) is None


def test_social_preview_skips_robots(build_previews):
    previews, recorder, _ = build_previews({"https://www.instagram.com/spierwinefarm/": _html})

    preview = asyncio.run(previews.fetch_social("https://www.instagram.com/spierwinefarm/"))

    assert preview.description == "Wine farm and eatery in Stellenbosch."
    assert preview.instagram_url is None
    assert recorder.calls == ["https://www.instagram.com/spierwinefarm/"]


def test_social_preview_rejects_other_hosts(build_previews):
    previews, recorder, _ = build_previews({})
    assert asyncio.run(previews.fetch_social("https://example.com/spier")) is None
    assert recorder.calls == []


def test_is_social_url():
    assert is_social_url("https://m.facebook.com/spier")
    assert not is_social_url("https://twitter.com/spier")


def test_domain_throttle_spaces_requests(clock):
    throttle = DomainThrottle(interval=1.0, clock=clock)
    assert throttle.reserve("spier.co.za") == 0
    assert throttle.reserve("spier.co.za") == 1.0
    assert throttle.reserve("example.com") == 0

    clock.advance(5)
    assert throttle.reserve("spier.co.za") == 0


def test_throttle_forgets_domains_whose_slot_has_passed(clock):
    throttle = DomainThrottle(interval=1.0, clock=clock, max_domains=2)
    throttle.reserve("spier.co.za")
    throttle.reserve("example.com")

    clock.advance(5)
    throttle.reserve("mzolis.example")

    assert len(throttle) == 1
    assert throttle.reserve("mzolis.example") == 1.0


def test_robots_cache_is_bounded(make_fetcher, clock):
    recorder = Recorder({})
    robots = RobotsPolicy(make_fetcher(recorder), user_agent="PlaceIntelBot/1.0", max_origins=1, clock=clock)

    for url in ("https://a.example/x", "https://b.example/x", "https://a.example/y"):
        assert asyncio.run(robots.is_allowed(url))

    assert recorder.calls == [
        "https://a.example/robots.txt",
        "https://b.example/robots.txt",
        "https://a.example/robots.txt",
    ]
