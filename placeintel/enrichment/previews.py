"""
Website and social page previews.

Each fetch loads exactly one page: redirects are followed by hand (at most
three hops, each hop re-checked against the URL guard), bodies are capped,
and results are cached per normalized URL.
"""

import asyncio
import logging
import threading
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

from placeintel.config import settings
from placeintel.enrichment.html_meta import parse_page
from placeintel.enrichment.robots import RobotsPolicy
from placeintel.enrichment.url_safety import (
    cache_key_for_url,
    is_safe_url,
    normalize_website_url,
    resolve_url,
    strip_tracking_params,
)
from placeintel.models.places import PagePreview
from placeintel.services.cache import TwoTierCache
from placeintel.services.http_fetcher import BoundedFetcher

logger = logging.getLogger(__name__)

PREVIEW_TTL_SECONDS = 7 * 24 * 3600
EMPTY_PREVIEW_TTL_SECONDS = 3600

SOCIAL_HOSTS = (
    "facebook.com",
    "www.facebook.com",
    "m.facebook.com",
    "web.facebook.com",
    "fb.com",
    "instagram.com",
    "www.instagram.com",
)

HTML_ACCEPT = "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5"


class DomainThrottle:
    """
    Spaces requests to the same domain at least ``interval`` seconds apart.

    Callers reserve the next free slot under the lock and sleep outside it,
    so concurrent requests to one domain queue up instead of being dropped.
    Slots already in the past are dropped once more than ``max_domains`` are
    tracked.
    """

    def __init__(
        self,
        interval: float = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        max_domains: int = 1024,
    ):
        self.interval = interval if interval is not None else settings.domain_throttle_seconds
        self.max_domains = max_domains
        self._clock = clock
        self._sleep = sleep
        self._next_slot: Dict[str, float] = {}
        self._lock = threading.Lock()

    def reserve(self, domain: str) -> float:
        """Claim the next slot for ``domain``; returns seconds to wait."""
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(domain, now))
            self._next_slot[domain] = slot + self.interval
            if len(self._next_slot) > self.max_domains:
                self._prune(now)
            return slot - now

    def _prune(self, now: float) -> None:
        for key in [key for key, free_at in self._next_slot.items() if free_at <= now]:
            del self._next_slot[key]

    def __len__(self) -> int:
        with self._lock:
            return len(self._next_slot)

    async def wait(self, domain: str) -> None:
        delay = self.reserve(domain)
        if delay > 0:
            logger.debug(f"Throttling {domain} for {delay:.2f}s")
            await self._sleep(delay)


def is_social_url(url: Optional[str]) -> bool:
    if not url:
        return False
    host = (urlsplit(url).hostname or "").lower()
    return host in SOCIAL_HOSTS


class PreviewFetcher:
    """Fetches and caches website and social page previews."""

    def __init__(
        self,
        fetcher: BoundedFetcher,
        cache: TwoTierCache,
        robots: RobotsPolicy,
        throttle: DomainThrottle,
        timeout: float = None,
        max_redirects: int = None,
    ):
        self.fetcher = fetcher
        self.cache = cache
        self.robots = robots
        self.throttle = throttle
        self.timeout = timeout or settings.website_timeout_seconds
        self.max_redirects = max_redirects if max_redirects is not None else settings.preview_max_redirects
        self.headers = {"User-Agent": settings.user_agent, "Accept": HTML_ACCEPT}

    async def fetch_website(self, url: str, use_cache: bool = True) -> Optional[PagePreview]:
        """
        Preview a place's own website.

        Args:
            url: Website URL as reported by a provider (scheme optional)
            use_cache: Read from the preview cache (writes always happen)

        Returns:
            PagePreview, or None when the URL is unsafe, disallowed by
            robots.txt, unreachable, or yielded nothing useful.
        """
        normalized = normalize_website_url(url)
        if not normalized or not is_safe_url(normalized):
            logger.info(f"Rejected website URL {url!r}")
            return None
        normalized = strip_tracking_params(normalized)

        key = cache_key_for_url(normalized)
        if use_cache:
            cached = await self._cached(key)
            if cached is not None:
                return cached[0]

        if not await self.robots.is_allowed(normalized):
            await self._store(key, None)
            return None

        preview = await self._fetch_preview(normalized, settings.website_max_bytes, discover_social=True)
        await self._store(key, preview)
        return preview

    async def fetch_social(self, url: str, use_cache: bool = True) -> Optional[PagePreview]:
        """Preview a Facebook or Instagram page from its Open Graph tags."""
        if not is_social_url(url) or not is_safe_url(url):
            return None
        cleaned = strip_tracking_params(url.split("#")[0])

        key = cache_key_for_url(cleaned)
        if use_cache:
            cached = await self._cached(key)
            if cached is not None:
                return cached[0]

        preview = await self._fetch_preview(cleaned, settings.social_max_bytes, discover_social=False)
        await self._store(key, preview)
        return preview

    async def _cached(self, key: str) -> Optional[Tuple[Optional[PagePreview]]]:
        """``(preview,)`` on a hit (preview may be None for cached misses), else None."""
        payload = await self.cache.get_payload(key)
        if payload is None:
            return None
        if payload.get("empty"):
            return (None,)
        try:
            return (PagePreview.model_validate(payload["preview"]),)
        except (KeyError, ValueError):
            await self.cache.delete(key)
            return None

    async def _store(self, key: str, preview: Optional[PagePreview]) -> None:
        if preview is None or preview.is_empty:
            await self.cache.set(key, {"empty": True}, EMPTY_PREVIEW_TTL_SECONDS)
        else:
            await self.cache.set(key, {"preview": preview.model_dump()}, PREVIEW_TTL_SECONDS)

    async def _fetch_preview(self, url: str, max_bytes: int, discover_social: bool) -> Optional[PagePreview]:
        page = await self.fetch_html(url, max_bytes)
        if page is None:
            return None
        html, final_url = page
        preview = parse_page(html, final_url, discover_social=discover_social)
        if preview.is_empty:
            logger.info(f"No usable metadata on {final_url}")
            return None
        logger.info(f"Preview for {final_url}: {len(preview.images)} image(s)")
        return preview

    async def fetch_html(self, url: str, max_bytes: int) -> Optional[Tuple[str, str]]:
        """Fetch one HTML page following up to ``max_redirects`` validated hops."""
        current = url
        for _ in range(self.max_redirects + 1):
            if not is_safe_url(current):
                logger.info(f"Blocked unsafe URL {current}")
                return None

            await self.throttle.wait((urlsplit(current).hostname or "").lower())
            result = await self.fetcher.get_limited(current, max_bytes, headers=self.headers, timeout=self.timeout)
            if not result.ok:
                return None

            if result.response.is_redirect:
                location = result.headers.get("location")
                if not location:
                    return None
                current = resolve_url(location, current)
                continue

            content_type = result.headers.get("content-type", "").lower()
            if content_type and "html" not in content_type and "xml" not in content_type:
                logger.info(f"Skipping non-HTML response from {current} ({content_type})")
                return None

            encoding = result.response.charset_encoding or "utf-8"
            try:
                html = result.content.decode(encoding, errors="replace")
            except LookupError:
                html = result.content.decode("utf-8", errors="replace")
            return html, current

        logger.info(f"Too many redirects starting at {url}")
        return None
