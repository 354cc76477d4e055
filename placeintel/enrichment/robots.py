"""robots.txt checks with a per-origin decision cache."""
import logging
import time
from typing import Callable
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

from placeintel.config import settings
from placeintel.services.http_fetcher import BoundedFetcher
from placeintel.services.lru_cache import LRUCache

logger = logging.getLogger(__name__)

ROBOTS_TTL_SECONDS = 24 * 3600
ROBOTS_TIMEOUT_SECONDS = 2.0
ROBOTS_MAX_BYTES = 256 * 1024
ROBOTS_MAX_ORIGINS = 2000


class RobotsPolicy:
    """
    Answers "may we fetch this URL" from the site's robots.txt.

    Decisions are cached per origin for 24 hours, in a bounded LRU. A missing
    or unreachable robots.txt means allowed.
    """

    def __init__(
        self,
        fetcher: BoundedFetcher,
        user_agent: str = None,
        ttl_seconds: int = ROBOTS_TTL_SECONDS,
        max_origins: int = ROBOTS_MAX_ORIGINS,
        clock: Callable[[], float] = time.time,
    ):
        self.fetcher = fetcher
        self.user_agent = user_agent or settings.user_agent
        self.ttl_seconds = ttl_seconds
        self._parsers = LRUCache(max_entries=max_origins, clock=clock)

    async def _load(self, origin: str) -> RobotFileParser:
        parser = RobotFileParser()
        result = await self.fetcher.get_limited(
            f"{origin}/robots.txt",
            max_bytes=ROBOTS_MAX_BYTES,
            headers={"User-Agent": self.user_agent},
            timeout=ROBOTS_TIMEOUT_SECONDS,
        )
        if result.ok and not result.response.is_redirect and result.content:
            text = result.content.decode("utf-8", errors="replace")
            parser.parse(text.splitlines())
        else:
            parser.parse([])
        return parser

    async def is_allowed(self, url: str) -> bool:
        parts = urlsplit(url)
        origin = f"{parts.scheme}://{parts.netloc}"

        parser = self._parsers.get(origin)
        if parser is None:
            parser = await self._load(origin)
            self._parsers.set(origin, parser, self.ttl_seconds)

        allowed = parser.can_fetch(self.user_agent, url)
        if not allowed:
            logger.info(f"robots.txt disallows {url}")
        return allowed
