"""
Two-tier cache: in-process LRU in front of an optional shared Redis.

Entries are stored as ``CacheEntry`` envelopes so ``created_at`` survives
overwrites and expiry can be checked on every read regardless of tier.
"""

import logging
import time
from typing import Any, Callable, Optional

from placeintel.models.places import CacheEntry
from placeintel.services.lru_cache import LRUCache
from placeintel.services.redis_client import RedisClient

logger = logging.getLogger(__name__)

DAY = 24 * 3600

COMMERCIAL_TTL_SECONDS = 45 * DAY
LANDMARK_TTL_SECONDS = 180 * DAY
DEFAULT_TTL_SECONDS = 90 * DAY

COMMERCIAL_KEYWORDS = (
    "restaurant", "cafe", "bar", "hotel", "shop", "store", "winery",
    "brewery", "retail", "catering", "accommodation", "commercial", "business",
)
LANDMARK_KEYWORDS = (
    "monument", "museum", "landmark", "historic", "attraction", "tourism",
    "nature", "natural", "park", "beach", "mountain", "heritage",
)


def pin_cache_key(lat: float, lng: float) -> str:
    """Pin cache key; coordinates rounded to 4 decimals (~11 m)."""
    return f"pin:{lat:.4f}:{lng:.4f}"


def ttl_for_category(category: Optional[str]) -> int:
    """Cache lifetime in seconds based on how quickly the place kind changes."""
    if not category:
        return DEFAULT_TTL_SECONDS
    lowered = category.lower()
    if any(keyword in lowered for keyword in COMMERCIAL_KEYWORDS):
        return COMMERCIAL_TTL_SECONDS
    if any(keyword in lowered for keyword in LANDMARK_KEYWORDS):
        return LANDMARK_TTL_SECONDS
    return DEFAULT_TTL_SECONDS


class TwoTierCache:
    """Local LRU first, then Redis (when configured)."""

    def __init__(
        self,
        local: LRUCache,
        remote: Optional[RedisClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.local = local
        self.remote = remote
        self._clock = clock

    async def get(self, key: str) -> Optional[CacheEntry]:
        """Return a live entry or None. Expired entries are deleted on the way."""
        now = self._clock()

        entry = self.local.get(key)
        if entry is not None:
            if not entry.is_expired(now):
                return entry
            self.local.delete(key)

        if self.remote is None:
            return None

        data = await self.remote.get(key)
        if not data:
            return None
        try:
            entry = CacheEntry.model_validate(data)
        except ValueError:
            logger.warning(f"Discarding malformed cache entry {key}")
            await self.remote.delete(key)
            return None

        if entry.is_expired(now):
            await self.remote.delete(key)
            return None

        self.local.set(key, entry, entry.expires_at - now)
        return entry

    async def get_payload(self, key: str) -> Optional[Any]:
        entry = await self.get(key)
        return entry.payload if entry is not None else None

    async def set(self, key: str, payload: Any, ttl_seconds: int) -> CacheEntry:
        """Write through both tiers, keeping the original creation time."""
        now = self._clock()
        existing = await self.get(key)
        entry = CacheEntry(
            key=key,
            created_at=existing.created_at if existing else now,
            updated_at=now,
            expires_at=now + ttl_seconds,
            payload=payload,
        )
        self.local.set(key, entry, ttl_seconds)
        if self.remote is not None:
            await self.remote.set(key, entry.model_dump(), ttl=ttl_seconds)
        return entry

    async def delete(self, key: str) -> None:
        self.local.delete(key)
        if self.remote is not None:
            await self.remote.delete(key)
