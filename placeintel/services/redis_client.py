"""Redis client for the shared cache tier."""
import json
import logging
from typing import Optional, Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from placeintel.config import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Async Redis wrapper storing JSON values with a TTL.

    Every operation absorbs connection and decode errors; a broken Redis
    behaves like an empty cache.
    """

    def __init__(self, url: str, client=None):
        self.url = url
        self.client = client or redis.from_url(url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        try:
            value = await self.client.get(key)
            if value:
                return json.loads(value)
            return None
        except (RedisError, ValueError) as e:
            logger.warning(f"Redis GET error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Set value in cache with optional TTL."""
        try:
            serialized = json.dumps(value)
            if ttl:
                await self.client.setex(key, int(ttl), serialized)
            else:
                await self.client.set(key, serialized)
            return True
        except (RedisError, TypeError) as e:
            logger.warning(f"Redis SET error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        try:
            await self.client.delete(key)
            return True
        except RedisError as e:
            logger.warning(f"Redis DELETE error for {key}: {e}")
            return False

    async def ping(self) -> bool:
        """Check if Redis is connected."""
        try:
            return bool(await self.client.ping())
        except RedisError:
            return False

    async def close(self) -> None:
        await self.client.aclose()


def create_redis_client() -> Optional[RedisClient]:
    """Build the shared client, or None when REDIS_URL is not configured."""
    if not settings.redis_url:
        logger.info("REDIS_URL not set, using local cache only")
        return None
    return RedisClient(settings.redis_url)
