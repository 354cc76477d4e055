"""Dependencies for FastAPI routes.

Every shared service is built once per process on first use. Tests swap
them through ``app.dependency_overrides``.
"""
import logging
from functools import lru_cache
from typing import Optional

import httpx
from fastapi import Request

from placeintel.config import settings
from placeintel.enrichment.gateway import PinIntelGateway
from placeintel.enrichment.images import ImageHoster
from placeintel.enrichment.knowledge_graph import KnowledgeGraphMatcher
from placeintel.enrichment.orchestrator import PinEnricher
from placeintel.enrichment.previews import DomainThrottle, PreviewFetcher
from placeintel.enrichment.resolver import PlaceResolver
from placeintel.enrichment.robots import RobotsPolicy
from placeintel.services.cache import TwoTierCache
from placeintel.services.geoapify import GeoapifyClient
from placeintel.services.http_fetcher import BoundedFetcher
from placeintel.services.idempotency import IdempotencyStore
from placeintel.services.image_store import ImageStore
from placeintel.services.lru_cache import LRUCache
from placeintel.services.opencage import OpenCageClient
from placeintel.services.rate_limiter import RateLimiter
from placeintel.services.redis_client import RedisClient, create_redis_client
from placeintel.services.unsplash import UnsplashClient
from placeintel.services.wikidata import WikidataClient

logger = logging.getLogger(__name__)


@lru_cache()
def get_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_seconds),
        limits=httpx.Limits(
            max_connections=settings.http_max_connections,
            max_keepalive_connections=max(1, settings.http_max_connections // 2),
        ),
        headers={"User-Agent": settings.user_agent},
    )


@lru_cache()
def get_fetcher() -> BoundedFetcher:
    return BoundedFetcher(get_http_client())


@lru_cache()
def get_redis() -> Optional[RedisClient]:
    return create_redis_client()


@lru_cache()
def get_pin_cache() -> TwoTierCache:
    return TwoTierCache(LRUCache(settings.pin_cache_max_entries), get_redis())


@lru_cache()
def get_intel_cache() -> TwoTierCache:
    return TwoTierCache(LRUCache(settings.intel_cache_max_entries), get_redis())


@lru_cache()
def get_geoapify() -> GeoapifyClient:
    return GeoapifyClient(get_fetcher(), settings.geoapify_api_key)


@lru_cache()
def get_preview_fetcher() -> PreviewFetcher:
    fetcher = get_fetcher()
    return PreviewFetcher(
        fetcher,
        cache=get_pin_cache(),
        robots=RobotsPolicy(fetcher),
        throttle=DomainThrottle(),
    )


@lru_cache()
def get_enricher() -> PinEnricher:
    fetcher = get_fetcher()
    return PinEnricher(
        resolver=PlaceResolver(get_geoapify()),
        matcher=KnowledgeGraphMatcher(WikidataClient(fetcher)),
        previews=get_preview_fetcher(),
        hoster=ImageHoster(fetcher, ImageStore()),
        cache=get_pin_cache(),
        unsplash=UnsplashClient(fetcher, settings.unsplash_access_key),
    )


@lru_cache()
def get_gateway() -> PinIntelGateway:
    fetcher = get_fetcher()
    return PinIntelGateway(
        geoapify=get_geoapify(),
        opencage=OpenCageClient(fetcher, settings.opencage_api_key),
        cache=get_intel_cache(),
        geocode_ttl_seconds=settings.geocode_cache_ttl_seconds,
        poi_ttl_seconds=settings.poi_cache_ttl_seconds,
    )


@lru_cache()
def get_rate_limiter() -> RateLimiter:
    return RateLimiter()


@lru_cache()
def get_idempotency_store() -> IdempotencyStore:
    return IdempotencyStore()


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


async def close_shared_clients() -> None:
    """Close the pooled HTTP client and Redis connection if they were created."""
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
        get_http_client.cache_clear()
        get_fetcher.cache_clear()
    if get_redis.cache_info().currsize:
        redis_client = get_redis()
        if redis_client is not None:
            await redis_client.close()
        get_redis.cache_clear()
