"""Image candidate selection, download and re-hosting."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from placeintel.config import settings
from placeintel.enrichment.html_meta import is_acceptable_image_url
from placeintel.enrichment.url_safety import is_safe_url, resolve_url
from placeintel.models.places import ImageRecord
from placeintel.services.http_fetcher import BoundedFetcher, redact_url
from placeintel.services.image_store import ImageStore

logger = logging.getLogger(__name__)

MAX_IMAGES = 3
MAX_IMAGE_REDIRECTS = 3
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


@dataclass(frozen=True)
class ImageCandidate:
    url: str
    source: str


def merge_candidates(*groups: Tuple[str, Iterable[str]]) -> List[ImageCandidate]:
    """
    Merge ``(source, urls)`` groups in priority order.

    Duplicates (first occurrence wins) and URLs failing the photo filter or
    the URL guard are dropped.
    """
    seen = set()
    merged = []
    for source, urls in groups:
        for url in urls or []:
            if not url or url in seen:
                continue
            seen.add(url)
            if not is_acceptable_image_url(url) or not is_safe_url(url):
                logger.debug(f"Dropping image candidate {url}")
                continue
            merged.append(ImageCandidate(url=url, source=source))
    return merged


class ImageHoster:
    """Downloads candidate images and stores them through an ``ImageStore``."""

    def __init__(self, fetcher: BoundedFetcher, store: ImageStore, max_bytes: int = None, timeout: float = None):
        self.fetcher = fetcher
        self.store = store
        self.max_bytes = max_bytes or settings.image_max_bytes
        self.timeout = timeout or settings.image_timeout_seconds
        self.headers = {"User-Agent": settings.user_agent, "Accept": "image/webp,image/jpeg,image/png,*/*;q=0.5"}

    async def download(self, url: str) -> Optional[Tuple[bytes, str]]:
        """Return ``(bytes, content_type)`` for an allowed image, else None."""
        current = url
        for _ in range(MAX_IMAGE_REDIRECTS + 1):
            if not is_safe_url(current):
                logger.info(f"Blocked unsafe image URL {redact_url(current)}")
                return None
            result = await self.fetcher.get_limited(
                current, self.max_bytes, headers=self.headers, timeout=self.timeout, truncate=False
            )
            if not result.ok:
                logger.info(f"Image download failed for {redact_url(current)}: {result.error or result.status.value}")
                return None
            if result.response.is_redirect:
                location = result.headers.get("location")
                if not location:
                    return None
                current = resolve_url(location, current)
                continue

            content_type = result.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type not in ALLOWED_CONTENT_TYPES:
                logger.info(f"Unsupported image type {content_type!r} at {redact_url(current)}")
                return None
            if not result.content:
                return None
            return result.content, content_type
        return None

    async def _host_one(self, candidate: ImageCandidate, cache_key: str) -> Optional[ImageRecord]:
        downloaded = await self.download(candidate.url)
        if downloaded is None:
            return None
        data, content_type = downloaded
        try:
            hosted_url = await asyncio.to_thread(
                self.store.save, cache_key, candidate.source, candidate.url, data, content_type
            )
        except OSError as exc:
            logger.warning(f"Could not store image from {candidate.url}: {exc}")
            return None
        return ImageRecord(
            url=hosted_url,
            source=candidate.source,
            source_url=candidate.url,
            fetched_at=datetime.now(timezone.utc).isoformat(),
        )

    async def host(self, candidates: List[ImageCandidate], cache_key: str, limit: int = MAX_IMAGES) -> List[ImageRecord]:
        """
        Host candidates in order until ``limit`` succeed.

        Downloads run in parallel batches sized to the number still needed;
        failures are logged and skipped.
        """
        hosted: List[ImageRecord] = []
        remaining = list(candidates)
        while remaining and len(hosted) < limit:
            needed = limit - len(hosted)
            batch, remaining = remaining[:needed], remaining[needed:]
            results = await asyncio.gather(
                *(self._host_one(c, cache_key) for c in batch), return_exceptions=True
            )
            for candidate, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.warning(f"Hosting {redact_url(candidate.url)} failed: {result!r}")
                elif result is not None:
                    hosted.append(result)
        return hosted[:limit]
