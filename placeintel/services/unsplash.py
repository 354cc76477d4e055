"""Unsplash stock photo search (optional last-resort image source)."""
import logging
from typing import List, Optional

from placeintel.services.http_fetcher import BoundedFetcher

logger = logging.getLogger(__name__)

UNSPLASH_SEARCH_URL = "https://api.unsplash.com/search/photos"


class UnsplashClient:
    """Searches landscape photos; disabled without an access key."""

    def __init__(self, fetcher: BoundedFetcher, access_key: Optional[str]) -> None:
        self.fetcher = fetcher
        self.access_key = access_key

    @property
    def enabled(self) -> bool:
        return bool(self.access_key)

    async def search_photos(self, query: str, limit: int = 3) -> List[str]:
        """Return up to ``limit`` regular-size photo URLs for the query."""
        if not self.enabled or not query.strip():
            return []

        params = {
            "query": query.strip(),
            "per_page": min(10, max(1, limit * 3)),
            "orientation": "landscape",
            "content_filter": "high",
        }
        headers = {"Authorization": f"Client-ID {self.access_key}", "Accept-Version": "v1"}
        data = await self.fetcher.get_json(UNSPLASH_SEARCH_URL, params=params, headers=headers)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []

        urls = []
        for item in results:
            photo_urls = (item or {}).get("urls") or {}
            url = photo_urls.get("regular") or photo_urls.get("full")
            if isinstance(url, str) and url not in urls:
                urls.append(url)
            if len(urls) >= limit:
                break
        logger.info(f"Unsplash returned {len(urls)} photo(s) for '{query}'")
        return urls
