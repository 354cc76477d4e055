"""Wikidata adapter: entity search and entity details."""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from placeintel.config import settings
from placeintel.services.http_fetcher import BoundedFetcher

logger = logging.getLogger(__name__)

WIKIDATA_API_URL = "https://www.wikidata.org/w/api.php"
COMMONS_FILE_PATH_URL = "https://commons.wikimedia.org/wiki/Special:FilePath/"

IMAGE_PROPERTY = "P18"
OFFICIAL_WEBSITE_PROPERTY = "P856"
MAX_ENTITY_IMAGES = 3


def commons_file_url(file_name: str) -> str:
    """Direct Commons URL for a P18 file name."""
    return COMMONS_FILE_PATH_URL + quote(file_name.replace(" ", "_"), safe="")


def _claim_values(claims: Dict[str, Any], prop: str) -> List[Any]:
    values = []
    for claim in claims.get(prop) or []:
        value = (((claim or {}).get("mainsnak") or {}).get("datavalue") or {}).get("value")
        if value:
            values.append(value)
    return values


class WikidataClient:
    """Read-only client for the public Wikidata API."""

    def __init__(self, fetcher: BoundedFetcher) -> None:
        self.fetcher = fetcher
        self.headers = {"User-Agent": settings.user_agent, "Accept": "application/json"}

    async def search_entities(self, query: str, limit: int = 10) -> Optional[List[Dict[str, str]]]:
        """
        Search entities by label.

        Returns:
            List of ``{"id", "label", "description"}`` dicts, or None on failure.
        """
        params = {
            "action": "wbsearchentities",
            "search": query,
            "language": "en",
            "limit": limit,
            "format": "json",
        }
        data = await self.fetcher.get_json(WIKIDATA_API_URL, params=params, headers=self.headers)
        if not isinstance(data, dict):
            return None

        results = []
        for item in data.get("search") or []:
            if not isinstance(item, dict) or not item.get("id"):
                continue
            results.append({
                "id": item["id"],
                "label": item.get("label") or "",
                "description": item.get("description") or "",
            })
        return results

    async def get_entity(self, entity_id: str) -> Optional[Dict[str, Any]]:
        """
        Fetch description, images and official website for one entity.

        Returns:
            ``{"description", "images", "official_website"}`` or None on failure.
        """
        params = {
            "action": "wbgetentities",
            "ids": entity_id,
            "props": "descriptions|claims",
            "languages": "en",
            "format": "json",
        }
        data = await self.fetcher.get_json(WIKIDATA_API_URL, params=params, headers=self.headers)
        entity = ((data or {}).get("entities") or {}).get(entity_id) if isinstance(data, dict) else None
        if not isinstance(entity, dict):
            return None

        description = ((entity.get("descriptions") or {}).get("en") or {}).get("value")
        claims = entity.get("claims") or {}

        images = [
            commons_file_url(name)
            for name in _claim_values(claims, IMAGE_PROPERTY)[:MAX_ENTITY_IMAGES]
            if isinstance(name, str)
        ]

        official_website = None
        for value in _claim_values(claims, OFFICIAL_WEBSITE_PROPERTY):
            if not isinstance(value, str) or not value.strip():
                continue
            try:
                parts = urlsplit(value.strip())
            except ValueError:
                continue
            if parts.scheme in ("http", "https") and parts.netloc:
                official_website = urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, ""))
                break

        return {
            "description": description,
            "images": images,
            "official_website": official_website,
        }
