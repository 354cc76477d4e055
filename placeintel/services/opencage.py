"""OpenCage reverse geocoding adapter."""
import logging
from typing import Optional

from placeintel.models.places import GeocodeResult
from placeintel.services.http_fetcher import BoundedFetcher

logger = logging.getLogger(__name__)

OPENCAGE_URL = "https://api.opencagedata.com/geocode/v1/json"


class OpenCageClient:
    """Reverse geocoding through OpenCage; disabled without an API key."""

    def __init__(self, fetcher: BoundedFetcher, api_key: Optional[str]) -> None:
        self.fetcher = fetcher
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        """
        Reverse geocode one point.

        Returns:
            GeocodeResult, or None if the key is missing, the call failed or
            no result came back.
        """
        if not self.enabled:
            return None

        params = {
            "q": f"{lat},{lng}",
            "key": self.api_key,
            "no_record": 1,
            "language": "en",
            "limit": 1,
        }
        data = await self.fetcher.get_json(OPENCAGE_URL, params=params)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results:
            logger.warning(f"OpenCage returned no results for {lat:.4f}, {lng:.4f}")
            return None

        result = results[0] or {}
        components = result.get("components") if isinstance(result.get("components"), dict) else None
        comps = components or {}
        return GeocodeResult(
            formatted=result.get("formatted") or f"{lat:.4f}, {lng:.4f}",
            components=components,
            name=comps.get("road") or comps.get("neighbourhood"),
            locality=comps.get("city") or comps.get("town") or comps.get("village") or comps.get("suburb"),
            region=comps.get("state") or comps.get("county"),
            country=comps.get("country"),
        )
