"""
Pin intelligence gateway: nearby POIs plus a reverse geocode for map annotation.

POIs are fetched first. The acceptance radius for the "selected" POI is
200 m, relaxed to 300 m in rural areas (fewer than three POIs within 1 km).
Sparse primary results are backfilled by a broader search.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from placeintel.enrichment.poi_categories import (
    GATEWAY_BACKFILL_CATEGORIES,
    GATEWAY_PRIMARY_CATEGORIES,
    is_allowed,
)
from placeintel.models.places import POI, GeocodeResult, PlaceCandidate, PoiMetadata
from placeintel.services.cache import TwoTierCache
from placeintel.services.geoapify import GeoapifyClient
from placeintel.services.opencage import OpenCageClient
from placeintel.utils.geo import coarse_key

logger = logging.getLogger(__name__)

PRIMARY_RADIUS_M = 1000
BACKFILL_RADIUS_M = 5000
BACKFILL_THRESHOLD = 5
RURAL_THRESHOLD = 3
URBAN_ACCEPTANCE_M = 200
RURAL_ACCEPTANCE_M = 300
PRIMARY_LIMIT = 20
BACKFILL_LIMIT = 20


class ProviderExhaustedError(Exception):
    """Every provider behind the gateway failed for this request."""


@dataclass
class GatewayResult:
    geocode: Dict[str, Any]
    places: List[POI]
    poi_metadata: PoiMetadata
    geocode_source: str
    places_source: str
    geocode_cached: bool
    places_cached: bool


def fallback_geocode(lat: float, lng: float) -> Dict[str, Any]:
    return {"formatted": f"Location ({lat:.4f}, {lng:.4f})", "components": None}


def to_poi(candidate: PlaceCandidate) -> POI:
    return POI(
        id=candidate.id or f"{candidate.lng:.6f},{candidate.lat:.6f}",
        name=candidate.name,
        categories=candidate.categories,
        distance_m=int(round(candidate.distance_m)),
        lat=candidate.lat,
        lng=candidate.lng,
    )


def build_poi_metadata(places: List[POI], backfilled: bool) -> PoiMetadata:
    """Rural detection, acceptance radius and the nearest accepted POI."""
    within_1km = sum(1 for p in places if p.distance_m <= PRIMARY_RADIUS_M)
    rural = within_1km < RURAL_THRESHOLD
    acceptance = RURAL_ACCEPTANCE_M if rural else URBAN_ACCEPTANCE_M
    selected = next((p for p in places if p.distance_m <= acceptance), None)
    return PoiMetadata(
        selected=selected,
        acceptance_radius_m=acceptance,
        rural=rural,
        backfilled=backfilled,
        total_nearby=len(places),
        within_1km=within_1km,
    )


class PinIntelGateway:
    """Combines cached POI and geocode lookups for one coordinate."""

    def __init__(
        self,
        geoapify: GeoapifyClient,
        opencage: OpenCageClient,
        cache: TwoTierCache,
        geocode_ttl_seconds: int,
        poi_ttl_seconds: int,
    ):
        self.geoapify = geoapify
        self.opencage = opencage
        self.cache = cache
        self.geocode_ttl_seconds = geocode_ttl_seconds
        self.poi_ttl_seconds = poi_ttl_seconds

    @property
    def geocode_source(self) -> str:
        if self.opencage.enabled:
            return "opencage"
        if self.geoapify.enabled:
            return "geoapify"
        return "none"

    async def lookup(self, lat: float, lng: float, precision: int = 5) -> GatewayResult:
        """
        POIs and reverse geocode for a point.

        Raises:
            ProviderExhaustedError: if neither the POI search nor the geocode
                could be served from cache or providers.
        """
        key = coarse_key(lat, lng, precision)

        places_payload, places_cached = await self._places(lat, lng, f"poi:{key}")
        geocode_payload, geocode_cached = await self._geocode(lat, lng, f"geocode:{key}")

        if places_payload is None and geocode_payload is None:
            raise ProviderExhaustedError(f"All providers failed for {lat:.4f}, {lng:.4f}")

        if places_payload is None:
            places, backfilled = [], False
        else:
            places = [POI.model_validate(p) for p in places_payload["places"]]
            backfilled = bool(places_payload.get("backfilled"))

        return GatewayResult(
            geocode=geocode_payload if geocode_payload is not None else fallback_geocode(lat, lng),
            places=places,
            poi_metadata=build_poi_metadata(places, backfilled),
            geocode_source=self.geocode_source,
            places_source="geoapify" if self.geoapify.enabled else "none",
            geocode_cached=geocode_cached,
            places_cached=places_cached,
        )

    async def _places(self, lat: float, lng: float, cache_key: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        cached = await self.cache.get_payload(cache_key)
        if cached is not None:
            logger.info(f"POI cache hit: {cache_key}")
            return cached, True

        primary = await self.geoapify.nearby_places(
            lat, lng, PRIMARY_RADIUS_M, categories=GATEWAY_PRIMARY_CATEGORIES, limit=PRIMARY_LIMIT
        )
        if primary is None:
            return None, False

        merged = {c.id: c for c in primary}
        backfilled = False
        if len(primary) < BACKFILL_THRESHOLD:
            broader = await self.geoapify.nearby_places(
                lat, lng, BACKFILL_RADIUS_M, categories=GATEWAY_BACKFILL_CATEGORIES, limit=BACKFILL_LIMIT
            )
            for candidate in broader or []:
                if candidate.id not in merged:
                    merged[candidate.id] = candidate
                    backfilled = True

        accepted = [c for c in merged.values() if is_allowed(c.categories)]
        accepted.sort(key=lambda c: c.distance_m)
        payload = {
            "places": [to_poi(c).model_dump() for c in accepted],
            "backfilled": backfilled,
        }
        await self.cache.set(cache_key, payload, self.poi_ttl_seconds)
        logger.info(f"POI lookup: {len(accepted)} of {len(merged)} places kept for {cache_key}")
        return payload, False

    async def _geocode(self, lat: float, lng: float, cache_key: str) -> Tuple[Optional[Dict[str, Any]], bool]:
        cached = await self.cache.get_payload(cache_key)
        if cached is not None:
            logger.info(f"Geocode cache hit: {cache_key}")
            return cached, True

        result: Optional[GeocodeResult] = None
        if self.opencage.enabled:
            result = await self.opencage.reverse_geocode(lat, lng)
        elif self.geoapify.enabled:
            result = await self.geoapify.reverse_geocode(lat, lng)

        if result is None:
            logger.warning(f"Reverse geocode failed for {lat:.4f}, {lng:.4f}")
            return None, False

        payload = {"formatted": result.formatted, "components": result.components}
        await self.cache.set(cache_key, payload, self.geocode_ttl_seconds)
        return payload, False
