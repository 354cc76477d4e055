"""
Place identity resolution.

Turns a coordinate (and an optional user hint) into a single
``PlaceIdentity`` by combining a reverse geocode with a scored nearby-POI
search. Never raises: the worst outcome is a coordinate-named identity with
confidence 0.1.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from placeintel.config import settings
from placeintel.enrichment.poi_categories import RESOLVER_CATEGORIES
from placeintel.enrichment.similarity import is_useful_hint, names_match, similarity_score
from placeintel.models.places import GeocodeResult, PlaceCandidate, PlaceIdentity
from placeintel.services.geoapify import GeoapifyClient
from placeintel.utils.geo import format_coordinate

logger = logging.getLogger(__name__)

ACCEPT_THRESHOLD = 0.55

CONFIDENCE_WITH_WEBSITE = 0.85
CONFIDENCE_POI = 0.7
CONFIDENCE_ADDRESS = 0.3
CONFIDENCE_ADMIN_AREA = 0.2
CONFIDENCE_UNKNOWN = 0.1


def score_candidate(candidate: PlaceCandidate, radius_m: float, hint: Optional[str] = None) -> float:
    """
    Score a nearby place.

    0.5 base, up to 0.3 for proximity (zero at the radius edge), up to 0.2
    for name similarity to the hint, and 0.1 each for having a phone, a
    website and a category. Capped at 1.0.
    """
    score = 0.5
    score += max(0.0, 1.0 - candidate.distance_m / max(1.0, radius_m)) * 0.3
    if hint:
        score += similarity_score(candidate.name, hint) * 0.2
    if candidate.phone:
        score += 0.1
    if candidate.website:
        score += 0.1
    if candidate.categories:
        score += 0.1
    return min(1.0, score)


def canonical_query(name: str, locality: Optional[str]) -> str:
    return " ".join(part for part in (name, locality) if part).strip()


def fallback_identity(lat: float, lng: float) -> PlaceIdentity:
    """Identity used when nothing could be resolved."""
    label = format_coordinate(lat, lng)
    return PlaceIdentity(
        lat=lat,
        lng=lng,
        name=label,
        source="unknown",
        confidence=CONFIDENCE_UNKNOWN,
        canonical_query=label,
    )


class PlaceResolver:
    """Resolves coordinates to a place identity through Geoapify."""

    def __init__(
        self,
        geoapify: GeoapifyClient,
        search_radius_m: float = None,
        hint_max_distance_m: float = None,
    ):
        self.geoapify = geoapify
        self.search_radius_m = search_radius_m or settings.resolver_search_radius_m
        self.hint_max_distance_m = hint_max_distance_m or settings.resolver_hint_max_distance_m

    async def resolve(
        self,
        lat: float,
        lng: float,
        hint: Optional[str] = None,
        search_radius_m: Optional[float] = None,
        max_distance_m: Optional[float] = None,
    ) -> PlaceIdentity:
        """
        Resolve a coordinate to a place identity.

        Args:
            lat: Latitude
            lng: Longitude
            hint: Optional user-supplied place name
            search_radius_m: Nearby search radius (default 150 m)
            max_distance_m: Candidates farther than this are ignored
                (defaults to the search radius)

        Returns:
            PlaceIdentity; on total failure a coordinate-named identity
            with confidence 0.1 and source ``unknown``.
        """
        try:
            return await self._resolve(lat, lng, hint, search_radius_m, max_distance_m)
        except Exception:
            logger.exception(f"Place resolution failed for {format_coordinate(lat, lng)}")
            return fallback_identity(lat, lng)

    async def _resolve(
        self,
        lat: float,
        lng: float,
        hint: Optional[str],
        search_radius_m: Optional[float],
        max_distance_m: Optional[float],
    ) -> PlaceIdentity:
        radius = search_radius_m or self.search_radius_m
        max_distance = max_distance_m or radius
        hint = hint.strip() if hint else None

        geocode, nearby = await asyncio.gather(
            self.geoapify.reverse_geocode(lat, lng),
            self.geoapify.nearby_places(lat, lng, radius, categories=RESOLVER_CATEGORIES),
        )

        candidates = [c for c in (nearby or []) if c.distance_m <= max_distance]
        best, best_score = self._pick(candidates, radius, hint)

        if is_useful_hint(hint) and (best is None or not names_match(best.name, hint)):
            hinted = await self._search_hint(hint, lat, lng)
            if hinted is not None:
                logger.info(f"Hint '{hint}' matched '{hinted.name}' at {hinted.distance_m:.0f}m")
                best = hinted
                best_score = score_candidate(hinted, self.hint_max_distance_m, hint)

        if best is not None:
            best = await self._with_details(best)
            logger.info(f"Resolved {format_coordinate(lat, lng)} to '{best.name}' (score {best_score:.2f})")
            return self._from_candidate(lat, lng, best, geocode)

        if geocode is not None:
            return self._from_geocode(lat, lng, geocode)

        logger.warning(f"No place or geocode for {format_coordinate(lat, lng)}")
        return fallback_identity(lat, lng)

    @staticmethod
    def _pick(
        candidates: List[PlaceCandidate], radius: float, hint: Optional[str]
    ) -> Tuple[Optional[PlaceCandidate], float]:
        best = None
        best_score = ACCEPT_THRESHOLD
        for candidate in candidates:
            score = score_candidate(candidate, radius, hint)
            if score > best_score:
                best, best_score = candidate, score
        return best, best_score

    async def _search_hint(self, hint: str, lat: float, lng: float) -> Optional[PlaceCandidate]:
        """Nearest text-search result that matches the hint within range."""
        results = await self.geoapify.search_text(hint, lat, lng)
        matching = [
            r for r in results
            if r.distance_m <= self.hint_max_distance_m and names_match(r.name, hint)
        ]
        if not matching:
            return None
        return min(matching, key=lambda r: r.distance_m)

    async def _with_details(self, candidate: PlaceCandidate) -> PlaceCandidate:
        if candidate.website and candidate.phone:
            return candidate
        details = await self.geoapify.place_details(candidate.id)
        if not details:
            return candidate
        return candidate.model_copy(update={
            "website": candidate.website or details.get("website"),
            "phone": candidate.phone or details.get("phone"),
        })

    @staticmethod
    def _from_candidate(
        lat: float, lng: float, candidate: PlaceCandidate, geocode: Optional[GeocodeResult]
    ) -> PlaceIdentity:
        locality = candidate.locality or (geocode.locality if geocode else None)
        return PlaceIdentity(
            lat=lat,
            lng=lng,
            name=candidate.name,
            category=candidate.category,
            address=candidate.address or (geocode.formatted if geocode else None),
            locality=locality,
            region=candidate.region or (geocode.region if geocode else None),
            country=candidate.country or (geocode.country if geocode else None),
            website=candidate.website,
            phone=candidate.phone,
            source="geoapify",
            source_id=candidate.id,
            confidence=CONFIDENCE_WITH_WEBSITE if candidate.website else CONFIDENCE_POI,
            canonical_query=canonical_query(candidate.name, locality),
        )

    @staticmethod
    def _from_geocode(lat: float, lng: float, geocode: GeocodeResult) -> PlaceIdentity:
        if geocode.name:
            name = geocode.name
            confidence = CONFIDENCE_ADDRESS
        else:
            name = geocode.locality or geocode.region or geocode.formatted
            confidence = CONFIDENCE_ADMIN_AREA
        return PlaceIdentity(
            lat=lat,
            lng=lng,
            name=name,
            address=geocode.formatted,
            locality=geocode.locality,
            region=geocode.region,
            country=geocode.country,
            source="geocode",
            confidence=confidence,
            canonical_query=canonical_query(name, geocode.locality if geocode.locality != name else None),
        )
