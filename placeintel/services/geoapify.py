"""Geoapify adapter: nearby places, text search, reverse geocode, place details.

Provider payloads are parsed here into ``PlaceCandidate`` / ``GeocodeResult``;
nothing outside this module sees Geoapify field names.
"""
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit, urlunsplit

from placeintel.models.places import GeocodeResult, PlaceCandidate
from placeintel.services.http_fetcher import BoundedFetcher
from placeintel.utils.geo import haversine_m

logger = logging.getLogger(__name__)

PLACES_URL = "https://api.geoapify.com/v2/places"
GEOCODE_SEARCH_URL = "https://api.geoapify.com/v1/geocode/search"
REVERSE_URL = "https://api.geoapify.com/v1/geocode/reverse"
PLACE_DETAILS_URL = "https://api.geoapify.com/v2/place-details"


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def normalize_website(raw: Any) -> Optional[str]:
    """Add a scheme and drop the fragment; None for unusable values."""
    value = _str(raw)
    if not value:
        return None
    if not value.lower().startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        parts = urlsplit(value)
    except ValueError:
        return None
    if not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", parts.query, ""))


def _website(props: Dict[str, Any]) -> Optional[str]:
    contact = props.get("contact") or {}
    raw = (props.get("datasource") or {}).get("raw") or {}
    return normalize_website(
        _str(props.get("website"))
        or _str(contact.get("website"))
        or _str(raw.get("website"))
        or _str(raw.get("contact:website"))
    )


def _phone(props: Dict[str, Any]) -> Optional[str]:
    contact = props.get("contact") or {}
    raw = (props.get("datasource") or {}).get("raw") or {}
    return (
        _str(props.get("phone"))
        or _str(contact.get("phone"))
        or _str(raw.get("phone"))
        or _str(raw.get("contact:phone"))
        or None
    )


def _locality(props: Dict[str, Any]) -> Optional[str]:
    for field in ("city", "town", "village", "municipality", "suburb", "district"):
        value = _str(props.get(field))
        if value:
            return value
    return None


def _categories(props: Dict[str, Any]) -> List[str]:
    categories = props.get("categories")
    if isinstance(categories, list):
        return [c.strip() for c in categories if isinstance(c, str) and c.strip()]
    single = _str(props.get("category")) or _str(props.get("result_type"))
    return [single] if single else []


def parse_place(props: Dict[str, Any], origin_lat: float, origin_lng: float) -> Optional[PlaceCandidate]:
    """Build a candidate from a feature's properties or a geocode result row."""
    lat = props.get("lat")
    lng = props.get("lon")
    if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        return None

    name = _str(props.get("name")) or _str(props.get("address_line1")) or _str(props.get("formatted"))
    if not name:
        return None

    return PlaceCandidate(
        id=_str(props.get("place_id")) or f"{lng:.6f},{lat:.6f}",
        name=name,
        lat=float(lat),
        lng=float(lng),
        distance_m=haversine_m(origin_lat, origin_lng, lat, lng),
        categories=_categories(props),
        address=_str(props.get("formatted")) or None,
        locality=_locality(props),
        region=_str(props.get("state")) or _str(props.get("county")) or None,
        country=_str(props.get("country")) or _str(props.get("country_code")) or None,
        website=_website(props),
        phone=_phone(props),
    )


def looks_like_place_id(place_id: Optional[str]) -> bool:
    """Real provider ids are long opaque strings; synthetic ones are ``lng,lat``."""
    return bool(place_id) and "," not in place_id and len(place_id) > 20


class GeoapifyClient:
    """Thin async client over the Geoapify REST APIs."""

    def __init__(self, fetcher: BoundedFetcher, api_key: Optional[str]) -> None:
        self.fetcher = fetcher
        self.api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def nearby_places(
        self,
        lat: float,
        lng: float,
        radius_m: float,
        categories: Optional[List[str]] = None,
        limit: int = 20,
    ) -> Optional[List[PlaceCandidate]]:
        """
        Places within ``radius_m`` of the point, nearest first.

        Returns:
            List of candidates (possibly empty), or None if the provider
            could not be reached or answered badly.
        """
        if not self.enabled:
            return None

        params = {
            "apiKey": self.api_key,
            "filter": f"circle:{lng},{lat},{int(max(10, radius_m))}",
            "bias": f"proximity:{lng},{lat}",
            "limit": limit,
            "lang": "en",
        }
        if categories:
            params["categories"] = ",".join(categories)

        data = await self.fetcher.get_json(PLACES_URL, params=params)
        if data is None:
            return None

        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            logger.warning("Geoapify places response without features")
            return None

        candidates = []
        for feature in features:
            props = (feature or {}).get("properties") or {}
            candidate = parse_place(props, lat, lng)
            if candidate is not None:
                candidates.append(candidate)
        candidates.sort(key=lambda c: c.distance_m)
        return candidates

    async def search_text(self, text: str, near_lat: float, near_lng: float, limit: int = 10) -> List[PlaceCandidate]:
        """Free-text geocode search biased toward a point."""
        if not self.enabled or not text.strip():
            return []

        params = {
            "apiKey": self.api_key,
            "text": text,
            "bias": f"proximity:{near_lng},{near_lat}",
            "format": "json",
            "limit": limit,
            "lang": "en",
        }
        data = await self.fetcher.get_json(GEOCODE_SEARCH_URL, params=params)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            return []

        candidates = [parse_place(row or {}, near_lat, near_lng) for row in results]
        return [c for c in candidates if c is not None]

    async def reverse_geocode(self, lat: float, lng: float) -> Optional[GeocodeResult]:
        """Address and administrative areas for the point."""
        if not self.enabled:
            return None

        params = {
            "apiKey": self.api_key,
            "lat": lat,
            "lon": lng,
            "format": "json",
            "lang": "en",
        }
        data = await self.fetcher.get_json(REVERSE_URL, params=params)
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results:
            return None

        row = results[0] or {}
        formatted = _str(row.get("formatted"))
        if not formatted:
            return None

        components = {
            key: row[key]
            for key in (
                "housenumber", "street", "suburb", "district", "city", "town", "village",
                "county", "state", "postcode", "country", "country_code",
            )
            if row.get(key)
        }
        return GeocodeResult(
            formatted=formatted,
            components=components or None,
            name=_str(row.get("name")) or _str(row.get("address_line1")) or None,
            locality=_locality(row),
            region=_str(row.get("state")) or _str(row.get("county")) or None,
            country=_str(row.get("country")) or None,
        )

    async def place_details(self, place_id: str) -> Dict[str, Optional[str]]:
        """Website/phone/name from the details endpoint; empty dict on failure."""
        if not self.enabled or not looks_like_place_id(place_id):
            return {}

        params = {"id": place_id, "features": "details", "apiKey": self.api_key, "lang": "en"}
        data = await self.fetcher.get_json(PLACE_DETAILS_URL, params=params)
        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list) or not features:
            return {}

        details = next(
            (f for f in features if ((f or {}).get("properties") or {}).get("feature_type") == "details"),
            features[0],
        )
        props = (details or {}).get("properties") or {}
        return {
            "name": _str(props.get("name")) or None,
            "website": _website(props),
            "phone": _phone(props),
        }
