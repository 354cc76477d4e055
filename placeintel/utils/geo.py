"""
Coordinate helpers shared by the resolver, the caches and the gateway.
"""

import math
import re
from typing import Optional

EARTH_RADIUS_M = 6371000.0

COORDINATE_PAIR_RE = re.compile(r"^\s*-?\d+(\.\d+)?\s*,\s*-?\d+(\.\d+)?\s*$")


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in meters between two WGS84 points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def format_coordinate(lat: float, lng: float, precision: int = 4) -> str:
    """Human-readable coordinate label, e.g. ``"-33.9249, 18.4241"``."""
    return f"{lat:.{precision}f}, {lng:.{precision}f}"


def coarse_key(lat: float, lng: float, precision: int = 5) -> str:
    """Cache key for gateway lookups; nearby points share a key."""
    return f"{lat:.{precision}f}|{lng:.{precision}f}"


def is_coordinate_string(value: Optional[str]) -> bool:
    """True for strings that are just a ``lat, lng`` pair."""
    if not value:
        return False
    return bool(COORDINATE_PAIR_RE.match(value))
