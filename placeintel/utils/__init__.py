"""Utility functions for the backend."""

from placeintel.utils.geo import (
    coarse_key,
    format_coordinate,
    haversine_m,
    is_coordinate_string,
)

__all__ = [
    "coarse_key",
    "format_coordinate",
    "haversine_m",
    "is_coordinate_string",
]
