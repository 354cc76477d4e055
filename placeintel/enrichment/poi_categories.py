"""
Category data for POI searches and filtering.

Geoapify categories are dotted paths (``catering.restaurant``); matching is
by prefix so ``catering`` admits every catering subtype.
"""

from typing import Iterable

# Nearby search used by the identity resolver: places people pin on trips
RESOLVER_CATEGORIES = [
    "tourism",
    "accommodation",
    "catering",
    "entertainment.museum",
    "entertainment.culture",
    "leisure.park",
    "natural",
    "beach",
    "production.winery",
    "commercial.shopping_mall",
    "commercial.marketplace",
    "commercial.gift_and_souvenir",
    "commercial.art",
    "man_made.lighthouse",
    "man_made.tower",
    "man_made.bridge",
    "man_made.pier",
    "heritage",
    "religion.place_of_worship",
]

# Primary gateway search
GATEWAY_PRIMARY_CATEGORIES = [
    "catering",
    "entertainment",
    "tourism",
    "leisure",
    "natural",
    "accommodation",
    "religion",
    "commercial",
    "activity",
]

# Broadened backfill search: common categories only, wider radius
GATEWAY_BACKFILL_CATEGORIES = [
    "catering.restaurant",
    "catering.cafe",
    "catering.bar",
    "tourism.attraction",
    "tourism.sights",
    "accommodation.hotel",
    "leisure.park",
    "natural",
]

ALLOWED_PREFIXES = (
    "catering",
    "entertainment",
    "tourism",
    "leisure",
    "natural",
    "beach",
    "heritage",
    "accommodation",
    "religion",
    "production.winery",
    "production.brewery",
    "commercial.marketplace",
    "commercial.shopping_mall",
    "commercial.gift_and_souvenir",
    "commercial.art",
    "commercial.books",
    "commercial.food_and_drink",
    "activity",
)

EXCLUDED_PREFIXES = (
    "service.vehicle.fuel",
    "commercial.gas",
    "commercial.health_and_beauty.pharmacy",
    "healthcare",
    "service.financial",
    "service.financial.atm",
    "service.financial.bank",
    "commercial.supermarket",
    "commercial.convenience",
    "commercial.food_and_drink.grocery",
    "parking",
    "service.vehicle",
    "commercial.vehicle",
    "rental.car",
    "service.post",
    "office.government",
    "administrative",
    "education",
)


def _matches(category: str, prefix: str) -> bool:
    return category == prefix or category.startswith(prefix + ".")


def is_excluded(categories: Iterable[str]) -> bool:
    return any(_matches(c, p) for c in categories for p in EXCLUDED_PREFIXES)


def is_allowed(categories: Iterable[str]) -> bool:
    """Admitted when some category is on the allow-list and none is excluded."""
    categories = [c.strip().lower() for c in categories if c]
    if not categories or is_excluded(categories):
        return False
    return any(_matches(c, p) for c in categories for p in ALLOWED_PREFIXES)
