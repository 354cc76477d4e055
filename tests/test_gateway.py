import asyncio

import pytest

from placeintel.enrichment.gateway import (
    BACKFILL_RADIUS_M,
    PRIMARY_RADIUS_M,
    PinIntelGateway,
    ProviderExhaustedError,
    build_poi_metadata,
)
from placeintel.models.places import POI, GeocodeResult, PlaceCandidate
from placeintel.services.cache import TwoTierCache
from placeintel.services.lru_cache import LRUCache

LAT, LNG = -33.9249, 18.4241


def _place(pid, distance, categories=("catering.restaurant",)):
    return PlaceCandidate(id=pid, name=f"Place {pid}", lat=LAT, lng=LNG, distance_m=distance, categories=list(categories))


class DummyGeoapify:
    enabled = True

    def __init__(self, primary, broader=None):
        self.primary = primary
        self.broader = broader or []
        self.calls = []

    async def nearby_places(self, lat, lng, radius_m, categories=None, limit=20):
        self.calls.append(radius_m)
        return self.primary if radius_m == PRIMARY_RADIUS_M else self.broader

    async def reverse_geocode(self, lat, lng):
        return None


class DummyOpenCage:
    def __init__(self, result=None, enabled=True):
        self.result = result
        self.enabled = enabled
        self.calls = 0

    async def reverse_geocode(self, lat, lng):
        self.calls += 1
        return self.result


def _gateway(geoapify, opencage):
    return PinIntelGateway(
        geoapify=geoapify,
        opencage=opencage,
        cache=TwoTierCache(LRUCache()),
        geocode_ttl_seconds=6 * 3600,
        poi_ttl_seconds=2 * 3600,
    )


def _geocode():
    return GeocodeResult(formatted="Greenmarket Square, Cape Town", components={"city": "Cape Town"})


def test_urban_point_uses_200m_acceptance():
    geoapify = DummyGeoapify([
        _place("a", 250),
        _place("b", 120),
        _place("c", 600),
        _place("d", 900),
        _place("e", 80, categories=("service.financial.atm",)),
        _place("f", 400, categories=("tourism.sights",)),
    ])
    result = asyncio.run(_gateway(geoapify, DummyOpenCage(_geocode())).lookup(LAT, LNG))

    meta = result.poi_metadata
    assert meta.acceptance_radius_m == 200
    assert not meta.rural
    assert meta.selected.id == "b"
    assert [p.id for p in result.places] == ["b", "a", "f", "c", "d"]
    assert not meta.backfilled
    assert geoapify.calls == [PRIMARY_RADIUS_M]
    assert result.geocode == {"formatted": "Greenmarket Square, Cape Town", "components": {"city": "Cape Town"}}
    assert result.geocode_source == "opencage"


def test_sparse_results_are_backfilled_and_rural_radius_applies():
    geoapify = DummyGeoapify(
        primary=[_place("a", 280)],
        broader=[_place("a", 280), _place("z", 3200, categories=("natural.mountain",))],
    )
    result = asyncio.run(_gateway(geoapify, DummyOpenCage(_geocode())).lookup(LAT, LNG))

    meta = result.poi_metadata
    assert geoapify.calls == [PRIMARY_RADIUS_M, BACKFILL_RADIUS_M]
    assert meta.backfilled
    assert meta.rural
    assert meta.acceptance_radius_m == 300
    assert meta.selected.id == "a"
    assert [p.id for p in result.places] == ["a", "z"]
    assert meta.total_nearby == 2
    assert meta.within_1km == 1


def test_failed_geocode_degrades_to_coordinates():
    geoapify = DummyGeoapify([_place("a", 100)])
    result = asyncio.run(_gateway(geoapify, DummyOpenCage(None)).lookup(LAT, LNG))

    assert result.geocode == {"formatted": "Location (-33.9249, 18.4241)", "components": None}
    assert [p.id for p in result.places] == ["a"]


def test_second_lookup_is_served_from_cache():
    geoapify = DummyGeoapify([_place("a", 100)])
    opencage = DummyOpenCage(_geocode())
    gateway = _gateway(geoapify, opencage)

    async def scenario():
        await gateway.lookup(LAT, LNG)
        return await gateway.lookup(LAT + 0.000001, LNG)

    second = asyncio.run(scenario())
    assert second.places_cached and second.geocode_cached
    assert opencage.calls == 1
    assert geoapify.calls == [PRIMARY_RADIUS_M, BACKFILL_RADIUS_M]


def test_failures_are_not_cached():
    geoapify = DummyGeoapify(None)
    opencage = DummyOpenCage(_geocode())
    gateway = _gateway(geoapify, opencage)

    async def scenario():
        first = await gateway.lookup(LAT, LNG)
        geoapify.primary = [_place("a", 100)]
        second = await gateway.lookup(LAT, LNG)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.places == []
    assert [p.id for p in second.places] == ["a"]
    assert not second.places_cached


def test_all_providers_failing_raises():
    gateway = _gateway(DummyGeoapify(None), DummyOpenCage(None))
    with pytest.raises(ProviderExhaustedError):
        asyncio.run(gateway.lookup(LAT, LNG))


def test_build_poi_metadata_without_places():
    meta = build_poi_metadata([], backfilled=False)
    assert meta.selected is None
    assert meta.rural
    assert meta.acceptance_radius_m == 300


def test_build_poi_metadata_nothing_within_acceptance():
    places = [POI(id=str(i), name=f"P{i}", distance_m=500 + i, lat=LAT, lng=LNG) for i in range(4)]
    meta = build_poi_metadata(places, backfilled=False)
    assert meta.selected is None
    assert meta.acceptance_radius_m == 200
