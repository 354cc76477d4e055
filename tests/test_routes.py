import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from starlette.requests import Request

from placeintel.dependencies import (
    get_client_ip,
    get_enricher,
    get_gateway,
    get_idempotency_store,
    get_rate_limiter,
    get_redis,
)
from placeintel.enrichment.gateway import GatewayResult, ProviderExhaustedError, build_poi_metadata
from placeintel.main import app
from placeintel.models.places import POI, EnrichedPin, PlaceIdentity
from placeintel.services.idempotency import IdempotencyStore
from placeintel.services.rate_limiter import RateLimiter
from placeintel.services.redis_client import RedisClient


class DummyEnricher:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def enrich(self, lat, lng, hint=None):
        self.calls.append((lat, lng, hint))
        if self.fail:
            raise RuntimeError("storage offline")
        place = PlaceIdentity(lat=lat, lng=lng, name="Spier Wine Farm", source="geoapify", confidence=0.85)
        return EnrichedPin(place=place), False


class DummyGateway:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = 0

    async def lookup(self, lat, lng, precision=5):
        self.calls += 1
        if self.fail:
            raise ProviderExhaustedError("All providers failed")
        places = [POI(id="p1", name="Company's Garden", categories=["leisure.park"], distance_m=120, lat=lat, lng=lng)]
        return GatewayResult(
            geocode={"formatted": "Cape Town", "components": {"city": "Cape Town"}},
            places=places,
            poi_metadata=build_poi_metadata(places, backfilled=False),
            geocode_source="opencage",
            places_source="geoapify",
            geocode_cached=False,
            places_cached=False,
        )


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


def _override_intel(gateway):
    app.dependency_overrides[get_gateway] = lambda: gateway
    limiter = RateLimiter(per_minute=5, per_hour=60)
    store = IdempotencyStore(window_seconds=60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_idempotency_store] = lambda: store


def test_health_without_redis(client):
    app.dependency_overrides[get_redis] = lambda: None
    assert client.get("/health").json() == {"status": "healthy", "redis": "disabled"}


class PingableRedis:
    def __init__(self, up):
        self.up = up

    async def ping(self):
        if not self.up:
            raise RedisConnectionError("connection refused")
        return True


def test_health_reports_redis_state(client):
    app.dependency_overrides[get_redis] = lambda: RedisClient("redis://cache:6379/0", client=PingableRedis(up=True))
    assert client.get("/health").json()["redis"] == "ok"

    app.dependency_overrides[get_redis] = lambda: RedisClient("redis://cache:6379/0", client=PingableRedis(up=False))
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "redis": "unavailable"}


def test_enrich_pin_returns_envelope(client):
    enricher = DummyEnricher()
    app.dependency_overrides[get_enricher] = lambda: enricher

    response = client.post("/api/v1/pins/enrich", json={"lat": -33.97, "lng": 18.78, "userHintName": "Spier"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["data"]["place"]["name"] == "Spier Wine Farm"
    assert body["data"]["images"] == []
    assert "description" not in body["data"]
    assert enricher.calls == [(-33.97, 18.78, "Spier")]


def test_enrich_pin_rejects_out_of_range_coordinates(client):
    enricher = DummyEnricher()
    app.dependency_overrides[get_enricher] = lambda: enricher

    response = client.post("/api/v1/pins/enrich", json={"lat": 91, "lng": 18.78})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid request"
    assert enricher.calls == []


def test_enrich_pin_internal_failure_is_500(client):
    app.dependency_overrides[get_enricher] = lambda: DummyEnricher(fail=True)

    response = client.post("/api/v1/pins/enrich", json={"lat": -33.97, "lng": 18.78})

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to enrich pin", "details": "Internal error"}
    assert "storage offline" not in response.text


def test_pin_intel_response_shape(client):
    _override_intel(DummyGateway())

    response = client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241})

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["source"] == {"geocode": "opencage", "places": "geoapify"}
    assert body["meta"]["rate"] == {"minuteRemaining": 4, "hourRemaining": 59}
    assert "duration_ms" in body["meta"]
    assert body["places"][0]["id"] == "p1"
    assert body["poi_metadata"]["acceptance_radius_m"] == 300
    assert body["poi_metadata"]["selected"]["id"] == "p1"


def test_sixth_request_is_rate_limited(client):
    _override_intel(DummyGateway())
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1"}

    statuses = [
        client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241}, headers=headers).status_code
        for _ in range(6)
    ]

    assert statuses == [200] * 5 + [429]
    limited = client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241}, headers=headers)
    assert limited.json()["rate"]["minuteRemaining"] == 0
    assert "retry-after" in limited.headers

    other = client.post(
        "/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241}, headers={"x-forwarded-for": "198.51.100.2"}
    )
    assert other.status_code == 200


def test_idempotent_replay_is_byte_identical(client):
    gateway = DummyGateway()
    _override_intel(gateway)
    headers = {"x-idempotency-key": "trip-42", "x-real-ip": "203.0.113.9"}

    first = client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241}, headers=headers)
    second = client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241}, headers=headers)

    assert first.status_code == second.status_code == 200
    assert first.content == second.content
    assert first.json()["meta"]["idempotencyKey"] == "trip-42"
    assert gateway.calls == 1


def test_idempotency_keys_are_scoped_to_the_client(client):
    gateway = DummyGateway()
    _override_intel(gateway)
    body = {"lat": -33.9249, "lng": 18.4241}

    client.post("/api/v1/pin-intel", json=body, headers={"x-idempotency-key": "trip-42", "x-real-ip": "203.0.113.9"})
    other = client.post("/api/v1/pin-intel", json=body, headers={"x-idempotency-key": "trip-42", "x-real-ip": "198.51.100.7"})

    assert other.status_code == 200
    assert other.json()["meta"]["rate"]["minuteRemaining"] == 4
    assert gateway.calls == 2


def test_provider_exhaustion_is_502(client):
    _override_intel(DummyGateway(fail=True))

    response = client.post("/api/v1/pin-intel", json={"lat": -33.9249, "lng": 18.4241})

    assert response.status_code == 502
    assert response.json()["error"] == "External service error"


def test_pin_intel_validation_error(client):
    _override_intel(DummyGateway())

    response = client.post("/api/v1/pin-intel", json={"lat": "north", "lng": 18.4241})

    assert response.status_code == 400


def test_pin_intel_get_variant(client):
    _override_intel(DummyGateway())

    response = client.get("/api/v1/pin-intel", params={"lat": -33.9249, "lng": 18.4241, "precision": 4})

    assert response.status_code == 200
    assert response.json()["places"][0]["name"] == "Company's Garden"


def _request(headers, peer=("10.1.1.1", 5000)):
    scope = {
        "type": "http",
        "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        "client": peer,
    }
    return Request(scope)


def test_client_ip_resolution_order():
    assert get_client_ip(_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1", "X-Real-IP": "198.51.100.1"})) == "203.0.113.7"
    assert get_client_ip(_request({"X-Real-IP": "198.51.100.1"})) == "198.51.100.1"
    assert get_client_ip(_request({})) == "10.1.1.1"
    assert get_client_ip(_request({}, peer=None)) == "unknown"
