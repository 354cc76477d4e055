"""Pin intelligence router - nearby POIs and reverse geocode for a coordinate."""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse, Response

from placeintel.dependencies import (
    get_client_ip,
    get_gateway,
    get_idempotency_store,
    get_rate_limiter,
)
from placeintel.enrichment.gateway import PinIntelGateway, ProviderExhaustedError
from placeintel.models.places import (
    CachedInfo,
    IntelMeta,
    PinIntelRequest,
    PinIntelResponse,
    RateInfo,
    SourceInfo,
)
from placeintel.services.idempotency import IdempotencyStore
from placeintel.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pin-intel", tags=["pin-intel"])


async def _serve(
    body: PinIntelRequest,
    client_id: str,
    idempotency_key: Optional[str],
    gateway: PinIntelGateway,
    limiter: RateLimiter,
    store: IdempotencyStore,
) -> Response:
    started = time.perf_counter()

    store_key = f"{client_id}:{idempotency_key}" if idempotency_key else None
    if store_key:
        replay = store.get(store_key)
        if replay is not None:
            content, status_code = replay
            logger.info(f"Replaying idempotent response for key {idempotency_key}")
            return Response(content=content, status_code=status_code, media_type="application/json")

    decision = limiter.check(client_id)
    if not decision.allowed:
        return JSONResponse(
            status_code=429,
            content={
                "error": "Rate limit exceeded",
                "rate": {
                    "minuteRemaining": decision.minute_remaining,
                    "hourRemaining": decision.hour_remaining,
                },
            },
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )

    try:
        result = await gateway.lookup(body.lat, body.lng, body.precision)
    except ProviderExhaustedError as exc:
        logger.warning(f"Pin intel unavailable: {exc}")
        return JSONResponse(
            status_code=502,
            content={"error": "External service error", "details": str(exc)},
        )

    response = PinIntelResponse(
        meta=IntelMeta(
            source=SourceInfo(geocode=result.geocode_source, places=result.places_source),
            cached=CachedInfo(geocode=result.geocode_cached, places=result.places_cached),
            idempotency_key=idempotency_key,
            rate=RateInfo(
                minute_remaining=decision.minute_remaining,
                hour_remaining=decision.hour_remaining,
            ),
            duration_ms=int((time.perf_counter() - started) * 1000),
        ),
        geocode=result.geocode,
        places=result.places,
        poi_metadata=result.poi_metadata,
    )
    content = response.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    if store_key:
        store.put(store_key, content, 200)
    return Response(content=content, media_type="application/json")


@router.post("")
async def pin_intel(
    body: PinIntelRequest,
    request: Request,
    x_idempotency_key: Optional[str] = Header(None, max_length=200),
    gateway: PinIntelGateway = Depends(get_gateway),
    limiter: RateLimiter = Depends(get_rate_limiter),
    store: IdempotencyStore = Depends(get_idempotency_store),
):
    """
    POIs and reverse geocode for one coordinate.

    A repeated ``x-idempotency-key`` within the replay window returns the
    stored bytes untouched and does not count against the rate limit.
    """
    return await _serve(body, get_client_ip(request), x_idempotency_key, gateway, limiter, store)


@router.get("")
async def pin_intel_get(
    request: Request,
    lat: float = Query(..., ge=-90, le=90, allow_inf_nan=False),
    lng: float = Query(..., ge=-180, le=180, allow_inf_nan=False),
    precision: int = Query(5, ge=1, le=7),
    x_idempotency_key: Optional[str] = Header(None, max_length=200),
    gateway: PinIntelGateway = Depends(get_gateway),
    limiter: RateLimiter = Depends(get_rate_limiter),
    store: IdempotencyStore = Depends(get_idempotency_store),
):
    """Same as the POST variant, for clients that can only issue GETs."""
    body = PinIntelRequest(lat=lat, lng=lng, precision=precision)
    return await _serve(body, get_client_ip(request), x_idempotency_key, gateway, limiter, store)
