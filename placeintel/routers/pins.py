"""Pins router - resolve and enrich a dropped map pin."""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from placeintel.config import settings
from placeintel.dependencies import get_enricher, get_preview_fetcher
from placeintel.enrichment.orchestrator import PinEnricher
from placeintel.enrichment.previews import PreviewFetcher
from placeintel.models.places import EnrichPinRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pins", tags=["pins"])


@router.post("/enrich")
async def enrich_pin(
    request: EnrichPinRequest,
    enricher: PinEnricher = Depends(get_enricher),
):
    """
    Resolve the place at a coordinate and attach a description and photos.

    A missing description or empty image list is a normal answer; only
    internal failures produce a 500.
    """
    try:
        pin, cached = await enricher.enrich(request.lat, request.lng, request.user_hint_name)
    except Exception:
        logger.exception(f"Pin enrichment failed for {request.lat}, {request.lng}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to enrich pin", "details": "Internal error"},
        )

    logger.info(f"Pin {request.lat:.4f}, {request.lng:.4f} served (cached={cached})")
    return {"status": "ok", "data": pin.model_dump(by_alias=True, exclude_none=True)}


@router.get("/enrich/diagnostics")
async def preview_diagnostics(
    url: str = Query(..., min_length=4, max_length=2048),
    previews: PreviewFetcher = Depends(get_preview_fetcher),
):
    """Parsed website preview for a URL, bypassing the cache (development only)."""
    if settings.environment == "production":
        raise HTTPException(status_code=404, detail="Not available in production")

    preview = await previews.fetch_website(url, use_cache=False)
    return {
        "url": url,
        "found": preview is not None,
        "preview": preview.model_dump() if preview else None,
    }
