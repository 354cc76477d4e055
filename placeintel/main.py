"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from placeintel.config import settings
from placeintel.dependencies import close_shared_clients, get_redis
from placeintel.logging_config import setup_logging
from placeintel.routers import intel, pins
from placeintel.services.redis_client import RedisClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info(f"Starting PlaceIntel API ({settings.environment})")
    yield
    await close_shared_clients()
    logger.info("Shared clients closed")


# Create FastAPI app
app = FastAPI(
    title="PlaceIntel API",
    description="Place identity resolution and pin enrichment",
    version="1.0.0",
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url="/redoc" if settings.environment == "development" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid bodies and out-of-range coordinates are client errors (400)."""
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


# Include routers
app.include_router(pins.router, prefix="/api/v1")
app.include_router(intel.router, prefix="/api/v1")

# Re-hosted pin images
app.mount(
    "/media",
    StaticFiles(directory=settings.image_storage_dir, check_dir=False),
    name="media",
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Welcome to PlaceIntel API",
        "version": "1.0.0",
        "docs": "/docs" if settings.environment == "development" else "disabled",
    }


@app.get("/health")
async def health_check(redis_client: Optional[RedisClient] = Depends(get_redis)):
    """Health check endpoint. A down Redis degrades to local caching only."""
    if redis_client is None:
        redis_status = "disabled"
    else:
        redis_status = "ok" if await redis_client.ping() else "unavailable"
    return {"status": "healthy", "redis": redis_status}


@app.get("/debug/config")
async def debug_config():
    """Debug endpoint to check configuration (development only)."""
    if settings.environment != "development":
        return {"error": "Not available in production"}

    def mask_key(key: str) -> str:
        """Mask API key showing only first/last 4 chars."""
        if not key:
            return "NOT_SET"
        return f"{key[:4]}...{key[-4:]}"

    return {
        "status": "ok",
        "geoapify_api_key": mask_key(settings.geoapify_api_key),
        "opencage_api_key": mask_key(settings.opencage_api_key),
        "unsplash_access_key": mask_key(settings.unsplash_access_key),
        "redis_configured": bool(settings.redis_url),
        "image_storage_dir": settings.image_storage_dir,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "placeintel.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
