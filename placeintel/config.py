"""Configuration settings for the application."""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Provider credentials (each one switches a provider on)
    geoapify_api_key: Optional[str] = None
    opencage_api_key: Optional[str] = None
    unsplash_access_key: Optional[str] = None

    # Shared cache tier; unset means local-only caching
    redis_url: Optional[str] = None

    # Outbound HTTP
    http_timeout_seconds: float = 8.0
    http_retry_delay_seconds: float = 1.0
    http_max_connections: int = 50
    user_agent: str = "PlaceIntelBot/1.0 (+https://placeintel.app/bot)"

    # Website / social previews
    website_timeout_seconds: float = 5.0
    website_max_bytes: int = 1_500_000
    social_max_bytes: int = 1_000_000
    preview_max_redirects: int = 3
    domain_throttle_seconds: float = 1.0

    # Image hosting
    image_timeout_seconds: float = 5.0
    image_max_bytes: int = 5 * 1024 * 1024
    image_storage_dir: str = "media"
    image_public_base_url: str = "http://localhost:8000/media"

    # Resolver
    resolver_search_radius_m: int = 150
    resolver_hint_max_distance_m: int = 350

    # Local cache sizes
    pin_cache_max_entries: int = 2000
    intel_cache_max_entries: int = 5000

    # Gateway
    geocode_cache_ttl_seconds: int = 6 * 3600
    poi_cache_ttl_seconds: int = 2 * 3600
    rate_limit_per_minute: int = 5
    rate_limit_per_hour: int = 60
    idempotency_window_seconds: int = 60

    # FastAPI Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = True
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:3000"

    # Environment
    environment: str = "development"


# Global settings instance
settings = Settings()
