"""Pydantic models for resolved places, enrichment results and gateway payloads."""
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any, Literal


PlaceSource = Literal["geoapify", "geocode", "unknown"]
ImageSource = Literal["website", "social", "knowledge-graph", "stock"]


class CamelModel(BaseModel):
    """Immutable model serialized with camelCase keys on the wire."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class PlaceIdentity(CamelModel):
    """The single resolved answer to "what/where is this coordinate"."""
    lat: float
    lng: float
    name: str
    category: Optional[str] = None
    address: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    social_url: Optional[str] = None
    phone: Optional[str] = None
    source: PlaceSource = "unknown"
    source_id: Optional[str] = None
    confidence: float = Field(0.1, ge=0.0, le=1.0)
    canonical_query: str = ""
    knowledge_graph_id: Optional[str] = None


class ImageRecord(CamelModel):
    """A hosted image and where it originally came from."""
    url: str
    source: ImageSource
    source_url: str
    fetched_at: str


class EnrichedPin(CamelModel):
    """Place identity plus description and up to three hosted images."""
    place: PlaceIdentity
    description: Optional[str] = None
    images: List[ImageRecord] = Field(default_factory=list, max_length=3)
    debug: Optional[Dict[str, Any]] = None


class PlaceCandidate(BaseModel):
    """A provider place normalized into provider-neutral fields."""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    name: str
    lat: float
    lng: float
    distance_m: float = 0.0
    categories: List[str] = Field(default_factory=list)
    address: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None

    @property
    def category(self) -> Optional[str]:
        return self.categories[0] if self.categories else None


class POI(BaseModel):
    """Nearby point of interest as returned by the gateway."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    categories: List[str] = Field(default_factory=list)
    distance_m: int
    lat: float
    lng: float


class GeocodeResult(BaseModel):
    """Normalized reverse-geocode output."""
    model_config = ConfigDict(frozen=True)

    formatted: str
    components: Optional[Dict[str, Any]] = None
    name: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None


class PagePreview(BaseModel):
    """Metadata extracted from a website or social page."""
    model_config = ConfigDict(frozen=True)

    source_url: str
    name: Optional[str] = None
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    facebook_url: Optional[str] = None
    instagram_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.images or self.name or self.description)


class KnowledgeGraphMatch(BaseModel):
    """An accepted knowledge-graph entity."""
    model_config = ConfigDict(frozen=True)

    entity_id: str
    label: str
    similarity: float
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    official_website: Optional[str] = None


class CacheEntry(BaseModel):
    """Stored payload with creation, update and expiry timestamps (epoch seconds)."""
    key: str
    created_at: float
    updated_at: float
    expires_at: float
    payload: Any = None

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


# --- Request / response models ---


class EnrichPinRequest(CamelModel):
    """Request body for pin enrichment."""
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    user_hint_name: Optional[str] = Field(None, max_length=200)


class PinIntelRequest(BaseModel):
    """Request body for the intelligence gateway."""
    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    precision: int = Field(5, ge=1, le=7, description="Decimal places used for cache keys")


class RateInfo(CamelModel):
    minute_remaining: int
    hour_remaining: int


class SourceInfo(BaseModel):
    geocode: str
    places: str


class CachedInfo(BaseModel):
    geocode: bool
    places: bool


class IntelMeta(CamelModel):
    source: SourceInfo
    cached: CachedInfo
    idempotency_key: Optional[str] = None
    rate: RateInfo
    duration_ms: int = Field(..., alias="duration_ms")


class PoiMetadata(BaseModel):
    selected: Optional[POI] = None
    acceptance_radius_m: int
    rural: bool
    backfilled: bool
    total_nearby: int
    within_1km: int


class PinIntelResponse(BaseModel):
    meta: IntelMeta
    geocode: Dict[str, Any]
    places: List[POI]
    poi_metadata: PoiMetadata
