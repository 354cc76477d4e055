"""
Pin enrichment pipeline.

Order of work for a cache miss:
1. resolve the place identity
2. preview the place's website (and pick up its social links)
3. preview the social page
4. consult the knowledge graph only if images or a description are still missing
5. host up to three images and pick a description
6. cache the result (successful resolutions only)
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from placeintel.config import settings
from placeintel.enrichment.html_meta import clamp_description, is_marketing_fluff
from placeintel.enrichment.images import MAX_IMAGES, ImageHoster, merge_candidates
from placeintel.enrichment.knowledge_graph import KnowledgeGraphMatcher, decide_knowledge_graph_lookup
from placeintel.enrichment.previews import PreviewFetcher
from placeintel.enrichment.resolver import PlaceResolver
from placeintel.models.places import EnrichedPin, KnowledgeGraphMatch, PagePreview, PlaceIdentity
from placeintel.services.cache import TwoTierCache, pin_cache_key, ttl_for_category
from placeintel.services.unsplash import UnsplashClient
from placeintel.utils.geo import is_coordinate_string

logger = logging.getLogger(__name__)

_BRAND_CODE_RE = re.compile(r"^[A-Z0-9&\-\s]{1,5}$")


def choose_description(*candidates: Optional[str]) -> Optional[str]:
    """First usable description in priority order, clamped for display."""
    for text in candidates:
        if not text or is_marketing_fluff(text):
            continue
        clamped = clamp_description(text)
        if clamped:
            return clamped
    return None


def stock_query_for(place: PlaceIdentity) -> Optional[str]:
    """Search text for stock photos, or None when the name is too vague."""
    name = (place.name or "").strip()
    if not name or is_coordinate_string(name) or _BRAND_CODE_RE.match(name):
        return None
    return place.canonical_query or name


class PinEnricher:
    """Resolves and enriches a pin, with a cache in front."""

    def __init__(
        self,
        resolver: PlaceResolver,
        matcher: KnowledgeGraphMatcher,
        previews: PreviewFetcher,
        hoster: ImageHoster,
        cache: TwoTierCache,
        unsplash: Optional[UnsplashClient] = None,
        include_debug: bool = None,
    ):
        self.resolver = resolver
        self.matcher = matcher
        self.previews = previews
        self.hoster = hoster
        self.cache = cache
        self.unsplash = unsplash
        self.include_debug = settings.environment != "production" if include_debug is None else include_debug

    async def enrich(self, lat: float, lng: float, hint: Optional[str] = None) -> Tuple[EnrichedPin, bool]:
        """
        Enrich one coordinate.

        Returns:
            ``(pin, cached)``; a cache hit touches no provider.
        """
        key = pin_cache_key(lat, lng)
        cached = await self.cache.get_payload(key)
        if cached is not None:
            try:
                pin = EnrichedPin.model_validate(cached)
                logger.info(f"Returning cached enrichment for {key}")
                return pin, True
            except ValueError:
                logger.warning(f"Discarding unreadable cached pin {key}")
                await self.cache.delete(key)

        pin = await self._build(lat, lng, hint, key)

        if pin.place.source != "unknown":
            ttl = ttl_for_category(pin.place.category)
            await self.cache.set(key, pin.model_dump(by_alias=True, exclude_none=True), ttl)
        else:
            logger.info(f"Not caching unresolved pin {key}")

        logger.info(f"Enrichment complete: {pin.place.name}, {len(pin.images)} image(s)")
        return pin, False

    async def _build(self, lat: float, lng: float, hint: Optional[str], key: str) -> EnrichedPin:
        place = await self.resolver.resolve(lat, lng, hint)

        website: Optional[PagePreview] = None
        if place.website:
            place, website = await self._website_with_social(place, place.website)

        social: Optional[PagePreview] = None
        if place.social_url:
            social = await self.previews.fetch_social(place.social_url)

        website_images = website.images if website else []
        social_images = social.images if social and len(website_images) < MAX_IMAGES else []

        knowledge: Optional[KnowledgeGraphMatch] = None
        needs_images = not website_images and not social_images
        needs_description = not (website and website.description) and not (social and social.description)
        decision = decide_knowledge_graph_lookup(place)
        if (needs_images or needs_description) and decision.attempt:
            knowledge = await self.matcher.match(place)
            if knowledge is not None:
                place = place.model_copy(update={"knowledge_graph_id": knowledge.entity_id})
                if not place.website and knowledge.official_website:
                    known_social = place.social_url
                    place = place.model_copy(update={"website": knowledge.official_website})
                    place, website = await self._website_with_social(place, knowledge.official_website)
                    website_images = website.images if website else []
                    if place.social_url and place.social_url != known_social:
                        social = await self.previews.fetch_social(place.social_url)
                        social_images = social.images if social and len(website_images) < MAX_IMAGES else []
        elif not decision.attempt:
            logger.info(f"Skipping knowledge graph for '{place.name}': {decision.reason}")

        knowledge_images = []
        if knowledge and len(website_images) + len(social_images) < MAX_IMAGES:
            knowledge_images = knowledge.images

        candidates = merge_candidates(
            ("website", website_images),
            ("social", social_images),
            ("knowledge-graph", knowledge_images),
        )

        stock_images: List[str] = []
        if not candidates and self.unsplash is not None and self.unsplash.enabled:
            query = stock_query_for(place)
            if query:
                stock_images = await self.unsplash.search_photos(query, limit=MAX_IMAGES)
                candidates = merge_candidates(("stock", stock_images))

        images = await self.hoster.host(candidates, key) if candidates else []

        description = choose_description(
            website.description if website else None,
            social.description if social else None,
            knowledge.description if knowledge else None,
        )

        debug = None
        if self.include_debug:
            debug = self._debug(website, social, knowledge, decision.reason, len(candidates), len(images), len(stock_images))

        return EnrichedPin(place=place, description=description, images=images, debug=debug)

    async def _website_with_social(
        self, place: PlaceIdentity, url: str
    ) -> Tuple[PlaceIdentity, Optional[PagePreview]]:
        """Fetch the website preview and adopt its social link when the place has none."""
        website = await self.previews.fetch_website(url)
        if website and not place.social_url:
            discovered = website.facebook_url or website.instagram_url
            if discovered:
                place = place.model_copy(update={"social_url": discovered})
        return place, website

    @staticmethod
    def _debug(
        website: Optional[PagePreview],
        social: Optional[PagePreview],
        knowledge: Optional[KnowledgeGraphMatch],
        gate_reason: str,
        candidate_count: int,
        hosted_count: int,
        stock_count: int,
    ) -> Dict[str, Any]:
        return {
            "knowledgeGraph": {
                "gate": gate_reason,
                "id": knowledge.entity_id if knowledge else None,
                "similarity": knowledge.similarity if knowledge else None,
                "imageCount": len(knowledge.images) if knowledge else 0,
            },
            "websitePreview": {
                "imageCount": len(website.images),
                "hasDescription": bool(website.description),
                "hasSocial": bool(website.facebook_url or website.instagram_url),
            } if website else None,
            "socialPreview": {
                "imageCount": len(social.images),
                "hasDescription": bool(social.description),
            } if social else None,
            "stockCount": stock_count,
            "imageCandidatesCount": candidate_count,
            "imagesProcessed": hosted_count,
        }
