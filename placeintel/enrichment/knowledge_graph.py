"""Knowledge-graph (Wikidata) matching for resolved places."""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from placeintel.enrichment.similarity import label_similarity
from placeintel.models.places import KnowledgeGraphMatch, PlaceIdentity
from placeintel.services.wikidata import WikidataClient
from placeintel.utils.geo import COORDINATE_PAIR_RE

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.7
MIN_SIMILARITY = 0.75
PREFERRED_BOOST = 0.1
SEARCH_LIMIT = 10

ROUTE_NUMBER_RE = re.compile(r"^[RNM]\d{1,4}$")
SHORT_CODE_RE = re.compile(r"^[A-Z]?\d{1,4}$")
ROAD_TOKENS = frozenset({"road", "rd", "highway", "hwy", "street", "st", "avenue", "ave"})

REJECT_KEYWORDS = ("helicopter", "aircraft", "person", "band", "song", "album", "company", "model")
PREFERRED_KEYWORDS = (
    "farm", "restaurant", "winery", "market", "museum", "park", "nature reserve",
    "mountain", "beach", "tourist attraction", "building", "hotel", "inn", "lodge",
    "resort", "vineyard", "shop", "store",
)


@dataclass(frozen=True)
class LookupDecision:
    attempt: bool
    reason: str


def is_road_like(name: str) -> bool:
    """Route numbers (R44, N1) and names containing a road word."""
    trimmed = (name or "").strip()
    upper = trimmed.upper()
    if ROUTE_NUMBER_RE.match(upper):
        return True
    if SHORT_CODE_RE.match(upper) and len(trimmed) <= 6:
        return True
    tokens = re.split(r"[^a-z0-9]+", trimmed.lower())
    return any(token in ROAD_TOKENS for token in tokens)


def decide_knowledge_graph_lookup(place: PlaceIdentity) -> LookupDecision:
    """Pure gate: whether a place is specific enough to look up."""
    if place.confidence < MIN_CONFIDENCE:
        return LookupDecision(False, f"confidence {place.confidence:.2f} below {MIN_CONFIDENCE}")
    if not place.name or len(place.name.strip()) < 3:
        return LookupDecision(False, "name too short")
    if is_road_like(place.name):
        return LookupDecision(False, "road-like name")
    if place.canonical_query and COORDINATE_PAIR_RE.match(place.canonical_query.strip()):
        return LookupDecision(False, "coordinate-only query")
    return LookupDecision(True, "ok")


def _rejected(description: str) -> bool:
    lowered = description.lower()
    return any(keyword in lowered for keyword in REJECT_KEYWORDS)


def _preferred(description: str) -> bool:
    lowered = description.lower()
    return any(keyword in lowered for keyword in PREFERRED_KEYWORDS)


class KnowledgeGraphMatcher:
    """Finds the Wikidata entity for a place, strictly.

    Only a candidate at or above the similarity floor is accepted; when none
    qualifies the result is None rather than the top search hit.
    """

    def __init__(self, client: WikidataClient):
        self.client = client

    async def match(self, place: PlaceIdentity) -> Optional[KnowledgeGraphMatch]:
        decision = decide_knowledge_graph_lookup(place)
        if not decision.attempt:
            logger.debug(f"Skipping knowledge-graph lookup for '{place.name}': {decision.reason}")
            return None

        query = place.name
        if place.locality:
            query = f"{place.name} {place.locality}"

        candidates = await self.client.search_entities(query, limit=SEARCH_LIMIT)
        if not candidates:
            return None

        best = None
        best_score = 0.0
        best_similarity = 0.0
        for candidate in candidates:
            description = candidate.get("description") or ""
            if _rejected(description):
                continue
            similarity = label_similarity(place.name, candidate.get("label") or "")
            if similarity < MIN_SIMILARITY:
                continue
            score = similarity + (PREFERRED_BOOST if _preferred(description) else 0.0)
            if score > best_score:
                best, best_score, best_similarity = candidate, score, similarity

        if best is None:
            logger.info(f"No knowledge-graph entity close enough to '{place.name}'")
            return None

        entity_id = best["id"]
        details = await self.client.get_entity(entity_id)
        if details is None:
            return KnowledgeGraphMatch(entity_id=entity_id, label=best.get("label") or "", similarity=best_similarity)

        logger.info(f"Matched '{place.name}' to {entity_id} ({best.get('label')})")
        return KnowledgeGraphMatch(
            entity_id=entity_id,
            label=best.get("label") or "",
            similarity=best_similarity,
            description=details.get("description"),
            images=details.get("images") or [],
            official_website=details.get("official_website"),
        )
