"""
Enrichment Module
=================

Business logic that turns a coordinate into something worth showing on a map.

Current responsibilities:
- Place identity resolution (reverse geocode + scored nearby search)
- Knowledge-graph matching behind a strict gate
- Website and social page previews
- Image selection and re-hosting
- Pin intelligence (nearby POIs + geocode) for the map gateway
"""

from .resolver import PlaceResolver, fallback_identity
from .knowledge_graph import KnowledgeGraphMatcher, decide_knowledge_graph_lookup
from .previews import DomainThrottle, PreviewFetcher
from .images import ImageHoster, merge_candidates
from .orchestrator import PinEnricher
from .gateway import PinIntelGateway, ProviderExhaustedError

__all__ = [
    "PlaceResolver",
    "fallback_identity",
    "KnowledgeGraphMatcher",
    "decide_knowledge_graph_lookup",
    "DomainThrottle",
    "PreviewFetcher",
    "ImageHoster",
    "merge_candidates",
    "PinEnricher",
    "PinIntelGateway",
    "ProviderExhaustedError",
]
