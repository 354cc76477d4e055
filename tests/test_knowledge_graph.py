import asyncio

from placeintel.enrichment.knowledge_graph import (
    KnowledgeGraphMatcher,
    decide_knowledge_graph_lookup,
    is_road_like,
)
from placeintel.models.places import PlaceIdentity


def _place(name, confidence=0.85, locality="Stellenbosch"):
    return PlaceIdentity(
        lat=-33.97,
        lng=18.78,
        name=name,
        locality=locality,
        source="geoapify",
        confidence=confidence,
        canonical_query=f"{name} {locality}",
    )


class DummyWikidata:
    def __init__(self, candidates, entity=None):
        self.candidates = candidates
        self.entity = entity
        self.queries = []
        self.fetched = []

    async def search_entities(self, query, limit=10):
        self.queries.append(query)
        return self.candidates

    async def get_entity(self, entity_id):
        self.fetched.append(entity_id)
        return self.entity


def test_road_like_names():
    assert is_road_like("R44")
    assert is_road_like("N1")
    assert is_road_like("Main Road")
    assert is_road_like("Dorp St")
    assert not is_road_like("Spier Wine Farm")
    assert not is_road_like("Restaurant Mosaic")


def test_gate_skips_route_numbers():
    decision = decide_knowledge_graph_lookup(_place("R44"))
    assert not decision.attempt
    assert decision.reason == "road-like name"


def test_gate_skips_low_confidence():
    decision = decide_knowledge_graph_lookup(_place("Spier Wine Farm", confidence=0.3))
    assert not decision.attempt


def test_gate_skips_coordinate_queries():
    place = PlaceIdentity(
        lat=1.0, lng=2.0, name="Somewhere nice", confidence=0.9, canonical_query="1.0000, 2.0000"
    )
    assert not decide_knowledge_graph_lookup(place).attempt


def test_gate_allows_specific_places():
    assert decide_knowledge_graph_lookup(_place("Spier Wine Farm")).attempt


def test_matcher_rejects_weak_similarity():
    client = DummyWikidata([
        {"id": "Q1", "label": "Klein Town Karoo Valley Kitchen", "description": "restaurant"},
    ])
    match = asyncio.run(KnowledgeGraphMatcher(client).match(_place("Klein Karoo Kitchen")))

    assert match is None
    assert client.fetched == []


def test_matcher_skips_rejected_descriptions_and_accepts_exact_label():
    client = DummyWikidata(
        [
            {"id": "Q1", "label": "Spier Wine Farm", "description": "helicopter model"},
            {"id": "Q2", "label": "Spier Wine Farm", "description": "wine farm in South Africa"},
        ],
        entity={
            "description": "wine farm in South Africa",
            "images": ["https://commons.wikimedia.org/wiki/Special:FilePath/Spier.jpg"],
            "official_website": "https://www.spier.co.za/",
        },
    )
    match = asyncio.run(KnowledgeGraphMatcher(client).match(_place("Spier Wine Farm")))

    assert client.queries == ["Spier Wine Farm Stellenbosch"]
    assert match.entity_id == "Q2"
    assert match.similarity == 1.0
    assert match.official_website == "https://www.spier.co.za/"
    assert len(match.images) == 1


def test_matcher_prefers_place_like_descriptions():
    client = DummyWikidata([
        {"id": "Q1", "label": "Spier Wine Farm", "description": "album by a local artist"},
        {"id": "Q2", "label": "Spier Wine Farm Estate", "description": "painting"},
        {"id": "Q3", "label": "Spier Wine Farm Estate", "description": "winery near Stellenbosch"},
    ])
    match = asyncio.run(KnowledgeGraphMatcher(client).match(_place("Spier Wine Farm")))

    assert match.entity_id == "Q3"
    assert match.description is None


def test_matcher_does_nothing_when_gate_closed():
    client = DummyWikidata([{"id": "Q1", "label": "R44", "description": "road"}])
    assert asyncio.run(KnowledgeGraphMatcher(client).match(_place("R44"))) is None
    assert client.queries == []
