"""
Name comparison helpers.

Two families live here: the general fuzzy matcher used when comparing a
provider place against a user's hint, and the stricter knowledge-graph label
similarity used when deciding whether an entity is the same place.
"""

import re
import unicodedata
from typing import Optional, Set

from placeintel.utils.geo import is_coordinate_string

_NON_WORD_RE = re.compile(r"[^a-z0-9\s]")
_SPACES_RE = re.compile(r"\s+")

# Labels clients send when the user never typed a name
GENERIC_HINT_PATTERNS = (
    re.compile(r"^pinned location\b"),
    re.compile(r"^dropped pin\b"),
    re.compile(r"^(my|current) location\b"),
    re.compile(r"^unknown (place|location)\b"),
    re.compile(r"^new pin\b"),
    re.compile(r"^location\b"),
    re.compile(r"^(place|spot|somewhere) near\b"),
    re.compile(r"^\w+ near \w+"),
)

HINT_MATCH_JACCARD = 0.6

KG_STOP_TOKENS = frozenset({"the", "and", "farm", "restaurant", "hotel", "inn"})


def normalize_for_compare(text: Optional[str]) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_WORD_RE.sub(" ", stripped)
    return _SPACES_RE.sub(" ", cleaned).strip()


def _tokens(normalized: str) -> Set[str]:
    return {token for token in normalized.split(" ") if token}


def token_jaccard(a: str, b: str) -> float:
    ta = _tokens(normalize_for_compare(a))
    tb = _tokens(normalize_for_compare(b))
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def similarity_score(a: str, b: str) -> float:
    """0..1: 1 for equal, 0.85 for containment, else token Jaccard."""
    aa = normalize_for_compare(a)
    bb = normalize_for_compare(b)
    if not aa or not bb:
        return 0.0
    if aa == bb:
        return 1.0
    if aa in bb or bb in aa:
        return 0.85
    return token_jaccard(aa, bb)


def is_useful_hint(hint: Optional[str]) -> bool:
    """A hint worth searching for: real text, not coordinates or a placeholder."""
    if not hint:
        return False
    cleaned = hint.strip()
    if len(cleaned) < 3:
        return False
    if is_coordinate_string(cleaned):
        return False
    lowered = cleaned.lower()
    return not any(pattern.match(lowered) for pattern in GENERIC_HINT_PATTERNS)


def names_match(name: str, hint: str) -> bool:
    """Exact, substring, or token Jaccard >= 0.6 after normalization."""
    a = normalize_for_compare(name)
    b = normalize_for_compare(hint)
    if not a or not b:
        return False
    if a == b or a in b or b in a:
        return True
    return token_jaccard(a, b) >= HINT_MATCH_JACCARD


def _kg_tokens(text: str):
    return [t for t in text.split() if len(t) > 2 and t not in KG_STOP_TOKENS]


def label_similarity(name: str, label: str) -> float:
    """
    Similarity used for knowledge-graph matching.

    1.0 for equal strings, 0.9 when one contains the other, otherwise the
    share of significant tokens that match (by equality or containment),
    over the larger token count.
    """
    s1 = normalize_for_compare(name)
    s2 = normalize_for_compare(label)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return 1.0
    if s1 in s2 or s2 in s1:
        return 0.9

    tokens1 = _kg_tokens(s1)
    tokens2 = _kg_tokens(s2)
    if not tokens1 or not tokens2:
        return 0.0

    matches = [t1 for t1 in tokens1 if any(t1 == t2 or t1 in t2 or t2 in t1 for t2 in tokens2)]
    return len(matches) / max(len(tokens1), len(tokens2))
