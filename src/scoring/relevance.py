"""
Relevance scoring: cosine similarity between a session's interest vector
and a candidate's category vector.

Candidate category vectors:
- list/set of categories -> uniform 1/N weights
- mapping category -> strength -> strengths as given (negatives dropped)

Both vectors are non-negative, so similarity lies in [0, 1]. A zero vector
on either side scores 0.0.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import numpy as np

from core.logging import get_logger
from core.utils import clamp, dense_pair, slugify_category


logger = get_logger(__name__)

Categories = Union[Mapping[str, float], Iterable[str], None]


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate paired with its relevance score."""
    item: Any
    score: float

    @property
    def item_id(self) -> str:
        return candidate_id(self.item)

    @property
    def categories(self) -> Dict[str, float]:
        return item_vector(candidate_categories(self.item))

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.item_id, "score": round(self.score, 6)}


def candidate_id(item: Any) -> str:
    if isinstance(item, Mapping):
        return str(item.get("id") or item.get("variant_id") or item.get("ID") or "")
    return str(getattr(item, "id", None) or getattr(item, "variant_id", "") or "")


def candidate_categories(item: Any) -> Categories:
    if isinstance(item, Mapping):
        return item.get("categories")
    return getattr(item, "categories", None)


def item_vector(categories: Categories) -> Dict[str, float]:
    """Category vector for a candidate, keys normalized to slugs."""
    if not categories:
        return {}
    vector: Dict[str, float] = {}
    if isinstance(categories, Mapping):
        for name, strength in categories.items():
            slug = slugify_category(name)
            if slug and strength and strength > 0:
                vector[slug] = vector.get(slug, 0.0) + float(strength)
        return vector
    if isinstance(categories, str):
        categories = [categories]
    names = [slugify_category(c) for c in categories]
    names = [n for n in dict.fromkeys(names) if n]
    if not names:
        return {}
    share = 1.0 / len(names)
    return {n: share for n in names}


def cosine_similarity(a: Mapping[str, float], b: Mapping[str, float]) -> float:
    """Cosine similarity of two sparse non-negative vectors, 0.0 if either is zero."""
    if not a or not b:
        return 0.0
    va, vb = dense_pair(a, b)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return clamp(float(np.dot(va, vb)) / norm)


def rank(scored: Iterable[ScoredCandidate]) -> List[ScoredCandidate]:
    """Score descending, then item id ascending."""
    return sorted(scored, key=lambda c: (-c.score, c.item_id))


class RelevanceScorer:
    """
    Score candidates against an interest vector.

    Usage:
        scorer = RelevanceScorer()
        ranked = scorer.score_relevance(vector.weights, catalog_items)
        ranked[0].item, ranked[0].score
    """

    def relevance(self, interest: Mapping[str, float], categories: Categories) -> float:
        return cosine_similarity(item_vector(interest), item_vector(categories))

    def score(self, interest: Mapping[str, float], item: Any) -> ScoredCandidate:
        return ScoredCandidate(item=item, score=self.relevance(interest, candidate_categories(item)))

    def score_relevance(
        self,
        interest: Optional[Mapping[str, float]],
        candidates: Iterable[Any],
    ) -> List[ScoredCandidate]:
        """
        Score and rank a batch of candidates.

        An empty interest vector scores every candidate 0.0 and the ranking
        degrades to item id order.
        """
        interest = item_vector(interest or {})
        return rank(self.score(interest, item) for item in candidates)
