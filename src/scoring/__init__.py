"""
Shared Scoring Module.

Relevance and diversity components used by the component personalizer
(``personalization/``) and the search enhancer (``discovery/``).

Quick start::

    from scoring import RelevanceScorer, DiversitySelector

    ranked = RelevanceScorer().score_relevance(vector.weights, articles)
    picked = DiversitySelector().select(ranked, count=5, interest=vector.weights)
"""

from scoring.diversity import DiversityConfig, DiversitySelection, DiversitySelector
from scoring.relevance import RelevanceScorer, ScoredCandidate, cosine_similarity, item_vector

__all__ = [
    "DiversityConfig",
    "DiversitySelection",
    "DiversitySelector",
    "RelevanceScorer",
    "ScoredCandidate",
    "cosine_similarity",
    "item_vector",
]
