"""
Search Result Enhancer.

Re-ranks a search backend's results for the current session:

    personalized_score = (1 - blend) * base / max(base) + blend * relevance

The result count never changes. Queries that come back with fewer results
than the gap analyzer's threshold are handed to it out-of-band.
"""

from typing import Any, Dict, List, Mapping, Optional

from core.logging import get_logger
from discovery.gap_analyzer import ContentGapAnalyzer
from scoring.relevance import RelevanceScorer, candidate_categories, candidate_id

logger = get_logger(__name__)


DEFAULT_BLEND = 0.3


class SearchEnhancer:
    def __init__(
        self,
        gap_analyzer: Optional[ContentGapAnalyzer] = None,
        scorer: Optional[RelevanceScorer] = None,
        blend: float = DEFAULT_BLEND,
    ):
        if not 0.0 <= blend <= 1.0:
            raise ValueError(f"blend must be within [0, 1], got {blend}")
        self.gap_analyzer = gap_analyzer
        self.scorer = scorer or RelevanceScorer()
        self.blend = blend

    def enhance(
        self,
        results: List[Dict[str, Any]],
        interest_vector: Optional[Mapping[str, float]] = None,
        query: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Re-rank results by blended base score and interest relevance.

        Args:
            results: Backend results; each dict has ``id``, optional
                ``score`` (higher is better) and optional ``categories``.
            interest_vector: Session interest weights. Empty or None keeps
                the backend order.
            query: The search query, used for gap detection.
            session_id: Passed to the gap analyzer.

        Returns:
            Copies of the results with ``relevance_score`` and
            ``personalized_score`` added, best first.
        """
        if query and self.gap_analyzer is not None and len(results) < self.gap_analyzer.min_relevant_items:
            self.gap_analyzer.submit(query, session_id)

        if not results:
            return []

        # No interest signal: keep backend order
        if not interest_vector:
            return [dict(r, relevance_score=0.0, personalized_score=float(r.get("score") or 0.0)) for r in results]

        max_base = max(float(r.get("score") or 0.0) for r in results)
        enhanced = []
        for position, result in enumerate(results):
            base = float(result.get("score") or 0.0)
            normalized_base = base / max_base if max_base > 0 else 0.0
            relevance = self.scorer.relevance(interest_vector, candidate_categories(result))
            enhanced.append((
                position,
                dict(
                    result,
                    relevance_score=round(relevance, 6),
                    personalized_score=round((1 - self.blend) * normalized_base + self.blend * relevance, 6),
                ),
            ))

        enhanced.sort(key=lambda pair: (-pair[1]["personalized_score"], pair[0], candidate_id(pair[1])))
        logger.debug("Search results enhanced", query=query, count=len(enhanced))
        return [r for _, r in enhanced]
