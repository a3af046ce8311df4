"""
Diversity-Aware Selector for multi-item slots.

Keeps a relevance-ranked list from collapsing onto the session's top
interests:

1. Rank candidates by score (desc), then id (asc)
2. Diverse slice size: ceil(N * diversity_factor), so the quota holds for
   small N too (N=5 at 0.3 reserves 2)
3. Primary slice: the top N minus that many candidates
4. Diverse slice: the best remaining candidates whose categories avoid
   the dominant categories (top-3 interest categories, or the most common
   categories of the primary slice when no interest vector is given)
5. Short on diverse candidates: fill with the next-best candidates
   regardless of category and flag the selection as under quota

The result is re-ranked by score so callers always get a relevance-ordered
list. Never returns fewer items than min(N, len(candidates)).
"""

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence, Set

from core.logging import get_logger
from core.utils import top_keys
from scoring.relevance import ScoredCandidate, rank


logger = get_logger(__name__)


@dataclass(frozen=True)
class DiversityConfig:
    """Tunable parameters for diversity selection."""
    diversity_factor: float = 0.3
    dominant_categories: int = 3


DEFAULT_DIVERSITY_CONFIG = DiversityConfig()


@dataclass
class DiversitySelection:
    """Selected items plus how well the diversity quota was met."""
    items: List[ScoredCandidate] = field(default_factory=list)
    dominant_categories: List[str] = field(default_factory=list)
    diverse_count: int = 0
    diverse_target: int = 0

    @property
    def quota_met(self) -> bool:
        return self.diverse_count >= self.diverse_target

    def __len__(self) -> int:
        return len(self.items)


def diverse_slot_count(count: int, diversity_factor: float) -> int:
    """ceil(N * f), rounded first so 10 * 0.3 counts as 3, not 4."""
    return min(count, int(math.ceil(round(count * diversity_factor, 9))))


def primary_slice_size(count: int, diversity_factor: float) -> int:
    return count - diverse_slot_count(count, diversity_factor)


def is_diverse(candidate: ScoredCandidate, dominant: Set[str]) -> bool:
    """True when none of the candidate's categories is dominant."""
    return not (set(candidate.categories) & dominant)


class DiversitySelector:
    """
    Re-rank scored candidates so part of the result comes from outside the
    dominant categories.

    Usage:
        selector = DiversitySelector()
        picked = selector.select(ranked, count=10, interest=vector.weights)
        picked.items, picked.quota_met
    """

    def __init__(self, config: DiversityConfig = None):
        self.config = config or DEFAULT_DIVERSITY_CONFIG

    def dominant_categories(
        self,
        primary: Sequence[ScoredCandidate],
        interest: Optional[Mapping[str, float]] = None,
    ) -> List[str]:
        k = self.config.dominant_categories
        if interest:
            return top_keys(interest, k)
        counts: Counter = Counter()
        for candidate in primary:
            counts.update(candidate.categories.keys())
        return top_keys(counts, k)

    def select(
        self,
        candidates: Sequence[ScoredCandidate],
        count: int,
        interest: Optional[Mapping[str, float]] = None,
        diversity_factor: Optional[float] = None,
    ) -> DiversitySelection:
        factor = self.config.diversity_factor if diversity_factor is None else diversity_factor
        if not 0.0 <= factor <= 1.0:
            raise ValueError(f"diversity_factor must be within [0, 1], got {factor}")
        if count <= 0 or not candidates:
            return DiversitySelection()

        ranked = rank(candidates)
        count = min(count, len(ranked))

        primary = ranked[:primary_slice_size(count, factor)]
        dominant = self.dominant_categories(primary, interest)
        dominant_set = set(dominant)

        chosen_ids = {c.item_id for c in primary}
        selected = list(primary)
        slots_left = count - len(selected)

        remaining = [c for c in ranked if c.item_id not in chosen_ids]
        diverse = [c for c in remaining if is_diverse(c, dominant_set)]
        for candidate in diverse[:slots_left]:
            selected.append(candidate)
            chosen_ids.add(candidate.item_id)

        # Graceful degradation: not enough diverse candidates
        if len(selected) < count:
            for candidate in remaining:
                if len(selected) >= count:
                    break
                if candidate.item_id not in chosen_ids:
                    selected.append(candidate)
                    chosen_ids.add(candidate.item_id)

        selection = DiversitySelection(
            items=rank(selected),
            dominant_categories=dominant,
            diverse_count=sum(1 for c in selected if is_diverse(c, dominant_set)),
            diverse_target=count - len(primary),
        )
        if not selection.quota_met:
            logger.warning(
                "Insufficient diverse candidates",
                requested=count,
                diverse_count=selection.diverse_count,
                diverse_target=selection.diverse_target,
                dominant=dominant,
            )
        return selection
