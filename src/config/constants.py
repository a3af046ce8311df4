"""
Application constants and algorithm configuration.

These are values that don't change based on environment but may need
to be tuned or referenced across the codebase.
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List


# =============================================================================
# Signal Weights
# =============================================================================

DEFAULT_SIGNAL_WEIGHTS: Dict[str, float] = {
    "search_query": 1.0,
    "content_click": 0.8,
    "cta_click": 1.0,
    "taxonomy_engagement": 0.7,
    "time_spent": 0.6,
    "content_view": 0.3,
}

# Fallback base weight for registered types without an explicit entry
DEFAULT_BASE_WEIGHT: float = 1.0


# =============================================================================
# Interest Extraction
# =============================================================================

@dataclass(frozen=True)
class ExtractionConfig:
    """How raw (category, weight) pairs are drawn from signal payloads."""

    # search_query: share of the signal given to its explicit category,
    # the rest is spread over TF-IDF terms of the query text
    SEARCH_CATEGORY_SHARE: float = 0.6

    # time_spent: seconds of engagement that count as a full-strength signal
    FULL_ENGAGEMENT_SECONDS: float = 300.0

    # Number of raw query terms kept when nothing maps to a known category
    MAX_UNMAPPED_TERMS: int = 3

    # Confidence ramp: 1 - exp(-signal_count / CONFIDENCE_SCALE)
    CONFIDENCE_SCALE: float = 3.0


DEFAULT_EXTRACTION_CONFIG = ExtractionConfig()


# Query vocabulary -> interest category. Terms not listed here only count
# when a query maps to nothing at all.
TERM_CATEGORY_MAP: Dict[str, str] = {
    # Technology
    "smart": "smart-home",
    "automation": "automation",
    "automate": "automation",
    "iot": "technology",
    "device": "technology",
    "devices": "technology",
    "tech": "technology",
    "technology": "technology",
    "digital": "technology",
    "wifi": "technology",
    "software": "technology",
    "app": "technology",
    # Business / professional
    "business": "business",
    "commercial": "business",
    "cost": "business",
    "estimation": "business",
    "pricing": "business",
    "contractor": "professional",
    "contractors": "professional",
    "professional": "professional",
    "pro": "professional",
    "tools": "tools",
    "tool": "tools",
    "equipment": "tools",
    # Safety / beginner
    "safety": "safety",
    "safe": "safety",
    "hazard": "safety",
    "electrical": "safety",
    "beginner": "beginner",
    "basics": "beginner",
    "basic": "beginner",
    "diy": "diy",
    "remodel": "remodeling",
    "remodeling": "remodeling",
    "renovation": "remodeling",
    "bathroom": "bathroom",
    "kitchen": "kitchen",
}


STOP_WORDS: FrozenSet[str] = frozenset({
    "a", "an", "and", "are", "as", "at", "be", "but", "by", "for", "from",
    "how", "in", "into", "is", "it", "of", "on", "or", "that", "the", "this",
    "to", "was", "were", "what", "when", "where", "which", "who", "why",
    "will", "with", "you", "your", "my", "me", "i", "do", "does", "can",
})


# =============================================================================
# Slots
# =============================================================================

SLOT_TYPES: List[str] = ["hero", "article_list", "cta", "sidebar"]

# Items returned by a slot when the caller does not say otherwise
DEFAULT_SLOT_COUNTS: Dict[str, int] = {
    "hero": 1,
    "article_list": 5,
    "cta": 1,
    "sidebar": 4,
}

MAX_SIDEBAR_WIDGETS: int = 4


# =============================================================================
# Content Gap Analysis
# =============================================================================

@dataclass(frozen=True)
class GapScoringConfig:
    """Opportunity score for a topic with too little content (0..100 scale)."""

    FREQUENCY_POINTS: float = 10.0
    FREQUENCY_CAP: float = 100.0
    WORD_POINTS: float = 5.0
    SPECIFICITY_CAP: float = 25.0
    QUESTION_BONUS: float = 15.0
    SCALE: float = 100.0


DEFAULT_GAP_SCORING = GapScoringConfig()

QUESTION_WORDS: FrozenSet[str] = frozenset({"how", "what", "why", "when", "where", "which"})

INTENT_KEYWORDS: Dict[str, List[str]] = {
    "educational": ["how", "what", "why", "tutorial", "guide", "learn", "explain", "installation", "install"],
    "commercial": ["buy", "purchase", "price", "cost", "sale", "discount", "deal", "shop", "order", "markup"],
    "navigational": ["contact", "location", "address", "phone", "email", "hours", "directions"],
    "informational": ["about", "information", "details", "facts", "overview", "summary", "requirements"],
}

SUBTOPIC_TEMPLATES: Dict[str, List[str]] = {
    "educational": [
        "How to get started with {topic}",
        "{topic}: step-by-step guide",
        "Common {topic} mistakes to avoid",
    ],
    "commercial": [
        "{topic}: cost breakdown",
        "Best {topic} options compared",
        "When {topic} is worth the investment",
    ],
    "navigational": [
        "Where to find help with {topic}",
        "{topic}: who to contact",
    ],
    "informational": [
        "{topic} explained",
        "Key facts about {topic}",
        "{topic}: frequently asked questions",
    ],
}


# =============================================================================
# A/B Testing
# =============================================================================

# Allocations must sum to 1.0 within this tolerance
TRAFFIC_ALLOCATION_TOLERANCE: float = 1e-3

MIN_TEST_VARIANTS: int = 2

# Sessions per variant before an inconclusive test is called "no difference"
# (used when a test sets no target_sample_size)
DEFAULT_MIN_SAMPLE_PER_VARIANT: int = 100
