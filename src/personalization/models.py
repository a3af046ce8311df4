"""
Personalization data models.

Content and variants carry category metadata as either a list (uniform
weights) or a mapping of category -> strength. Slot results make fallback
explicit: a slot either has no fallback_reason (personalized or A/B
assigned) or names why defaults were served.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from config.constants import DEFAULT_SLOT_COUNTS, SLOT_TYPES


CategorySpec = Union[Mapping[str, float], Sequence[str]]


class SlotType(str, Enum):
    HERO = "hero"
    ARTICLE_LIST = "article_list"
    CTA = "cta"
    SIDEBAR = "sidebar"


SINGLE_ITEM_SLOTS = frozenset({SlotType.HERO.value, SlotType.CTA.value})


class FallbackReason(str, Enum):
    LOW_CONFIDENCE = "low_confidence"
    EMPTY_INTEREST_VECTOR = "empty_interest_vector"
    NO_ELIGIBLE_VARIANTS = "no_eligible_variants"
    SLOT_ERROR = "slot_error"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    VECTOR_TIMEOUT = "vector_timeout"


# =============================================================================
# Catalog entries
# =============================================================================

@dataclass
class ContentItem:
    """A piece of existing site content (article, guide, product page)."""
    id: str
    title: str = ""
    categories: CategorySpec = field(default_factory=list)
    body: str = ""
    content_type: str = "article"
    url: Optional[str] = None

    @property
    def text(self) -> str:
        """Title plus body, used for term statistics."""
        return f"{self.title} {self.body}".strip()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "categories": _categories_out(self.categories),
            "content_type": self.content_type,
            "url": self.url,
        }


@dataclass
class ComponentVariant:
    """
    One alternative rendering of a slot.

    ``content`` is opaque copy/attributes from whatever generated the
    variant (headline, button text, widget config).
    """
    id: str
    slot_type: str
    categories: CategorySpec = field(default_factory=list)
    is_default: bool = False
    title: str = ""
    content: Dict[str, Any] = field(default_factory=dict)
    priority: int = 0

    @classmethod
    def from_content(cls, item: ContentItem, slot_type: str = SlotType.ARTICLE_LIST.value) -> "ComponentVariant":
        return cls(
            id=item.id,
            slot_type=slot_type,
            categories=item.categories,
            title=item.title,
            content={"url": item.url, "content_type": item.content_type},
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slot_type": self.slot_type,
            "categories": _categories_out(self.categories),
            "is_default": self.is_default,
            "title": self.title,
            "content": dict(self.content),
            "priority": self.priority,
        }


def _categories_out(categories: CategorySpec) -> Union[Dict[str, float], List[str]]:
    if isinstance(categories, Mapping):
        return dict(categories)
    return list(categories or [])


# =============================================================================
# Requests & results
# =============================================================================

@dataclass(frozen=True)
class SlotDefinition:
    """
    A slot to fill on a page.

    count defaults per slot type: hero 1, article_list 5, cta 1, sidebar 4.
    """
    slot_type: str
    count: Optional[int] = None
    diversity_factor: Optional[float] = None

    @property
    def item_count(self) -> int:
        if self.count is not None:
            return max(1, self.count)
        return DEFAULT_SLOT_COUNTS.get(self.slot_type, 1)

    @property
    def is_single(self) -> bool:
        return self.slot_type in SINGLE_ITEM_SLOTS

    @classmethod
    def parse(cls, value: Union["SlotDefinition", str, Mapping[str, Any]]) -> "SlotDefinition":
        if isinstance(value, SlotDefinition):
            return value
        if isinstance(value, str):
            return cls(slot_type=value)
        return cls(
            slot_type=value["slot_type"],
            count=value.get("count"),
            diversity_factor=value.get("diversity_factor"),
        )


DEFAULT_PAGE_SLOTS: List[SlotDefinition] = [SlotDefinition(slot) for slot in SLOT_TYPES]


@dataclass
class PersonalizedComponent:
    variant_id: str
    slot_type: str
    relevance_score: float = 0.0
    is_default: bool = False
    title: str = ""
    content: Dict[str, Any] = field(default_factory=dict)
    ab_test_id: Optional[str] = None
    is_placeholder: bool = False

    @classmethod
    def from_variant(
        cls,
        variant: ComponentVariant,
        relevance_score: float = 0.0,
        is_default: Optional[bool] = None,
        ab_test_id: Optional[str] = None,
    ) -> "PersonalizedComponent":
        return cls(
            variant_id=variant.id,
            slot_type=variant.slot_type,
            relevance_score=relevance_score,
            is_default=variant.is_default if is_default is None else is_default,
            title=variant.title,
            content=dict(variant.content),
            ab_test_id=ab_test_id,
        )

    @classmethod
    def placeholder(cls, slot_type: str) -> "PersonalizedComponent":
        return cls(
            variant_id=f"{slot_type}-placeholder",
            slot_type=slot_type,
            is_default=True,
            is_placeholder=True,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "slot_type": self.slot_type,
            "relevance_score": round(self.relevance_score, 6),
            "is_default": self.is_default,
            "title": self.title,
            "content": dict(self.content),
            "ab_test_id": self.ab_test_id,
            "is_placeholder": self.is_placeholder,
        }


@dataclass
class SlotResult:
    """Outcome of one slot: the components shown and why, if not personalized."""
    slot_type: str
    components: List[PersonalizedComponent] = field(default_factory=list)
    fallback_reason: Optional[FallbackReason] = None
    ab_test_id: Optional[str] = None
    quota_met: bool = True

    @property
    def fallback_used(self) -> bool:
        return self.fallback_reason is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "slot_type": self.slot_type,
            "components": [c.to_dict() for c in self.components],
            "fallback_used": self.fallback_used,
            "fallback_reason": self.fallback_reason.value if self.fallback_reason else None,
            "ab_test_id": self.ab_test_id,
            "quota_met": self.quota_met,
        }


@dataclass
class PageAssembly:
    session_id: str
    slots: Dict[str, SlotResult] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    assembled_at: float = field(default_factory=time.time)

    @property
    def components_by_slot(self) -> Dict[str, List[PersonalizedComponent]]:
        return {slot: result.components for slot, result in self.slots.items()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "components_by_slot": {
                slot: [c.to_dict() for c in components]
                for slot, components in self.components_by_slot.items()
            },
            "slots": {slot: result.to_dict() for slot, result in self.slots.items()},
            "metadata": dict(self.metadata),
        }
