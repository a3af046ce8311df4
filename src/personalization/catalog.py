"""
In-memory content & variant catalog.

Holds the candidates the personalizer ranks (component variants per slot
type) and the site content the interest calculator resolves categories
from. Content items double as article_list candidates.
"""

import threading
from typing import Dict, Iterable, List, Optional

from config.constants import SLOT_TYPES
from core.logging import LoggerMixin
from core.utils import slugify_category
from personalization.models import ComponentVariant, ContentItem, SlotType
from scoring.relevance import item_vector


GENERIC_DEFAULTS: Dict[str, Dict] = {
    SlotType.HERO.value: {
        "title": "Welcome",
        "content": {"headline": "Find what you need", "cta_text": "Get Started"},
    },
    SlotType.ARTICLE_LIST.value: {
        "title": "Popular articles",
        "content": {"layout": "list"},
    },
    SlotType.CTA.value: {
        "title": "Learn more",
        "content": {"button_text": "Learn More", "button_url": "/"},
    },
    SlotType.SIDEBAR.value: {
        "title": "Popular topics",
        "content": {"widget": "popular_topics"},
    },
}


class InMemoryVariantCatalog(LoggerMixin):
    """
    Thread-safe catalog.

    Usage:
        catalog = InMemoryVariantCatalog()
        catalog.add_variant(ComponentVariant("hero-tech", "hero", ["technology"]))
        catalog.add_content(ContentItem("post:1", "Smart hubs", ["technology"]))
        catalog.variants_for("hero")
    """

    def __init__(
        self,
        variants: Iterable[ComponentVariant] = (),
        content: Iterable[ContentItem] = (),
    ):
        self._lock = threading.RLock()
        self._variants: Dict[str, Dict[str, ComponentVariant]] = {}
        self._content: Dict[str, ContentItem] = {}
        for variant in variants:
            self.add_variant(variant)
        for item in content:
            self.add_content(item)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_variant(self, variant: ComponentVariant) -> None:
        with self._lock:
            self._variants.setdefault(variant.slot_type, {})[variant.id] = variant

    def add_variants(self, variants: Iterable[ComponentVariant]) -> None:
        for variant in variants:
            self.add_variant(variant)

    def add_content(self, item: ContentItem, as_article: bool = True) -> None:
        with self._lock:
            self._content[item.id] = item
            if as_article:
                slot = self._variants.setdefault(SlotType.ARTICLE_LIST.value, {})
                slot.setdefault(item.id, ComponentVariant.from_content(item))

    def remove_variant(self, slot_type: str, variant_id: str) -> bool:
        with self._lock:
            return self._variants.get(slot_type, {}).pop(variant_id, None) is not None

    def seed_defaults(self) -> "InMemoryVariantCatalog":
        """Add a generic default variant to every slot type that lacks one."""
        for slot_type in SLOT_TYPES:
            if self.defaults_for(slot_type):
                continue
            defaults = GENERIC_DEFAULTS.get(slot_type, {})
            self.add_variant(ComponentVariant(
                id=f"{slot_type}-default",
                slot_type=slot_type,
                is_default=True,
                title=defaults.get("title", ""),
                content=dict(defaults.get("content", {})),
            ))
        return self

    # =========================================================================
    # Reads
    # =========================================================================

    def variants_for(self, slot_type: str) -> List[ComponentVariant]:
        with self._lock:
            variants = list(self._variants.get(slot_type, {}).values())
        return sorted(variants, key=lambda v: v.id)

    def eligible_for(self, slot_type: str) -> List[ComponentVariant]:
        """Non-default variants with category metadata."""
        return [
            v for v in self.variants_for(slot_type)
            if not v.is_default and item_vector(v.categories)
        ]

    def defaults_for(self, slot_type: str) -> List[ComponentVariant]:
        """Designated default variants, highest priority first."""
        defaults = [v for v in self.variants_for(slot_type) if v.is_default]
        return sorted(defaults, key=lambda v: (-v.priority, v.id))

    def get_variant(self, slot_type: str, variant_id: str) -> Optional[ComponentVariant]:
        with self._lock:
            return self._variants.get(slot_type, {}).get(variant_id)

    def get_content(self, content_id: str) -> Optional[ContentItem]:
        with self._lock:
            return self._content.get(content_id)

    def all_content(self) -> List[ContentItem]:
        with self._lock:
            return sorted(self._content.values(), key=lambda c: c.id)

    def category_of(self, content_id: str) -> Optional[str]:
        """Strongest category of a content item; usable as a content resolver."""
        item = self.get_content(content_id)
        if item is None:
            return None
        vector = item_vector(item.categories)
        if not vector:
            return None
        return slugify_category(max(sorted(vector), key=lambda k: vector[k]))

    def corpus_texts(self) -> List[str]:
        """Document texts for term statistics (static corpus scope)."""
        return [item.text for item in self.all_content() if item.text]

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            stats = {f"variants_{slot}": len(v) for slot, v in self._variants.items()}
            stats["content_items"] = len(self._content)
        return stats
