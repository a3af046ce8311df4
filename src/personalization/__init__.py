"""
Component personalization: catalog, per-slot selection, page assembly.

    from personalization import ComponentPersonalizer, InMemoryVariantCatalog

    catalog = InMemoryVariantCatalog().seed_defaults()
    page = ComponentPersonalizer(catalog).assemble_page(session_id, vector)
"""

from personalization.analytics import (
    InMemoryAnalyticsSink,
    PersonalizationAnalytics,
    PersonalizationEvent,
    SupabaseAnalyticsSink,
)
from personalization.catalog import InMemoryVariantCatalog
from personalization.models import (
    DEFAULT_PAGE_SLOTS,
    ComponentVariant,
    ContentItem,
    FallbackReason,
    PageAssembly,
    PersonalizedComponent,
    SlotDefinition,
    SlotResult,
    SlotType,
)
from personalization.personalizer import ComponentPersonalizer

__all__ = [
    "DEFAULT_PAGE_SLOTS",
    "ComponentPersonalizer",
    "ComponentVariant",
    "ContentItem",
    "FallbackReason",
    "InMemoryAnalyticsSink",
    "InMemoryVariantCatalog",
    "PageAssembly",
    "PersonalizationAnalytics",
    "PersonalizationEvent",
    "PersonalizedComponent",
    "SlotDefinition",
    "SlotResult",
    "SlotType",
    "SupabaseAnalyticsSink",
]
