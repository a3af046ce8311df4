"""
Component Personalizer.

Fills page slots (hero, article_list, cta, sidebar) for a session:

1. No usable interest vector (timed out, empty, or confidence below the
   threshold) -> the slot's default variants, flagged is_default
2. Slot under an active A/B test -> the test's variant for this session;
   an impression is tracked and relevance is still recorded
3. Otherwise -> relevance-ranked variants. Single-item slots take the top
   variant; multi-item slots go through the diversity selector
4. Every slot decision is written to personalization analytics

A failing slot falls back on its own; the page always assembles. Slots not
started before the assembly deadline fall back as deadline_exceeded.
"""

import time
from typing import Iterable, Optional, Union

from config.constants import MAX_SIDEBAR_WIDGETS
from core.logging import LoggerMixin, log_budget
from experiments.ab_testing import ABTestingEngine
from interest.calculator import InterestVector
from personalization.analytics import PersonalizationAnalytics
from personalization.catalog import InMemoryVariantCatalog
from personalization.models import (
    DEFAULT_PAGE_SLOTS,
    ComponentVariant,
    FallbackReason,
    PageAssembly,
    PersonalizedComponent,
    SlotDefinition,
    SlotResult,
    SlotType,
)
from scoring.diversity import DiversitySelector
from scoring.relevance import RelevanceScorer, ScoredCandidate


class ComponentPersonalizer(LoggerMixin):
    """
    Usage:
        personalizer = ComponentPersonalizer(catalog, ab_engine=engine)
        page = personalizer.assemble_page("session-1", vector)
        page.components_by_slot["hero"][0].variant_id
        page.metadata["fallback_used"]
    """

    def __init__(
        self,
        catalog: InMemoryVariantCatalog,
        ab_engine: Optional[ABTestingEngine] = None,
        analytics: Optional[PersonalizationAnalytics] = None,
        scorer: Optional[RelevanceScorer] = None,
        selector: Optional[DiversitySelector] = None,
        confidence_threshold: float = 0.6,
        diversity_factor: float = 0.3,
        assembly_budget_ms: float = 300,
    ):
        self.catalog = catalog
        self.ab_engine = ab_engine
        self.analytics = analytics if analytics is not None else PersonalizationAnalytics()
        self.scorer = scorer or RelevanceScorer()
        self.selector = selector or DiversitySelector()
        self.confidence_threshold = confidence_threshold
        self.diversity_factor = diversity_factor
        self.assembly_budget_ms = assembly_budget_ms

    # =========================================================================
    # Page
    # =========================================================================

    def assemble_page(
        self,
        session_id: str,
        vector: Optional[InterestVector],
        slots: Optional[Iterable[Union[SlotDefinition, str, dict]]] = None,
        fallback_reason: Optional[FallbackReason] = None,
    ) -> PageAssembly:
        """
        Fill every slot and report page metadata.

        ``fallback_reason`` forces every slot onto defaults, e.g. when the
        interest vector lookup timed out upstream.
        """
        definitions = [SlotDefinition.parse(s) for s in (slots or DEFAULT_PAGE_SLOTS)]
        page = PageAssembly(session_id=session_id)
        confidence = vector.confidence if vector is not None else 0.0

        with log_budget(self.logger, "assemble_page", self.assembly_budget_ms, session_id=session_id) as timing:
            deadline = time.perf_counter() + self.assembly_budget_ms / 1000.0
            for slot in definitions:
                if time.perf_counter() > deadline:
                    result = self.fallback(slot, FallbackReason.DEADLINE_EXCEEDED)
                else:
                    result = self._safe_personalize(session_id, slot, vector, fallback_reason)
                page.slots[slot.slot_type] = result
                self.analytics.record_slot(session_id, result, confidence=confidence)

        with_fallback = [s for s, r in page.slots.items() if r.fallback_used]
        page.metadata = {
            "personalization_applied": len(with_fallback) < len(page.slots),
            "confidence_score": round(confidence, 4),
            "fallback_used": bool(with_fallback),
            "assembly_time": round(timing["elapsed_ms"], 3),
            "signal_count": vector.signal_count if vector is not None else 0,
            "slots_with_fallback": with_fallback,
        }
        self.logger.info(
            "Page assembled",
            session_id=session_id,
            slots=len(page.slots),
            fallback_slots=with_fallback,
            confidence=page.metadata["confidence_score"],
            assembly_ms=page.metadata["assembly_time"],
        )
        return page

    def _safe_personalize(
        self,
        session_id: str,
        slot: SlotDefinition,
        vector: Optional[InterestVector],
        forced: Optional[FallbackReason],
    ) -> SlotResult:
        try:
            if forced is not None:
                return self.fallback(slot, forced)
            return self.personalize_slot(session_id, slot, vector)
        except Exception as e:
            self.logger.error(
                "Slot personalization failed",
                session_id=session_id,
                slot_type=slot.slot_type,
                error=str(e),
            )
            return self.fallback(slot, FallbackReason.SLOT_ERROR)

    # =========================================================================
    # Slot
    # =========================================================================

    def personalize_slot(
        self,
        session_id: str,
        slot: SlotDefinition,
        vector: Optional[InterestVector],
    ) -> SlotResult:
        reason = self.fallback_reason_for(vector)
        if reason is not None:
            return self.fallback(slot, reason)

        if self.ab_engine is not None:
            test = self.ab_engine.active_test_for_slot(slot.slot_type)
            if test is not None:
                return self._ab_slot(session_id, slot, vector, test.test_id)

        candidates = self.catalog.eligible_for(slot.slot_type)
        ranked = self.scorer.score_relevance(vector.weights, candidates)
        if not ranked or ranked[0].score <= 0.0:
            return self.fallback(slot, FallbackReason.NO_ELIGIBLE_VARIANTS)

        if slot.is_single:
            return SlotResult(
                slot_type=slot.slot_type,
                components=[self._component(ranked[0])],
            )

        count = slot.item_count
        if slot.slot_type == SlotType.SIDEBAR.value:
            count = min(count, MAX_SIDEBAR_WIDGETS)
        factor = self.diversity_factor if slot.diversity_factor is None else slot.diversity_factor
        selection = self.selector.select(ranked, count, interest=vector.weights, diversity_factor=factor)

        picked = selection.items
        if slot.slot_type == SlotType.SIDEBAR.value:
            picked = sorted(picked, key=lambda c: (-c.score, -c.item.priority, c.item_id))
        return SlotResult(
            slot_type=slot.slot_type,
            components=[self._component(c) for c in picked],
            quota_met=selection.quota_met,
        )

    def fallback_reason_for(self, vector: Optional[InterestVector]) -> Optional[FallbackReason]:
        if vector is None:
            return FallbackReason.VECTOR_TIMEOUT
        if vector.is_empty:
            return FallbackReason.EMPTY_INTEREST_VECTOR
        if vector.confidence < self.confidence_threshold:
            return FallbackReason.LOW_CONFIDENCE
        return None

    def fallback(self, slot: SlotDefinition, reason: FallbackReason) -> SlotResult:
        """Default variants for a slot. Never raises."""
        count = 1 if slot.is_single else slot.item_count
        defaults = self.catalog.defaults_for(slot.slot_type)[:count]
        if defaults:
            components = [PersonalizedComponent.from_variant(v, is_default=True) for v in defaults]
        else:
            self.logger.warning("No default variant for slot", slot_type=slot.slot_type)
            components = [PersonalizedComponent.placeholder(slot.slot_type)]
        return SlotResult(slot_type=slot.slot_type, components=components, fallback_reason=reason)

    def _ab_slot(
        self,
        session_id: str,
        slot: SlotDefinition,
        vector: InterestVector,
        test_id: str,
    ) -> SlotResult:
        variant_id = self.ab_engine.get_variant(test_id, session_id)
        variant = self.catalog.get_variant(slot.slot_type, variant_id)
        if variant is None:
            ab_variant = self.ab_engine.get_test(test_id).get_variant(variant_id)
            variant = ComponentVariant(
                id=variant_id,
                slot_type=slot.slot_type,
                title=ab_variant.name if ab_variant else variant_id,
                content=dict(ab_variant.config) if ab_variant else {},
                categories=(ab_variant.config.get("categories", []) if ab_variant else []),
            )

        relevance = self.scorer.relevance(vector.weights, variant.categories)
        self.ab_engine.track_impression(test_id, session_id, variant_id)
        self.logger.debug(
            "A/B variant served",
            session_id=session_id,
            test_id=test_id,
            variant_id=variant_id,
            relevance=round(relevance, 4),
        )
        return SlotResult(
            slot_type=slot.slot_type,
            components=[PersonalizedComponent.from_variant(variant, relevance, ab_test_id=test_id)],
            ab_test_id=test_id,
        )

    @staticmethod
    def _component(candidate: ScoredCandidate) -> PersonalizedComponent:
        return PersonalizedComponent.from_variant(candidate.item, candidate.score)
