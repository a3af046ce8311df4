"""
Tests for the variant catalog, component personalizer and personalization
analytics.
"""

from unittest.mock import MagicMock

import pytest


def _vector(weights, confidence=0.8, signal_count=5, session_id="s1"):
    from interest.calculator import InterestVector
    return InterestVector(session_id, dict(weights), confidence, signal_count, 0.0, 1)


TECH = {"technology": 0.7, "smart-home": 0.2, "automation": 0.1}


class TestCatalog:

    def test_content_becomes_article_variant(self, catalog):
        ids = [v.id for v in catalog.variants_for("article_list")]
        assert "post:1" in ids and "articles-default" in ids

    def test_eligible_excludes_defaults_and_uncategorized(self, catalog):
        from personalization.models import ComponentVariant

        catalog.add_variant(ComponentVariant("hero-blank", "hero"))
        eligible = [v.id for v in catalog.eligible_for("hero")]
        assert eligible == ["hero-business", "hero-tech"]

    def test_defaults_sorted_by_priority(self, catalog):
        from personalization.models import ComponentVariant

        catalog.add_variant(ComponentVariant("hero-default-2", "hero", is_default=True, priority=9))
        assert [v.id for v in catalog.defaults_for("hero")] == ["hero-default-2", "hero-default"]

    def test_category_of(self, catalog):
        assert catalog.category_of("post:5") == "safety"
        assert catalog.category_of("missing") is None

    def test_seed_defaults_fills_missing_slots(self):
        from personalization.catalog import InMemoryVariantCatalog

        catalog = InMemoryVariantCatalog().seed_defaults()
        for slot in ("hero", "article_list", "cta", "sidebar"):
            assert len(catalog.defaults_for(slot)) == 1

    def test_remove_variant(self, catalog):
        assert catalog.remove_variant("hero", "hero-tech")
        assert not catalog.remove_variant("hero", "hero-tech")


class TestComponentPersonalizer:

    @pytest.fixture
    def personalizer(self, catalog):
        from personalization.personalizer import ComponentPersonalizer
        return ComponentPersonalizer(catalog, assembly_budget_ms=5000)

    def test_tech_session_gets_tech_hero(self, personalizer):
        page = personalizer.assemble_page("s1", _vector(TECH))

        hero = page.components_by_slot["hero"]
        assert len(hero) == 1
        assert hero[0].variant_id == "hero-tech"
        assert not hero[0].is_default
        assert page.metadata["personalization_applied"] is True
        assert page.metadata["fallback_used"] is False

    def test_cta_picks_highest_relevance(self, personalizer):
        page = personalizer.assemble_page("s1", _vector({"safety": 1.0}))
        assert page.components_by_slot["cta"][0].variant_id == "cta-safety"

    def test_low_confidence_serves_defaults_everywhere(self, personalizer):
        page = personalizer.assemble_page("s1", _vector(TECH, confidence=0.49, signal_count=2))

        for slot, components in page.components_by_slot.items():
            assert components, slot
            assert all(c.is_default for c in components)
        assert page.slots["hero"].fallback_reason.value == "low_confidence"
        assert page.metadata["personalization_applied"] is False
        assert page.metadata["fallback_used"] is True
        assert sorted(page.metadata["slots_with_fallback"]) == ["article_list", "cta", "hero", "sidebar"]

    def test_empty_and_missing_vector(self, personalizer):
        empty = personalizer.assemble_page("s1", _vector({}, confidence=0.0, signal_count=0))
        assert empty.slots["hero"].fallback_reason.value == "empty_interest_vector"

        missing = personalizer.assemble_page("s1", None)
        assert missing.slots["cta"].fallback_reason.value == "vector_timeout"
        assert missing.metadata["signal_count"] == 0

    def test_no_relevant_variant_falls_back(self, personalizer):
        page = personalizer.assemble_page("s1", _vector({"kitchen": 1.0}), slots=["hero"])
        assert page.slots["hero"].fallback_reason.value == "no_eligible_variants"
        assert page.components_by_slot["hero"][0].variant_id == "hero-default"

    def test_sidebar_capped_and_ordered(self, personalizer):
        page = personalizer.assemble_page(
            "s1", _vector({"technology": 0.6, "tools": 0.4}),
            slots=[{"slot_type": "sidebar", "count": 10}],
        )
        widgets = page.components_by_slot["sidebar"]
        assert len(widgets) == 4
        scores = [w.relevance_score for w in widgets]
        assert scores == sorted(scores, reverse=True)
        assert "sidebar-default" not in [w.variant_id for w in widgets]

    def test_article_list_uses_diversity(self, personalizer):
        page = personalizer.assemble_page("s1", _vector(TECH), slots=[{"slot_type": "article_list", "count": 5}])

        articles = page.components_by_slot["article_list"]
        assert len(articles) == 5
        assert articles[0].variant_id in ("post:1", "post:2")

    def test_slot_error_is_isolated(self, personalizer, catalog):
        original = catalog.eligible_for

        def broken(slot_type):
            if slot_type == "cta":
                raise RuntimeError("boom")
            return original(slot_type)

        catalog.eligible_for = broken
        page = personalizer.assemble_page("s1", _vector(TECH))

        assert page.slots["cta"].fallback_reason.value == "slot_error"
        assert page.components_by_slot["cta"][0].variant_id == "cta-default"
        assert page.slots["hero"].fallback_reason is None

    def test_missing_default_gets_placeholder(self):
        from personalization.catalog import InMemoryVariantCatalog
        from personalization.personalizer import ComponentPersonalizer

        page = ComponentPersonalizer(InMemoryVariantCatalog()).assemble_page("s1", None, slots=["hero"])
        component = page.components_by_slot["hero"][0]
        assert component.is_placeholder
        assert component.is_default

    def test_deadline_exceeded(self, catalog):
        from personalization.personalizer import ComponentPersonalizer

        personalizer = ComponentPersonalizer(catalog, assembly_budget_ms=-1)
        page = personalizer.assemble_page("s1", _vector(TECH))

        assert all(r.fallback_reason.value == "deadline_exceeded" for r in page.slots.values())
        assert all(components for components in page.components_by_slot.values())

    def test_active_ab_test_overrides_relevance(self, catalog):
        from experiments.ab_testing import ABTestingEngine
        from personalization.personalizer import ComponentPersonalizer

        engine = ABTestingEngine()
        test_id = engine.create_test({
            "name": "Hero copy",
            "slot_type": "hero",
            "variants": [{"variant_id": "hero-default"}, {"variant_id": "hero-business"}],
        })
        personalizer = ComponentPersonalizer(catalog, ab_engine=engine, assembly_budget_ms=5000)

        page = personalizer.assemble_page("s1", _vector(TECH), slots=["hero"])
        hero = page.components_by_slot["hero"][0]

        assert hero.variant_id == engine.get_variant(test_id, "s1")
        assert hero.ab_test_id == test_id
        assert page.slots["hero"].ab_test_id == test_id
        assert len(engine.events(test_id)) == 1

    def test_analytics_records_every_slot(self, catalog):
        from personalization.analytics import PersonalizationAnalytics
        from personalization.personalizer import ComponentPersonalizer

        analytics = PersonalizationAnalytics()
        personalizer = ComponentPersonalizer(catalog, analytics=analytics, assembly_budget_ms=5000)
        personalizer.assemble_page("s1", _vector(TECH))
        personalizer.assemble_page("s2", None)

        summary = analytics.summary()
        assert summary["slots_served"] == 8
        assert summary["fallbacks"] == 4
        assert summary["fallback_reasons"] == {"vector_timeout": 4}
        assert {e.slot_type for e in analytics.sink.events("s1")} == {"hero", "article_list", "cta", "sidebar"}

    def test_page_to_dict(self, personalizer):
        data = personalizer.assemble_page("s1", _vector(TECH)).to_dict()

        assert data["session_id"] == "s1"
        assert set(data["components_by_slot"]) == {"hero", "article_list", "cta", "sidebar"}
        assert data["slots"]["hero"]["fallback_used"] is False
        assert "assembly_time" in data["metadata"]


class TestPersonalizationAnalytics:

    def test_supabase_sink_inserts_rows(self, mock_supabase_client):
        from personalization.analytics import PersonalizationAnalytics, SupabaseAnalyticsSink
        from personalization.models import PersonalizedComponent, SlotResult

        analytics = PersonalizationAnalytics(SupabaseAnalyticsSink(mock_supabase_client))
        result = SlotResult("hero", [PersonalizedComponent("hero-tech", "hero", 0.9)])
        analytics.record_slot("s1", result, confidence=0.8)

        mock_supabase_client.table.assert_called_with("personalization_events")
        rows = mock_supabase_client.table.return_value.insert.call_args[0][0]
        assert rows[0]["variant_id"] == "hero-tech"
        assert rows[0]["fallback_used"] is False

    def test_sink_failure_does_not_raise(self):
        from personalization.analytics import PersonalizationAnalytics, SupabaseAnalyticsSink
        from personalization.models import FallbackReason, PersonalizedComponent, SlotResult

        client = MagicMock()
        client.table.return_value.insert.return_value.execute.side_effect = Exception("offline")
        analytics = PersonalizationAnalytics(SupabaseAnalyticsSink(client))

        result = SlotResult("cta", [PersonalizedComponent("cta-default", "cta")],
                            fallback_reason=FallbackReason.LOW_CONFIDENCE)
        analytics.record_slot("s1", result)

        assert analytics.summary()["fallbacks"] == 1

    def test_ring_buffer_is_bounded(self):
        from personalization.analytics import InMemoryAnalyticsSink, PersonalizationAnalytics
        from personalization.models import PersonalizedComponent, SlotResult

        analytics = PersonalizationAnalytics(InMemoryAnalyticsSink(max_events=3))
        for i in range(5):
            analytics.record_slot(f"s{i}", SlotResult("hero", [PersonalizedComponent("h", "hero")]))

        assert [e.session_id for e in analytics.sink.events()] == ["s2", "s3", "s4"]
