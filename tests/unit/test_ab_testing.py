"""
Tests for A/B test configuration, assignment, lifecycle and analysis.
"""

import pytest


def _two_way(engine, **extra):
    config = {
        "name": "Hero copy",
        "slot_type": "hero",
        "variants": [{"variant_id": "control"}, {"variant_id": "treatment"}],
    }
    config.update(extra)
    return engine.create_test(config)


def _feed(engine, test_id, variant_id, sessions, conversions, prefix=None):
    prefix = prefix or variant_id
    for i in range(sessions):
        session_id = f"{prefix}-{i}"
        engine.track_impression(test_id, session_id, variant_id)
        if i < conversions:
            engine.track_conversion(test_id, session_id, variant_id)


class TestTestConfig:

    def test_equal_split_by_default(self):
        from experiments.models import build_test

        test = build_test({"variants": [{"variant_id": v} for v in "abc"]})
        assert [round(v.traffic_allocation, 6) for v in test.variants] == [0.333333] * 3
        assert test.control.variant_id == "a"
        assert test.status.value == "active"

    def test_traffic_split_for_two_variants(self):
        from experiments.models import build_test

        test = build_test({"variants": [{"variant_id": "a"}, {"variant_id": "b"}], "traffic_split": 0.7})
        assert [v.traffic_allocation for v in test.variants] == pytest.approx([0.7, 0.3])

    def test_percentages_are_scaled(self):
        from experiments.models import build_test

        test = build_test({"variants": [
            {"variant_id": "a", "traffic_allocation": 60},
            {"variant_id": "b", "traffic_allocation": 40},
        ]})
        assert [v.traffic_allocation for v in test.variants] == pytest.approx([0.6, 0.4])

    def test_variants_as_mapping(self):
        from experiments.models import build_test

        test = build_test({"test_id": "hero_copy", "variants": {
            "control": {"headline": "Welcome"},
            "variant_a": {"headline": "Automate your home", "name": "Tech headline"},
        }})
        assert test.test_id == "hero_copy"
        assert test.variant_ids == ["control", "variant_a"]
        assert test.get_variant("variant_a").config == {"headline": "Automate your home"}
        assert test.get_variant("variant_a").name == "Tech headline"

    @pytest.mark.parametrize("variants", [
        [{"variant_id": "only"}],
        [{"variant_id": "a"}, {"variant_id": "a"}],
        [{"variant_id": "a", "traffic_allocation": 0.5}, {"variant_id": "b", "traffic_allocation": 0.4}],
        [{"variant_id": "a", "traffic_allocation": 0.5}, {"variant_id": "b"}],
        [{"variant_id": "a", "traffic_allocation": 1.0}, {"variant_id": "b", "traffic_allocation": 0.0}],
    ])
    def test_rejected_configs(self, variants):
        from experiments.models import TestConfigError, build_test

        with pytest.raises(TestConfigError):
            build_test({"variants": variants})

    def test_missing_variants_rejected(self):
        from experiments.models import TestConfigError, build_test

        with pytest.raises(TestConfigError):
            build_test({"name": "no variants"})


class TestAssignment:

    def test_assignment_is_deterministic(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine, test_id="t1")
        first = [engine.get_variant(test_id, f"s{i}") for i in range(50)]
        second = [engine.get_variant(test_id, f"s{i}") for i in range(50)]
        assert first == second

        other = ABTestingEngine()
        _two_way(other, test_id="t1")
        assert [other.get_variant("t1", f"s{i}") for i in range(50)] == first

    def test_hash_to_unit_range(self):
        from experiments.ab_testing import hash_to_unit

        positions = [hash_to_unit("t", f"s{i}") for i in range(1000)]
        assert all(0.0 <= p < 1.0 for p in positions)

    @pytest.mark.parametrize("split", [0.5, 0.7])
    def test_distribution_matches_allocation(self, split):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine, traffic_split=split)
        n = 10000
        controls = sum(1 for i in range(n) if engine.get_variant(test_id, f"session-{i}") == "control")
        assert abs(controls / n - split) < 0.03

    def test_pick_variant_tolerates_short_total(self):
        from experiments.ab_testing import pick_variant
        from experiments.models import ABVariant

        variants = [ABVariant("a", 0.4995), ABVariant("b", 0.5)]
        assert pick_variant(variants, 0.9999).variant_id == "b"

    def test_active_test_for_slot(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        assert engine.active_test_for_slot("hero") is None

        test_id = _two_way(engine)
        assert engine.active_test_for_slot("hero").test_id == test_id
        assert engine.active_test_for_slot("cta") is None

        engine.pause(test_id)
        assert engine.active_test_for_slot("hero") is None


class TestLifecycle:

    def test_draft_start_pause_resume_complete(self, clock):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine(clock=clock)
        test_id = _two_way(engine, start=False)
        assert engine.get_test(test_id).status.value == "draft"

        engine.start(test_id)
        engine.pause(test_id)
        engine.resume(test_id)
        test = engine.complete(test_id, reason="winner shipped")

        assert test.status.value == "completed"
        assert test.stop_reason == "winner shipped"
        assert test.ended_at == clock.now

    def test_invalid_transitions(self):
        from experiments.ab_testing import ABTestingEngine
        from experiments.models import InvalidTransitionError

        engine = ABTestingEngine()
        test_id = _two_way(engine)

        with pytest.raises(InvalidTransitionError):
            engine.resume(test_id)
        with pytest.raises(InvalidTransitionError):
            engine.start(test_id)

        engine.complete(test_id)
        for action in (engine.start, engine.pause, engine.complete):
            with pytest.raises(InvalidTransitionError):
                action(test_id)

    def test_unknown_test(self):
        from experiments.ab_testing import ABTestingEngine
        from experiments.models import TestNotFoundError

        engine = ABTestingEngine()
        with pytest.raises(TestNotFoundError):
            engine.get_variant("missing", "s1")
        with pytest.raises(TestNotFoundError):
            engine.analyze_results("missing")

    def test_duplicate_test_id(self):
        from experiments.ab_testing import ABTestingEngine
        from experiments.models import TestConfigError

        engine = ABTestingEngine()
        _two_way(engine, test_id="dup")
        with pytest.raises(TestConfigError):
            _two_way(engine, test_id="dup")

    def test_list_tests_by_status(self):
        from experiments.ab_testing import ABTestingEngine
        from experiments.models import TestStatus

        engine = ABTestingEngine()
        active = _two_way(engine, test_id="a")
        _two_way(engine, test_id="d", start=False)

        assert [t.test_id for t in engine.list_tests(TestStatus.ACTIVE)] == [active]
        assert len(engine.list_tests()) == 2


class TestTracking:

    def test_events_ignored_for_draft_and_completed(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        draft = _two_way(engine, test_id="draft", start=False)
        done = _two_way(engine, test_id="done")
        engine.complete(done)

        assert engine.track_impression(draft, "s1") is False
        assert engine.track_conversion(done, "s1") is False
        assert engine.events(draft) == [] and engine.events(done) == []

    def test_paused_test_still_records_events(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        engine.pause(test_id)

        assert engine.track_conversion(test_id, "s1") is True

    def test_get_variant_exposes_only_while_active(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        engine.get_variant(test_id, "s1")
        engine.pause(test_id)
        engine.get_variant(test_id, "s2")

        assert engine.analyze_results(test_id)["summary"]["total_participants"] == 1

    def test_unknown_variant_rejected(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        with pytest.raises(ValueError):
            engine.track_impression(test_id, "s1", "nope")

    def test_variant_defaults_to_assignment(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        engine.track_conversion(test_id, "s1", value=12.5)

        event = engine.events(test_id)[0]
        assert event.variant_id == engine.get_variant(test_id, "s1")
        assert event.value == 12.5

    def test_conversions_count_sessions_once(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        engine.track_impression(test_id, "s1", "control")
        engine.track_conversion(test_id, "s1", "control", value=5.0)
        engine.track_conversion(test_id, "s1", "control", value=7.0)

        control = engine.analyze_results(test_id)["variants"]["control"]
        assert control["conversions"] == 1
        assert control["conversion_events"] == 2
        assert control["conversion_rate"] == 1.0
        assert control["conversion_value"] == 12.0


class TestStatistics:

    def test_z_test_known_values(self):
        from experiments.statistics import z_test_proportions

        result = z_test_proportions(100, 1000, 150, 1000)
        assert result.z_statistic == pytest.approx(3.38, abs=0.01)
        assert result.p_value < 0.001
        assert result.is_significant
        assert result.improvement == pytest.approx(50.0)

    def test_equal_rates_not_significant(self):
        from experiments.statistics import z_test_proportions

        result = z_test_proportions(30, 100, 30, 100)
        assert result.z_statistic == 0.0
        assert result.p_value == pytest.approx(1.0)
        assert not result.is_significant

    def test_inconclusive_inputs(self):
        from experiments.statistics import z_test_proportions

        assert z_test_proportions(0, 0, 5, 10).p_value == 1.0
        assert z_test_proportions(0, 50, 0, 50).confidence_level == 0.0

    def test_conversion_rate(self):
        from experiments.statistics import conversion_rate

        assert conversion_rate(3, 10) == pytest.approx(0.3)
        assert conversion_rate(3, 0) == 0.0


class TestAnalysis:

    def test_significant_treatment_wins(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        _feed(engine, test_id, "control", 1000, 100)
        _feed(engine, test_id, "treatment", 1000, 150)

        analysis = engine.analyze_results(test_id)
        assert analysis["winner"] == "treatment"
        assert analysis["summary"]["recommendation"] == "implement_winner"
        assert analysis["summary"]["best_variant"] == "treatment"
        assert analysis["p_value"] < 0.05
        assert analysis["comparisons"]["treatment"]["is_significant"]

    def test_control_wins_when_treatment_significantly_worse(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        _feed(engine, test_id, "control", 1000, 200)
        _feed(engine, test_id, "treatment", 1000, 100)

        assert engine.analyze_results(test_id)["winner"] == "control"

    def test_no_difference_after_sample_reached(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        _feed(engine, test_id, "control", 200, 40)
        _feed(engine, test_id, "treatment", 200, 42)

        analysis = engine.analyze_results(test_id)
        assert analysis["winner"] is None
        assert analysis["summary"]["recommendation"] == "no_significant_difference"
        assert analysis["summary"]["sample_size_reached"] is True

    def test_continue_with_small_sample(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        _feed(engine, test_id, "control", 20, 2)
        _feed(engine, test_id, "treatment", 20, 3)

        analysis = engine.analyze_results(test_id)
        assert analysis["winner"] is None
        assert analysis["summary"]["recommendation"] == "continue"

    def test_target_sample_size(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine, target_sample_size=40)
        _feed(engine, test_id, "control", 20, 2)
        _feed(engine, test_id, "treatment", 20, 3)

        assert engine.analyze_results(test_id)["summary"]["sample_size_reached"] is True

    def test_three_variants_report_per_comparison(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = engine.create_test({"variants": [{"variant_id": v} for v in ("a", "b", "c")]})
        _feed(engine, test_id, "a", 500, 50)
        _feed(engine, test_id, "b", 500, 52)
        _feed(engine, test_id, "c", 500, 110)

        analysis = engine.analyze_results(test_id)
        assert set(analysis["comparisons"]) == {"b", "c"}
        assert "p_value" not in analysis
        assert analysis["winner"] == "c"

    def test_empty_test(self):
        from experiments.ab_testing import ABTestingEngine

        engine = ABTestingEngine()
        test_id = _two_way(engine)
        analysis = engine.analyze_results(test_id)

        assert analysis["winner"] is None
        assert analysis["summary"]["total_participants"] == 0
        assert analysis["p_value"] == 1.0
