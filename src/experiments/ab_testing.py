"""
A/B Testing Engine.

Assignment is a pure function of (test_id, session_id): SHA-256 of
"{test_id}:{session_id}" mapped into [0, 1) and matched against cumulative
traffic allocations. The engine keeps no assignment table; it only records
which sessions were exposed so conversion rates have a denominator.

Conversion rate per variant = distinct converting sessions / distinct
exposed sessions.
"""

import hashlib
import threading
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Union

from config.constants import DEFAULT_MIN_SAMPLE_PER_VARIANT
from core.logging import LoggerMixin
from experiments.models import (
    ABTest,
    ABTestConfig,
    ABTestResult,
    ABVariant,
    EventType,
    InvalidTransitionError,
    TestConfigError,
    TestNotFoundError,
    TestStatus,
    build_test,
    check_transition,
)
from experiments.statistics import conversion_rate, z_test_proportions


def hash_to_unit(test_id: str, session_id: str) -> float:
    """Deterministic position of a session within a test, in [0, 1)."""
    digest = hashlib.sha256(f"{test_id}:{session_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") / float(1 << 64)


def pick_variant(variants: List[ABVariant], position: float) -> ABVariant:
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.traffic_allocation
        if position < cumulative:
            return variant
    # Allocations may sum to slightly under 1.0
    return variants[-1]


class ABTestingEngine(LoggerMixin):
    """
    In-memory A/B test registry with deterministic assignment and a
    two-proportion z-test for analysis.

    Usage:
        engine = ABTestingEngine()
        test_id = engine.create_test({"name": "Hero copy", "slot_type": "hero",
                                      "variants": [{"variant_id": "a"}, {"variant_id": "b"}]})
        variant = engine.get_variant(test_id, "session-1")
        engine.track_conversion(test_id, "session-1", variant)
        engine.analyze_results(test_id)["winner"]
    """

    def __init__(
        self,
        confidence_level: float = 0.95,
        min_sample_per_variant: int = DEFAULT_MIN_SAMPLE_PER_VARIANT,
        clock: Callable[[], float] = time.time,
    ):
        self.confidence_level = confidence_level
        self.min_sample_per_variant = min_sample_per_variant
        self._clock = clock
        self._lock = threading.RLock()
        self._tests: Dict[str, ABTest] = {}
        self._events: Dict[str, List[ABTestResult]] = defaultdict(list)
        self._exposures: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))

    # =========================================================================
    # Registry & lifecycle
    # =========================================================================

    def create_test(self, config: Union[ABTestConfig, Mapping[str, Any]]) -> str:
        """
        Register a test. Returns its id.

        Raises:
            TestConfigError: invalid config or duplicate test id
        """
        test = build_test(config, default_confidence_level=self.confidence_level)
        with self._lock:
            if test.test_id in self._tests:
                raise TestConfigError(f"Test '{test.test_id}' already exists")
            self._tests[test.test_id] = test

        self.logger.info(
            "A/B test created",
            test_id=test.test_id,
            slot_type=test.slot_type,
            status=test.status.value,
            variants={v.variant_id: round(v.traffic_allocation, 4) for v in test.variants},
        )
        return test.test_id

    def get_test(self, test_id: str) -> ABTest:
        test = self._tests.get(test_id)
        if test is None:
            raise TestNotFoundError(test_id)
        return test

    def list_tests(self, status: Optional[TestStatus] = None) -> List[ABTest]:
        with self._lock:
            tests = list(self._tests.values())
        if status is not None:
            tests = [t for t in tests if t.status is status]
        return sorted(tests, key=lambda t: (t.created_at, t.test_id))

    def active_test_for_slot(self, slot_type: str) -> Optional[ABTest]:
        """Most recently started active test targeting a slot type, if any."""
        candidates = [
            t for t in self.list_tests(TestStatus.ACTIVE)
            if t.slot_type == slot_type
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda t: (t.started_at or 0.0, t.test_id))

    def start(self, test_id: str) -> ABTest:
        return self._transition(test_id, TestStatus.ACTIVE)

    def pause(self, test_id: str) -> ABTest:
        return self._transition(test_id, TestStatus.PAUSED)

    def resume(self, test_id: str) -> ABTest:
        test = self.get_test(test_id)
        if test.status is not TestStatus.PAUSED:
            raise InvalidTransitionError(
                f"Cannot resume test '{test_id}' from {test.status.value}"
            )
        return self._transition(test_id, TestStatus.ACTIVE)

    def complete(self, test_id: str, reason: str = "") -> ABTest:
        return self._transition(test_id, TestStatus.COMPLETED, reason=reason)

    def _transition(self, test_id: str, target: TestStatus, reason: str = "") -> ABTest:
        with self._lock:
            test = self.get_test(test_id)
            previous = test.status
            check_transition(test, target)
            test.status = target
            now = self._clock()
            if target is TestStatus.ACTIVE and test.started_at is None:
                test.started_at = now
            if target is TestStatus.COMPLETED:
                test.ended_at = now
                test.stop_reason = reason

        self.logger.info(
            "A/B test status changed",
            test_id=test_id,
            from_status=previous.value,
            to_status=target.value,
            reason=reason or None,
        )
        return test

    # =========================================================================
    # Assignment & tracking
    # =========================================================================

    def assign(self, test: ABTest, session_id: str) -> ABVariant:
        return pick_variant(test.variants, hash_to_unit(test.test_id, session_id))

    def get_variant(self, test_id: str, session_id: str) -> str:
        """
        Variant for a session. Stable for the life of the test.

        Exposure is recorded only while the test is active.
        """
        test = self.get_test(test_id)
        variant = self.assign(test, session_id)
        if test.is_active:
            with self._lock:
                self._exposures[test_id][variant.variant_id].add(session_id)
        return variant.variant_id

    def track_impression(
        self,
        test_id: str,
        session_id: str,
        variant_id: Optional[str] = None,
    ) -> bool:
        """Record one impression. Call once per page view."""
        return self._track(test_id, session_id, variant_id, EventType.IMPRESSION)

    def track_conversion(
        self,
        test_id: str,
        session_id: str,
        variant_id: Optional[str] = None,
        value: Optional[float] = None,
    ) -> bool:
        """Record a conversion. A session counts at most once toward the rate."""
        return self._track(test_id, session_id, variant_id, EventType.CONVERSION, value)

    def _track(
        self,
        test_id: str,
        session_id: str,
        variant_id: Optional[str],
        event_type: EventType,
        value: Optional[float] = None,
    ) -> bool:
        test = self.get_test(test_id)
        if variant_id is None:
            variant_id = self.assign(test, session_id).variant_id
        elif test.get_variant(variant_id) is None:
            raise ValueError(f"Unknown variant '{variant_id}' for test '{test_id}'")

        if test.status is TestStatus.COMPLETED or test.status is TestStatus.DRAFT:
            self.logger.warning(
                "Event ignored for inactive test",
                test_id=test_id,
                status=test.status.value,
                event_type=event_type.value,
            )
            return False

        event = ABTestResult(
            test_id=test_id,
            variant_id=variant_id,
            session_id=session_id,
            event_type=event_type,
            timestamp=self._clock(),
            value=value,
        )
        with self._lock:
            self._events[test_id].append(event)
            self._exposures[test_id][variant_id].add(session_id)
        return True

    def events(self, test_id: str) -> List[ABTestResult]:
        self.get_test(test_id)
        with self._lock:
            return list(self._events.get(test_id, ()))

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze_results(self, test_id: str) -> Dict[str, Any]:
        """
        Per-variant stats plus significance of each variant against the
        control. ``winner`` stays None unless a comparison clears the test's
        confidence level.
        """
        test = self.get_test(test_id)
        with self._lock:
            events = list(self._events.get(test_id, ()))
            exposures = {vid: set(s) for vid, s in self._exposures.get(test_id, {}).items()}

        stats: Dict[str, Dict[str, Any]] = {}
        for variant in test.variants:
            vid = variant.variant_id
            impressions = [e for e in events if e.variant_id == vid and e.event_type is EventType.IMPRESSION]
            conversions = [e for e in events if e.variant_id == vid and e.event_type is EventType.CONVERSION]
            converters = {e.session_id for e in conversions}
            exposed = exposures.get(vid, set())
            stats[vid] = {
                "variant_id": vid,
                "is_control": variant.is_control,
                "traffic_allocation": variant.traffic_allocation,
                "exposures": len(exposed),
                "impressions": len(impressions),
                "conversion_events": len(conversions),
                "conversions": len(converters),
                "conversion_rate": round(conversion_rate(len(converters), len(exposed)), 6),
                "conversion_value": sum(e.value for e in conversions if e.value is not None),
            }

        control = test.control
        control_stats = stats[control.variant_id]
        comparisons: Dict[str, Dict[str, Any]] = {}
        for variant in test.variants:
            if variant.variant_id == control.variant_id:
                continue
            variant_stats = stats[variant.variant_id]
            result = z_test_proportions(
                control_stats["conversions"],
                control_stats["exposures"],
                variant_stats["conversions"],
                variant_stats["exposures"],
                required_confidence=test.confidence_level,
            )
            comparisons[variant.variant_id] = result.to_dict()

        winner = self._pick_winner(test, comparisons)
        sample_reached = self._sample_size_reached(test, stats)
        if winner is not None:
            recommendation = "implement_winner"
        elif sample_reached:
            recommendation = "no_significant_difference"
        else:
            recommendation = "continue"

        best_variant = max(
            test.variants,
            key=lambda v: (stats[v.variant_id]["conversion_rate"], -test.variants.index(v)),
        ).variant_id

        analysis = {
            "test_id": test_id,
            "status": test.status.value,
            "control": control.variant_id,
            "confidence_threshold": test.confidence_level,
            "variants": stats,
            "comparisons": comparisons,
            "winner": winner,
            "summary": {
                "total_participants": sum(s["exposures"] for s in stats.values()),
                "best_variant": best_variant,
                "recommendation": recommendation,
                "sample_size_reached": sample_reached,
            },
        }
        # Two-variant tests report the single comparison at the top level
        if len(comparisons) == 1:
            only = next(iter(comparisons.values()))
            analysis["z_statistic"] = only["z_statistic"]
            analysis["p_value"] = only["p_value"]
            analysis["confidence_level"] = only["confidence_level"]

        self.logger.info(
            "A/B test analyzed",
            test_id=test_id,
            winner=winner,
            recommendation=recommendation,
            participants=analysis["summary"]["total_participants"],
        )
        return analysis

    @staticmethod
    def _pick_winner(test: ABTest, comparisons: Dict[str, Dict[str, Any]]) -> Optional[str]:
        if not comparisons:
            return None
        better = [
            (c["variant_rate"], vid) for vid, c in comparisons.items()
            if c["is_significant"] and c["variant_rate"] > c["control_rate"]
        ]
        if better:
            return sorted(better, key=lambda pair: (-pair[0], pair[1]))[0][1]
        if all(c["is_significant"] and c["variant_rate"] < c["control_rate"] for c in comparisons.values()):
            return test.control.variant_id
        return None

    def _sample_size_reached(self, test: ABTest, stats: Dict[str, Dict[str, Any]]) -> bool:
        if test.target_sample_size:
            return sum(s["exposures"] for s in stats.values()) >= test.target_sample_size
        return all(s["exposures"] >= self.min_sample_per_variant for s in stats.values())
