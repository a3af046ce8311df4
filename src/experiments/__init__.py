"""
A/B testing for personalized slots.

    from experiments import ABTestingEngine

    engine = ABTestingEngine(confidence_level=0.95)
    test_id = engine.create_test(config)
    engine.get_variant(test_id, session_id)
"""

from experiments.ab_testing import ABTestingEngine, hash_to_unit
from experiments.models import (
    ABTest,
    ABTestConfig,
    ABTestResult,
    ABVariant,
    ABVariantConfig,
    EventType,
    InvalidTransitionError,
    TestConfigError,
    TestNotFoundError,
    TestStatus,
)
from experiments.statistics import ProportionTestResult, z_test_proportions

__all__ = [
    "ABTest",
    "ABTestConfig",
    "ABTestResult",
    "ABTestingEngine",
    "ABVariant",
    "ABVariantConfig",
    "EventType",
    "InvalidTransitionError",
    "ProportionTestResult",
    "TestConfigError",
    "TestNotFoundError",
    "TestStatus",
    "hash_to_unit",
    "z_test_proportions",
]
