"""
Statistical tests for A/B experiments.

Two-proportion z-test on conversion rates:

    p_pool = (x1 + x2) / (n1 + n2)
    se     = sqrt(p_pool * (1 - p_pool) * (1/n1 + 1/n2))
    z      = (p2 - p1) / se
    p      = 2 * (1 - Φ(|z|))

Zero trials on either side, or a zero standard error, is inconclusive
(z = 0, p = 1) rather than an error.
"""

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
from scipy import stats


@dataclass(frozen=True)
class ProportionTestResult:
    """Outcome of comparing a variant's conversion rate to the control's."""
    control_rate: float
    variant_rate: float
    z_statistic: float
    p_value: float
    confidence_level: float
    is_significant: bool
    improvement: float  # relative lift over control, percent

    def to_dict(self) -> Dict[str, Any]:
        return {
            "control_rate": round(self.control_rate, 6),
            "variant_rate": round(self.variant_rate, 6),
            "z_statistic": round(self.z_statistic, 4),
            "p_value": round(self.p_value, 4),
            "confidence_level": round(self.confidence_level, 4),
            "is_significant": self.is_significant,
            "improvement": round(self.improvement, 2),
        }


def conversion_rate(conversions: int, trials: int) -> float:
    return conversions / trials if trials > 0 else 0.0


def z_test_proportions(
    control_conversions: int,
    control_trials: int,
    variant_conversions: int,
    variant_trials: int,
    required_confidence: float = 0.95,
) -> ProportionTestResult:
    """
    Two-sided two-proportion z-test. Positive z means the variant converts
    better than the control.
    """
    p1 = conversion_rate(control_conversions, control_trials)
    p2 = conversion_rate(variant_conversions, variant_trials)
    improvement = ((p2 - p1) / p1) * 100 if p1 > 0 else 0.0

    if control_trials <= 0 or variant_trials <= 0:
        return _inconclusive(p1, p2, improvement)

    p_pooled = (control_conversions + variant_conversions) / (control_trials + variant_trials)
    se = float(np.sqrt(p_pooled * (1 - p_pooled) * (1 / control_trials + 1 / variant_trials)))
    if se == 0:
        return _inconclusive(p1, p2, improvement)

    z_stat = (p2 - p1) / se
    p_value = float(2 * stats.norm.sf(abs(z_stat)))
    confidence = 1.0 - p_value
    return ProportionTestResult(
        control_rate=p1,
        variant_rate=p2,
        z_statistic=float(z_stat),
        p_value=p_value,
        confidence_level=confidence,
        is_significant=confidence >= required_confidence,
        improvement=improvement,
    )


def _inconclusive(p1: float, p2: float, improvement: float) -> ProportionTestResult:
    return ProportionTestResult(
        control_rate=p1,
        variant_rate=p2,
        z_statistic=0.0,
        p_value=1.0,
        confidence_level=0.0,
        is_significant=False,
        improvement=improvement,
    )
