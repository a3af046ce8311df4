"""
Temporal decay for signal weights.

effective = base_weight * exp(-λ * age), λ = ln 2 / half_life.
Signals past the retention window contribute nothing.
"""

import math
import time
from typing import Optional

SECONDS_PER_DAY = 24 * 3600
DEFAULT_HALF_LIFE_SECONDS = 7 * SECONDS_PER_DAY
DEFAULT_MAX_AGE_SECONDS = 30 * SECONDS_PER_DAY


def decay_rate(half_life_seconds: float = DEFAULT_HALF_LIFE_SECONDS) -> float:
    if half_life_seconds <= 0:
        raise ValueError("half_life_seconds must be positive")
    return math.log(2) / half_life_seconds


def decay(
    base_weight: float,
    age_seconds: float,
    half_life_seconds: float = DEFAULT_HALF_LIFE_SECONDS,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
) -> float:
    """Effective weight of a signal ``age_seconds`` old. Future timestamps count as age 0."""
    if age_seconds > max_age_seconds:
        return 0.0
    age = max(0.0, age_seconds)
    return base_weight * math.exp(-decay_rate(half_life_seconds) * age)


def recency_weight(
    timestamp: float,
    now: Optional[float] = None,
    half_life_seconds: float = DEFAULT_HALF_LIFE_SECONDS,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
) -> float:
    now = time.time() if now is None else now
    return decay(1.0, now - timestamp, half_life_seconds, max_age_seconds)


def is_expired(
    timestamp: float,
    now: Optional[float] = None,
    max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
) -> bool:
    now = time.time() if now is None else now
    return (now - timestamp) > max_age_seconds
