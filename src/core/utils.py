"""
Core Utility Functions.

Small numeric and string helpers shared by the scoring modules.
"""

import math
import re
from typing import Dict, Mapping, Optional

import numpy as np


_SLUG_SEPARATORS = re.compile(r"[\s_/]+")
_SLUG_INVALID = re.compile(r"[^a-z0-9\-]")


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def slugify_category(value: Optional[str]) -> str:
    """
    Normalize a category label to a slug.

    "Smart Home" -> "smart-home", "business_tools" -> "business-tools".
    Returns an empty string for blank input.
    """
    if not value:
        return ""
    slug = _SLUG_SEPARATORS.sub("-", str(value).strip().lower())
    slug = _SLUG_INVALID.sub("", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


def l1_normalize(weights: Mapping[str, float]) -> Dict[str, float]:
    """
    Scale non-negative weights so they sum to 1.0.

    Negative and zero entries are dropped. An all-zero input yields {}.
    """
    positive = {k: float(v) for k, v in weights.items() if v > 0}
    total = math.fsum(positive.values())
    if total <= 0:
        return {}
    return {k: v / total for k, v in positive.items()}


def top_keys(weights: Mapping[str, float], k: int) -> list:
    """Top-k keys by weight descending, ties broken by key ascending."""
    ordered = sorted(weights.items(), key=lambda kv: (-kv[1], kv[0]))
    return [key for key, _ in ordered[:k]]


def dense_pair(a: Mapping[str, float], b: Mapping[str, float]) -> tuple:
    """
    Project two sparse vectors onto their shared key space.

    Returns:
        (np.ndarray, np.ndarray) aligned on the sorted union of keys
    """
    keys = sorted(set(a) | set(b))
    va = np.fromiter((float(a.get(k, 0.0)) for k in keys), dtype=np.float64, count=len(keys))
    vb = np.fromiter((float(b.get(k, 0.0)) for k in keys), dtype=np.float64, count=len(keys))
    return va, vb
