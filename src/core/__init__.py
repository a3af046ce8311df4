"""
Core module for cross-cutting concerns.

This module provides:
- Structured logging configuration
- Request tracing middleware
- Common utilities
"""

from core.logging import configure_logging, get_logger
from core.utils import clamp, l1_normalize, slugify_category

__all__ = [
    "configure_logging",
    "get_logger",
    "clamp",
    "l1_normalize",
    "slugify_category",
]
