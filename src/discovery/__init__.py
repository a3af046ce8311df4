"""
Discovery: content gap analysis and search result enhancement.
"""

from discovery.gap_analyzer import ContentGapAnalyzer, normalize_topic
from discovery.search_enhancer import SearchEnhancer

__all__ = [
    "ContentGapAnalyzer",
    "SearchEnhancer",
    "normalize_topic",
]
