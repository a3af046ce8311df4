"""
Interest inference: TF-IDF term weighting and per-session interest vectors.
"""

from interest.calculator import (
    InMemoryVectorCache,
    InterestVector,
    InterestVectorCalculator,
    RedisVectorCache,
)
from interest.tfidf import (
    CorpusScope,
    TermWeighter,
    inverse_document_frequency,
    term_frequency,
    tfidf,
    tokenize,
)

__all__ = [
    "CorpusScope",
    "InMemoryVectorCache",
    "InterestVector",
    "InterestVectorCalculator",
    "RedisVectorCache",
    "TermWeighter",
    "inverse_document_frequency",
    "term_frequency",
    "tfidf",
    "tokenize",
]
