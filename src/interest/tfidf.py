"""
TF-IDF term weighting.

    tf(t, d)     = occurrences(t, d) / total_terms(d)
    idf(t, D)    = ln(|D| / (1 + df(t, D)))
    tfidf(t,d,D) = tf * idf

The +1 in the idf denominator keeps unseen terms finite. It also makes idf
negative for terms present in (almost) every document; TermWeighter clamps
those to zero.
"""

import math
import re
from collections import Counter
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from config.constants import STOP_WORDS


_TOKEN_PATTERN = re.compile(r"[a-z0-9]+(?:[-'][a-z0-9]+)*")


class CorpusScope(str, Enum):
    """Which documents the idf statistics are computed over."""
    STATIC = "static"     # content catalog texts
    GLOBAL = "global"     # recent search queries across all sessions
    SESSION = "session"   # the session's own search queries


def tokenize(text: Optional[str]) -> List[str]:
    if not text:
        return []
    return _TOKEN_PATTERN.findall(text.lower())


def term_frequency(term: str, document: str) -> float:
    tokens = tokenize(document)
    if not tokens:
        return 0.0
    return tokens.count(term.lower()) / len(tokens)


def document_frequency(term: str, corpus: Sequence[str]) -> int:
    term = term.lower()
    return sum(1 for doc in corpus if term in set(tokenize(doc)))


def inverse_document_frequency(term: str, corpus: Sequence[str]) -> float:
    if not corpus:
        return 0.0
    return math.log(len(corpus) / (1 + document_frequency(term, corpus)))


def tfidf(term: str, document: str, corpus: Sequence[str]) -> float:
    return term_frequency(term, document) * inverse_document_frequency(term, corpus)


class TermWeighter:
    """
    TF-IDF weighting against a fixed corpus with precomputed document
    frequencies.

    Usage:
        weighter = TermWeighter(["smart home hubs", "contractor tools", "safety basics"])
        weighter.weigh("smart home automation")
        # "automation" is unseen in the corpus, so it carries the most weight
    """

    def __init__(
        self,
        corpus: Iterable[str] = (),
        stop_words: FrozenSet[str] = STOP_WORDS,
    ):
        self._stop_words = stop_words
        self._doc_freq: Counter = Counter()
        self._size = 0
        for doc in corpus:
            self.add_document(doc)

    @property
    def corpus_size(self) -> int:
        return self._size

    def add_document(self, document: str) -> None:
        self._size += 1
        self._doc_freq.update(set(tokenize(document)))

    def idf(self, term: str) -> float:
        if self._size == 0:
            return 0.0
        return math.log(self._size / (1 + self._doc_freq.get(term.lower(), 0)))

    def weigh(self, document: str) -> Dict[str, float]:
        """
        Non-negative tf-idf weight for each content term of ``document``.

        Stop words are skipped. When every term's idf clamps to zero (tiny
        or saturated corpora) plain term frequency is returned instead, so a
        document never loses all its terms to corpus statistics.

        Returns:
            {} for a document without content terms
        """
        tokens = tokenize(document)
        if not tokens:
            return {}
        counts = Counter(t for t in tokens if t not in self._stop_words)
        if not counts:
            return {}
        total = len(tokens)
        tf = {term: n / total for term, n in counts.items()}
        weighted = {term: freq * max(self.idf(term), 0.0) for term, freq in tf.items()}
        if not any(w > 0 for w in weighted.values()):
            return tf
        return {term: w for term, w in weighted.items() if w > 0}
