"""
Interest Vector Calculator.

Turns a session's recent signals into an L1-normalized category
distribution plus a confidence score:

1. Snapshot the session's signals (timestamp <= now, within retention)
2. effective_weight = decay(base_weight, age)
3. Each payload yields (category, raw_weight) pairs:
   - search_query: explicit category + TF-IDF terms of the query
   - time_spent: resolved category scaled by engagement time
   - everything else: its category, or the category of the content it
     points at
4. category_score += effective_weight * raw_weight
5. L1-normalize
6. confidence = (1 - exp(-signal_count / 3)) * mean recency

Vectors are cached per session and tagged with the signal store version
they were computed from; any newer signal makes the tag stale. A signal
stamped slightly in the future (client clock skew) is left out until its
timestamp passes, and the vector expires at that moment rather than at the
end of the TTL.
"""

import json
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from config.constants import DEFAULT_EXTRACTION_CONFIG, TERM_CATEGORY_MAP, ExtractionConfig
from core.logging import LoggerMixin
from core.utils import clamp, l1_normalize, slugify_category, top_keys
from interest.tfidf import CorpusScope, TermWeighter
from signals.decay import DEFAULT_HALF_LIFE_SECONDS, DEFAULT_MAX_AGE_SECONDS, decay
from signals.models import SearchQueryPayload, Signal, SignalPayload, TimeSpentPayload
from signals.store import SignalSnapshot, SignalStore


ContentResolver = Callable[[str], Optional[str]]


# =============================================================================
# InterestVector
# =============================================================================

@dataclass
class InterestVector:
    """Derived, cached interest summary for one session."""
    session_id: str
    weights: Dict[str, float] = field(default_factory=dict)
    confidence: float = 0.0
    signal_count: int = 0
    last_updated: float = field(default_factory=time.time)
    version: int = 0
    valid_until: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return not self.weights

    def top_categories(self, k: int = 3) -> List[str]:
        return top_keys(self.weights, k)

    def to_dict(self) -> Dict:
        return {
            "session_id": self.session_id,
            "weights": dict(self.weights),
            "confidence": self.confidence,
            "signal_count": self.signal_count,
            "last_updated": self.last_updated,
            "version": self.version,
            "valid_until": self.valid_until,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> "InterestVector":
        return cls(
            session_id=data["session_id"],
            weights={k: float(v) for k, v in data.get("weights", {}).items()},
            confidence=float(data.get("confidence", 0.0)),
            signal_count=int(data.get("signal_count", 0)),
            last_updated=float(data.get("last_updated", 0.0)),
            version=int(data.get("version", 0)),
            valid_until=None if data.get("valid_until") is None else float(data["valid_until"]),
        )

    @classmethod
    def empty(cls, session_id: str, version: int = 0) -> "InterestVector":
        return cls(session_id=session_id, version=version)


# =============================================================================
# Cache Backends
# =============================================================================

class InMemoryVectorCache:
    """Process-local vector cache. Entries stay until replaced or deleted."""

    def __init__(self):
        self._vectors: Dict[str, InterestVector] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Optional[InterestVector]:
        with self._lock:
            return self._vectors.get(session_id)

    def set(self, vector: InterestVector) -> None:
        with self._lock:
            self._vectors[vector.session_id] = vector

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._vectors.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._vectors)


class RedisVectorCache:
    """
    Redis-backed vector cache (JSON values with a TTL).

    Entries live twice the freshness TTL so a stale vector is still
    available as a soft-deadline fallback.
    """

    def __init__(self, client, ttl_seconds: int = 3600, prefix: str = "interest:"):
        self._redis = client
        self._ttl = int(ttl_seconds) * 2
        self._prefix = prefix

    def _key(self, session_id: str) -> str:
        return f"{self._prefix}{session_id}"

    def get(self, session_id: str) -> Optional[InterestVector]:
        data = self._redis.get(self._key(session_id))
        if not data:
            return None
        return InterestVector.from_dict(json.loads(data))

    def set(self, vector: InterestVector) -> None:
        self._redis.setex(self._key(vector.session_id), self._ttl, json.dumps(vector.to_dict()))

    def delete(self, session_id: str) -> None:
        self._redis.delete(self._key(session_id))


# =============================================================================
# Calculator
# =============================================================================

class InterestVectorCalculator(LoggerMixin):
    """
    Compute and cache per-session interest vectors.

    Usage:
        calc = InterestVectorCalculator(store, corpus=catalog_texts)
        vector = calc.get_interest_vector("session-1")
        if vector.confidence >= 0.6: ...
    """

    GLOBAL_CORPUS_REFRESH_SECONDS = 60.0

    def __init__(
        self,
        store: SignalStore,
        corpus: Sequence[str] = (),
        corpus_scope: CorpusScope = CorpusScope.STATIC,
        content_resolver: Optional[ContentResolver] = None,
        cache=None,
        cache_ttl_seconds: float = 3600,
        half_life_seconds: float = DEFAULT_HALF_LIFE_SECONDS,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        term_categories: Optional[Dict[str, str]] = None,
        config: ExtractionConfig = DEFAULT_EXTRACTION_CONFIG,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._scope = CorpusScope(corpus_scope)
        self._static_weighter = TermWeighter(corpus)
        self._resolve_content = content_resolver
        self._cache = cache if cache is not None else InMemoryVectorCache()
        self._cache_ttl = cache_ttl_seconds
        self._half_life = half_life_seconds
        self._max_age = max_age_seconds
        self._term_categories = dict(TERM_CATEGORY_MAP if term_categories is None else term_categories)
        self._config = config
        self._clock = clock

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        self._global_weighter: Optional[TermWeighter] = None
        self._global_built_at = 0.0
        self._global_guard = threading.Lock()

    # =========================================================================
    # Public API
    # =========================================================================

    def get_interest_vector(self, session_id: str) -> InterestVector:
        """
        Cached vector if still valid, otherwise recompute.

        Concurrent callers for the same session wait on one recompute;
        different sessions use different locks.
        """
        cached = self._cache.get(session_id)
        if self._is_fresh(cached, session_id):
            return cached

        with self._lock_for(session_id):
            cached = self._cache.get(session_id)
            if self._is_fresh(cached, session_id):
                return cached
            vector = self.compute(session_id)
            self._cache.set(vector)
            return vector

    def peek(self, session_id: str) -> Optional[InterestVector]:
        """Last cached vector, fresh or not. Never computes."""
        return self._cache.get(session_id)

    def invalidate(self, session_id: str) -> None:
        self._cache.delete(session_id)

    def forget(self, session_id: str) -> None:
        """Drop everything held for a session whose signals are gone."""
        self._cache.delete(session_id)
        with self._locks_guard:
            self._locks.pop(session_id, None)

    def tracked_sessions(self) -> int:
        with self._locks_guard:
            return len(self._locks)

    def set_corpus(self, corpus: Sequence[str]) -> None:
        """Replace the static corpus, e.g. after the content catalog changes."""
        self._static_weighter = TermWeighter(corpus)

    def compute(self, session_id: str) -> InterestVector:
        """Build a fresh vector from the store. Does not touch the cache."""
        start = time.perf_counter()
        snapshot = self._store.snapshot(session_id, until=self._clock())
        vector = self.compute_from_snapshot(snapshot)
        self.logger.debug(
            "Interest vector computed",
            session_id=session_id,
            signal_count=vector.signal_count,
            confidence=round(vector.confidence, 4),
            top=vector.top_categories(3),
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return vector

    def compute_from_snapshot(self, snapshot: SignalSnapshot) -> InterestVector:
        now = snapshot.taken_at
        weighter = self._weighter_for(snapshot)
        content_categories = self._content_categories(snapshot.signals)

        scores: Dict[str, float] = {}
        recencies: List[float] = []
        for signal in snapshot.signals:
            age = now - signal.timestamp
            effective = decay(signal.base_weight, age, self._half_life, self._max_age)
            if effective <= 0:
                continue
            pairs = self.extract_categories(signal.payload, weighter, content_categories)
            contributed = False
            for category, raw_weight in pairs:
                if raw_weight <= 0:
                    continue
                scores[category] = scores.get(category, 0.0) + effective * raw_weight
                contributed = True
            if contributed:
                recencies.append(decay(1.0, age, self._half_life, self._max_age))

        weights = l1_normalize(scores)
        signal_count = len(recencies) if weights else 0
        return InterestVector(
            session_id=snapshot.session_id,
            weights=weights,
            confidence=self.confidence(signal_count, recencies),
            signal_count=signal_count,
            last_updated=now,
            version=snapshot.version,
            valid_until=snapshot.next_timestamp,
        )

    def confidence(self, signal_count: int, recencies: Sequence[float]) -> float:
        """
        (1 - exp(-n / scale)) * mean recency.

        Increases with signal count and with recency; 3 fresh signals clear
        the 0.6 threshold, 2 do not.
        """
        if signal_count <= 0 or not recencies:
            return 0.0
        volume = 1.0 - math.exp(-signal_count / self._config.CONFIDENCE_SCALE)
        mean_recency = math.fsum(recencies) / len(recencies)
        return clamp(volume * mean_recency)

    # =========================================================================
    # Category Extraction
    # =========================================================================

    def extract_categories(
        self,
        payload: SignalPayload,
        weighter: TermWeighter,
        content_categories: Optional[Dict[str, str]] = None,
    ) -> List[Tuple[str, float]]:
        """(category, raw_weight) pairs contributed by one payload."""
        if isinstance(payload, SearchQueryPayload):
            return self._search_categories(payload, weighter)

        category = payload.category or self._resolve(payload.content_ref, content_categories)
        if not category:
            return []

        if isinstance(payload, TimeSpentPayload):
            strength = min(1.0, payload.engagement_seconds / self._config.FULL_ENGAGEMENT_SECONDS)
            if payload.scroll_depth is not None:
                strength *= 0.5 + 0.5 * payload.scroll_depth
            return [(category, strength)]

        return [(category, 1.0)]

    def _search_categories(
        self, payload: SearchQueryPayload, weighter: TermWeighter
    ) -> List[Tuple[str, float]]:
        terms = weighter.weigh(payload.query)
        mapped: Dict[str, float] = {}
        for term, weight in terms.items():
            category = self._term_categories.get(term)
            if category:
                mapped[category] = mapped.get(category, 0.0) + weight

        if payload.category:
            if not mapped:
                return [(payload.category, 1.0)]
            share = self._config.SEARCH_CATEGORY_SHARE
            rest = l1_normalize(mapped)
            return [(payload.category, share)] + [
                (category, (1.0 - share) * w) for category, w in rest.items()
            ]

        if not mapped:
            keep = top_keys(terms, self._config.MAX_UNMAPPED_TERMS)
            mapped = {slugify_category(t): terms[t] for t in keep if slugify_category(t)}
        return list(l1_normalize(mapped).items())

    def _resolve(
        self,
        content_id: Optional[str],
        content_categories: Optional[Dict[str, str]],
    ) -> Optional[str]:
        if not content_id:
            return None
        if content_categories and content_id in content_categories:
            return content_categories[content_id]
        if self._resolve_content is None:
            return None
        try:
            return slugify_category(self._resolve_content(content_id)) or None
        except Exception as e:
            self.logger.warning("Content category lookup failed", content_id=content_id, error=str(e))
            return None

    @staticmethod
    def _content_categories(signals: Sequence[Signal]) -> Dict[str, str]:
        """content_id -> most recent explicit category seen in this session."""
        mapping: Dict[str, str] = {}
        for signal in signals:
            ref = signal.payload.content_ref
            if ref and signal.payload.category:
                mapping[ref] = signal.payload.category
        return mapping

    # =========================================================================
    # Internals
    # =========================================================================

    def _is_fresh(self, vector: Optional[InterestVector], session_id: str) -> bool:
        if vector is None:
            return False
        now = self._clock()
        if now - vector.last_updated > self._cache_ttl:
            return False
        if vector.valid_until is not None and now >= vector.valid_until:
            return False
        return vector.version == self._store.version(session_id)

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def _weighter_for(self, snapshot: SignalSnapshot) -> TermWeighter:
        if self._scope is CorpusScope.SESSION:
            return TermWeighter(
                s.payload.query for s in snapshot.signals
                if isinstance(s.payload, SearchQueryPayload)
            )
        if self._scope is CorpusScope.GLOBAL:
            return self._global_corpus_weighter()
        return self._static_weighter

    def _global_corpus_weighter(self) -> TermWeighter:
        now = self._clock()
        with self._global_guard:
            stale = now - self._global_built_at > self.GLOBAL_CORPUS_REFRESH_SECONDS
            if self._global_weighter is None or stale:
                self._global_weighter = TermWeighter(self._store.iter_search_queries())
                self._global_built_at = now
            return self._global_weighter
