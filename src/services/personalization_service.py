"""
Personalization service.

Single entry point wiring signal ingestion, interest vectors, relevance
scoring, page assembly, A/B tests and content gap analysis together. The
API layer and any other host talk to this class only.

Deadlines:
- Interest vector lookup during assembly is bounded by vector_budget_ms.
  On timeout the last cached vector is used if there is one; otherwise
  every slot falls back. The computation keeps running and fills the cache
  for the next request.
- Page assembly itself is bounded by the personalizer's assembly budget.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from config.settings import Settings, get_settings
from core.logging import LoggerMixin
from discovery.gap_analyzer import ContentGapAnalyzer
from discovery.search_enhancer import SearchEnhancer
from experiments.ab_testing import ABTestingEngine
from experiments.models import ABTestConfig
from interest.calculator import InMemoryVectorCache, InterestVector, InterestVectorCalculator, RedisVectorCache
from interest.tfidf import CorpusScope
from personalization.analytics import PersonalizationAnalytics, SupabaseAnalyticsSink
from personalization.catalog import InMemoryVariantCatalog
from personalization.models import ContentItem, FallbackReason, PageAssembly, SlotDefinition
from personalization.personalizer import ComponentPersonalizer
from scoring.diversity import DiversityConfig, DiversitySelector
from scoring.relevance import RelevanceScorer, ScoredCandidate
from signals.models import SearchQueryPayload, build_signal
from signals.store import SignalStore


class PersonalizationService(LoggerMixin):
    """
    Usage:
        service = PersonalizationService.from_settings()
        service.record_signal("s1", "search_query", {"query": "smart home automation"})
        page = service.assemble_page("s1")
        page.metadata["personalization_applied"]
    """

    def __init__(
        self,
        store: SignalStore,
        calculator: InterestVectorCalculator,
        catalog: InMemoryVariantCatalog,
        ab_engine: ABTestingEngine,
        personalizer: ComponentPersonalizer,
        gap_analyzer: ContentGapAnalyzer,
        search_enhancer: Optional[SearchEnhancer] = None,
        signal_weights: Optional[Mapping[str, float]] = None,
        vector_budget_ms: float = 50,
        max_workers: int = 8,
    ):
        self.store = store
        self.calculator = calculator
        self.catalog = catalog
        self.ab_engine = ab_engine
        self.personalizer = personalizer
        self.gap_analyzer = gap_analyzer
        self.search_enhancer = search_enhancer or SearchEnhancer(gap_analyzer, personalizer.scorer)
        self.signal_weights = dict(signal_weights or {})
        self.vector_budget_ms = vector_budget_ms
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="personalization")
        self._closed = False
        self._close_lock = threading.Lock()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        catalog: Optional[InMemoryVariantCatalog] = None,
        vector_cache=None,
        analytics: Optional[PersonalizationAnalytics] = None,
    ) -> "PersonalizationService":
        """
        Build the full object graph from settings.

        Redis and Supabase are used when configured and reachable; otherwise
        the in-memory cache and analytics sink are used.
        """
        settings = settings or get_settings()
        catalog = catalog if catalog is not None else InMemoryVariantCatalog().seed_defaults()

        if vector_cache is None:
            from config.database import get_redis_client
            client = get_redis_client(settings)
            if client is not None:
                vector_cache = RedisVectorCache(client, ttl_seconds=settings.interest_cache_ttl_seconds)
            else:
                vector_cache = InMemoryVectorCache()

        if analytics is None:
            sink = None
            if settings.supabase_configured:
                from config.database import get_supabase_client_optional
                client = get_supabase_client_optional()
                if client is not None:
                    sink = SupabaseAnalyticsSink(client, table=settings.analytics_table)
            analytics = PersonalizationAnalytics(sink)

        store = SignalStore(retention_seconds=settings.signal_retention_seconds)
        calculator = InterestVectorCalculator(
            store,
            corpus=catalog.corpus_texts(),
            corpus_scope=CorpusScope(settings.corpus_scope),
            content_resolver=catalog.category_of,
            cache=vector_cache,
            cache_ttl_seconds=settings.interest_cache_ttl_seconds,
            half_life_seconds=settings.decay_half_life_seconds,
            max_age_seconds=settings.signal_retention_seconds,
        )
        ab_engine = ABTestingEngine(confidence_level=settings.ab_confidence_level)
        scorer = RelevanceScorer()
        personalizer = ComponentPersonalizer(
            catalog,
            ab_engine=ab_engine,
            analytics=analytics,
            scorer=scorer,
            selector=DiversitySelector(DiversityConfig(diversity_factor=settings.diversity_factor)),
            confidence_threshold=settings.confidence_threshold,
            diversity_factor=settings.diversity_factor,
            assembly_budget_ms=settings.assembly_budget_ms,
        )
        gap_analyzer = ContentGapAnalyzer(
            catalog.all_content,
            interest_source=calculator.get_interest_vector,
            min_relevant_items=settings.gap_min_relevant_items,
            min_similarity=settings.gap_min_similarity,
            max_topics=settings.gap_max_topics,
        )
        return cls(
            store=store,
            calculator=calculator,
            catalog=catalog,
            ab_engine=ab_engine,
            personalizer=personalizer,
            gap_analyzer=gap_analyzer,
            signal_weights=settings.signal_weights,
            vector_budget_ms=settings.vector_budget_ms,
            max_workers=settings.max_workers,
        )

    # =========================================================================
    # Signals & interest
    # =========================================================================

    def record_signal(
        self,
        session_id: str,
        signal_type: str,
        payload: Optional[Mapping[str, Any]],
        timestamp: Optional[float] = None,
    ) -> str:
        """
        Validate and store a signal. Returns its id.

        The session's cached interest vector is invalidated by the store's
        version bump; recomputation is deferred to the next read.

        Raises:
            InvalidSignalError: unknown type or malformed payload
        """
        signal = build_signal(
            session_id,
            signal_type,
            payload,
            timestamp=timestamp,
            base_weight=self.signal_weights.get(signal_type),
        )
        signal_id = self.store.append(signal)
        self.logger.debug(
            "Signal recorded",
            session_id=session_id,
            signal_type=signal_type,
            signal_id=signal_id,
        )

        # Zero-result searches are content gap candidates
        payload_obj = signal.payload
        if isinstance(payload_obj, SearchQueryPayload) and payload_obj.results_count == 0:
            self.gap_analyzer.submit(payload_obj.query, session_id)
        return signal_id

    def get_interest_vector(self, session_id: str) -> InterestVector:
        return self.calculator.get_interest_vector(session_id)

    def purge_expired_signals(self) -> int:
        """Drop expired signals and release cached vectors of sessions left empty."""
        result = self.store.purge()
        for session_id in result.dropped_sessions:
            self.calculator.forget(session_id)
        return result.removed

    def delete_session(self, session_id: str) -> bool:
        deleted = self.store.delete_session(session_id)
        self.calculator.forget(session_id)
        return deleted

    def add_content(self, items: Iterable[ContentItem]) -> None:
        """Register site content and rebuild the static term corpus."""
        for item in items:
            self.catalog.add_content(item)
        self.calculator.set_corpus(self.catalog.corpus_texts())

    # =========================================================================
    # Scoring & assembly
    # =========================================================================

    def score_relevance(
        self,
        interest_vector: Union[InterestVector, Mapping[str, float], None],
        candidates: Iterable[Any],
    ) -> List[ScoredCandidate]:
        weights = interest_vector.weights if isinstance(interest_vector, InterestVector) else interest_vector
        return self.personalizer.scorer.score_relevance(weights, candidates)

    def assemble_page(
        self,
        session_id: str,
        slot_definitions: Optional[Iterable[Union[SlotDefinition, str, dict]]] = None,
    ) -> PageAssembly:
        vector, forced = self._vector_within_budget(session_id)
        return self.personalizer.assemble_page(
            session_id,
            vector,
            slots=slot_definitions,
            fallback_reason=forced,
        )

    def _vector_within_budget(self, session_id: str) -> Tuple[Optional[InterestVector], Optional[FallbackReason]]:
        future = self._executor.submit(self.calculator.get_interest_vector, session_id)
        try:
            return future.result(timeout=self.vector_budget_ms / 1000.0), None
        except FutureTimeoutError:
            cached = self.calculator.peek(session_id)
            self.logger.warning(
                "Interest vector lookup exceeded budget",
                session_id=session_id,
                budget_ms=self.vector_budget_ms,
                used_cached=cached is not None,
            )
            if cached is not None:
                return cached, None
            return None, FallbackReason.VECTOR_TIMEOUT
        except Exception as e:
            self.logger.error("Interest vector lookup failed", session_id=session_id, error=str(e))
            return None, FallbackReason.SLOT_ERROR

    # =========================================================================
    # Experiments
    # =========================================================================

    def create_test(self, config: Union[ABTestConfig, Mapping[str, Any]]) -> str:
        return self.ab_engine.create_test(config)

    def get_variant(self, test_id: str, session_id: str) -> str:
        return self.ab_engine.get_variant(test_id, session_id)

    def track_impression(self, test_id: str, session_id: str, variant_id: Optional[str] = None) -> bool:
        return self.ab_engine.track_impression(test_id, session_id, variant_id)

    def track_conversion(
        self,
        test_id: str,
        session_id: str,
        variant_id: Optional[str] = None,
        value: Optional[float] = None,
    ) -> bool:
        return self.ab_engine.track_conversion(test_id, session_id, variant_id, value)

    def analyze_results(self, test_id: str) -> Dict[str, Any]:
        return self.ab_engine.analyze_results(test_id)

    # =========================================================================
    # Discovery
    # =========================================================================

    def analyze_gap(self, topic: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        return self.gap_analyzer.analyze_gap(topic, session_id)

    def enhance_search(
        self,
        results: List[Dict[str, Any]],
        session_id: Optional[str] = None,
        query: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        weights = None
        if session_id:
            vector = self.calculator.get_interest_vector(session_id)
            if vector.confidence >= self.personalizer.confidence_threshold:
                weights = vector.weights
        return self.search_enhancer.enhance(results, weights, query=query, session_id=session_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def get_stats(self) -> Dict[str, Any]:
        return {
            "signals": self.store.get_stats(),
            "catalog": self.catalog.get_stats(),
            "analytics": self.personalizer.analytics.summary(),
            "tests": len(self.ab_engine.list_tests()),
            "gaps": len(self.gap_analyzer.gaps(limit=10000)),
        }

    def shutdown(self, wait: bool = True) -> None:
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)
        self.gap_analyzer.shutdown(wait=wait)
        self.logger.info("Personalization service stopped")


# =============================================================================
# Singleton
# =============================================================================

_service: Optional[PersonalizationService] = None
_service_lock = threading.Lock()


def get_personalization_service() -> PersonalizationService:
    """Get or create the PersonalizationService singleton (thread-safe)."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = PersonalizationService.from_settings()
    return _service


def reset_personalization_service() -> None:
    """Shut down and drop the singleton, e.g. on app shutdown or in tests."""
    global _service
    with _service_lock:
        service, _service = _service, None
    if service is not None:
        service.shutdown(wait=False)
