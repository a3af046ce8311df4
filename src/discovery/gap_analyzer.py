"""
Content Gap Analyzer.

Flags topics people search for that the site barely covers:

1. Count the query against its normalized topic
2. Match the topic against existing content (cosine similarity of
   stop-word-free term counts, >= min_similarity)
3. Fewer than min_relevant_items matches -> gap record with suggested
   subtopics and a priority score

Priority (capped at 1.0):
    (min(freq * 10, 100) + min(words * 5, 25) + 15 if question-like) / 100

Analysis is meant to run out-of-band: submit() hands it to a worker pool
and never raises into the search path.

At most max_topics topics are tracked; the least recently queried topic is
forgotten first, together with its gap record.
"""

import re
import threading
import time
from collections import Counter, OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional

from config.constants import (
    DEFAULT_GAP_SCORING,
    INTENT_KEYWORDS,
    QUESTION_WORDS,
    STOP_WORDS,
    SUBTOPIC_TEMPLATES,
    GapScoringConfig,
)
from core.logging import LoggerMixin
from interest.tfidf import tokenize
from scoring.relevance import candidate_categories, candidate_id, cosine_similarity, item_vector


MAX_SUBTOPICS = 6

ContentSource = Callable[[], Iterable[Any]]
InterestSource = Callable[[str], Any]


def normalize_topic(topic: str) -> str:
    return re.sub(r"\s+", " ", (topic or "").strip().lower()).rstrip("?").strip()


def term_vector(text: str) -> Dict[str, float]:
    counts = Counter(t for t in tokenize(text) if t not in STOP_WORDS)
    return {term: float(n) for term, n in counts.items()}


def item_text(item: Any) -> str:
    """Title, body and category names of a content item or dict."""
    if isinstance(item, dict):
        text = f"{item.get('title', '')} {item.get('body', '')} {item.get('text', '')}"
    else:
        text = getattr(item, "text", None) or f"{getattr(item, 'title', '')} {getattr(item, 'body', '')}"
    categories = " ".join(c.replace("-", " ") for c in item_vector(candidate_categories(item)))
    return f"{text} {categories}".strip()


class ContentGapAnalyzer(LoggerMixin):
    """
    Usage:
        analyzer = ContentGapAnalyzer(catalog.all_content)
        record = analyzer.analyze_gap("how to wire a smart thermostat")
        record["gap_identified"], record["priority_score"]

        analyzer.submit("zigbee vs z-wave")   # out-of-band
        analyzer.gaps(limit=10)
    """

    def __init__(
        self,
        content_source: ContentSource,
        interest_source: Optional[InterestSource] = None,
        min_relevant_items: int = 2,
        min_similarity: float = 0.2,
        scoring: GapScoringConfig = DEFAULT_GAP_SCORING,
        executor: Optional[ThreadPoolExecutor] = None,
        max_workers: int = 2,
        max_topics: int = 10_000,
    ):
        self._content_source = content_source
        self._interest_source = interest_source
        self.min_relevant_items = min_relevant_items
        self.min_similarity = min_similarity
        self._scoring = scoring
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="gap-analyzer"
        )
        self._lock = threading.Lock()
        self.max_topics = max_topics
        self._frequency: "OrderedDict[str, int]" = OrderedDict()
        self._gaps: Dict[str, Dict[str, Any]] = {}

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze_gap(self, topic: str, session_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Analyze one topic and record it if it is a gap.

        Args:
            topic: Search query or topic text.
            session_id: Optional session whose top interests seed extra
                subtopic suggestions.

        Returns:
            {topic, gap_identified, suggested_subtopics, priority_score,
             relevant_items, query_frequency, intents, analyzed_at}

        Raises:
            ValueError: blank topic
        """
        normalized = normalize_topic(topic)
        if not normalized:
            raise ValueError("topic must not be blank")

        frequency = self.record_query(normalized)
        relevant = self.relevant_items(normalized)
        gap = len(relevant) < self.min_relevant_items
        intents = self.detect_intents(normalized)

        record = {
            "topic": normalized,
            "gap_identified": gap,
            "suggested_subtopics": self.suggested_subtopics(normalized, intents, session_id) if gap else [],
            "priority_score": self.priority_score(topic, frequency) if gap else 0.0,
            "relevant_items": [item_id for item_id, _ in relevant],
            "query_frequency": frequency,
            "intents": intents,
            "analyzed_at": time.time(),
        }
        with self._lock:
            if gap and normalized in self._frequency:
                self._gaps[normalized] = record
            else:
                self._gaps.pop(normalized, None)

        self.logger.info(
            "Content gap analyzed",
            topic=normalized,
            gap_identified=gap,
            relevant_items=len(relevant),
            priority=record["priority_score"],
        )
        return record

    def submit(self, topic: str, session_id: Optional[str] = None) -> Future:
        """Queue analysis on the worker pool. The future resolves to the record, or None on failure."""
        try:
            return self._executor.submit(self._analyze_quietly, topic, session_id)
        except RuntimeError as e:
            # Pool already shut down
            self.logger.warning("Gap analysis not queued", topic=topic, error=str(e))
            skipped: Future = Future()
            skipped.set_result(None)
            return skipped

    def _analyze_quietly(self, topic: str, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        try:
            return self.analyze_gap(topic, session_id)
        except Exception as e:
            self.logger.warning("Gap analysis failed", topic=topic, error=str(e))
            return None

    def gaps(self, limit: int = 20) -> List[Dict[str, Any]]:
        """Recorded gaps, highest priority first."""
        with self._lock:
            records = list(self._gaps.values())
        records.sort(key=lambda r: (-r["priority_score"], r["topic"]))
        return records[:limit]

    # =========================================================================
    # Components
    # =========================================================================

    def record_query(self, topic: str) -> int:
        key = normalize_topic(topic)
        with self._lock:
            count = self._frequency.pop(key, 0) + 1
            self._frequency[key] = count
            while len(self._frequency) > self.max_topics:
                evicted, _ = self._frequency.popitem(last=False)
                self._gaps.pop(evicted, None)
            return count

    def query_frequency(self, topic: str) -> int:
        with self._lock:
            return self._frequency.get(normalize_topic(topic), 0)

    def tracked_topics(self) -> int:
        with self._lock:
            return len(self._frequency)

    def relevant_items(self, topic: str) -> List[tuple]:
        """(item_id, similarity) for content matching the topic, best first."""
        query = term_vector(topic)
        if not query:
            return []
        matches = []
        for item in self._content_source():
            similarity = cosine_similarity(query, term_vector(item_text(item)))
            if similarity >= self.min_similarity:
                matches.append((candidate_id(item), similarity))
        matches.sort(key=lambda pair: (-pair[1], pair[0]))
        return matches

    def priority_score(self, topic: str, frequency: int) -> float:
        cfg = self._scoring
        words = len(tokenize(topic))
        score = min(frequency * cfg.FREQUENCY_POINTS, cfg.FREQUENCY_CAP)
        score += min(words * cfg.WORD_POINTS, cfg.SPECIFICITY_CAP)
        if is_question(topic):
            score += cfg.QUESTION_BONUS
        return round(min(score / cfg.SCALE, 1.0), 4)

    @staticmethod
    def detect_intents(topic: str) -> List[str]:
        tokens = set(tokenize(topic))
        intents = [intent for intent, keywords in INTENT_KEYWORDS.items() if tokens & set(keywords)]
        return intents or ["informational"]

    def suggested_subtopics(
        self,
        topic: str,
        intents: Optional[List[str]] = None,
        session_id: Optional[str] = None,
    ) -> List[str]:
        intents = intents or self.detect_intents(topic)
        label = topic.strip()
        suggestions: List[str] = []
        for intent in intents:
            for template in SUBTOPIC_TEMPLATES.get(intent, []):
                suggestions.append(template.format(topic=label))

        for category in self._session_categories(session_id):
            suggestions.append(f"{label} for {category.replace('-', ' ')}")

        return list(dict.fromkeys(s[:1].upper() + s[1:] for s in suggestions))[:MAX_SUBTOPICS]

    def _session_categories(self, session_id: Optional[str]) -> List[str]:
        if not session_id or self._interest_source is None:
            return []
        try:
            vector = self._interest_source(session_id)
        except Exception as e:
            self.logger.warning("Interest lookup failed", session_id=session_id, error=str(e))
            return []
        if vector is None or vector.is_empty:
            return []
        return vector.top_categories(2)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


def is_question(topic: str) -> bool:
    tokens = tokenize(topic)
    return bool(tokens) and (tokens[0] in QUESTION_WORDS or topic.strip().endswith("?"))
