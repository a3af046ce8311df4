"""
Personalization Analytics.

Records one event per slot decision (slot type, chosen variant, relevance
score, fallback flag) for audit and later analysis.

Sinks:
- InMemoryAnalyticsSink: bounded ring buffer, default
- SupabaseAnalyticsSink: inserts rows into the personalization_events table
"""

import threading
import time
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from typing import Any, Deque, Dict, List, Optional

from supabase import Client

from core.logging import get_logger
from personalization.models import SlotResult

logger = get_logger(__name__)


@dataclass(frozen=True)
class PersonalizationEvent:
    session_id: str
    slot_type: str
    variant_id: str
    relevance_score: float
    fallback_used: bool
    fallback_reason: Optional[str] = None
    confidence: float = 0.0
    ab_test_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class InMemoryAnalyticsSink:
    def __init__(self, max_events: int = 10000):
        self._events: Deque[PersonalizationEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def write(self, events: List[PersonalizationEvent]) -> None:
        with self._lock:
            self._events.extend(events)

    def events(self, session_id: Optional[str] = None) -> List[PersonalizationEvent]:
        with self._lock:
            events = list(self._events)
        if session_id is not None:
            events = [e for e in events if e.session_id == session_id]
        return events


class SupabaseAnalyticsSink:
    """Supabase table sink. Insert failures are logged, never raised."""

    def __init__(self, supabase: Optional[Client] = None, table: str = "personalization_events"):
        if supabase is None:
            from config.database import get_supabase_client
            supabase = get_supabase_client()
        self._supabase = supabase
        self._table = table

    def write(self, events: List[PersonalizationEvent]) -> None:
        if not events:
            return
        try:
            self._supabase.table(self._table).insert([e.to_dict() for e in events]).execute()
        except Exception as e:
            # Don't let analytics failures break page assembly
            logger.warning("Failed to log personalization events", error=str(e), count=len(events))


class PersonalizationAnalytics:
    """
    Slot decision recorder.

    Usage:
        analytics = PersonalizationAnalytics()
        analytics.record_slot("session-1", slot_result, confidence=0.8)
        analytics.summary()
    """

    def __init__(self, sink=None):
        self._sink = sink if sink is not None else InMemoryAnalyticsSink()
        self._lock = threading.Lock()
        self._slots: Counter = Counter()
        self._fallbacks: Counter = Counter()
        self._reasons: Counter = Counter()

    @property
    def sink(self):
        return self._sink

    def record_slot(self, session_id: str, result: SlotResult, confidence: float = 0.0) -> None:
        reason = result.fallback_reason.value if result.fallback_reason else None
        events = [
            PersonalizationEvent(
                session_id=session_id,
                slot_type=result.slot_type,
                variant_id=component.variant_id,
                relevance_score=round(component.relevance_score, 6),
                fallback_used=result.fallback_used,
                fallback_reason=reason,
                confidence=round(confidence, 6),
                ab_test_id=component.ab_test_id,
            )
            for component in result.components
        ]
        with self._lock:
            self._slots[result.slot_type] += 1
            if result.fallback_used:
                self._fallbacks[result.slot_type] += 1
                self._reasons[reason] += 1
        try:
            self._sink.write(events)
        except Exception as e:
            logger.warning("Personalization analytics sink failed", error=str(e))

    def summary(self) -> Dict[str, Any]:
        with self._lock:
            total = sum(self._slots.values())
            fallbacks = sum(self._fallbacks.values())
            return {
                "slots_served": total,
                "fallbacks": fallbacks,
                "fallback_rate": round(fallbacks / total, 4) if total else 0.0,
                "by_slot": {
                    slot: {"served": count, "fallbacks": self._fallbacks.get(slot, 0)}
                    for slot, count in sorted(self._slots.items())
                },
                "fallback_reasons": dict(self._reasons),
            }
