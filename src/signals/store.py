"""
Append-only, per-session signal log.

Concurrency model:
- A short global lock guards only the session table (create/lookup)
- Each session has its own lock; writers and readers of different
  sessions never contend
- Every append stamps the session with the next value of a store-wide
  sequence inside the session lock, so a cached interest vector tagged with
  an older version is invalid the moment the new signal is visible. The
  sequence never restarts, so a deleted or purged session that comes back
  cannot collide with a vector cached before the deletion

Signals past the retention window stay in the log until purge_expired()
runs; readers filter them out.
"""

import bisect
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from core.logging import LoggerMixin
from signals.decay import DEFAULT_MAX_AGE_SECONDS
from signals.models import SearchQueryPayload, Signal


@dataclass(frozen=True)
class SignalSnapshot:
    """Consistent read of one session: signals at or before ``taken_at``."""
    session_id: str
    signals: Tuple[Signal, ...]
    version: int
    taken_at: float
    # Earliest signal after taken_at (client clock skew); None when there is none
    next_timestamp: Optional[float] = None


@dataclass(frozen=True)
class PurgeResult:
    removed: int
    dropped_sessions: Tuple[str, ...] = ()


@dataclass
class _SessionLog:
    lock: threading.RLock = field(default_factory=threading.RLock)
    signals: List[Signal] = field(default_factory=list)
    timestamps: List[float] = field(default_factory=list)
    version: int = 0
    last_write: float = 0.0


class SignalStore(LoggerMixin):
    """
    Thread-safe in-memory signal store.

    Usage:
        store = SignalStore()
        store.append(signal)
        snap = store.snapshot("session-1")
        snap.signals, snap.version
    """

    def __init__(
        self,
        retention_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._retention_seconds = retention_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, _SessionLog] = {}
        self._sequence = 0
        self._sequence_lock = threading.Lock()

    # =========================================================================
    # Writes
    # =========================================================================

    def _log_for(self, session_id: str, create: bool) -> Optional[_SessionLog]:
        with self._lock:
            log = self._sessions.get(session_id)
            if log is None and create:
                log = _SessionLog()
                self._sessions[session_id] = log
            return log

    def append(self, signal: Signal) -> str:
        """
        Store a signal and invalidate the session's derived state.

        Signals are kept ordered by timestamp; a late arrival is inserted
        at its position rather than appended.

        Returns:
            The stored signal_id
        """
        log = self._log_for(signal.session_id, create=True)
        with log.lock:
            index = bisect.bisect_right(log.timestamps, signal.timestamp)
            log.timestamps.insert(index, signal.timestamp)
            log.signals.insert(index, signal)
            log.version = self._next_version()
            log.last_write = self._clock()
        return signal.signal_id

    def _next_version(self) -> int:
        with self._sequence_lock:
            self._sequence += 1
            return self._sequence

    def purge_expired(self, now: Optional[float] = None) -> int:
        """Delete signals older than the retention window. Returns how many were removed."""
        return self.purge(now).removed

    def purge(self, now: Optional[float] = None) -> PurgeResult:
        """
        Delete expired signals and drop sessions left empty.

        Returns:
            PurgeResult with the removed signal count and the dropped session
            ids, so callers can release state derived from those sessions
        """
        now = self._clock() if now is None else now
        cutoff = now - self._retention_seconds
        removed = 0
        dropped: List[str] = []
        with self._lock:
            logs = list(self._sessions.items())
        for session_id, log in logs:
            with log.lock:
                keep_from = bisect.bisect_left(log.timestamps, cutoff)
                if keep_from:
                    removed += keep_from
                    del log.signals[:keep_from]
                    del log.timestamps[:keep_from]
                empty = not log.signals
            if empty:
                with self._lock:
                    if self._sessions.get(session_id) is log and not log.signals:
                        del self._sessions[session_id]
                        dropped.append(session_id)
        if removed:
            self.logger.info("Purged expired signals", removed=removed, dropped_sessions=len(dropped))
        return PurgeResult(removed, tuple(dropped))

    def delete_session(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    # =========================================================================
    # Reads
    # =========================================================================

    def snapshot(
        self,
        session_id: str,
        until: Optional[float] = None,
        include_expired: bool = False,
    ) -> SignalSnapshot:
        """
        Read the session's signals with timestamp <= ``until`` (default now).

        Expired signals are skipped unless ``include_expired`` is set.
        """
        until = self._clock() if until is None else until
        log = self._log_for(session_id, create=False)
        if log is None:
            return SignalSnapshot(session_id, (), 0, until)
        with log.lock:
            end = bisect.bisect_right(log.timestamps, until)
            start = 0
            if not include_expired:
                start = bisect.bisect_left(log.timestamps, until - self._retention_seconds)
            signals = tuple(log.signals[start:end])
            version = log.version
            pending = log.timestamps[end] if end < len(log.timestamps) else None
        return SignalSnapshot(session_id, signals, version, until, pending)

    def version(self, session_id: str) -> int:
        log = self._log_for(session_id, create=False)
        if log is None:
            return 0
        with log.lock:
            return log.version

    def count(self, session_id: str) -> int:
        log = self._log_for(session_id, create=False)
        if log is None:
            return 0
        with log.lock:
            return len(log.signals)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def iter_search_queries(self, since: Optional[float] = None) -> Iterator[str]:
        """Query texts of all sessions, newest retention window only by default."""
        now = self._clock()
        since = now - self._retention_seconds if since is None else since
        with self._lock:
            logs = list(self._sessions.values())
        for log in logs:
            with log.lock:
                start = bisect.bisect_left(log.timestamps, since)
                queries = [
                    s.payload.query for s in log.signals[start:]
                    if isinstance(s.payload, SearchQueryPayload)
                ]
            yield from queries

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            logs = list(self._sessions.values())
        total = 0
        for log in logs:
            with log.lock:
                total += len(log.signals)
        return {"sessions": len(logs), "signals": total}
