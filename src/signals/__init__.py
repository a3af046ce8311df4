"""
Behavioral signal ingestion: typed payloads, temporal decay and the
per-session signal store.
"""

from signals.decay import decay, is_expired, recency_weight
from signals.models import (
    InvalidSignalError,
    Signal,
    SignalPayload,
    build_signal,
    known_signal_types,
    parse_payload,
    register_signal_type,
)
from signals.store import PurgeResult, SignalSnapshot, SignalStore

__all__ = [
    "InvalidSignalError",
    "Signal",
    "SignalPayload",
    "PurgeResult",
    "SignalSnapshot",
    "SignalStore",
    "build_signal",
    "decay",
    "is_expired",
    "known_signal_types",
    "parse_payload",
    "recency_weight",
    "register_signal_type",
]
