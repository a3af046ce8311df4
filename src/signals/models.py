"""
Signal types for behavioral events.

Every signal_type has its own pydantic payload model. The registry below is
the tagged union: parse_payload() dispatches on the type name, and each
payload knows which category it points at, so category extraction in the
interest calculator covers every registered type.
"""

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from config.constants import DEFAULT_BASE_WEIGHT, DEFAULT_SIGNAL_WEIGHTS
from core.utils import slugify_category


class InvalidSignalError(ValueError):
    """Raised when a signal has an unknown type or a malformed payload."""
    pass


# =============================================================================
# Payloads
# =============================================================================

class SignalPayload(BaseModel):
    """Base payload. Unknown keys from collectors are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    category: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, v):
        if v is None:
            return None
        slug = slugify_category(v)
        return slug or None

    @property
    def content_ref(self) -> Optional[str]:
        """Content id this payload refers to, used to resolve missing categories."""
        return None


class SearchQueryPayload(SignalPayload):
    query: str = Field(..., min_length=1, max_length=500)
    results_count: Optional[int] = Field(None, ge=0)

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be blank")
        return v.strip()


class ContentClickPayload(SignalPayload):
    content_id: str = Field(..., min_length=1)
    content_type: Optional[str] = None

    @property
    def content_ref(self) -> Optional[str]:
        return self.content_id


class ContentViewPayload(SignalPayload):
    content_id: str = Field(..., min_length=1)

    @property
    def content_ref(self) -> Optional[str]:
        return self.content_id


class TimeSpentPayload(SignalPayload):
    content_id: str = Field(..., min_length=1)
    engagement_seconds: float = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("engagement_seconds", "engagement_time"),
    )
    scroll_depth: Optional[float] = Field(None, ge=0.0, le=1.0)

    @property
    def content_ref(self) -> Optional[str]:
        return self.content_id


class TaxonomyEngagementPayload(SignalPayload):
    category: str
    interaction_type: Optional[str] = None

    @field_validator("category")
    @classmethod
    def _category_required(cls, v: Optional[str]) -> str:
        if not v:
            raise ValueError("category is required")
        return v


class CtaClickPayload(SignalPayload):
    cta_id: str = Field(..., min_length=1)


# =============================================================================
# Registry (tagged union)
# =============================================================================

_PAYLOAD_TYPES: Dict[str, Type[SignalPayload]] = {
    "search_query": SearchQueryPayload,
    "content_click": ContentClickPayload,
    "content_view": ContentViewPayload,
    "time_spent": TimeSpentPayload,
    "taxonomy_engagement": TaxonomyEngagementPayload,
    "cta_click": CtaClickPayload,
}

_REGISTERED_WEIGHTS: Dict[str, float] = {}


def register_signal_type(
    signal_type: str,
    payload_model: Type[SignalPayload],
    base_weight: float = DEFAULT_BASE_WEIGHT,
) -> None:
    """
    Add a signal type to the registry.

    Registered payloads contribute their ``category`` (or the category of
    their ``content_ref``) at full raw weight.
    """
    if not issubclass(payload_model, SignalPayload):
        raise TypeError("payload_model must subclass SignalPayload")
    if base_weight < 0:
        raise ValueError("base_weight must be non-negative")
    _PAYLOAD_TYPES[signal_type] = payload_model
    _REGISTERED_WEIGHTS[signal_type] = float(base_weight)


def known_signal_types() -> list:
    return sorted(_PAYLOAD_TYPES)


def default_base_weight(signal_type: str) -> float:
    if signal_type in _REGISTERED_WEIGHTS:
        return _REGISTERED_WEIGHTS[signal_type]
    return DEFAULT_SIGNAL_WEIGHTS.get(signal_type, DEFAULT_BASE_WEIGHT)


def parse_payload(signal_type: str, payload: Optional[Mapping[str, Any]]) -> SignalPayload:
    """
    Validate a raw payload against its signal type.

    Raises:
        InvalidSignalError: Unknown type or payload failing validation
    """
    model = _PAYLOAD_TYPES.get(signal_type)
    if model is None:
        raise InvalidSignalError(f"Unknown signal_type '{signal_type}'")
    if payload is None:
        payload = {}
    if isinstance(payload, SignalPayload):
        if not isinstance(payload, model):
            raise InvalidSignalError(
                f"Payload {type(payload).__name__} does not match signal_type '{signal_type}'"
            )
        return payload
    if not isinstance(payload, Mapping):
        raise InvalidSignalError("payload must be a mapping")
    try:
        return model.model_validate(dict(payload))
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvalidSignalError(
            f"Invalid payload for '{signal_type}': {', '.join(fields) or 'payload'}"
        ) from e


# =============================================================================
# Signal
# =============================================================================

def generate_signal_id() -> str:
    return f"sig_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class Signal:
    """One observed user action. Immutable once written."""
    session_id: str
    signal_type: str
    payload: SignalPayload
    timestamp: float
    base_weight: float = DEFAULT_BASE_WEIGHT
    signal_id: str = field(default_factory=generate_signal_id)

    def age_seconds(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return now - self.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signal_id": self.signal_id,
            "session_id": self.session_id,
            "signal_type": self.signal_type,
            "payload": self.payload.model_dump(exclude_none=True),
            "base_weight": self.base_weight,
            "timestamp": self.timestamp,
        }


def build_signal(
    session_id: str,
    signal_type: str,
    payload: Optional[Mapping[str, Any]],
    timestamp: Optional[float] = None,
    base_weight: Optional[float] = None,
) -> Signal:
    """
    Validate and construct a Signal.

    Raises:
        InvalidSignalError: Blank session, unknown type or malformed payload
    """
    if not session_id or not str(session_id).strip():
        raise InvalidSignalError("session_id is required")
    parsed = parse_payload(signal_type, payload)
    if timestamp is None:
        timestamp = time.time()
    try:
        timestamp = float(timestamp)
    except (TypeError, ValueError) as e:
        raise InvalidSignalError("timestamp must be epoch seconds") from e
    weight = default_base_weight(signal_type) if base_weight is None else float(base_weight)
    return Signal(
        session_id=str(session_id),
        signal_type=signal_type,
        payload=parsed,
        timestamp=timestamp,
        base_weight=weight,
    )
