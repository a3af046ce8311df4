"""
A/B test models.

Lifecycle:
    draft -> active -> (paused <-> active) -> completed

Nothing leaves ``completed``. Variant allocations are fractions summing to
1.0; configs given in percent (summing to 100) are scaled down on load.
"""

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator

from config.constants import MIN_TEST_VARIANTS, TRAFFIC_ALLOCATION_TOLERANCE


class TestConfigError(ValueError):
    """Raised when an A/B test configuration is rejected at creation time."""
    pass


class InvalidTransitionError(ValueError):
    """Raised on an illegal lifecycle transition."""
    pass


class TestNotFoundError(KeyError):
    """Raised when a test id is unknown."""
    pass


class TestStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


ALLOWED_TRANSITIONS: Dict[TestStatus, frozenset] = {
    TestStatus.DRAFT: frozenset({TestStatus.ACTIVE}),
    TestStatus.ACTIVE: frozenset({TestStatus.PAUSED, TestStatus.COMPLETED}),
    TestStatus.PAUSED: frozenset({TestStatus.ACTIVE, TestStatus.COMPLETED}),
    TestStatus.COMPLETED: frozenset(),
}


class EventType(str, Enum):
    IMPRESSION = "impression"
    CONVERSION = "conversion"


# =============================================================================
# Config (request side)
# =============================================================================

class ABVariantConfig(BaseModel):
    variant_id: str = Field(..., min_length=1)
    traffic_allocation: Optional[float] = Field(None, ge=0)
    name: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class ABTestConfig(BaseModel):
    """
    Test creation config.

    ``variants`` may be a list of variant configs or a mapping of
    variant_id -> config dict. Either every variant sets an allocation or
    none does. With none set, traffic splits evenly, or by ``traffic_split``
    (the first variant's share) for a two-variant test.
    """
    name: str = Field(default="", max_length=200)
    test_id: Optional[str] = None
    description: str = ""
    slot_type: Optional[str] = None
    variants: List[ABVariantConfig]
    traffic_split: Optional[float] = Field(None, gt=0, lt=1)
    confidence_level: Optional[float] = Field(None, gt=0, lt=1)
    target_sample_size: Optional[int] = Field(None, gt=0)
    success_metric: str = "conversion_rate"
    start: bool = True

    @model_validator(mode="before")
    @classmethod
    def _variants_from_mapping(cls, data: Any) -> Any:
        if isinstance(data, Mapping) and isinstance(data.get("variants"), Mapping):
            data = dict(data)
            data["variants"] = [
                {"variant_id": vid, **_variant_body(body)}
                for vid, body in data["variants"].items()
            ]
        return data


def _variant_body(body: Any) -> Dict[str, Any]:
    if not isinstance(body, Mapping):
        return {"config": {"value": body}}
    reserved = {"traffic_allocation", "name"}
    out = {k: body[k] for k in reserved if k in body}
    out["config"] = {k: v for k, v in body.items() if k not in reserved}
    return out


# =============================================================================
# Stored state
# =============================================================================

@dataclass
class ABVariant:
    variant_id: str
    traffic_allocation: float
    is_control: bool = False
    name: str = ""
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "traffic_allocation": self.traffic_allocation,
            "is_control": self.is_control,
            "name": self.name,
            "config": dict(self.config),
        }


@dataclass
class ABTest:
    test_id: str
    name: str
    variants: List[ABVariant]
    status: TestStatus = TestStatus.DRAFT
    slot_type: Optional[str] = None
    description: str = ""
    confidence_level: float = 0.95
    target_sample_size: Optional[int] = None
    success_metric: str = "conversion_rate"
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    stop_reason: str = ""

    @property
    def control(self) -> ABVariant:
        for variant in self.variants:
            if variant.is_control:
                return variant
        return self.variants[0]

    @property
    def variant_ids(self) -> List[str]:
        return [v.variant_id for v in self.variants]

    @property
    def is_active(self) -> bool:
        return self.status is TestStatus.ACTIVE

    def get_variant(self, variant_id: str) -> Optional[ABVariant]:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "name": self.name,
            "description": self.description,
            "slot_type": self.slot_type,
            "status": self.status.value,
            "variants": [v.to_dict() for v in self.variants],
            "confidence_level": self.confidence_level,
            "target_sample_size": self.target_sample_size,
            "success_metric": self.success_metric,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "stop_reason": self.stop_reason,
        }


@dataclass(frozen=True)
class ABTestResult:
    """One impression or conversion event. Append-only."""
    test_id: str
    variant_id: str
    session_id: str
    event_type: EventType
    timestamp: float = field(default_factory=time.time)
    value: Optional[float] = None


# =============================================================================
# Validation
# =============================================================================

def generate_test_id() -> str:
    return f"ab_{uuid.uuid4().hex[:12]}"


def build_test(
    config: Union[ABTestConfig, Mapping[str, Any]],
    default_confidence_level: float = 0.95,
) -> ABTest:
    """
    Validate a config and build a test in draft or active state.

    Raises:
        TestConfigError: fewer than two variants, duplicate ids, or
            allocations that do not sum to 1.0 (or 100)
    """
    if not isinstance(config, ABTestConfig):
        try:
            config = ABTestConfig.model_validate(config)
        except ValidationError as e:
            raise TestConfigError(f"Invalid test config: {e.errors()[0].get('msg', e)}") from e

    variants = config.variants
    if len(variants) < MIN_TEST_VARIANTS:
        raise TestConfigError(f"At least {MIN_TEST_VARIANTS} variants are required")

    ids = [v.variant_id for v in variants]
    if len(set(ids)) != len(ids):
        raise TestConfigError("Variant ids must be unique")

    allocations = _resolve_allocations(config)
    test = ABTest(
        test_id=config.test_id or generate_test_id(),
        name=config.name or (config.test_id or ""),
        description=config.description,
        slot_type=config.slot_type,
        variants=[
            ABVariant(
                variant_id=v.variant_id,
                traffic_allocation=allocation,
                is_control=(index == 0),
                name=v.name or v.variant_id,
                config=dict(v.config),
            )
            for index, (v, allocation) in enumerate(zip(variants, allocations))
        ],
        confidence_level=config.confidence_level or default_confidence_level,
        target_sample_size=config.target_sample_size,
        success_metric=config.success_metric,
    )
    if config.start:
        test.status = TestStatus.ACTIVE
        test.started_at = test.created_at
    return test


def _resolve_allocations(config: ABTestConfig) -> List[float]:
    variants = config.variants
    given = [v.traffic_allocation for v in variants]

    if all(a is None for a in given):
        if config.traffic_split is not None:
            if len(variants) != 2:
                raise TestConfigError("traffic_split only applies to two-variant tests")
            return [config.traffic_split, 1.0 - config.traffic_split]
        return [1.0 / len(variants)] * len(variants)

    if any(a is None for a in given):
        raise TestConfigError("Either all or none of the variants must set traffic_allocation")

    total = sum(given)
    if abs(total - 100.0) <= TRAFFIC_ALLOCATION_TOLERANCE * 100 and total > 1.0 + TRAFFIC_ALLOCATION_TOLERANCE:
        given = [a / 100.0 for a in given]
        total = sum(given)
    if abs(total - 1.0) > TRAFFIC_ALLOCATION_TOLERANCE:
        raise TestConfigError(f"Traffic allocations must sum to 1.0, got {total:.4f}")
    if any(a <= 0 for a in given):
        raise TestConfigError("Every variant needs a positive traffic allocation")
    return given


def check_transition(test: ABTest, target: TestStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[test.status]:
        raise InvalidTransitionError(
            f"Cannot move test '{test.test_id}' from {test.status.value} to {target.value}"
        )
