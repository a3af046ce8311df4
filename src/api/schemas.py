"""
Pydantic models for the personalization API.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Signals
# ============================================================================

class RecordSignalRequest(BaseModel):
    """Ingest one behavioral signal."""
    session_id: str = Field(..., min_length=1, max_length=128)
    signal_type: str = Field(..., min_length=1, max_length=64)
    payload: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[float] = Field(None, description="Epoch seconds; defaults to now")


class RecordSignalResponse(BaseModel):
    signal_id: str
    session_id: str


class InterestVectorResponse(BaseModel):
    session_id: str
    weights: Dict[str, float]
    confidence: float
    signal_count: int
    last_updated: float
    top_categories: List[str] = Field(default_factory=list)


# ============================================================================
# Personalization
# ============================================================================

class SlotRequest(BaseModel):
    slot_type: str = Field(..., min_length=1)
    count: Optional[int] = Field(None, ge=1, le=50)
    diversity_factor: Optional[float] = Field(None, ge=0.0, le=1.0)


class AssemblePageRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    slots: Optional[List[SlotRequest]] = Field(None, description="Defaults to hero, article_list, cta, sidebar")


class ScoreRequest(BaseModel):
    """Score candidates against a session's vector or an explicit one."""
    session_id: Optional[str] = None
    interest_vector: Optional[Dict[str, float]] = None
    candidates: List[Dict[str, Any]] = Field(default_factory=list)


class ScoredItem(BaseModel):
    id: str
    score: float


# ============================================================================
# Experiments
# ============================================================================

class VariantEventRequest(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)
    variant_id: Optional[str] = None
    value: Optional[float] = None


class CompleteTestRequest(BaseModel):
    reason: str = Field("", max_length=500)


class CreateTestResponse(BaseModel):
    test_id: str


class VariantResponse(BaseModel):
    test_id: str
    session_id: str
    variant_id: str


# ============================================================================
# Discovery
# ============================================================================

class GapRequest(BaseModel):
    topic: str = Field(..., min_length=1, max_length=500)
    session_id: Optional[str] = None


class EnhanceSearchRequest(BaseModel):
    results: List[Dict[str, Any]] = Field(default_factory=list)
    session_id: Optional[str] = None
    query: Optional[str] = Field(None, max_length=500)

