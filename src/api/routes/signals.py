"""
Signal ingestion and interest vector endpoints.

Routes are sync `def`: the service is thread-based and FastAPI runs sync
handlers in its thread pool.
"""

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import InterestVectorResponse, RecordSignalRequest, RecordSignalResponse
from core.logging import bind_context, get_logger
from services.personalization_service import PersonalizationService, get_personalization_service
from signals.models import InvalidSignalError

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Signals"])


@router.post("/signals", response_model=RecordSignalResponse, status_code=201)
def record_signal(
    request: RecordSignalRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> RecordSignalResponse:
    """Record one behavioral signal for a session."""
    bind_context(session_id=request.session_id)
    try:
        signal_id = service.record_signal(
            request.session_id,
            request.signal_type,
            request.payload,
            timestamp=request.timestamp,
        )
    except InvalidSignalError as e:
        logger.info("Signal rejected", signal_type=request.signal_type, error=str(e))
        raise HTTPException(status_code=422, detail=str(e))
    return RecordSignalResponse(signal_id=signal_id, session_id=request.session_id)


@router.get("/interest/{session_id}", response_model=InterestVectorResponse)
def get_interest_vector(
    session_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> InterestVectorResponse:
    """Current interest vector. Sessions without signals get an empty vector."""
    bind_context(session_id=session_id)
    vector = service.get_interest_vector(session_id)
    return InterestVectorResponse(
        session_id=vector.session_id,
        weights=vector.weights,
        confidence=vector.confidence,
        signal_count=vector.signal_count,
        last_updated=vector.last_updated,
        top_categories=vector.top_categories(3),
    )
