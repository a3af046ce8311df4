"""
Content discovery endpoints: gap analysis and search enhancement.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query

from api.schemas import EnhanceSearchRequest, GapRequest
from services.personalization_service import PersonalizationService, get_personalization_service

router = APIRouter(prefix="/api/discovery", tags=["Discovery"])


@router.post("/gaps")
def analyze_gap(
    request: GapRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    try:
        return service.analyze_gap(request.topic, request.session_id)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/gaps")
def list_gaps(
    limit: int = Query(20, ge=1, le=200),
    service: PersonalizationService = Depends(get_personalization_service),
) -> List[Dict[str, Any]]:
    """Recorded content gaps, highest priority first."""
    return service.gap_analyzer.gaps(limit=limit)


@router.post("/search")
def enhance_search(
    request: EnhanceSearchRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    results = service.enhance_search(request.results, session_id=request.session_id, query=request.query)
    return {"results": results, "total": len(results)}
