"""
Page assembly and relevance scoring endpoints.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException

from api.schemas import AssemblePageRequest, ScoreRequest, ScoredItem
from core.logging import bind_context
from personalization.models import SlotDefinition
from services.personalization_service import PersonalizationService, get_personalization_service

router = APIRouter(prefix="/api/personalize", tags=["Personalization"])


@router.post("")
def assemble_page(
    request: AssemblePageRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    """
    Assemble a personalized page.

    Always succeeds: slots that cannot be personalized are served their
    default variants and listed in ``metadata.slots_with_fallback``.
    """
    bind_context(session_id=request.session_id)
    slots = None
    if request.slots:
        slots = [
            SlotDefinition(slot_type=s.slot_type, count=s.count, diversity_factor=s.diversity_factor)
            for s in request.slots
        ]
    page = service.assemble_page(request.session_id, slots)
    return page.to_dict()


@router.post("/score", response_model=List[ScoredItem])
def score_candidates(
    request: ScoreRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> List[ScoredItem]:
    """Rank candidates by relevance to a session (or an explicit vector)."""
    if request.interest_vector is not None:
        interest = request.interest_vector
    elif request.session_id:
        interest = service.get_interest_vector(request.session_id)
    else:
        raise HTTPException(status_code=422, detail="session_id or interest_vector is required")

    ranked = service.score_relevance(interest, request.candidates)
    return [ScoredItem(id=c.item_id, score=c.score) for c in ranked]
