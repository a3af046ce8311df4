"""
A/B test management endpoints.

Errors:
- 422: invalid test config or unknown variant
- 404: unknown test id
- 409: illegal status transition
"""

from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from api.schemas import CompleteTestRequest, CreateTestResponse, VariantEventRequest, VariantResponse
from core.logging import get_logger
from experiments.models import InvalidTransitionError, TestConfigError, TestNotFoundError
from services.personalization_service import PersonalizationService, get_personalization_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/experiments", tags=["Experiments"])


def _call(fn: Callable, *args, **kwargs):
    """Run an engine call, translating its errors to HTTP errors."""
    try:
        return fn(*args, **kwargs)
    except TestNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Test not found: {e.args[0] if e.args else ''}")
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except (TestConfigError, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("", response_model=CreateTestResponse, status_code=201)
def create_test(
    config: Dict[str, Any] = Body(...),
    service: PersonalizationService = Depends(get_personalization_service),
) -> CreateTestResponse:
    """Create a test. Variants may be a list or a mapping of variant_id -> config."""
    return CreateTestResponse(test_id=_call(service.create_test, config))


@router.get("")
def list_tests(
    service: PersonalizationService = Depends(get_personalization_service),
) -> List[Dict[str, Any]]:
    return [t.to_dict() for t in service.ab_engine.list_tests()]


@router.get("/{test_id}")
def get_test(
    test_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    return _call(service.ab_engine.get_test, test_id).to_dict()


@router.post("/{test_id}/start")
def start_test(test_id: str, service: PersonalizationService = Depends(get_personalization_service)) -> Dict[str, Any]:
    return _call(service.ab_engine.start, test_id).to_dict()


@router.post("/{test_id}/pause")
def pause_test(test_id: str, service: PersonalizationService = Depends(get_personalization_service)) -> Dict[str, Any]:
    return _call(service.ab_engine.pause, test_id).to_dict()


@router.post("/{test_id}/resume")
def resume_test(test_id: str, service: PersonalizationService = Depends(get_personalization_service)) -> Dict[str, Any]:
    return _call(service.ab_engine.resume, test_id).to_dict()


@router.post("/{test_id}/complete")
def complete_test(
    test_id: str,
    request: Optional[CompleteTestRequest] = None,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    reason = request.reason if request is not None else ""
    return _call(service.ab_engine.complete, test_id, reason).to_dict()


@router.get("/{test_id}/variant", response_model=VariantResponse)
def get_variant(
    test_id: str,
    session_id: str = Query(..., min_length=1),
    service: PersonalizationService = Depends(get_personalization_service),
) -> VariantResponse:
    variant_id = _call(service.get_variant, test_id, session_id)
    return VariantResponse(test_id=test_id, session_id=session_id, variant_id=variant_id)


@router.post("/{test_id}/impressions")
def track_impression(
    test_id: str,
    request: VariantEventRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    recorded = _call(service.track_impression, test_id, request.session_id, request.variant_id)
    return {"recorded": recorded}


@router.post("/{test_id}/conversions")
def track_conversion(
    test_id: str,
    request: VariantEventRequest,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    recorded = _call(service.track_conversion, test_id, request.session_id, request.variant_id, request.value)
    return {"recorded": recorded}


@router.get("/{test_id}/results")
def analyze_results(
    test_id: str,
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    """Per-variant stats, significance against the control, and the winner (null if inconclusive)."""
    return _call(service.analyze_results, test_id)
