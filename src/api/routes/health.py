"""
Health check endpoints.

Provides endpoints for monitoring application health and status.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from config.database import get_redis_client, get_supabase_client_optional
from config.settings import get_settings
from services.personalization_service import PersonalizationService, get_personalization_service


router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> Dict[str, Any]:
    """
    Basic health check endpoint.

    Returns:
        Health status with basic info
    """
    return {
        "status": "healthy",
        "service": "personalization-api",
    }


@router.get("/health/detailed")
def detailed_health_check(
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Redis and Supabase are optional; missing ones report not_configured and
    the service keeps running on in-memory backends.
    """
    settings = get_settings()

    redis_status = "not_configured"
    if settings.redis_enabled:
        redis_status = "connected" if get_redis_client(settings) is not None else "unavailable"

    supabase_status = "not_configured"
    if settings.supabase_configured:
        supabase_status = "connected" if get_supabase_client_optional() is not None else "unavailable"

    degraded = "unavailable" in (redis_status, supabase_status)
    return {
        "status": "degraded" if degraded else "healthy",
        "service": "personalization-api",
        "environment": settings.environment,
        "checks": {
            "config": "ok",
            "redis": redis_status,
            "supabase": supabase_status,
        },
        "stats": service.get_stats(),
    }


@router.get("/ready")
def readiness_check(
    service: PersonalizationService = Depends(get_personalization_service),
) -> Dict[str, Any]:
    """
    Kubernetes-style readiness check.

    Ready once the personalization service is built and accepting work.
    """
    return {"status": "ready", "catalog_items": len(service.catalog.all_content())}


@router.get("/live")
def liveness_check() -> Dict[str, str]:
    """
    Kubernetes-style liveness check.

    Returns 200 if the service is alive.
    """
    return {"status": "alive"}
