"""
FastAPI application factory for the personalization API.

Usage:
    # Development
    uvicorn api.app:create_app --factory --reload

    # Production
    uvicorn api.app:app --host 0.0.0.0 --port 8080 --workers 4
"""

from contextlib import asynccontextmanager
from importlib import import_module
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import Settings, get_settings
from core.logging import configure_logging, get_logger
from core.middleware import RequestTracingMiddleware
from services.personalization_service import get_personalization_service, reset_personalization_service


logger = get_logger(__name__)

# Router modules under api.routes, mounted in this order
ROUTE_MODULES = ("health", "signals", "personalization", "experiments", "discovery")

DESCRIPTION = """
Real-time content personalization for anonymous sessions.

- `/api/signals`, `/api/interest/{session_id}`: behavioral signals and interest vectors
- `/api/personalize`: personalized page assembly and relevance scoring
- `/api/experiments`: A/B test lifecycle, assignment, tracking and analysis
- `/api/discovery`: content gap analysis and search result enhancement
- `/health`, `/health/detailed`, `/ready`, `/live`: health checks
"""


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and build the service on startup, stop its pools on shutdown."""
    settings = get_settings()
    configure_logging(
        json_logs=settings.is_production,
        log_level="DEBUG" if settings.debug else "INFO",
    )

    service = get_personalization_service()
    logger.info(
        "Personalization API started",
        environment=settings.environment,
        port=settings.port,
        corpus_scope=settings.corpus_scope,
        catalog=service.catalog.get_stats(),
        vector_budget_ms=settings.vector_budget_ms,
        assembly_budget_ms=settings.assembly_budget_ms,
    )

    yield

    logger.info("Personalization API stopping")
    reset_personalization_service()


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    # Last added runs first: tracing wraps CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTracingMiddleware, slow_request_ms=settings.assembly_budget_ms)


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Content Personalization API",
        description=DESCRIPTION,
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )
    _add_middleware(app, settings)

    for name in ROUTE_MODULES:
        app.include_router(import_module(f"api.routes.{name}").router)

    return app


# Default instance: uvicorn api.app:app
app = create_app()
