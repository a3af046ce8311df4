"""
Pytest configuration and shared fixtures for the personalization engine tests.
"""
import os
import sys
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(__file__)), "src"))

# Load environment variables
from dotenv import load_dotenv
load_dotenv(os.path.join(os.path.dirname(os.path.dirname(__file__)), ".env"))


# ============================================================================
# Fixtures: Clock
# ============================================================================

class FakeClock:
    """Manually advanced clock for decay and TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ============================================================================
# Fixtures: Test Data Factories
# ============================================================================

@pytest.fixture
def sample_content():
    """Site content spanning a handful of categories."""
    from personalization.models import ContentItem
    return [
        ContentItem("post:1", "Smart hub setup for beginners", ["technology"],
                    body="Connect your first smart home hub and automate the lights."),
        ContentItem("post:2", "Zigbee sensors compared", ["technology", "smart-home"],
                    body="Door sensors, motion sensors and battery life."),
        ContentItem("post:3", "Home automation routines", ["automation"],
                    body="Morning and evening routines that run themselves."),
        ContentItem("post:4", "Pricing your installation work", ["business"],
                    body="Quoting labor and markup for contractors."),
        ContentItem("post:5", "Ladder safety checklist", ["safety"],
                    body="Inspection steps before every job."),
        ContentItem("post:6", "Tools every installer needs", ["tools"],
                    body="Drivers, testers and crimpers."),
        ContentItem("post:7", "Growing a professional network", ["professional"],
                    body="Referrals and trade associations."),
    ]


@pytest.fixture
def sample_variants():
    """Hero / CTA / sidebar variants including one default per slot."""
    from personalization.models import ComponentVariant
    return [
        ComponentVariant("hero-default", "hero", is_default=True, title="Welcome"),
        ComponentVariant("hero-tech", "hero", ["technology", "smart-home"], title="Automate your home"),
        ComponentVariant("hero-business", "hero", ["business", "professional"], title="Grow your business"),
        ComponentVariant("cta-default", "cta", is_default=True, title="Learn more"),
        ComponentVariant("cta-tech", "cta", {"technology": 1.0}, title="Get the smart home guide"),
        ComponentVariant("cta-safety", "cta", ["safety"], title="Download the safety checklist"),
        ComponentVariant("sidebar-default", "sidebar", is_default=True, title="Popular topics"),
        ComponentVariant("widget-tech-news", "sidebar", ["technology"], priority=2),
        ComponentVariant("widget-gadgets", "sidebar", ["technology", "smart-home"], priority=1),
        ComponentVariant("widget-tools", "sidebar", ["tools"], priority=3),
        ComponentVariant("widget-events", "sidebar", ["professional"], priority=0),
        ComponentVariant("widget-safety", "sidebar", ["safety"], priority=5),
        ComponentVariant("articles-default", "article_list", is_default=True, title="Popular articles"),
    ]


@pytest.fixture
def catalog(sample_content, sample_variants):
    from personalization.catalog import InMemoryVariantCatalog
    return InMemoryVariantCatalog(sample_variants, sample_content)


@pytest.fixture
def tech_signals():
    """Five technology-leaning signals (search, click, dwell, taxonomy)."""
    return [
        ("search_query", {"query": "smart home automation", "category": "technology"}),
        ("search_query", {"query": "IoT device installation", "category": "technology"}),
        ("content_click", {"content_id": "post:1", "category": "technology"}),
        ("time_spent", {"content_id": "post:1", "engagement_time": 240}),
        ("taxonomy_engagement", {"category": "Technology", "interaction_type": "browse"}),
    ]


# ============================================================================
# Fixtures: Settings & Service
# ============================================================================

@pytest.fixture
def test_settings():
    """Settings with generous budgets so correctness tests never hit deadlines."""
    from config.settings import get_settings_for_testing
    return get_settings_for_testing(vector_budget_ms=2000, assembly_budget_ms=2000)


@pytest.fixture
def service(test_settings, catalog) -> Generator:
    from interest.calculator import InMemoryVectorCache
    from personalization.analytics import PersonalizationAnalytics
    from services.personalization_service import PersonalizationService

    svc = PersonalizationService.from_settings(
        test_settings,
        catalog=catalog,
        vector_cache=InMemoryVectorCache(),
        analytics=PersonalizationAnalytics(),
    )
    yield svc
    svc.shutdown()


# ============================================================================
# Fixtures: Mock Services
# ============================================================================

@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for unit tests."""
    mock_client = MagicMock()
    mock_client.table.return_value.insert.return_value.execute.return_value.data = [{"id": "test"}]
    return mock_client


@pytest.fixture
def mock_supabase(mock_supabase_client):
    """Patch Supabase client creation."""
    with patch("supabase.create_client", return_value=mock_supabase_client):
        yield mock_supabase_client


# ============================================================================
# Fixtures: FastAPI Test Client
# ============================================================================

@pytest.fixture
def app(service):
    """FastAPI application wired to the test service."""
    from api.app import create_app
    from services.personalization_service import get_personalization_service

    application = create_app()
    application.dependency_overrides[get_personalization_service] = lambda: service
    return application


@pytest.fixture
def client(app):
    """Sync HTTP client. Lifespan is not run, so no global service is built."""
    from fastapi.testclient import TestClient
    return TestClient(app)


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: marks tests as unit tests")
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "redis: marks tests that require a Redis server")


def pytest_collection_modifyitems(config, items):
    """Auto-skip Redis tests unless REDIS_URL is set."""
    skip_redis = pytest.mark.skip(reason="Redis tests require REDIS_URL")
    redis_url = os.getenv("REDIS_URL")
    for item in items:
        if "redis" in item.keywords and not redis_url:
            item.add_marker(skip_redis)
