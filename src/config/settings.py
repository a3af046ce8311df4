"""
Service configuration via pydantic-settings.

Every tunable of the personalization engine (decay, confidence, cache TTL,
latency budgets, A/B and gap thresholds) can be set from the environment.
"""

from functools import lru_cache
from pathlib import Path
from typing import Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.constants import DEFAULT_SIGNAL_WEIGHTS


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Optional environment variables:
        - HOST: Server host (default: 0.0.0.0)
        - PORT: Server port (default: 8080)
        - REDIS_URL / REDIS_ENABLED: Redis-backed interest vector cache
        - SUPABASE_URL / SUPABASE_SERVICE_KEY: personalization analytics sink
        - ENVIRONMENT: Environment name (development, staging, production)
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Environment
    # ==========================================================================
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")

    @property
    def is_development(self) -> bool:
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    # ==========================================================================
    # Server Configuration
    # ==========================================================================
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")

    cors_origins: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        description="Allowed CORS origins"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # ==========================================================================
    # Supabase Configuration (analytics sink, optional)
    # ==========================================================================
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_service_key: str = Field(default="", description="Supabase service role key")
    analytics_table: str = Field(
        default="personalization_events",
        description="Supabase table receiving slot decisions"
    )

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    # ==========================================================================
    # Redis Configuration
    # ==========================================================================
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL"
    )
    redis_enabled: bool = Field(
        default=False,
        description="Enable Redis for the interest vector cache"
    )

    # ==========================================================================
    # Signals & Decay
    # ==========================================================================
    decay_half_life_seconds: float = Field(
        default=7 * 24 * 3600,
        description="Half-life of a signal's weight (7 days)"
    )
    signal_retention_seconds: float = Field(
        default=30 * 24 * 3600,
        description="Signals older than this are excluded from scoring (30 days)"
    )
    signal_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_SIGNAL_WEIGHTS),
        description="Base weight per signal type"
    )

    # ==========================================================================
    # Interest Vector
    # ==========================================================================
    confidence_threshold: float = Field(
        default=0.6,
        description="Minimum confidence before personalization is applied"
    )
    interest_cache_ttl_seconds: int = Field(
        default=3600,
        description="Interest vector cache TTL (1 hour)"
    )
    corpus_scope: str = Field(
        default="static",
        description="TF-IDF corpus scope: static, global or session"
    )

    @field_validator("corpus_scope")
    @classmethod
    def validate_corpus_scope(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("static", "global", "session"):
            raise ValueError(f"corpus_scope must be static, global or session, got {v!r}")
        return v

    # ==========================================================================
    # Scoring & Assembly
    # ==========================================================================
    diversity_factor: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Fraction of multi-item slots drawn from non-dominant categories"
    )
    vector_budget_ms: float = Field(
        default=50.0,
        description="Soft deadline for interest vector lookup during assembly"
    )
    assembly_budget_ms: float = Field(
        default=300.0,
        description="Soft deadline for full page assembly"
    )
    max_workers: int = Field(
        default=8,
        description="Worker threads for deadline-bounded and out-of-band work"
    )

    # ==========================================================================
    # Experiments
    # ==========================================================================
    ab_confidence_level: float = Field(
        default=0.95,
        description="Confidence level required to declare an A/B winner"
    )

    # ==========================================================================
    # Content Gaps
    # ==========================================================================
    gap_min_relevant_items: int = Field(
        default=2,
        description="Fewer matching items than this marks a topic as a gap"
    )
    gap_min_similarity: float = Field(
        default=0.2,
        description="Minimum topic/item similarity for an item to count as a match"
    )
    gap_max_topics: int = Field(
        default=10_000,
        description="Tracked query topics; the least recently queried is evicted first"
    )


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once from the environment and the repo-level .env."""
    env_file = Path(__file__).resolve().parents[2] / ".env"
    return Settings(_env_file=env_file if env_file.is_file() else None)


def get_settings_for_testing(**overrides) -> Settings:
    """
    Uncached settings for tests: no Redis, no Supabase, debug on.

    Keyword overrides win over the test defaults, e.g.
    ``get_settings_for_testing(vector_budget_ms=2000, corpus_scope="session")``.
    """
    values = {
        "environment": "testing",
        "debug": True,
        "redis_enabled": False,
        "supabase_url": "",
        "supabase_service_key": "",
    }
    values.update(overrides)
    return Settings(**values)
