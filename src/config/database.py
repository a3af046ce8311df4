"""
Storage client factories.

Supabase backs the personalization analytics sink and Redis backs the
interest vector cache. Both are optional: callers fall back to in-memory
backends when a client cannot be created.
"""

from functools import lru_cache
from typing import Optional

from supabase import Client, create_client

from config.settings import Settings, get_settings
from core.logging import get_logger


logger = get_logger(__name__)


class SupabaseClientError(Exception):
    """Raised when Supabase client cannot be created."""
    pass


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """
    Get the singleton Supabase client instance.

    Returns:
        Client: The Supabase client instance

    Raises:
        SupabaseClientError: If client cannot be created
    """
    settings = get_settings()
    if not settings.supabase_configured:
        raise SupabaseClientError("Supabase is not configured")
    try:
        return create_client(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:
        raise SupabaseClientError(f"Failed to create Supabase client: {e}") from e


def get_supabase_client_optional() -> Optional[Client]:
    """
    Get the Supabase client, returning None if it cannot be created.

    Useful for graceful degradation when Supabase is not configured.
    """
    try:
        return get_supabase_client()
    except SupabaseClientError:
        return None


def get_redis_client(settings: Optional[Settings] = None):
    """
    Create a Redis client when Redis is enabled and reachable.

    Returns:
        redis.Redis or None when disabled/unreachable
    """
    settings = settings or get_settings()
    if not settings.redis_enabled:
        return None

    import redis

    try:
        client = redis.from_url(settings.redis_url, decode_responses=True)
        client.ping()
    except redis.RedisError as e:
        logger.warning("Redis unavailable, using in-memory cache", error=str(e))
        return None

    logger.info("Connected to Redis", url=settings.redis_url.split("@")[-1])
    return client
