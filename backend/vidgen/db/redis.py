"""Redis client for the quota counters (daily videos, voice characters)."""

import redis.asyncio as redis
import structlog

from vidgen.core.config import get_settings

logger = structlog.get_logger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str | None = None) -> None:
    """Connect the process-wide client. A failed PING aborts startup."""
    global _client

    if _client is not None:
        return

    settings = get_settings()
    _client = redis.from_url(
        url or settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout_seconds,
        health_check_interval=30,
    )
    await _client.ping()


async def close_redis() -> None:
    global _client

    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """FastAPI dependency returning the shared client.

    Raises:
        RuntimeError: init_redis() has not run
    """
    if _client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _client


async def redis_is_healthy() -> bool:
    if _client is None:
        return False
    try:
        await _client.ping()
    except redis.RedisError as exc:
        logger.error("redis_ping_failed", error=str(exc), error_type=type(exc).__name__)
        return False
    return True
