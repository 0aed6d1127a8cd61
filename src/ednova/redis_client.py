"""Redis connection pool.

Redis is optional: login lockout, rate limiting and mail throttling are
skipped when it is not configured or unreachable at startup.
"""

import redis.asyncio as redis
import structlog

logger = structlog.get_logger()

_pool: redis.Redis | None = None


async def init_redis(url: str | None) -> bool:
    """Create the pool and check it answers. Returns False if Redis stays disabled."""
    global _pool  # noqa: PLW0603
    if not url:
        logger.info("redis_disabled")
        return False
    client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    try:
        await client.ping()
    except (redis.RedisError, OSError) as exc:
        logger.warning("redis_unavailable", error=str(exc))
        await client.aclose()
        return False
    _pool = client
    return True


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis:
    """Get the Redis client. Raises RuntimeError if not initialized."""
    if _pool is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _pool


def get_optional_redis() -> redis.Redis | None:
    """FastAPI dependency: the Redis client, or None when Redis is disabled."""
    return _pool
