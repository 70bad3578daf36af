"""Optional Redis client backing the rate limiter and the readiness check."""

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

logger = structlog.get_logger()

_client: redis.Redis | None = None


async def init_redis(url: str) -> bool:
    """Create the shared client and ping it once.

    An unreachable server is logged and the client is kept: callers fail open
    until it comes back. Returns whether the ping succeeded.
    """
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=20,
        socket_connect_timeout=2,
    )
    try:
        await _client.ping()
    except RedisError as e:
        logger.warning("redis_unavailable", error=str(e))
        return False
    logger.info("redis_connected")
    return True


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis:
    """Get the Redis client. Raises RuntimeError when Redis is not configured."""
    if _client is None:
        msg = "Redis not initialized. Call init_redis() first."
        raise RuntimeError(msg)
    return _client


async def redis_status() -> str | None:
    """Readiness check value: None when Redis is not configured."""
    if _client is None:
        return None
    try:
        await _client.ping()
    except RedisError as e:
        return f"error: {e}"
    return "ok"
