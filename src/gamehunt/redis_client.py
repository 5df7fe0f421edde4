"""Redis client for post-commit notification fan-out.

Optional: with no client configured, notifications are still stored but
nothing is published.
"""

import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

_client: redis.Redis | None = None


async def init_redis(url: str, max_connections: int = 20) -> redis.Redis:
    """Create the shared client. Connections are opened on first use."""
    global _client  # noqa: PLW0603
    _client = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=max_connections,
        socket_connect_timeout=2,
    )
    return _client


async def check_redis() -> bool:
    """Ping the server. False when unreachable or not configured."""
    if _client is None:
        return False
    try:
        return bool(await _client.ping())
    except (RedisError, OSError):
        logger.warning("Redis unreachable, notifications will be stored but not pushed", exc_info=True)
        return False


async def close_redis() -> None:
    global _client  # noqa: PLW0603
    if _client is not None:
        await _client.aclose()
        _client = None


def get_redis() -> redis.Redis | None:
    return _client
