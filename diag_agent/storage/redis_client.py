"""Shared async Redis connection for session and case storage."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from diag_agent.config import settings
from diag_agent.errors import StartupError

logger = logging.getLogger("diag_agent.storage")

KEY_PREFIX = "diag"

_connection: aioredis.Redis | None = None


def redis_key(*parts: str) -> str:
    """Namespace a key, e.g. ``redis_key("case", cid)`` -> ``diag:case:<cid>``."""
    return ":".join((KEY_PREFIX, *parts))


async def get_redis() -> aioredis.Redis:
    global _connection
    if _connection is None:
        _connection = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            max_connections=20,
            health_check_interval=30,
        )
    return _connection


async def ensure_redis() -> aioredis.Redis:
    """Connect and ping once; an unreachable server is a startup failure."""
    conn = await get_redis()
    try:
        await conn.ping()
    except (RedisError, OSError) as exc:
        raise StartupError(f"Redis unreachable at {settings.redis_url}") from exc
    logger.info("Redis connected: %s", settings.redis_url)
    return conn


async def close_redis() -> None:
    global _connection
    if _connection is not None:
        await _connection.aclose()
        _connection = None
