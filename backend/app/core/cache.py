"""
Redis cache layer — async Redis client with typed helpers.

Provides:
    • Lazy async connection
    • JSON serialisation cache helpers
    • TTL-aware get/set

Only the active-hospital snapshot is cached. A cache failure never fails a
request: the caller falls back to a direct store read.

Usage:
    from backend.app.core.cache import cache_get, cache_set

    await cache_set("hospitals:active", rows, ttl=30)
    cached = await cache_get("hospitals:active")
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from backend.app.core.config import settings

logger = logging.getLogger(__name__)

# Lazy Redis client, initialised on first use
_redis_client = None


async def _get_redis():
    """Get or create async Redis client; None when caching is disabled."""
    global _redis_client
    if not settings.CACHE_ENABLED:
        return None
    if _redis_client is None:
        try:
            import redis.asyncio as aioredis
            _redis_client = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
            )
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as e:
            logger.warning("Redis unavailable: %s — caching disabled", e)
            return None
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Get a cached value by key. Returns None on miss or error."""
    client = await _get_redis()
    if not client:
        return None
    try:
        raw = await client.get(key)
        if raw is not None:
            return json.loads(raw)
    except Exception as e:
        logger.warning("Cache GET error for %s: %s", key, e)
    return None


async def cache_set(key: str, value: Any, ttl: Optional[int] = None) -> bool:
    """Set a cached value with optional TTL (seconds)."""
    client = await _get_redis()
    if not client:
        return False
    try:
        serialised = json.dumps(value, default=str)
        await client.set(key, serialised, ex=ttl or settings.REDIS_CACHE_TTL)
        return True
    except Exception as e:
        logger.warning("Cache SET error for %s: %s", key, e)
        return False


async def cache_delete(key: str) -> bool:
    """Delete a cache key."""
    client = await _get_redis()
    if not client:
        return False
    try:
        await client.delete(key)
        return True
    except Exception as e:
        logger.warning("Cache DELETE error for %s: %s", key, e)
        return False


async def ping() -> bool:
    """True when Redis answers PING."""
    client = await _get_redis()
    if not client:
        return False
    try:
        return bool(await client.ping())
    except Exception as e:
        logger.warning("Redis PING failed: %s", e)
        return False


async def close_redis() -> None:
    """Close Redis connection."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("Redis connection closed")
