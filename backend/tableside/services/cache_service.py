"""
Redis caching service for restaurant queue views.

CACHING STRATEGY
================

What we cache:
  - The serialized queue view of one restaurant (active requests in order)
  - Cache key pattern: "queue:view:{restaurant_id}"

Why:
  - Diners poll the queue screen far more often than it changes
  - The view only changes when a request is admitted or changes status

Invalidation:
  - request_service deletes the restaurant's key after every create,
    advance or cancel commits
  - Each cached view carries the queue version it was read at; the queue
    endpoint serves it only while that still is the current version
  - TTL-based expiry (REDIS_CACHE_TTL) for views nobody reads again

The cache is never consulted by writes. Admission and ordering always read
the database under the partition lock, so a stale view can only ever show
an old queue, never admit a request that should be rejected.

Redis being down is not an error: every function degrades to a miss / no-op.
"""

import json
from typing import Optional

import redis.asyncio as redis
from tableside.core.config import get_settings
from tableside.core.logging import get_logger
from tableside.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except (redis.RedisError, OSError) as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_queue_key(restaurant_id: str) -> str:
    return f"queue:view:{restaurant_id}"


async def get_cached_queue(restaurant_id: str) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_queue_key(restaurant_id)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", "hit")
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", "miss")
        logger.debug("cache_miss", key=key)
    except redis.RedisError as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_queue(restaurant_id: str, data: dict) -> None:
    """Cache a queue view with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_queue_key(restaurant_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", "ok")
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_queue_cache(restaurant_id: str) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_queue_key(restaurant_id)
    try:
        deleted = await client.delete(key)
        record_cache_operation("invalidate", "ok")
        logger.info("cache_invalidated", key=key, keys_deleted=deleted)
    except redis.RedisError as e:
        record_cache_operation("invalidate", "error")
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}
