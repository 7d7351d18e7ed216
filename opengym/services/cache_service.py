"""
Redis caching service for public game previews.

CACHING STRATEGY
================

What we cache:
  - The unauthenticated game teaser (name, organizer, spots left, start time)
  - Cache key pattern: "games:public:{game_id}"

Why:
  - Teaser links get shared widely and are hit far more often than the
    authenticated endpoints
  - Serving from Redis avoids a game + organizer join per hit

Invalidation strategy:
  - On any participation write: delete the game's key (spots_left may move)
  - On any game update: delete the game's key
  - TTL-based expiry as safety net

Failure mode:
  Redis is advisory. When it is disabled or unreachable every call degrades
  to a miss / no-op and the database answers.

Why NOT cache participant lists:
  - Statuses are derived from the live participant set; a stale list could
    show someone confirmed after they were bumped to the waitlist
"""

import json
from typing import Optional

import redis.asyncio as redis
from opengym.core.config import get_settings
from opengym.core.logging import get_logger
from opengym.core.metrics import record_cache_operation, redis_connection_errors

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
            redis_connection_errors.inc()
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


def _make_public_game_key(game_id: str) -> str:
    return f"games:public:{game_id}"


async def get_cached_public_game(game_id: str) -> Optional[dict]:
    """Retrieve a cached public game preview."""
    client = await get_redis()
    if not client:
        return None

    key = _make_public_game_key(game_id)
    try:
        data = await client.get(key)
    except redis.RedisError as e:
        record_cache_operation("get", "error")
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    if data:
        record_cache_operation("get", "hit")
        logger.debug("cache_hit", key=key)
        return json.loads(data)

    record_cache_operation("get", "miss")
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_public_game(game_id: str, data: dict) -> None:
    """Cache a public game preview with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_public_game_key(game_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", "hit")
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        record_cache_operation("set", "error")
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_public_game(game_id: str) -> None:
    """Drop the cached preview of one game."""
    client = await get_redis()
    if not client:
        return

    key = _make_public_game_key(game_id)
    try:
        deleted = await client.delete(key)
        record_cache_operation("delete", "hit" if deleted else "miss")
        logger.debug("cache_invalidated", key=key, keys_deleted=deleted)
    except redis.RedisError as e:
        record_cache_operation("delete", "error")
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
