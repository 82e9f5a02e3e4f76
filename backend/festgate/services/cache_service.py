"""
Redis caching service for item listings.

CACHING STRATEGY
================

What we cache:
  - Item listing responses (paginated, JSON-serialized)
  - Cache key pattern: "items:list:page={page}&size={size}&kind={kind}"

Why:
  - The catalogue page is the hottest read during a festival launch
  - Listings only change on catalogue edits and capacity movements

Invalidation strategy:
  - Any ledger mutation (purchase, cancel, approval) or catalogue change
    deletes every "items:list:*" key
  - TTL-based expiry as safety net

What is never cached:
  - Single item reads, ticket/registration state, credentials. Admission
    decisions always read the database.

Redis is optional: when it is disabled or unreachable every function
degrades to a no-op and the API serves straight from the database.
"""

import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from festgate.core.config import get_settings
from festgate.core.logging import get_logger
from festgate.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None

LIST_KEY_PREFIX = "items:list:"


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
        except RedisError as e:
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


def _make_item_list_key(page: int, page_size: int, kind: Optional[str]) -> str:
    return f"{LIST_KEY_PREFIX}page={page}&size={page_size}&kind={kind or 'all'}"


async def get_cached_items(page: int, page_size: int, kind: Optional[str]) -> Optional[dict]:
    """Retrieve cached item list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_item_list_key(page, page_size, kind)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_items(page: int, page_size: int, kind: Optional[str], data: dict) -> None:
    """Cache item list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_item_list_key(page, page_size, kind)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        record_cache_operation("set", hit=False)
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_item_cache() -> None:
    """Invalidate all cached item listings."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LIST_KEY_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


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
    except RedisError as e:
        return {"status": "error", "error": str(e)}
