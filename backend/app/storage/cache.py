"""Redis connection for the live price cache.

The engine never needs Redis to run. When the server is unreachable at
startup the client stays unset and every read below returns "missing",
so callers fall back to the in-memory prices.
"""

from __future__ import annotations

import logging

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import get_settings

logger = logging.getLogger(__name__)

# Latest price per symbol: price:{symbol} -> JSON {price, timestamp}
KEY_PREFIX_PRICE = "price:"

_pool: ConnectionPool | None = None
_client: redis.Redis | None = None


async def init_cache(redis_url: str | None = None) -> None:
    """Connect to Redis, or leave the cache disabled if it is unreachable."""
    global _pool, _client

    if _client is not None:
        return

    url = redis_url or get_settings().redis_url
    # Values are orjson bytes; no decoding on the connection
    _pool = ConnectionPool.from_url(url, max_connections=10, decode_responses=False)
    client = redis.Redis(connection_pool=_pool)

    try:
        await client.ping()
    except (redis.ConnectionError, OSError) as e:
        logger.warning(f"Redis connection failed: {e}. Price cache disabled.")
        await client.aclose()
        await _pool.disconnect()
        _pool = None
        return

    _client = client
    logger.info(f"Redis connected: {url}")


async def close_cache() -> None:
    global _pool, _client

    if _client is not None:
        await _client.aclose()
        _client = None
    if _pool is not None:
        await _pool.disconnect()
        _pool = None

    logger.info("Redis connection closed")


def get_client() -> redis.Redis | None:
    return _client


def is_cache_available() -> bool:
    return _client is not None


async def read_many(keys: list[str]) -> list[bytes | None]:
    """Fetch raw values in one round-trip; None for missing keys or errors."""
    if _client is None or not keys:
        return [None] * len(keys)

    try:
        return await _client.mget(keys)
    except redis.RedisError as e:
        logger.warning(f"Redis MGET failed: {e}")
        return [None] * len(keys)


async def ping() -> bool:
    """Check whether Redis answers."""
    if _client is None:
        return False

    try:
        return bool(await _client.ping())
    except redis.RedisError:
        return False
