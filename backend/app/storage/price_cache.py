"""Live price cache.

Keeps the latest price for each symbol in memory and periodically copies
it to Redis with a TTL, for readers that do not hold a feed connection.

Data structure:
- price:{symbol} -> JSON {price, timestamp}

Recording is synchronous and I/O-free so it can run on the tick path;
a background task calls flush_pending_prices() to write dirty symbols
through a single Redis pipeline.
"""

from __future__ import annotations

import logging
import time

import orjson

from app.models import PriceTick
from app.storage import cache

logger = logging.getLogger(__name__)

# TTL for price data (60 seconds - prices become stale quickly)
PRICE_TTL = 60

# Maximum symbols to keep in memory (prevents unbounded growth)
MAX_CACHED_SYMBOLS = 500

# Latest price per symbol (in-memory, for batched updates)
_latest_prices: dict[str, dict] = {}
# Symbols updated since the last flush
_dirty_symbols: set[str] = set()


def _price_key(symbol: str) -> str:
    """Get the cache key for a symbol's price."""
    return f"{cache.KEY_PREFIX_PRICE}{symbol}"


def record_price(symbol: str, price: float, timestamp: float | None = None) -> None:
    """Record the latest price for a symbol in memory.

    Args:
        symbol: Base-asset symbol (e.g., "BTC")
        price: Latest price
        timestamp: Unix timestamp (defaults to now)
    """
    if symbol not in _latest_prices and len(_latest_prices) >= MAX_CACHED_SYMBOLS:
        _evict_oldest()

    _latest_prices[symbol] = {
        "price": price,
        "timestamp": timestamp or time.time(),
    }
    _dirty_symbols.add(symbol)


def record_tick(tick: PriceTick) -> None:
    """Tick listener form of record_price()."""
    record_price(tick.symbol, tick.price, tick.observed_at.timestamp())


def _evict_oldest() -> None:
    oldest = min(_latest_prices, key=lambda s: _latest_prices[s]["timestamp"])
    del _latest_prices[oldest]
    _dirty_symbols.discard(oldest)


async def flush_pending_prices() -> bool:
    """Write all prices recorded since the last flush to Redis.

    Returns:
        True if the flush succeeded (or there was nothing to flush)
    """
    if not _dirty_symbols:
        return True

    client = cache.get_client()
    if client is None:
        return False

    # Snapshot before the first await so ticks arriving during the
    # round-trip are kept for the next flush
    data_to_flush = {
        symbol: orjson.dumps(_latest_prices[symbol])
        for symbol in _dirty_symbols
        if symbol in _latest_prices
    }
    _dirty_symbols.clear()

    try:
        async with client.pipeline(transaction=False) as pipe:
            for symbol, data in data_to_flush.items():
                pipe.setex(_price_key(symbol), PRICE_TTL, data)

            # Execute all commands in one round-trip
            await pipe.execute()

        return True

    except Exception as e:
        logger.warning(f"Failed to flush prices to Redis: {e}")
        _dirty_symbols.update(data_to_flush)
        return False


def get_price_immediate(symbol: str) -> dict | None:
    """Get the latest price from memory, even if not yet flushed.

    Returns:
        Dict with price and timestamp, or None if not seen
    """
    return _latest_prices.get(symbol)


async def get_price(symbol: str) -> dict | None:
    """Get the latest price for a symbol from Redis."""
    return (await get_prices([symbol]))[symbol]


async def get_prices(symbols: list[str]) -> dict[str, dict | None]:
    """Get prices for multiple symbols from Redis.

    Returns:
        Dict mapping symbol to price data (or None if not found)
    """
    if not cache.is_cache_available() or not symbols:
        return {s: None for s in symbols}

    results = await cache.read_many([_price_key(s) for s in symbols])

    prices = {}
    for symbol, data in zip(symbols, results):
        if data is None:
            prices[symbol] = None
            continue
        try:
            prices[symbol] = orjson.loads(data)
        except orjson.JSONDecodeError:
            prices[symbol] = None

    return prices


def is_price_fresh(price_data: dict | None, max_age_seconds: float = 30.0) -> bool:
    """Check if a price is fresh (not stale)."""
    if price_data is None:
        return False

    timestamp = price_data.get("timestamp")
    if timestamp is None:
        return False

    return time.time() - timestamp <= max_age_seconds


def clear() -> None:
    """Forget all in-memory prices."""
    _latest_prices.clear()
    _dirty_symbols.clear()
