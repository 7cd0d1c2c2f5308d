"""Main application entry point."""

import asyncio
import logging
from contextlib import asynccontextmanager

# Configure logging FIRST, before any other imports
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)

# Reduce noise from third-party libraries (must be set before importing them)
logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine.Engine").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)
logging.getLogger("picows").setLevel(logging.WARNING)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

# Try to use uvloop for better performance (Unix only)
try:
    import uvloop
    uvloop.install()
    _UVLOOP_ENABLED = True
except ImportError:
    _UVLOOP_ENABLED = False

from app.api import router, manager, websocket_endpoint
from app.clients import BinancePriceFeed
from app.config import get_settings
from app.services import (
    BroadcastNotificationSink,
    MarketEngine,
    NotificationDispatcher,
    StoredNotificationSink,
)
from app.storage import init_database, get_database, cache, price_cache
from app.storage import AlertRepository, NotificationRepository, SignalRepository

# Seconds to wait for the engine to load definitions and start the feed
STARTUP_TIMEOUT = 60

# Seconds between Redis price flushes
PRICE_FLUSH_INTERVAL = 2.0

logger = logging.getLogger(__name__)

# Global services
engine: MarketEngine | None = None
_price_flush_task: asyncio.Task | None = None


async def _periodic_price_flush():
    """Background task to periodically flush price cache."""
    while True:
        try:
            await asyncio.sleep(PRICE_FLUSH_INTERVAL)
            await price_cache.flush_pending_prices()
        except asyncio.CancelledError:
            # Final flush on shutdown
            await price_cache.flush_pending_prices()
            break
        except Exception as e:
            logger.warning(f"Price cache flush error: {e}")


def build_engine(
    signal_repo: SignalRepository,
    alert_repo: AlertRepository,
    notification_repo: NotificationRepository,
) -> MarketEngine:
    """Wire the feed, dispatcher and repositories into a MarketEngine."""
    settings = get_settings()

    async def persist_signal(signal) -> None:
        if not await signal_repo.update_result(signal):
            logger.warning(f"Signal {signal.id} was not pending in the store; result not written")

    dispatcher = NotificationDispatcher(
        sinks=[
            StoredNotificationSink(notification_repo),
            BroadcastNotificationSink(manager),
        ],
        persist_signal=persist_signal,
        persist_alert=alert_repo.mark_triggered,
    )

    feed = BinancePriceFeed(
        url=settings.price_feed_url,
        channel=settings.price_feed_channel,
    )
    # Registered before the engine so the live price is recorded first
    feed.on_tick(price_cache.record_tick)

    return MarketEngine(
        feed,
        dispatcher,
        load_signals=signal_repo.get_pending,
        load_alerts=alert_repo.get_all,
        watch_symbols=settings.symbols,
        strict=settings.debug,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global engine, _price_flush_task

    logger.info("Starting Signal Watch...")
    logger.info(f"Event loop: {'uvloop' if _UVLOOP_ENABLED else 'asyncio'}")

    # Track initialization state for proper cleanup on failure
    db_initialized = False
    cache_initialized = False

    try:
        # Initialize database with timeout
        try:
            await asyncio.wait_for(init_database(), timeout=30)
            db_initialized = True
            logger.info("Database initialized")
        except asyncio.TimeoutError:
            raise RuntimeError("Database initialization timed out after 30s")

        # Initialize Redis cache with timeout
        try:
            await asyncio.wait_for(cache.init_cache(), timeout=10)
            cache_initialized = True
            if cache.is_cache_available():
                logger.info("Redis cache initialized")
            else:
                logger.warning("Redis cache unavailable - running without caching")
        except asyncio.TimeoutError:
            logger.warning("Redis cache initialization timed out - running without caching")
            cache_initialized = True  # Mark as initialized to skip cleanup

        engine = build_engine(SignalRepository(), AlertRepository(), NotificationRepository())

        try:
            await asyncio.wait_for(engine.start(), timeout=STARTUP_TIMEOUT)
        except asyncio.TimeoutError:
            raise RuntimeError(f"Engine startup timed out after {STARTUP_TIMEOUT}s")

        # Expose the engine to API routes via app.state
        app.state.engine = engine

        _price_flush_task = asyncio.create_task(_periodic_price_flush())
        logger.info("Price cache flush task started")

    except Exception as e:
        logger.error(f"Startup failed: {e}")
        if engine:
            try:
                await engine.stop()
            except Exception as cleanup_err:
                logger.warning(f"Error stopping engine: {cleanup_err}")
            engine = None
        if cache_initialized:
            try:
                await cache.close_cache()
            except Exception as cleanup_err:
                logger.warning(f"Error closing cache: {cleanup_err}")
        if db_initialized:
            try:
                db = get_database()
                await db.close()
            except Exception as cleanup_err:
                logger.warning(f"Error closing database: {cleanup_err}")
        raise  # Re-raise to prevent app from starting in broken state

    yield

    # Shutdown
    logger.info("Shutting down...")

    app.state.engine = None
    if engine:
        await engine.stop()
        engine = None

    if _price_flush_task:
        _price_flush_task.cancel()
        try:
            await _price_flush_task
        except asyncio.CancelledError:
            pass
        _price_flush_task = None

    await cache.close_cache()

    try:
        db = get_database()
        await db.close()
        logger.info("Database connections closed")
    except Exception as e:
        logger.warning(f"Error closing database: {e}")

    logger.info("Shutdown complete")


# Create FastAPI app with orjson for faster JSON serialization
app = FastAPI(
    title="Signal Watch",
    description="Real-time signal validation and price alerts for crypto spot markets",
    version="0.1.0",
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include REST routes
app.include_router(router, prefix="/api")

# WebSocket endpoint
app.websocket("/ws")(websocket_endpoint)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Signal Watch",
        "version": "0.1.0",
        "docs": "/docs",
        "event_loop": "uvloop" if _UVLOOP_ENABLED else "asyncio",
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "feed_connected": bool(engine and engine.feed.is_connected),
        "redis": await cache.ping(),
    }


def main():
    """Run the application."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
