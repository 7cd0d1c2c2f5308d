"""Database connection and table definitions.

The tables mirror the rows the front end's CRUD layer owns: the engine
reads pending signals and alerts at startup and writes back signal results,
alert trigger times and notifications.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from app.config import get_settings

Base = declarative_base()


class SignalTable(Base):
    """Trading signals awaiting or holding a result."""

    __tablename__ = "signals"

    id = Column(String(64), primary_key=True)
    symbol = Column(String(20), nullable=False)
    type = Column(String(10), nullable=False)  # "Buy" | "Sell"
    entry_price = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))
    result = Column(String(10), nullable=False, default="Pending")
    profit_percent = Column(Float, nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_signals_result", "result"),
        Index("idx_signals_symbol_result", "symbol", "result"),
    )


class AlertTable(Base):
    """User-defined price, volume and trend alerts."""

    __tablename__ = "alerts"

    id = Column(String(64), primary_key=True)
    symbol = Column(String(20), nullable=False)
    type = Column(String(10), nullable=False, default="price")
    condition = Column(String(10), nullable=False)  # "above" | "below"
    value = Column(Float, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    priority = Column(String(10), nullable=False, default="medium")
    created_at = Column(DateTime(timezone=True), server_default=text("NOW()"))
    triggered_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_alerts_symbol", "symbol"),
        Index("idx_alerts_active", "active"),
    )


class NotificationTable(Base):
    """Notifications shown in the notification centre."""

    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # "signal" | "price"
    priority = Column(String(10), nullable=False, default="medium")
    signal_id = Column(String(64), nullable=True)
    alert_id = Column(String(64), nullable=True)
    data = Column(JSON, nullable=True)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_notifications_created", "created_at"),
        Index("idx_notifications_read", "read"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Write volume is low (one row per transition), so a small pool is enough
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,    # Validate before use
            pool_recycle=3600,     # Recycle every hour
            pool_timeout=30,       # Wait max 30s for connection
            connect_args={
                "timeout": 10,                 # Connection timeout
                "command_timeout": 30,         # Query timeout
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
