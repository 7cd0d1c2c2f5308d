"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database (signals, alerts, notifications tables)
    database_url: str = "postgresql://localhost/signal_watch"

    # Redis (live price cache)
    redis_url: str = "redis://localhost:6379/0"

    # Price feed
    price_feed_url: str = "wss://stream.binance.com:9443/ws"
    price_feed_channel: Literal["ticker", "trade"] = "ticker"

    # Symbols always streamed, in addition to those of tracked signals and alerts
    symbols: list[str] = ["BTC", "ETH", "SOL"]

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    # Also makes invariant violations in the validation cycle raise
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
