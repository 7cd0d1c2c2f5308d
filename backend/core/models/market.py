"""Market data models for the tick path.

Ticks arrive hundreds of times per second, so they use a slotted dataclass
with float prices instead of a Pydantic model.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

DEFAULT_QUOTE_ASSET = "USDT"


def normalize_symbol(symbol: str, quote_asset: str = DEFAULT_QUOTE_ASSET) -> str:
    """Normalize a symbol to its upper-case base asset.

    "btc", "BTCUSDT", "btc/usdt" and "BTC-USDT" all become "BTC".
    A symbol equal to the quote asset itself is left alone.
    """
    cleaned = symbol.strip().upper().replace("/", "").replace("-", "")
    quote = quote_asset.upper()
    if quote and cleaned.endswith(quote) and len(cleaned) > len(quote):
        return cleaned[: -len(quote)]
    return cleaned


@dataclass(frozen=True, slots=True)
class PriceTick:
    """One price observation for a symbol."""

    symbol: str
    price: float
    observed_at: datetime

    @classmethod
    def now(cls, symbol: str, price: float) -> "PriceTick":
        """Build a tick stamped with the current UTC time."""
        return cls(symbol=symbol, price=price, observed_at=datetime.now(timezone.utc))
