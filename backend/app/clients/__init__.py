"""Exchange clients."""

from app.clients.binance_ws_ticker import BinancePriceFeed, BinancePriceListener, parse_tick

__all__ = [
    "BinancePriceFeed",
    "BinancePriceListener",
    "parse_tick",
]
