"""Rolling per-symbol price history.

Pure data structure with no I/O. Each symbol keeps the most recent
HISTORY_SIZE prices in arrival order; the oldest is evicted on overflow.
"""

from collections import deque

# Prices kept per symbol
HISTORY_SIZE = 100


class PriceHistoryStore:
    """Bounded FIFO ring buffer of recent prices, keyed by symbol."""

    def __init__(self, max_size: int = HISTORY_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self._max_size = max_size
        self._prices: dict[str, deque[float]] = {}

    @property
    def max_size(self) -> int:
        return self._max_size

    def append(self, symbol: str, price: float) -> None:
        """Record a price, evicting the oldest one when the buffer is full."""
        buffer = self._prices.get(symbol)
        if buffer is None:
            buffer = deque(maxlen=self._max_size)
            self._prices[symbol] = buffer
        buffer.append(price)

    def latest(self, symbol: str) -> float | None:
        """Most recent price, or None if the symbol has not been seen."""
        buffer = self._prices.get(symbol)
        if not buffer:
            return None
        return buffer[-1]

    def window(self, symbol: str) -> tuple[float, ...]:
        """Snapshot of the symbol's prices, oldest first.

        The tuple is detached from the buffer, so later appends do not
        change what a caller is already evaluating.
        """
        buffer = self._prices.get(symbol)
        if buffer is None:
            return ()
        return tuple(buffer)

    def symbols(self) -> list[str]:
        return list(self._prices)

    def clear(self, symbol: str | None = None) -> None:
        """Drop one symbol's history, or everything."""
        if symbol is None:
            self._prices.clear()
        else:
            self._prices.pop(symbol, None)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._prices

    def __len__(self) -> int:
        return len(self._prices)
