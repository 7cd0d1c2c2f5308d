"""Tests for the rolling price history."""

import pytest

from core.price_history import HISTORY_SIZE, PriceHistoryStore


class TestPriceHistoryStore:
    """Tests for PriceHistoryStore."""

    @pytest.fixture
    def store(self):
        return PriceHistoryStore()

    def test_unknown_symbol(self, store):
        """Unknown symbols are empty, never an error."""
        assert store.latest("BTC") is None
        assert store.window("BTC") == ()
        assert "BTC" not in store

    def test_append_and_latest(self, store):
        store.append("BTC", 100.0)
        store.append("BTC", 101.5)

        assert store.latest("BTC") == 101.5
        assert store.window("BTC") == (100.0, 101.5)
        assert "BTC" in store
        assert len(store) == 1

    def test_symbols_are_independent(self, store):
        store.append("BTC", 100.0)
        store.append("ETH", 3000.0)

        assert store.window("BTC") == (100.0,)
        assert store.window("ETH") == (3000.0,)
        assert sorted(store.symbols()) == ["BTC", "ETH"]

    def test_capacity_evicts_oldest(self, store):
        """The 101st append drops the first observation."""
        for i in range(HISTORY_SIZE + 1):
            store.append("BTC", float(i))

        window = store.window("BTC")
        assert len(window) == HISTORY_SIZE
        assert window[0] == 1.0
        assert window[-1] == float(HISTORY_SIZE)

    def test_window_is_snapshot(self, store):
        store.append("BTC", 100.0)
        window = store.window("BTC")
        store.append("BTC", 200.0)

        assert window == (100.0,)
        assert isinstance(window, tuple)

    def test_clear(self, store):
        store.append("BTC", 100.0)
        store.append("ETH", 3000.0)

        store.clear("BTC")
        assert "BTC" not in store
        assert "ETH" in store

        store.clear()
        assert len(store) == 0

    def test_custom_size(self):
        store = PriceHistoryStore(max_size=3)
        for price in (1.0, 2.0, 3.0, 4.0):
            store.append("SOL", price)

        assert store.max_size == 3
        assert store.window("SOL") == (2.0, 3.0, 4.0)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            PriceHistoryStore(max_size=0)
