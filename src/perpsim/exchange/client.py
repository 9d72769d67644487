"""Abstract market-data client interface.

The simulator never places real orders; it only reads public market data.
Strategy, feed and backtest code depend on this interface so tests can
swap in a mock and the concrete ccxt details stay in one place.
"""

from abc import ABC, abstractmethod

from perpsim.market_data.models import Candle, OrderBookSnapshot, Ticker


class MarketDataClient(ABC):
    """Abstract base class for public market-data sources."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Ticker:
        """Fetch the latest ticker for a symbol."""
        ...

    @abstractmethod
    async def fetch_candles(
        self, symbol: str, timeframe: str, limit: int
    ) -> list[Candle]:
        """Fetch the most recent ``limit`` candles, oldest first."""
        ...

    @abstractmethod
    async def fetch_order_book(self, symbol: str, depth: int) -> OrderBookSnapshot:
        """Fetch the top ``depth`` levels on each side of the book."""
        ...
