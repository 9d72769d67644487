"""Shared in-memory ticker cache for market data consumers.

The price feed writes the latest Ticker per symbol; the ledger and the
sentiment strategy read from it. Prices that are missing, non-finite,
non-positive or older than the configured age are "unavailable".
"""

import asyncio
import time
from collections.abc import Callable
from decimal import Decimal

from perpsim.exceptions import MarketUnavailableError
from perpsim.logging import get_logger
from perpsim.market_data.models import Ticker

logger = get_logger(__name__)


def is_usable_price(price: Decimal | None) -> bool:
    """True if ``price`` is a finite, strictly positive Decimal."""
    return price is not None and price.is_finite() and price > 0


class TickerService:
    """Latest ticker per symbol with staleness detection.

    Uses asyncio.Lock for safe concurrent reads/writes from multiple coroutines.

    Args:
        max_age_seconds: Age beyond which a cached price is stale.
        time_fn: Clock used for staleness checks (injectable for tests).
    """

    def __init__(
        self,
        max_age_seconds: float = 30.0,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._tickers: dict[str, Ticker] = {}
        self._max_age_seconds = max_age_seconds
        self._time_fn = time_fn
        self._lock = asyncio.Lock()

    async def update(self, ticker: Ticker) -> None:
        """Store the latest ticker for its symbol."""
        async with self._lock:
            self._tickers[ticker.symbol] = ticker

    async def get_ticker(self, symbol: str) -> Ticker | None:
        """Return the latest cached ticker for a symbol, or None if not cached."""
        async with self._lock:
            return self._tickers.get(symbol)

    async def get_price(self, symbol: str) -> Decimal | None:
        """Return the latest cached price for a symbol, or None if not cached."""
        ticker = await self.get_ticker(symbol)
        return ticker.last_price if ticker is not None else None

    async def is_stale(self, symbol: str) -> bool:
        """True if the symbol has no cached ticker or it is older than max age."""
        ticker = await self.get_ticker(symbol)
        if ticker is None:
            return True
        return self._time_fn() - ticker.timestamp > self._max_age_seconds

    async def get_valid_price(self, symbol: str) -> Decimal:
        """Return a usable current price or raise MarketUnavailableError.

        Raises:
            MarketUnavailableError: If the price is missing, non-finite,
                non-positive or stale.
        """
        ticker = await self.get_ticker(symbol)
        if ticker is None or not is_usable_price(ticker.last_price):
            raise MarketUnavailableError(f"No usable price for {symbol}")
        if self._time_fn() - ticker.timestamp > self._max_age_seconds:
            raise MarketUnavailableError(
                f"Price for {symbol} is stale (>{self._max_age_seconds}s old)"
            )
        return ticker.last_price
