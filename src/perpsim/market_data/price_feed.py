"""Price feed for the active symbol.

Uses REST polling of the exchange ticker. Exactly one symbol is subscribed
at a time: subscribing to a new symbol tears down the running polling task
before the next one starts, so no callback for the old symbol fires after
``subscribe`` returns.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from perpsim.exchange.client import MarketDataClient
from perpsim.logging import get_logger
from perpsim.market_data.models import Ticker
from perpsim.market_data.ticker_service import TickerService

logger = get_logger(__name__)

TickerCallback = Callable[[Ticker], Awaitable[None]]


class PriceFeed(ABC):
    """Subscription lifecycle for a stream of ticker updates."""

    @property
    @abstractmethod
    def symbol(self) -> str | None:
        """Currently subscribed symbol, or None."""
        ...

    @abstractmethod
    async def subscribe(self, symbol: str, callback: TickerCallback) -> None:
        """Start delivering tickers for ``symbol``, replacing any subscription."""
        ...

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Stop delivering tickers. Safe to call when not subscribed."""
        ...


class PollingPriceFeed(PriceFeed):
    """Polls ``fetch_ticker`` at a fixed interval.

    Each poll stores the ticker in the shared TickerService and then awaits
    the subscriber callback. Fetch or callback errors are logged and the
    loop continues with the next poll.

    Args:
        client: Market data client.
        ticker_service: Shared cache updated on every poll.
        interval: Seconds between polls.
        sleep: Sleep coroutine (injectable for tests).
    """

    def __init__(
        self,
        client: MarketDataClient,
        ticker_service: TickerService,
        interval: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._ticker_service = ticker_service
        self._interval = interval
        self._sleep = sleep
        self._symbol: str | None = None
        self._callback: TickerCallback | None = None
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def symbol(self) -> str | None:
        return self._symbol

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def subscribe(self, symbol: str, callback: TickerCallback) -> None:
        await self.unsubscribe()
        self._symbol = symbol
        self._callback = callback
        self._task = asyncio.create_task(self._poll_loop(symbol, callback))
        logger.info("price_feed_subscribed", symbol=symbol, interval=self._interval)

    async def unsubscribe(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("price_feed_unsubscribed", symbol=self._symbol)
        self._symbol = None
        self._callback = None

    async def _poll_loop(self, symbol: str, callback: TickerCallback) -> None:
        while True:
            try:
                await self.poll_once(symbol, callback)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "price_feed_poll_error",
                    symbol=symbol,
                    error=str(e),
                    exc_info=True,
                )
            await self._sleep(self._interval)

    async def poll_once(self, symbol: str, callback: TickerCallback | None = None) -> Ticker:
        """Fetch one ticker, cache it, and hand it to the callback."""
        ticker = await self._client.fetch_ticker(symbol)
        await self._ticker_service.update(ticker)
        logger.debug("price_feed_tick", symbol=symbol, price=str(ticker.last_price))
        if callback is not None:
            await callback(ticker)
        return ticker
