"""Trading session -- wires the price feed to the trigger engine.

Each ticker update for the active symbol flows:
  1. FEED: PollingPriceFeed fetches the ticker and caches it in TickerService
  2. TRIGGER: TriggerEngine evaluates positions and pending orders at the price
  3. REPORT: the latest TickReport is kept for status queries

Switching symbol unsubscribes the old feed before the new one starts, so
the engine never sees a tick for the previous symbol afterwards.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from perpsim.config import TradingSettings
from perpsim.logging import get_logger
from perpsim.market_data.models import Ticker

if TYPE_CHECKING:
    from perpsim.engine.trigger import TickReport, TriggerEngine
    from perpsim.ledger.manager import Ledger
    from perpsim.market_data.price_feed import PriceFeed

logger = get_logger(__name__)


class TradingSession:
    """Runs one user's paper-trading session on one active symbol.

    Args:
        feed: Price feed delivering tickers for the active symbol.
        trigger_engine: Engine evaluated on every tick.
        ledger: The user's ledger.
        settings: Trading settings (default symbol).
    """

    def __init__(
        self,
        feed: PriceFeed,
        trigger_engine: TriggerEngine,
        ledger: Ledger,
        settings: TradingSettings | None = None,
    ) -> None:
        self._feed = feed
        self._engine = trigger_engine
        self._ledger = ledger
        self._settings = settings or TradingSettings()
        self._running = False
        self._started_at: float | None = None
        self._ticks = 0
        self._last_report: TickReport | None = None

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def symbol(self) -> str | None:
        return self._feed.symbol

    @property
    def last_report(self) -> TickReport | None:
        return self._last_report

    async def start(self, symbol: str | None = None) -> None:
        """Load the account and subscribe to ``symbol`` (default from settings)."""
        if self._running:
            logger.warning("session_already_running", symbol=self.symbol)
            return
        symbol = symbol or self._settings.symbol
        balance = await self._ledger.open_account()
        await self._feed.subscribe(symbol, self._on_ticker)
        self._running = True
        self._started_at = time.time()
        logger.info(
            "session_started",
            symbol=symbol,
            user_id=self._ledger.user_id,
            balance=str(balance),
            positions=len(self._ledger.positions),
            pending_orders=len(self._ledger.pending_orders),
        )

    async def switch_symbol(self, symbol: str) -> None:
        """Move the feed to ``symbol``. Positions on other symbols stay open."""
        previous = self.symbol
        if previous == symbol:
            return
        await self._feed.subscribe(symbol, self._on_ticker)
        self._last_report = None
        logger.info("session_symbol_switched", previous=previous, symbol=symbol)

    async def stop(self) -> None:
        """Unsubscribe the feed. Open positions and orders stay in the store."""
        await self._feed.unsubscribe()
        self._running = False
        logger.info("session_stopped", ticks=self._ticks)

    async def _on_ticker(self, ticker: Ticker) -> None:
        if ticker.symbol != self._feed.symbol:
            return
        self._ticks += 1
        report = await self._engine.on_price(ticker.symbol, ticker.last_price)
        if not report.skipped:
            self._last_report = report

    def get_status(self) -> dict:
        report = self._last_report
        return {
            "running": self._running,
            "symbol": self.symbol,
            "started_at": self._started_at,
            "ticks": self._ticks,
            "open_positions": len(self._ledger.positions),
            "pending_orders": len(self._ledger.pending_orders),
            "last_price": str(report.price) if report and report.price is not None else None,
            "last_errors": list(report.errors) if report else [],
        }
