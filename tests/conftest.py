"""Shared test fixtures for the perpsim paper-trading simulator."""

import time
from collections.abc import Callable
from decimal import Decimal

import pytest
import pytest_asyncio

from perpsim.config import AppSettings, StrategySettings, TradingSettings
from perpsim.engine.anchors import TrailingAnchorBook
from perpsim.ledger.manager import Ledger
from perpsim.market_data.models import Candle, Ticker
from perpsim.market_data.ticker_service import TickerService
from perpsim.store.memory import InMemoryStore

SYMBOL = "BTC/USDT"


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (in-memory store, API off)."""
    return AppSettings(
        log_level="DEBUG",
        trading=TradingSettings(symbol=SYMBOL, initial_balance=Decimal("10000")),
    )


@pytest.fixture
def trading_settings() -> TradingSettings:
    return TradingSettings(
        symbol=SYMBOL,
        initial_balance=Decimal("10000"),
        fee_rate=Decimal("0.001"),
        liquidation_buffer=Decimal("0.005"),
    )


@pytest.fixture
def strategy_settings() -> StrategySettings:
    return StrategySettings()


@pytest.fixture
def ticker_service() -> TickerService:
    return TickerService(max_age_seconds=30.0)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def anchors() -> TrailingAnchorBook:
    return TrailingAnchorBook()


@pytest.fixture
def set_price(ticker_service: TickerService) -> Callable:
    """Return a coroutine function that publishes a fresh ticker."""

    async def _set(price: str | Decimal, symbol: str = SYMBOL) -> None:
        await ticker_service.update(
            Ticker(symbol=symbol, last_price=Decimal(str(price)), timestamp=time.time())
        )

    return _set


@pytest_asyncio.fixture
async def ledger(
    store: InMemoryStore,
    ticker_service: TickerService,
    anchors: TrailingAnchorBook,
    trading_settings: TradingSettings,
    set_price: Callable,
) -> Ledger:
    """Ledger with an opened 10,000 account and BTC/USDT priced at 30,000."""
    ledger = Ledger(store, ticker_service, anchors, trading_settings)
    await ledger.open_account()
    await set_price("30000")
    return ledger


@pytest.fixture
def make_candles() -> Callable[..., list[Candle]]:
    """Return a factory building contiguous candles from close prices.

    Each candle opens at the previous close and spans ``spread`` around the
    open/close range. ``interval_ms`` sets the spacing of open times.
    """

    def _make(
        closes: list[str | int | Decimal],
        start_ms: int = 0,
        interval_ms: int = 60_000,
        spread: str = "1",
        first_open: str | int | Decimal | None = None,
    ) -> list[Candle]:
        candles: list[Candle] = []
        pad = Decimal(spread)
        prev = Decimal(str(first_open if first_open is not None else closes[0]))
        for i, value in enumerate(closes):
            close = Decimal(str(value))
            candles.append(
                Candle(
                    open_time_ms=start_ms + i * interval_ms,
                    open=prev,
                    high=max(prev, close) + pad,
                    low=min(prev, close) - pad,
                    close=close,
                    volume=Decimal("10"),
                )
            )
            prev = close
        return candles

    return _make
