"""Signal engine: gathers the market data a strategy needs and evaluates it.

Strategies themselves are pure. This is the one place that talks to the
market-data client on their behalf, using ``STRATEGY_SPECS`` to decide which
candles and whether an order book to fetch.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from perpsim.config import StrategySettings
from perpsim.logging import get_logger
from perpsim.signals.models import SignalResult
from perpsim.signals.registry import (
    STRATEGY_SPECS,
    StrategyContext,
    StrategyName,
    evaluate,
)
from perpsim.signals.sentiment import SentimentInputs

if TYPE_CHECKING:
    from perpsim.exchange.client import MarketDataClient
    from perpsim.market_data.ticker_service import TickerService

logger = get_logger(__name__)


class SignalEngine:
    """Evaluates registered strategies against live market data.

    Args:
        client: Market-data source for candles and order books.
        ticker_service: Supplies the current price (and 24h change).
        settings: Strategy constants.
    """

    def __init__(
        self,
        client: MarketDataClient,
        ticker_service: TickerService,
        settings: StrategySettings | None = None,
    ) -> None:
        self._client = client
        self._ticker_service = ticker_service
        self._settings = settings or StrategySettings()

    async def build_context(
        self,
        name: StrategyName,
        symbol: str,
        balance: Decimal = Decimal("0"),
        sentiment: SentimentInputs | None = None,
    ) -> StrategyContext:
        """Fetch what ``name`` needs into a StrategyContext.

        Raises:
            MarketUnavailableError: If there is no usable current price.
        """
        spec = STRATEGY_SPECS[name]
        price = await self._ticker_service.get_valid_price(symbol)

        candles = []
        if spec.limit > 0:
            candles = await self._client.fetch_candles(symbol, spec.timeframe, spec.limit)

        coarse = []
        if spec.coarse_timeframe is not None:
            coarse = await self._client.fetch_candles(
                symbol, spec.coarse_timeframe, spec.coarse_limit
            )

        book = None
        if spec.needs_book:
            book = await self._client.fetch_order_book(symbol, self._settings.obi_depth)

        if sentiment is None:
            ticker = await self._ticker_service.get_ticker(symbol)
            change = ticker.change_24h_pct if ticker is not None else Decimal("0")
            sentiment = SentimentInputs(change_24h_pct=change)

        return StrategyContext(
            symbol=symbol,
            current_price=price,
            candles=candles,
            coarse_candles=coarse,
            book=book,
            now=datetime.now(timezone.utc),
            balance=balance,
            sentiment=sentiment,
        )

    async def run(
        self,
        name: StrategyName | str,
        symbol: str,
        balance: Decimal = Decimal("0"),
        sentiment: SentimentInputs | None = None,
    ) -> SignalResult:
        """Fetch data for and evaluate one strategy."""
        strategy = StrategyName(name)
        context = await self.build_context(strategy, symbol, balance, sentiment)
        result = evaluate(strategy, context, self._settings)
        logger.info(
            "signal_evaluated",
            strategy=strategy.value,
            symbol=symbol,
            signal=result.signal.value,
            lethality=result.lethality.value,
            price=str(context.current_price),
        )
        return result
