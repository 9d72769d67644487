"""Closed set of strategies and the dispatch table over them.

Every strategy is a pure function of a ``StrategyContext``. Adding one means
adding an enum member, a ``StrategySpec`` (what data it needs) and an entry
in ``STRATEGIES``.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from perpsim.config import StrategySettings
from perpsim.market_data.models import Candle, OrderBookSnapshot
from perpsim.signals.institutional_trap import evaluate_institutional_trap
from perpsim.signals.liquidity_sweep import evaluate_liquidity_sweep
from perpsim.signals.models import SignalResult
from perpsim.signals.order_flow import evaluate_order_flow
from perpsim.signals.pullback import evaluate_pullback
from perpsim.signals.sentiment import SentimentInputs, evaluate_sentiment


class StrategyName(str, Enum):
    ORDER_FLOW = "order_flow"
    LIQUIDITY_SWEEP = "liquidity_sweep"
    INSTITUTIONAL_TRAP = "institutional_trap"
    PULLBACK = "pullback"
    SENTIMENT = "sentiment"


@dataclass(frozen=True)
class StrategySpec:
    """Market data a strategy consumes."""

    timeframe: str
    limit: int
    needs_book: bool = False
    coarse_timeframe: str | None = None
    coarse_limit: int = 0


@dataclass
class StrategyContext:
    """Everything a strategy may read for one evaluation."""

    symbol: str
    current_price: Decimal
    candles: Sequence[Candle] = ()
    coarse_candles: Sequence[Candle] = ()
    book: OrderBookSnapshot | None = None
    now: datetime | None = None
    balance: Decimal = Decimal("0")
    sentiment: SentimentInputs = field(default_factory=SentimentInputs)


StrategyFn = Callable[[StrategyContext, StrategySettings], SignalResult]


STRATEGY_SPECS: dict[StrategyName, StrategySpec] = {
    StrategyName.ORDER_FLOW: StrategySpec(timeframe="1m", limit=100, needs_book=True),
    StrategyName.LIQUIDITY_SWEEP: StrategySpec(timeframe="15m", limit=100),
    StrategyName.INSTITUTIONAL_TRAP: StrategySpec(timeframe="15m", limit=100),
    StrategyName.PULLBACK: StrategySpec(
        timeframe="15m", limit=1000, coarse_timeframe="4h", coarse_limit=200
    ),
    StrategyName.SENTIMENT: StrategySpec(timeframe="1d", limit=0),
}


STRATEGIES: dict[StrategyName, StrategyFn] = {
    StrategyName.ORDER_FLOW: lambda ctx, s: evaluate_order_flow(
        ctx.candles, ctx.current_price, ctx.book, s
    ),
    StrategyName.LIQUIDITY_SWEEP: lambda ctx, s: evaluate_liquidity_sweep(
        ctx.candles, ctx.current_price, s
    ),
    StrategyName.INSTITUTIONAL_TRAP: lambda ctx, s: evaluate_institutional_trap(
        ctx.candles, ctx.current_price, ctx.now, s
    ),
    StrategyName.PULLBACK: lambda ctx, s: evaluate_pullback(
        ctx.candles, ctx.coarse_candles, s
    ),
    StrategyName.SENTIMENT: lambda ctx, s: evaluate_sentiment(
        ctx.sentiment, ctx.balance, ctx.current_price, ctx.symbol, s
    ),
}


def evaluate(
    name: StrategyName | str,
    context: StrategyContext,
    settings: StrategySettings | None = None,
) -> SignalResult:
    """Run one strategy by name.

    Raises:
        ValueError: If ``name`` is not a known strategy.
    """
    strategy = StrategyName(name)
    return STRATEGIES[strategy](context, settings or StrategySettings())
