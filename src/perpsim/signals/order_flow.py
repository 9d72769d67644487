"""Order-flow scalper: order-book imbalance against Bollinger band extremes.

LONG when resting bids dominate (OBI above the long threshold) while price
sits at or below the lower band; SHORT on the mirror condition. Risk is a
fixed dollar amount, so position size is ``risk / stop_percent``.
"""

from collections.abc import Sequence
from decimal import Decimal

from perpsim.config import StrategySettings
from perpsim.market_data.models import Candle, OrderBookSnapshot
from perpsim.models import PositionSide
from perpsim.signals.indicators import bollinger_bands, closes, order_book_imbalance
from perpsim.signals.models import Lethality, SignalLabel, SignalResult, TradeSetup

STRATEGY_NAME = "ORDER FLOW SCALPER"


def evaluate_order_flow(
    candles: Sequence[Candle],
    current_price: Decimal,
    book: OrderBookSnapshot | None,
    settings: StrategySettings | None = None,
) -> SignalResult:
    """Evaluate the scalper on one-minute candles and a book snapshot.

    Args:
        candles: At least ``scalper_min_candles`` one-minute candles.
        current_price: Latest traded price.
        book: Current order-book snapshot.
        settings: Strategy constants.

    Returns:
        SignalResult with LONG, SHORT or WAIT.
    """
    s = settings or StrategySettings()

    if book is None or len(candles) < s.scalper_min_candles:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            reasons=["Waiting for candle history and order book."],
            lethality=Lethality.LOW,
        )

    obi = order_book_imbalance(book, depth=s.obi_depth)
    bands = bollinger_bands(closes(candles), s.bollinger_period, s.bollinger_k)
    position_size = s.scalper_risk_usd / s.scalper_stop_percent

    setup = TradeSetup(
        entry=current_price,
        leverage_hint=s.scalper_leverage,
        position_size=position_size,
        risk_reward="1:2",
    )
    metrics: dict[str, object] = {"obi": obi, "price": current_price}
    reasons = [f"OBI: {obi:.4f} | Price: {current_price}"]

    if bands is None:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            setup=setup,
            reasons=reasons,
            lethality=Lethality.LOW,
            metrics=metrics,
        )

    metrics.update(
        bb_upper=bands.upper, bb_middle=bands.middle, bb_lower=bands.lower
    )
    signal = SignalLabel.WAIT
    lethality = Lethality.LOW
    one = Decimal("1")

    if obi > s.obi_long_threshold and current_price <= bands.lower:
        signal = SignalLabel.LONG
        lethality = Lethality.HIGH
        setup.side = PositionSide.LONG
        setup.take_profit = current_price * (one + s.scalper_target_percent)
        setup.stop_loss = current_price * (one - s.scalper_stop_percent)
        reasons.append(
            f"Trigger long: OBI {obi:.4f} > {s.obi_long_threshold} and price at or below lower band."
        )
    elif obi < s.obi_short_threshold and current_price >= bands.upper:
        signal = SignalLabel.SHORT
        lethality = Lethality.HIGH
        setup.side = PositionSide.SHORT
        setup.take_profit = current_price * (one - s.scalper_target_percent)
        setup.stop_loss = current_price * (one + s.scalper_stop_percent)
        reasons.append(
            f"Trigger short: OBI {obi:.4f} < {s.obi_short_threshold} and price at or above upper band."
        )
    elif obi < s.obi_watch_threshold and current_price >= bands.upper * Decimal("0.999"):
        distance_pct = (bands.upper - current_price) / current_price * 100
        lethality = Lethality.MEDIUM
        reasons.append(
            f"Watching short: OBI {obi:.4f}, {distance_pct:.3f}% below upper band."
        )

    return SignalResult(
        strategy_name=STRATEGY_NAME,
        signal=signal,
        setup=setup,
        reasons=reasons,
        lethality=lethality,
        metrics=metrics,
    )
