"""Liquidity-sweep / fair-value-gap hunter.

Looks at the last three candles against a swing range built from the
``sweep_lookback`` candles before them:

- c1 (sweep): wicks beyond the swing extreme and closes back inside.
- c2 (displacement): directional candle whose body covers the sweep excursion.
- c3 (confirmation): leaves a gap to c1 (bullish: c3.low > c1.high).

Targets are a fixed reward:risk multiple of the distance from entry to the
sweep wick.
"""

from collections.abc import Sequence
from decimal import Decimal

from perpsim.config import StrategySettings
from perpsim.market_data.models import Candle
from perpsim.models import PositionSide
from perpsim.signals.indicators import highest_high, lowest_low
from perpsim.signals.models import Lethality, SignalLabel, SignalResult, TradeSetup

STRATEGY_NAME = "LIQUIDITY SWEEP FVG"


def _is_bullish_pattern(c1: Candle, c2: Candle, c3: Candle, swing_low: Decimal) -> bool:
    swept = c1.low < swing_low and c1.close > swing_low
    displaced = c2.is_bullish and c2.body >= swing_low - c1.low
    gap = c3.low > c1.high
    return swept and displaced and gap


def _is_bearish_pattern(c1: Candle, c2: Candle, c3: Candle, swing_high: Decimal) -> bool:
    swept = c1.high > swing_high and c1.close < swing_high
    displaced = c2.is_bearish and c2.body >= c1.high - swing_high
    gap = c3.high < c1.low
    return swept and displaced and gap


def evaluate_liquidity_sweep(
    candles: Sequence[Candle],
    current_price: Decimal,
    settings: StrategySettings | None = None,
) -> SignalResult:
    """Detect a sweep + displacement + FVG pattern on the latest candles.

    Returns STRONG BUY / STRONG SELL with a 1:``sweep_reward_risk`` setup,
    otherwise WAIT.
    """
    s = settings or StrategySettings()

    if len(candles) < s.sweep_min_candles:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            reasons=["Scanning..."],
            lethality=Lethality.LOW,
        )

    history = candles[-s.sweep_lookback - 3 : -3]
    c1, c2, c3 = candles[-3], candles[-2], candles[-1]
    swing_high = highest_high(history)
    swing_low = lowest_low(history)

    rr = s.sweep_reward_risk
    rr_label = f"1:{rr.normalize()}"
    metrics: dict[str, object] = {"swing_high": swing_high, "swing_low": swing_low}
    signal = SignalLabel.WAIT
    setup = TradeSetup(entry=current_price)
    reasons: list[str] = []

    if _is_bullish_pattern(c1, c2, c3, swing_low):
        risk = current_price - c1.low
        if risk > 0:
            signal = SignalLabel.STRONG_BUY
            setup = TradeSetup(
                side=PositionSide.LONG,
                entry=current_price,
                stop_loss=min(c1.low, c2.low),
                take_profit=current_price + risk * rr,
                risk_reward=rr_label,
            )
            metrics["fvg_zone"] = f"{c1.high} - {c3.low}"
            reasons.append("Liquidity swept. Institutional displacement (FVG) detected.")
        else:
            reasons.append("Bullish sweep found but price is already below the sweep low.")
    elif _is_bearish_pattern(c1, c2, c3, swing_high):
        risk = c1.high - current_price
        if risk > 0:
            signal = SignalLabel.STRONG_SELL
            setup = TradeSetup(
                side=PositionSide.SHORT,
                entry=current_price,
                stop_loss=max(c1.high, c2.high),
                take_profit=current_price - risk * rr,
                risk_reward=rr_label,
            )
            metrics["fvg_zone"] = f"{c3.high} - {c1.low}"
            reasons.append("Liquidity hunted. Bearish imbalance (FVG) confirmed.")
        else:
            reasons.append("Bearish sweep found but price is already above the sweep high.")

    return SignalResult(
        strategy_name=STRATEGY_NAME,
        signal=signal,
        setup=setup,
        reasons=reasons,
        lethality=Lethality.CRITICAL if signal is not SignalLabel.WAIT else Lethality.DORMANT,
        metrics=metrics,
    )
