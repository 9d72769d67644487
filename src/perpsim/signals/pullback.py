"""Macro-filtered pullback system.

Higher timeframe: three EMAs on coarse candles define the bias (BULLISH when
fast > mid > slow and price above mid, BEARISH on the mirror).
Lower timeframe: a candle that wicks into the mid EMA and closes back beyond
it, with RSI on the bias side of 50, triggers an entry. The stop sits
``atr_stop_multiplier`` x ATR beyond the pullback extreme and the target is
a fixed reward:risk multiple.

``check_entry`` is shared with the backtest simulator so the live signal and
the historical replay use identical rules.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from perpsim.config import BacktestSettings, StrategySettings
from perpsim.market_data.models import Candle
from perpsim.models import PositionSide
from perpsim.signals.indicators import atr, closes, ema, rsi
from perpsim.signals.models import (
    Lethality,
    MacroTrend,
    SignalLabel,
    SignalResult,
    TradeSetup,
)

STRATEGY_NAME = "MACRO PULLBACK"

_FIFTY = Decimal("50")


@dataclass(frozen=True)
class MacroBias:
    """Coarse-timeframe trend classification and the EMAs behind it."""

    trend: MacroTrend
    ema_fast: Decimal | None = None
    ema_mid: Decimal | None = None
    ema_slow: Decimal | None = None


def classify_trend(
    ema_fast: Decimal | None,
    ema_mid: Decimal | None,
    ema_slow: Decimal | None,
    price: Decimal,
) -> MacroTrend:
    """Classify the EMA stack relative to price."""
    if ema_fast is None or ema_mid is None or ema_slow is None:
        return MacroTrend.NEUTRAL
    if ema_fast > ema_mid > ema_slow and price > ema_mid:
        return MacroTrend.BULLISH
    if ema_fast < ema_mid < ema_slow and price < ema_mid:
        return MacroTrend.BEARISH
    return MacroTrend.NEUTRAL


def macro_bias(
    coarse_candles: Sequence[Candle], settings: StrategySettings | None = None
) -> MacroBias:
    """Bias from the latest coarse candle. NEUTRAL with too little history."""
    s = settings or StrategySettings()
    if len(coarse_candles) < s.pullback_min_coarse_candles:
        return MacroBias(trend=MacroTrend.NEUTRAL)

    values = closes(coarse_candles)
    fast = ema(values, s.ema_fast)[-1]
    mid = ema(values, s.ema_mid)[-1]
    slow = ema(values, s.ema_slow)[-1]
    return MacroBias(
        trend=classify_trend(fast, mid, slow, values[-1]),
        ema_fast=fast,
        ema_mid=mid,
        ema_slow=slow,
    )


def is_pullback(candle: Candle, ema_mid: Decimal, trend: MacroTrend) -> bool:
    """Wick into the mid EMA and close back beyond it, in the bias direction."""
    if trend is MacroTrend.BULLISH:
        return candle.low <= ema_mid and candle.close > ema_mid
    if trend is MacroTrend.BEARISH:
        return candle.high >= ema_mid and candle.close < ema_mid
    return False


def check_entry(
    candle: Candle,
    ema_mid: Decimal | None,
    rsi_value: Decimal | None,
    atr_value: Decimal | None,
    trend: MacroTrend,
    settings: StrategySettings | None = None,
) -> TradeSetup | None:
    """Return a setup if ``candle`` triggers a pullback entry, else None."""
    s = settings or StrategySettings()
    if ema_mid is None or rsi_value is None or atr_value is None:
        return None
    if not is_pullback(candle, ema_mid, trend):
        return None

    entry = candle.close
    stop_distance = s.atr_stop_multiplier * atr_value
    rr = s.pullback_reward_risk
    rr_label = f"1:{rr.normalize()}"

    if trend is MacroTrend.BULLISH and rsi_value > _FIFTY:
        stop = candle.low - stop_distance
        risk = entry - stop
        if risk <= 0:
            return None
        return TradeSetup(
            side=PositionSide.LONG,
            entry=entry,
            stop_loss=stop,
            take_profit=entry + risk * rr,
            risk_reward=rr_label,
        )

    if trend is MacroTrend.BEARISH and rsi_value < _FIFTY:
        stop = candle.high + stop_distance
        risk = stop - entry
        if risk <= 0:
            return None
        return TradeSetup(
            side=PositionSide.SHORT,
            entry=entry,
            stop_loss=stop,
            take_profit=entry - risk * rr,
            risk_reward=rr_label,
        )

    return None


def evaluate_pullback(
    fine_candles: Sequence[Candle],
    coarse_candles: Sequence[Candle],
    settings: StrategySettings | None = None,
    backtest_settings: BacktestSettings | None = None,
    include_backtest: bool = True,
) -> SignalResult:
    """Live pullback signal on the latest fine candle.

    Confidence is 40 for a valid pullback plus 40 for RSI agreement. When
    ``include_backtest`` is set, the replay of the same rules over the
    supplied history is attached under ``metrics["backtest"]``.
    """
    s = settings or StrategySettings()
    bias = macro_bias(coarse_candles, s)
    metrics: dict[str, object] = {
        "bias": bias.trend.value,
        "ema_fast": bias.ema_fast,
        "ema_mid": bias.ema_mid,
        "ema_slow": bias.ema_slow,
    }

    if include_backtest:
        from perpsim.backtest.engine import run_backtest

        metrics["backtest"] = run_backtest(
            fine_candles, coarse_candles, s, backtest_settings
        ).summary()

    if not fine_candles:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            reasons=["No entry-timeframe candles."],
            metrics=metrics,
        )

    values = closes(fine_candles)
    last = fine_candles[-1]
    ema_mid = ema(values, s.ema_mid)[-1]
    rsi_value = rsi(values, s.rsi_period)[-1]
    atr_value = atr(fine_candles, s.atr_period)[-1]
    metrics.update(rsi=rsi_value, atr=atr_value, entry_ema=ema_mid)

    confidence = 0
    reasons: list[str] = [f"Macro bias: {bias.trend.value}."]
    if bias.trend is not MacroTrend.NEUTRAL and ema_mid is not None:
        if is_pullback(last, ema_mid, bias.trend):
            confidence += 40
            reasons.append("Pullback into mid EMA rejected.")
        if rsi_value is not None and (
            (bias.trend is MacroTrend.BULLISH and rsi_value > _FIFTY)
            or (bias.trend is MacroTrend.BEARISH and rsi_value < _FIFTY)
        ):
            confidence += 40
            reasons.append(f"RSI {rsi_value:.2f} confirms bias.")
    metrics["confidence"] = confidence

    setup = check_entry(last, ema_mid, rsi_value, atr_value, bias.trend, s)
    if setup is None:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            reasons=reasons,
            lethality=Lethality.MEDIUM if confidence else Lethality.LOW,
            metrics=metrics,
        )

    return SignalResult(
        strategy_name=STRATEGY_NAME,
        signal=SignalLabel.LONG if setup.side is PositionSide.LONG else SignalLabel.SHORT,
        setup=setup,
        reasons=reasons,
        lethality=Lethality.HIGH,
        metrics=metrics,
    )
