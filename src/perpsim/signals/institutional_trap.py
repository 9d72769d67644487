"""Institutional trap detector: killzone-gated sweep + displacement.

Only active inside the configured UTC killzones; outside them the result is
SLEEP regardless of price action. Inside, it looks for a sweep of the swing
range followed by a displacement candle whose body is more than
``trap_displacement_multiplier`` times the sweep's wick excursion, and
targets the opposing swing extreme.

The last candle passed in is treated as still forming and is ignored.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal

from perpsim.config import StrategySettings
from perpsim.market_data.models import Candle
from perpsim.models import PositionSide
from perpsim.signals.indicators import highest_high, lowest_low
from perpsim.signals.killzone import is_killzone
from perpsim.signals.models import Lethality, SignalLabel, SignalResult, TradeSetup

STRATEGY_NAME = "INSTITUTIONAL TRAP"


def evaluate_institutional_trap(
    candles: Sequence[Candle],
    current_price: Decimal,
    now: datetime | None = None,
    settings: StrategySettings | None = None,
) -> SignalResult:
    """Evaluate the trap on fifteen-minute candles.

    Args:
        candles: At least ``trap_min_candles`` candles, the last one forming.
        current_price: Latest traded price, used as entry.
        now: Evaluation time; defaults to the current UTC time.
        settings: Strategy constants.
    """
    s = settings or StrategySettings()
    now = now or datetime.now(timezone.utc)

    if len(candles) < s.trap_min_candles:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.WAIT,
            reasons=["Initializing data..."],
        )

    closed = candles[:-1]
    sweep, displacement, confirmation = closed[-3], closed[-2], closed[-1]
    prior = closed[-s.trap_lookback - 3 : -3]
    swing_high = highest_high(prior)
    swing_low = lowest_low(prior)
    active = is_killzone(now, s.killzones)

    metrics: dict[str, object] = {
        "swing_high": swing_high,
        "swing_low": swing_low,
        "killzone": "ACTIVE" if active else "DORMANT",
    }

    if not active:
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.SLEEP,
            reasons=["Outside institutional killzones (London/NY)."],
            lethality=Lethality.DORMANT,
            metrics=metrics,
        )

    multiplier = s.trap_displacement_multiplier
    rr_label = "1:3"

    bear_sweep = sweep.high > swing_high and sweep.close < swing_high
    bear_displacement = (
        displacement.is_bearish
        and displacement.body > (sweep.high - swing_high) * multiplier
    )
    if bear_sweep and bear_displacement:
        metrics["fvg_present"] = (
            confirmation.high > displacement.close and confirmation.high < sweep.low
        )
        if sweep.high > current_price > swing_low:
            return SignalResult(
                strategy_name=STRATEGY_NAME,
                signal=SignalLabel.SHORT,
                setup=TradeSetup(
                    side=PositionSide.SHORT,
                    entry=current_price,
                    stop_loss=sweep.high,
                    take_profit=swing_low,
                    risk_reward=rr_label,
                ),
                reasons=["Buy-side liquidity swept. Institutional displacement confirmed."],
                lethality=Lethality.CRITICAL,
                metrics=metrics,
            )

    bull_sweep = sweep.low < swing_low and sweep.close > swing_low
    bull_displacement = (
        displacement.is_bullish
        and displacement.body > (swing_low - sweep.low) * multiplier
    )
    if bull_sweep and bull_displacement:
        metrics["fvg_present"] = (
            confirmation.low < displacement.close and confirmation.low > sweep.high
        )
        if sweep.low < current_price < swing_high:
            return SignalResult(
                strategy_name=STRATEGY_NAME,
                signal=SignalLabel.LONG,
                setup=TradeSetup(
                    side=PositionSide.LONG,
                    entry=current_price,
                    stop_loss=sweep.low,
                    take_profit=swing_high,
                    risk_reward=rr_label,
                ),
                reasons=["Sell-side liquidity swept. Institutional displacement confirmed."],
                lethality=Lethality.CRITICAL,
                metrics=metrics,
            )

    return SignalResult(
        strategy_name=STRATEGY_NAME,
        signal=SignalLabel.WAIT,
        reasons=["Killzone active. No liquidity raid confirmed."],
        lethality=Lethality.LOW,
        metrics=metrics,
    )
