"""Historical replay of the macro-filtered pullback strategy.

Steps through fine (entry-timeframe) candles after a warm-up. For each one
the bias comes from the most recent coarse candle that had fully closed by
the fine candle's open, so the replay never looks ahead. While flat it
checks the pullback entry; while in a trade it checks the target before the
stop on every subsequent candle's high/low.

Pure and reentrant: no I/O, no shared state.
"""

import bisect
from collections.abc import Sequence
from decimal import Decimal

from perpsim.backtest.models import BacktestResult, BacktestTrade, TradeOutcome
from perpsim.config import BacktestSettings, StrategySettings
from perpsim.logging import get_logger
from perpsim.market_data.models import Candle
from perpsim.models import PositionSide
from perpsim.signals.indicators import atr, closes, ema, rsi
from perpsim.signals.models import TradeSetup
from perpsim.signals.pullback import check_entry, classify_trend

logger = get_logger(__name__)

_HUNDRED = Decimal("100")


def _exit_for(setup: TradeSetup, candle: Candle) -> tuple[TradeOutcome, Decimal] | None:
    """Target first, then stop. Returns (outcome, exit price) or None."""
    if setup.side is PositionSide.LONG:
        if candle.high >= setup.take_profit:
            return TradeOutcome.WIN, setup.take_profit
        if candle.low <= setup.stop_loss:
            return TradeOutcome.LOSS, setup.stop_loss
    else:
        if candle.low <= setup.take_profit:
            return TradeOutcome.WIN, setup.take_profit
        if candle.high >= setup.stop_loss:
            return TradeOutcome.LOSS, setup.stop_loss
    return None


def _pnl_fraction(side: PositionSide, entry: Decimal, exit_price: Decimal) -> Decimal:
    if side is PositionSide.LONG:
        return (exit_price - entry) / entry
    return (entry - exit_price) / entry


def aggregate(trades: list[BacktestTrade]) -> BacktestResult:
    """Compute win rate, profit factor and total return from trades."""
    total = len(trades)
    wins = sum(1 for t in trades if t.outcome is TradeOutcome.WIN)
    losses = total - wins

    win_rate = Decimal(wins) / Decimal(total) * _HUNDRED if total else Decimal("0")
    if losses == 0:
        profit_factor = Decimal(wins)
    else:
        profit_factor = Decimal(wins * 2) / Decimal(losses)
    total_pnl_pct = sum((t.pnl_fraction for t in trades), Decimal("0")) * _HUNDRED

    return BacktestResult(
        win_rate=win_rate,
        profit_factor=profit_factor,
        total_pnl_pct=total_pnl_pct,
        total_trades=total,
        trades=trades,
    )


def run_backtest(
    fine_candles: Sequence[Candle],
    coarse_candles: Sequence[Candle],
    settings: StrategySettings | None = None,
    backtest_settings: BacktestSettings | None = None,
) -> BacktestResult:
    """Replay the pullback strategy over historical candles.

    Args:
        fine_candles: Entry-timeframe candles, oldest first.
        coarse_candles: Bias-timeframe candles, oldest first.
        settings: Strategy constants (EMA/RSI/ATR periods, multipliers).
        backtest_settings: Warm-up length and coarse candle duration.

    Returns:
        BacktestResult. A trade still open at the end of the data is not
        counted.
    """
    s = settings or StrategySettings()
    bt = backtest_settings or BacktestSettings()

    if len(fine_candles) <= bt.warmup_candles or not coarse_candles:
        return aggregate([])

    coarse_closes = closes(coarse_candles)
    coarse_fast = ema(coarse_closes, s.ema_fast)
    coarse_mid = ema(coarse_closes, s.ema_mid)
    coarse_slow = ema(coarse_closes, s.ema_slow)
    # Close time of each coarse candle, for "fully formed" lookup.
    coarse_close_times = [c.open_time_ms + bt.coarse_interval_ms for c in coarse_candles]

    fine_closes = closes(fine_candles)
    fine_mid = ema(fine_closes, s.ema_mid)
    fine_rsi = rsi(fine_closes, s.rsi_period)
    fine_atr = atr(fine_candles, s.atr_period)

    trades: list[BacktestTrade] = []
    open_setup: TradeSetup | None = None
    open_time_ms = 0

    for i in range(bt.warmup_candles, len(fine_candles)):
        candle = fine_candles[i]

        if open_setup is not None:
            hit = _exit_for(open_setup, candle)
            if hit is not None:
                outcome, exit_price = hit
                trades.append(
                    BacktestTrade(
                        side=open_setup.side,
                        entry_time_ms=open_time_ms,
                        exit_time_ms=candle.open_time_ms,
                        entry_price=open_setup.entry,
                        exit_price=exit_price,
                        outcome=outcome,
                        pnl_fraction=_pnl_fraction(
                            open_setup.side, open_setup.entry, exit_price
                        ),
                    )
                )
                open_setup = None
            continue

        idx = bisect.bisect_right(coarse_close_times, candle.open_time_ms) - 1
        if idx < 0:
            continue

        trend = classify_trend(
            coarse_fast[idx], coarse_mid[idx], coarse_slow[idx], coarse_closes[idx]
        )
        setup = check_entry(candle, fine_mid[i], fine_rsi[i], fine_atr[i], trend, s)
        if setup is not None:
            open_setup = setup
            open_time_ms = candle.open_time_ms

    result = aggregate(trades)
    logger.debug(
        "backtest_complete",
        fine_candles=len(fine_candles),
        coarse_candles=len(coarse_candles),
        total_trades=result.total_trades,
        win_rate=str(result.win_rate),
        total_pnl_pct=str(result.total_pnl_pct),
    )
    return result
