"""Backtest package.

Replays the macro-filtered pullback strategy over historical candles using
the same entry rules as the live signal.
"""

from perpsim.backtest.engine import aggregate, run_backtest
from perpsim.backtest.models import BacktestResult, BacktestTrade, TradeOutcome

__all__ = [
    "BacktestResult",
    "BacktestTrade",
    "TradeOutcome",
    "aggregate",
    "run_backtest",
]
