"""Data models for the pullback backtest.

CRITICAL: All prices and returns use Decimal. Never use float for backtest statistics.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from perpsim.models import PositionSide


class TradeOutcome(str, Enum):
    WIN = "WIN"
    LOSS = "LOSS"


@dataclass(frozen=True)
class BacktestTrade:
    """One simulated trade, from entry candle to the candle that hit a level."""

    side: PositionSide
    entry_time_ms: int
    exit_time_ms: int
    entry_price: Decimal
    exit_price: Decimal
    outcome: TradeOutcome
    pnl_fraction: Decimal  # price return, e.g. 0.02 for +2%

    def to_dict(self) -> dict:
        return {
            "side": self.side.value,
            "entry_time_ms": self.entry_time_ms,
            "exit_time_ms": self.exit_time_ms,
            "entry_price": str(self.entry_price),
            "exit_price": str(self.exit_price),
            "outcome": self.outcome.value,
            "pnl_fraction": str(self.pnl_fraction),
        }


@dataclass
class BacktestResult:
    """Aggregate statistics over a replay.

    ``profit_factor`` is approximated from counts (wins at 2R, losses at 1R);
    with no losses it equals the win count.
    """

    win_rate: Decimal = Decimal("0")  # percent
    profit_factor: Decimal = Decimal("0")
    total_pnl_pct: Decimal = Decimal("0")
    total_trades: int = 0
    trades: list[BacktestTrade] = field(default_factory=list)

    @property
    def wins(self) -> int:
        return sum(1 for t in self.trades if t.outcome is TradeOutcome.WIN)

    @property
    def losses(self) -> int:
        return sum(1 for t in self.trades if t.outcome is TradeOutcome.LOSS)

    def summary(self) -> dict:
        """Aggregates only, Decimals as strings."""
        return {
            "win_rate": str(self.win_rate),
            "profit_factor": str(self.profit_factor),
            "total_pnl_pct": str(self.total_pnl_pct),
            "total_trades": self.total_trades,
        }

    def to_dict(self) -> dict:
        """Serialize to dict for JSON output, including every trade."""
        data = self.summary()
        data["trades"] = [t.to_dict() for t in self.trades]
        return data
