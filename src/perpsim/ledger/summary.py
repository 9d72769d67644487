"""Account summary: balance, equity, unrealized and daily P&L, win rate."""

import time
from dataclasses import dataclass
from decimal import Decimal

from perpsim.ledger.pnl import unrealized_pnl
from perpsim.models import Position, TradeHistoryEntry

_SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class AccountSummary:
    balance: Decimal
    margin_in_use: Decimal
    unrealized_pnl: Decimal
    equity: Decimal  # balance + margin in use + unrealized P&L
    day_pnl: Decimal
    win_rate: Decimal  # percent of closed entries with positive P&L
    open_positions: int
    closed_trades: int

    def to_dict(self) -> dict:
        return {
            "balance": str(self.balance),
            "margin_in_use": str(self.margin_in_use),
            "unrealized_pnl": str(self.unrealized_pnl),
            "equity": str(self.equity),
            "day_pnl": str(self.day_pnl),
            "win_rate": str(self.win_rate),
            "open_positions": self.open_positions,
            "closed_trades": self.closed_trades,
        }


def account_summary(
    balance: Decimal,
    positions: list[Position],
    history: list[TradeHistoryEntry],
    prices: dict[str, Decimal],
    now: float | None = None,
) -> AccountSummary:
    """Summarize an account.

    Positions whose symbol has no price in ``prices`` contribute their
    margin but no unrealized P&L. Day P&L covers history entries closed in
    the last 24 hours.
    """
    now = now if now is not None else time.time()

    margin_in_use = sum((p.margin for p in positions), Decimal("0"))
    upnl = sum(
        (unrealized_pnl(p, prices[p.symbol]) for p in positions if p.symbol in prices),
        Decimal("0"),
    )
    day_pnl = sum(
        (e.pnl for e in history if now - e.closed_at < _SECONDS_PER_DAY),
        Decimal("0"),
    )
    wins = sum(1 for e in history if e.pnl > 0)
    win_rate = Decimal(wins) / Decimal(len(history)) * 100 if history else Decimal("0")

    return AccountSummary(
        balance=balance,
        margin_in_use=margin_in_use,
        unrealized_pnl=upnl,
        equity=balance + margin_in_use + upnl,
        day_pnl=day_pnl,
        win_rate=win_rate,
        open_positions=len(positions),
        closed_trades=len(history),
    )
