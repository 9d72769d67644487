"""Abstract durable store for accounts, positions, pending orders and history.

Every mutation is atomic: the balance debit or credit, the position change
and the history append happen together or not at all. The ledger depends
only on this interface; InMemoryStore and SqliteStore implement it.

Accounting:
- open: balance -= margin + opening fee
- close (full or partial): balance += released margin + realized P&L, and a
  TradeHistoryEntry is appended for the closed portion
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import Decimal
from uuid import uuid4

from perpsim.exceptions import ValidationError
from perpsim.ledger.pnl import realized_pnl, roi
from perpsim.models import (
    CloseReason,
    PendingOrder,
    Position,
    RiskUpdate,
    TakeProfitLevel,
    TradeHistoryEntry,
)

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class CloseSettlement:
    """Outcome of closing some percent of a position."""

    entry: TradeHistoryEntry
    credit: Decimal  # released margin + realized P&L
    remaining: Position | None  # None when fully closed


def settle_close(
    position: Position,
    exit_price: Decimal,
    percent: Decimal,
    reason: CloseReason,
    closed_at: float | None = None,
) -> CloseSettlement:
    """Compute the history entry, balance credit and remaining position.

    Margin and size shrink proportionally; entry and liquidation prices are
    unchanged.

    Raises:
        ValidationError: If percent is outside (0, 100].
    """
    if not percent.is_finite() or percent <= 0 or percent > _HUNDRED:
        raise ValidationError(f"Close percent must be in (0, 100], got {percent}")

    if percent == _HUNDRED:
        closed_margin = position.margin
        closed_size = position.size
    else:
        closed_margin = position.margin * percent / _HUNDRED
        closed_size = position.size * percent / _HUNDRED

    pnl = realized_pnl(position.side, position.entry_price, exit_price, closed_size)
    entry = TradeHistoryEntry(
        id=uuid4().hex,
        user_id=position.user_id,
        symbol=position.symbol,
        side=position.side,
        entry_price=position.entry_price,
        exit_price=exit_price,
        size=closed_size,
        pnl=pnl,
        roi=roi(pnl, closed_margin),
        closed_at=closed_at if closed_at is not None else time.time(),
        reason=reason,
    )

    remaining = None
    if percent < _HUNDRED:
        remaining = replace(
            position,
            margin=position.margin - closed_margin,
            size=position.size - closed_size,
        )
    return CloseSettlement(entry=entry, credit=closed_margin + pnl, remaining=remaining)


def copy_position(position: Position) -> Position:
    """Detached copy, including the ladder rungs."""
    return replace(
        position,
        take_profit_ladder=[replace(level) for level in position.take_profit_ladder],
    )


def apply_risk_update(position: Position, update: RiskUpdate) -> Position:
    """Return a copy of ``position`` with the new risk parameters."""
    return replace(
        position,
        take_profit=update.take_profit,
        stop_loss=update.stop_loss,
        trailing_stop_enabled=update.trailing_enabled,
        trailing_stop_percent=update.trailing_percent if update.trailing_enabled else None,
    )


class DurableStore(ABC):
    """Abstract base class for the simulator's persistent state."""

    async def connect(self) -> None:
        """Open underlying resources. No-op by default."""

    async def close(self) -> None:
        """Release underlying resources. No-op by default."""

    @abstractmethod
    async def ensure_account(self, user_id: str, initial_balance: Decimal) -> Decimal:
        """Create the account with ``initial_balance`` if missing; return its balance."""
        ...

    @abstractmethod
    async def get_balance(self, user_id: str) -> Decimal:
        """Return the available balance.

        Raises:
            StoreError: If the account does not exist.
        """
        ...

    @abstractmethod
    async def open_position(self, position: Position, fee: Decimal) -> Position:
        """Persist a new position, debiting margin plus ``fee``.

        Raises:
            InsufficientBalanceError: If the balance cannot cover margin + fee.
        """
        ...

    @abstractmethod
    async def close_position(
        self,
        user_id: str,
        position_id: str,
        exit_price: Decimal,
        reason: CloseReason = CloseReason.MANUAL,
    ) -> TradeHistoryEntry:
        """Fully close a position and append its history entry.

        Raises:
            PositionNotFoundError: If the position does not exist.
        """
        ...

    @abstractmethod
    async def close_position_partial(
        self,
        user_id: str,
        position_id: str,
        exit_price: Decimal,
        percent: Decimal,
        reason: CloseReason = CloseReason.MANUAL,
    ) -> TradeHistoryEntry:
        """Close ``percent`` of a position; 100 closes it fully.

        Raises:
            PositionNotFoundError: If the position does not exist.
            ValidationError: If percent is outside (0, 100].
        """
        ...

    @abstractmethod
    async def update_position_risk(
        self, user_id: str, position_id: str, update: RiskUpdate
    ) -> Position:
        """Replace TP/SL/trailing parameters.

        Raises:
            PositionNotFoundError: If the position does not exist.
        """
        ...

    @abstractmethod
    async def update_take_profit_ladder(
        self, user_id: str, position_id: str, levels: list[TakeProfitLevel]
    ) -> Position:
        """Replace the take-profit ladder.

        Raises:
            PositionNotFoundError: If the position does not exist.
        """
        ...

    @abstractmethod
    async def add_pending_order(self, order: PendingOrder) -> PendingOrder:
        """Persist a LIMIT or STOP order."""
        ...

    @abstractmethod
    async def remove_pending_order(self, user_id: str, order_id: str) -> bool:
        """Remove a pending order. Returns False if it was already gone."""
        ...

    @abstractmethod
    async def fill_pending_order(
        self, order: PendingOrder, position: Position, fee: Decimal
    ) -> Position | None:
        """Remove ``order`` and open ``position`` in one step.

        Returns None (and opens nothing) if the order no longer exists.

        Raises:
            InsufficientBalanceError: If the balance cannot cover margin + fee;
                the order is left in place.
        """
        ...

    @abstractmethod
    async def list_positions(self, user_id: str) -> list[Position]:
        """Open positions in the order they were opened."""
        ...

    @abstractmethod
    async def list_pending_orders(self, user_id: str) -> list[PendingOrder]:
        """Pending orders in the order they were placed."""
        ...

    @abstractmethod
    async def list_history(
        self, user_id: str, limit: int | None = 50
    ) -> list[TradeHistoryEntry]:
        """Trade history, newest first."""
        ...
