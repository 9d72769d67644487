"""Shared trading data models for the paper-trading simulator.

CRITICAL: All monetary values use Decimal. Never use float for prices, sizes, margins or fees.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class PositionSide(str, Enum):
    """Position direction."""

    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def opposite(self) -> "PositionSide":
        return PositionSide.SHORT if self is PositionSide.LONG else PositionSide.LONG


class OrderType(str, Enum):
    """Order type."""

    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"


class CloseReason(str, Enum):
    """Why a position (or part of it) was closed."""

    MANUAL = "MANUAL"
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"
    TRAILING_STOP = "TRAILING_STOP"
    LIQUIDATION = "LIQUIDATION"
    REDUCE_ONLY = "REDUCE_ONLY"
    LADDER = "LADDER"


@dataclass
class TakeProfitLevel:
    """One rung of a take-profit ladder."""

    price: Decimal
    percent_to_close: Decimal  # of the position remaining when the rung fills
    executed: bool = False


@dataclass
class Position:
    """An open leveraged position.

    ``size`` is notional (margin x leverage). ``liquidation_price`` is fixed
    at creation and never recomputed, including after partial closes.
    """

    id: str
    user_id: str
    symbol: str
    side: PositionSide
    entry_price: Decimal
    size: Decimal
    margin: Decimal
    leverage: int
    liquidation_price: Decimal
    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_stop_enabled: bool = False
    trailing_stop_percent: Decimal | None = None
    take_profit_ladder: list[TakeProfitLevel] = field(default_factory=list)
    opened_at: float = field(default_factory=time.time)

    @property
    def quantity(self) -> Decimal:
        """Contract quantity in base units (size / entry price)."""
        return self.size / self.entry_price


@dataclass
class PendingOrder:
    """A LIMIT or STOP order waiting for its trigger price. Never partially filled."""

    id: str
    user_id: str
    symbol: str
    order_type: OrderType
    side: PositionSide
    trigger_price: Decimal
    margin: Decimal
    leverage: int
    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_stop_enabled: bool = False
    trailing_stop_percent: Decimal | None = None
    reduce_only: bool = False
    created_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class TradeHistoryEntry:
    """Append-only record of a full or partial close."""

    id: str
    user_id: str
    symbol: str
    side: PositionSide
    entry_price: Decimal
    exit_price: Decimal
    size: Decimal  # notional closed by this entry
    pnl: Decimal
    roi: Decimal  # percent of the margin released
    closed_at: float
    reason: CloseReason = CloseReason.MANUAL


@dataclass
class OrderRequest:
    """Request to place an order through the ledger.

    ``amount`` is the margin committed; notional exposure is
    ``amount * leverage``. For reduce-only orders ``amount`` is the margin
    equivalent to release from opposite-side positions.
    """

    side: PositionSide
    amount: Decimal
    leverage: int
    order_type: OrderType = OrderType.MARKET
    symbol: str | None = None
    trigger_price: Decimal | None = None
    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_enabled: bool = False
    trailing_percent: Decimal | None = None
    reduce_only: bool = False


@dataclass
class RiskUpdate:
    """New risk parameters for an open position. ``None`` clears a level."""

    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_enabled: bool = False
    trailing_percent: Decimal | None = None
