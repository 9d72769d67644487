"""Position P&L, ROI, fee and liquidation arithmetic.

Pure functions shared by the ledger, the stores and the account summary.

CRITICAL: All values are Decimal. P&L is ``(exit - entry) * size / entry``
for LONG and the negation for SHORT; multiplying before dividing keeps the
result exact whenever the inputs are.
"""

from decimal import Decimal

from perpsim.models import Position, PositionSide

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


def realized_pnl(
    side: PositionSide, entry_price: Decimal, exit_price: Decimal, size: Decimal
) -> Decimal:
    """P&L in quote currency for closing ``size`` notional at ``exit_price``."""
    pnl = (exit_price - entry_price) * size / entry_price
    return pnl if side is PositionSide.LONG else -pnl


def unrealized_pnl(position: Position, price: Decimal) -> Decimal:
    """Mark-to-market P&L of the whole position at ``price``."""
    return realized_pnl(position.side, position.entry_price, price, position.size)


def roi(pnl: Decimal, margin: Decimal) -> Decimal:
    """Return on margin in percent. Zero margin gives zero."""
    if margin == 0:
        return Decimal("0")
    return pnl / margin * _HUNDRED


def opening_fee(margin: Decimal, fee_rate: Decimal) -> Decimal:
    """Fee charged on open, as a fraction of the margin committed."""
    return margin * fee_rate


def liquidation_price(
    side: PositionSide, entry_price: Decimal, leverage: int, buffer: Decimal
) -> Decimal:
    """Fixed liquidation level: ``entry * (1 -/+ 1/leverage +/- buffer)``."""
    inverse = _ONE / Decimal(leverage)
    if side is PositionSide.LONG:
        return entry_price * (_ONE - inverse + buffer)
    return entry_price * (_ONE + inverse - buffer)


def is_liquidated(position: Position, price: Decimal) -> bool:
    """True once price reaches the position's liquidation level."""
    if position.side is PositionSide.LONG:
        return price <= position.liquidation_price
    return price >= position.liquidation_price
