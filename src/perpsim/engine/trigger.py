"""Trigger evaluation: reacts to each price tick for open positions and
pending orders.

Per position (state OPEN -> CLOSED):
1. Trailing disabled: drop any stale anchor. Enabled: advance the anchor to
   the running favorable extreme and derive ``anchor * (1 -/+ p/100)``.
2. Effective stop = the more protective of the explicit stop and the
   trailing level.
3. Take-profit, then effective stop, then liquidation. The first condition
   that holds closes the whole position at the tick price.
4. Otherwise the nearest unexecuted take-profit ladder rung that price has
   reached closes its percent. At most one rung per tick.

Per pending order: LIMIT fills on a favorable move through the trigger
(LONG price <= trigger, SHORT price >= trigger), STOP on a breakout
(LONG price >= trigger, SHORT price <= trigger).

Only one pass runs at a time. A tick arriving mid-pass is dropped, not
queued; the next tick re-evaluates against the latest state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from perpsim.config import TradingSettings
from perpsim.ledger.pnl import is_liquidated
from perpsim.logging import bound_context, get_logger
from perpsim.market_data.ticker_service import is_usable_price
from perpsim.models import CloseReason, OrderType, PendingOrder, Position, PositionSide

if TYPE_CHECKING:
    from perpsim.ledger.manager import Ledger

logger = get_logger(__name__)

_ONE = Decimal("1")
_HUNDRED = Decimal("100")


class TriggerAction(str, Enum):
    HOLD = "HOLD"
    CLOSE = "CLOSE"
    LADDER = "LADDER"


@dataclass(frozen=True)
class TriggerDecision:
    """What to do with one position at one price."""

    action: TriggerAction
    reason: CloseReason | None = None
    trailing_level: Decimal | None = None
    effective_stop: Decimal | None = None
    ladder_index: int | None = None


@dataclass
class TickReport:
    """Outcome of one evaluation pass."""

    symbol: str = ""
    price: Decimal | None = None
    skipped: bool = False
    closed: list[str] = field(default_factory=list)
    partially_closed: list[str] = field(default_factory=list)
    filled_orders: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def trailing_level(side: PositionSide, anchor: Decimal, percent: Decimal) -> Decimal:
    """Stop level trailing ``percent`` behind the favorable extreme."""
    offset = percent / _HUNDRED
    if side is PositionSide.LONG:
        return anchor * (_ONE - offset)
    return anchor * (_ONE + offset)


def effective_stop(
    side: PositionSide, stop_loss: Decimal | None, trailing: Decimal | None
) -> Decimal | None:
    """The more protective (closer to price) of the two stops."""
    if stop_loss is None:
        return trailing
    if trailing is None:
        return stop_loss
    if side is PositionSide.LONG:
        return max(stop_loss, trailing)
    return min(stop_loss, trailing)


def evaluate_position(
    position: Position,
    price: Decimal,
    anchor: Decimal | None = None,
    liquidation_enabled: bool = True,
) -> TriggerDecision:
    """Decide whether ``position`` closes at ``price``.

    Args:
        position: The open position.
        price: Current tick price.
        anchor: Trailing anchor already advanced with ``price``; ignored
            unless trailing is enabled.
        liquidation_enabled: Whether reaching the liquidation price closes.

    Returns:
        TriggerDecision. HOLD when nothing fires.
    """
    long = position.side is PositionSide.LONG

    trail = None
    if (
        position.trailing_stop_enabled
        and anchor is not None
        and position.trailing_stop_percent is not None
    ):
        trail = trailing_level(position.side, anchor, position.trailing_stop_percent)
    stop = effective_stop(position.side, position.stop_loss, trail)

    tp = position.take_profit
    if tp is not None and (price >= tp if long else price <= tp):
        return TriggerDecision(
            TriggerAction.CLOSE, CloseReason.TAKE_PROFIT, trail, stop
        )

    if stop is not None and (price <= stop if long else price >= stop):
        reason = (
            CloseReason.TRAILING_STOP
            if trail is not None and stop == trail and stop != position.stop_loss
            else CloseReason.STOP_LOSS
        )
        return TriggerDecision(TriggerAction.CLOSE, reason, trail, stop)

    if liquidation_enabled and is_liquidated(position, price):
        return TriggerDecision(TriggerAction.CLOSE, CloseReason.LIQUIDATION, trail, stop)

    for index, level in enumerate(position.take_profit_ladder):
        if level.executed:
            continue
        if price >= level.price if long else price <= level.price:
            return TriggerDecision(
                TriggerAction.LADDER, CloseReason.LADDER, trail, stop, ladder_index=index
            )

    return TriggerDecision(TriggerAction.HOLD, trailing_level=trail, effective_stop=stop)


def should_fill(order: PendingOrder, price: Decimal) -> bool:
    """LIMIT fills on a favorable move, STOP on a breakout."""
    long = order.side is PositionSide.LONG
    if order.order_type is OrderType.LIMIT:
        return price <= order.trigger_price if long else price >= order.trigger_price
    if order.order_type is OrderType.STOP:
        return price >= order.trigger_price if long else price <= order.trigger_price
    return False


class TriggerEngine:
    """Runs trigger evaluation passes against the ledger.

    Args:
        ledger: Ledger holding the positions and orders to evaluate.
        settings: Trading settings (liquidation toggle).
    """

    def __init__(self, ledger: Ledger, settings: TradingSettings | None = None) -> None:
        self._ledger = ledger
        self._anchors = ledger.anchors
        self._settings = settings or TradingSettings()
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    async def on_price(self, symbol: str, price: Decimal) -> TickReport:
        """Evaluate every position and pending order on ``symbol`` at ``price``.

        Never raises for per-item failures; they are logged and listed in
        ``TickReport.errors``.
        """
        if self._busy:
            logger.debug("tick_dropped", symbol=symbol, price=str(price))
            return TickReport(symbol=symbol, price=price, skipped=True)

        if not is_usable_price(price):
            logger.warning("tick_price_unavailable", symbol=symbol, price=str(price))
            return TickReport(symbol=symbol, price=price, skipped=True)

        self._busy = True
        try:
            with bound_context(symbol=symbol, price=str(price)):
                report = TickReport(symbol=symbol, price=price)
                await self._evaluate_positions(symbol, price, report)
                await self._evaluate_orders(symbol, price, report)
                if report.closed or report.partially_closed or report.filled_orders:
                    logger.info(
                        "tick_processed",
                        closed=len(report.closed),
                        partially_closed=len(report.partially_closed),
                        filled_orders=len(report.filled_orders),
                        errors=len(report.errors),
                    )
                return report
        finally:
            self._busy = False

    async def _evaluate_positions(
        self, symbol: str, price: Decimal, report: TickReport
    ) -> None:
        for position in self._ledger.positions:
            if position.symbol != symbol:
                continue
            try:
                if position.trailing_stop_enabled:
                    anchor = self._anchors.update(position, price)
                else:
                    self._anchors.reset(position.id)
                    anchor = None

                decision = evaluate_position(
                    position, price, anchor, self._settings.liquidation_enabled
                )

                if decision.action is TriggerAction.CLOSE:
                    await self._ledger.close_position(position.id, decision.reason, price)
                    report.closed.append(position.id)
                    logger.info(
                        "position_triggered",
                        position_id=position.id,
                        reason=decision.reason.value,
                        effective_stop=(
                            str(decision.effective_stop)
                            if decision.effective_stop is not None
                            else None
                        ),
                    )
                elif decision.action is TriggerAction.LADDER:
                    await self._ledger.execute_ladder_rung(
                        position.id, decision.ladder_index, price
                    )
                    report.partially_closed.append(position.id)
            except Exception as e:
                report.errors.append(position.id)
                logger.error(
                    "position_evaluation_failed",
                    position_id=position.id,
                    error=str(e),
                    exc_info=True,
                )

    async def _evaluate_orders(
        self, symbol: str, price: Decimal, report: TickReport
    ) -> None:
        for order in self._ledger.pending_orders:
            if order.symbol != symbol or not should_fill(order, price):
                continue
            try:
                result = await self._ledger.fill_pending_order(order, price)
                if result is not None:
                    report.filled_orders.append(order.id)
            except Exception as e:
                report.errors.append(order.id)
                logger.error(
                    "pending_order_fill_failed",
                    order_id=order.id,
                    error=str(e),
                    exc_info=True,
                )
