"""Position and order ledger for one paper-trading account.

Accepts order requests, validates them, issues atomic commands to the
durable store and then refreshes its in-memory view from the store.

Order flow:
1. Validate the request (leverage, amount, market price, TP/SL direction)
2. Check balance for anything that adds exposure
3. MARKET: open now, or walk opposite positions if reduce-only
4. LIMIT/STOP: persist as a PendingOrder for the trigger engine
5. Refresh positions, pending orders and history from the store

The cached lists are only replaced after the store call succeeded and the
refresh completed; a failing store call leaves them untouched. A reduce-only
walk is the exception: it commits one close per position, so it reloads the
views even when a later step fails.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import replace
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import uuid4

from perpsim.config import TradingSettings
from perpsim.engine.anchors import TrailingAnchorBook
from perpsim.exceptions import (
    InsufficientBalanceError,
    MarketUnavailableError,
    PositionNotFoundError,
    ValidationError,
)
from perpsim.ledger.pnl import liquidation_price, opening_fee
from perpsim.ledger.validation import (
    validate_ladder,
    validate_order,
    validate_percent,
    validate_risk_update,
)
from perpsim.logging import get_logger
from perpsim.market_data.ticker_service import is_usable_price
from perpsim.models import (
    CloseReason,
    OrderRequest,
    OrderType,
    PendingOrder,
    Position,
    PositionSide,
    RiskUpdate,
    TakeProfitLevel,
    TradeHistoryEntry,
)

if TYPE_CHECKING:
    from perpsim.market_data.ticker_service import TickerService
    from perpsim.store.base import DurableStore

logger = get_logger(__name__)

_ONE = Decimal("1")
_HUNDRED = Decimal("100")

OrderOutcome = Position | PendingOrder | list[TradeHistoryEntry]


class Ledger:
    """Positions, pending orders and history of a single user.

    Uses asyncio.Lock so order placement from the API and closes issued by
    the trigger engine never interleave inside one operation.

    Args:
        store: Durable store all mutations go through.
        ticker_service: Source of the current market price.
        anchors: Trailing anchors, reset whenever risk parameters change.
        settings: Trading settings (user, symbol, fees, bounds).
    """

    def __init__(
        self,
        store: DurableStore,
        ticker_service: TickerService,
        anchors: TrailingAnchorBook | None = None,
        settings: TradingSettings | None = None,
    ) -> None:
        self._store = store
        self._ticker_service = ticker_service
        self._anchors = anchors or TrailingAnchorBook()
        self._settings = settings or TradingSettings()
        self._user_id = self._settings.user_id
        self._positions: list[Position] = []
        self._pending_orders: list[PendingOrder] = []
        self._history: list[TradeHistoryEntry] = []
        self._lock = asyncio.Lock()

    # ──────────────────────────────────────────────
    # State
    # ──────────────────────────────────────────────

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def default_symbol(self) -> str:
        return self._settings.symbol

    @property
    def anchors(self) -> TrailingAnchorBook:
        return self._anchors

    @property
    def positions(self) -> list[Position]:
        """Open positions as of the last refresh."""
        return list(self._positions)

    @property
    def pending_orders(self) -> list[PendingOrder]:
        """Pending orders as of the last refresh."""
        return list(self._pending_orders)

    @property
    def history(self) -> list[TradeHistoryEntry]:
        """Recent trade history (newest first) as of the last refresh."""
        return list(self._history)

    def get_position(self, position_id: str) -> Position | None:
        for position in self._positions:
            if position.id == position_id:
                return position
        return None

    async def open_account(self) -> Decimal:
        """Create the account if needed, load state, and return the balance."""
        balance = await self._store.ensure_account(
            self._user_id, self._settings.initial_balance
        )
        await self.refresh()
        return balance

    async def get_balance(self) -> Decimal:
        return await self._store.get_balance(self._user_id)

    async def refresh(self) -> None:
        """Reload positions, pending orders and history from the store."""
        async with self._lock:
            await self._refresh()

    async def _refresh(self) -> None:
        positions = await self._store.list_positions(self._user_id)
        orders = await self._store.list_pending_orders(self._user_id)
        history = await self._store.list_history(self._user_id)
        self._positions = positions
        self._pending_orders = orders
        self._history = history
        self._anchors.retain({p.id for p in positions})

    async def _market_price(self, symbol: str, price: Decimal | None = None) -> Decimal:
        if price is not None:
            if not is_usable_price(price):
                raise MarketUnavailableError(f"Unusable price {price} for {symbol}")
            return price
        return await self._ticker_service.get_valid_price(symbol)

    # ──────────────────────────────────────────────
    # Orders
    # ──────────────────────────────────────────────

    async def place_order(self, request: OrderRequest) -> OrderOutcome:
        """Validate and execute an order request.

        Returns:
            The opened Position for MARKET orders, the stored PendingOrder
            for LIMIT/STOP, or the history entries of the reductions for a
            reduce-only MARKET order.

        Raises:
            ValidationError: On invalid fields, or a reduce-only order with
                no opposite exposure.
            MarketUnavailableError: If there is no usable market price.
            InsufficientBalanceError: If margin + fee exceeds the balance.
            StoreError: If the store call fails.
        """
        symbol = request.symbol or self._settings.symbol
        market_price = await self._market_price(symbol)
        validate_order(request, market_price, self._settings)

        async with self._lock:
            if request.order_type is OrderType.MARKET and request.reduce_only:
                # earlier steps of a failed walk are already committed
                try:
                    return await self._reduce(
                        symbol, request.side, request.amount, market_price
                    )
                finally:
                    await self._refresh()

            if not request.reduce_only:
                await self._check_balance(request.amount)

            if request.order_type is OrderType.MARKET:
                outcome: OrderOutcome = await self._open(
                    symbol=symbol,
                    side=request.side,
                    price=market_price,
                    margin=request.amount,
                    leverage=request.leverage,
                    take_profit=request.take_profit,
                    stop_loss=request.stop_loss,
                    trailing_enabled=request.trailing_enabled,
                    trailing_percent=request.trailing_percent,
                )
            else:
                order = PendingOrder(
                    id=uuid4().hex,
                    user_id=self._user_id,
                    symbol=symbol,
                    order_type=request.order_type,
                    side=request.side,
                    trigger_price=request.trigger_price,
                    margin=request.amount,
                    leverage=request.leverage,
                    take_profit=request.take_profit,
                    stop_loss=request.stop_loss,
                    trailing_stop_enabled=request.trailing_enabled,
                    trailing_stop_percent=(
                        request.trailing_percent if request.trailing_enabled else None
                    ),
                    reduce_only=request.reduce_only,
                )
                outcome = await self._store.add_pending_order(order)
                logger.info(
                    "pending_order_placed",
                    order_id=order.id,
                    symbol=symbol,
                    order_type=order.order_type.value,
                    side=order.side.value,
                    trigger_price=str(order.trigger_price),
                    margin=str(order.margin),
                    reduce_only=order.reduce_only,
                )

            await self._refresh()
            return outcome

    async def _check_balance(self, margin: Decimal) -> None:
        balance = await self._store.get_balance(self._user_id)
        cost = margin + opening_fee(margin, self._settings.fee_rate)
        if cost > balance:
            raise InsufficientBalanceError(
                f"Order cost {cost} (margin + fee) exceeds balance {balance}"
            )

    def _build_position(
        self,
        symbol: str,
        side: PositionSide,
        price: Decimal,
        margin: Decimal,
        leverage: int,
        take_profit: Decimal | None,
        stop_loss: Decimal | None,
    ) -> Position:
        return Position(
            id=uuid4().hex,
            user_id=self._user_id,
            symbol=symbol,
            side=side,
            entry_price=price,
            size=margin * leverage,
            margin=margin,
            leverage=leverage,
            liquidation_price=liquidation_price(
                side, price, leverage, self._settings.liquidation_buffer
            ),
            take_profit=take_profit,
            stop_loss=stop_loss,
        )

    async def _arm_trailing(
        self, position: Position, trailing_percent: Decimal | None
    ) -> Position:
        update = RiskUpdate(
            take_profit=position.take_profit,
            stop_loss=position.stop_loss,
            trailing_enabled=True,
            trailing_percent=trailing_percent,
        )
        armed = await self._store.update_position_risk(self._user_id, position.id, update)
        self._anchors.reset(position.id)
        return armed

    async def _open(
        self,
        symbol: str,
        side: PositionSide,
        price: Decimal,
        margin: Decimal,
        leverage: int,
        take_profit: Decimal | None,
        stop_loss: Decimal | None,
        trailing_enabled: bool,
        trailing_percent: Decimal | None,
    ) -> Position:
        position = self._build_position(
            symbol, side, price, margin, leverage, take_profit, stop_loss
        )
        fee = opening_fee(margin, self._settings.fee_rate)
        position = await self._store.open_position(position, fee)
        if trailing_enabled:
            position = await self._arm_trailing(position, trailing_percent)

        logger.info(
            "position_opened",
            position_id=position.id,
            symbol=symbol,
            side=side.value,
            entry_price=str(price),
            margin=str(margin),
            leverage=leverage,
            size=str(position.size),
            fee=str(fee),
            liquidation_price=str(position.liquidation_price),
            trailing=trailing_enabled,
        )
        return position

    async def _reduce(
        self,
        symbol: str,
        side: PositionSide,
        amount: Decimal,
        price: Decimal,
    ) -> list[TradeHistoryEntry]:
        """Release ``amount`` of margin from opposite-side positions, in order.

        Each position closes ``min(remaining / margin, 1)`` of itself. Never
        opens new exposure.
        """
        return [entry async for entry, _ in self._reduce_steps(symbol, side, amount, price)]

    async def _reduce_steps(
        self,
        symbol: str,
        side: PositionSide,
        amount: Decimal,
        price: Decimal,
    ) -> AsyncIterator[tuple[TradeHistoryEntry, Decimal]]:
        """Yield each committed reduction with the margin it released."""
        target_side = side.opposite
        positions = [
            p
            for p in await self._store.list_positions(self._user_id)
            if p.symbol == symbol and p.side is target_side
        ]
        if not positions:
            raise ValidationError(
                f"Reduce-only {side.value} order has no {target_side.value} exposure on {symbol}"
            )

        remaining = amount
        for position in positions:
            if remaining <= 0:
                break
            fraction = min(remaining / position.margin, _ONE)
            entry = await self._store.close_position_partial(
                self._user_id,
                position.id,
                price,
                fraction * _HUNDRED,
                CloseReason.REDUCE_ONLY,
            )
            if fraction == _ONE:
                self._anchors.reset(position.id)
            released = position.margin * fraction
            remaining -= released
            logger.info(
                "position_reduced",
                position_id=position.id,
                percent=str(fraction * _HUNDRED),
                exit_price=str(price),
                pnl=str(entry.pnl),
            )
            yield entry, released

    async def _is_pending(self, order_id: str) -> bool:
        orders = await self._store.list_pending_orders(self._user_id)
        return any(o.id == order_id for o in orders)

    async def _fill_reduce_only(
        self, order: PendingOrder, price: Decimal
    ) -> list[TradeHistoryEntry] | None:
        """Walk opposite positions for a triggered reduce-only order.

        The order is removed only once the walk completes. If a store call
        fails mid-walk the order stays pending with the margin still to
        release, so the next tick retries the rest. An order with no
        opposite exposure left can never fill and is dropped.
        """
        if not await self._is_pending(order.id):
            return None

        entries: list[TradeHistoryEntry] = []
        released = Decimal("0")
        try:
            async for entry, margin in self._reduce_steps(
                order.symbol, order.side, order.margin, price
            ):
                entries.append(entry)
                released += margin
        except ValidationError:
            await self._store.remove_pending_order(self._user_id, order.id)
            logger.warning("pending_order_dropped", order_id=order.id, reason="no_exposure")
            raise
        except Exception:
            if released > 0:
                await self._store.remove_pending_order(self._user_id, order.id)
                await self._store.add_pending_order(
                    replace(order, margin=order.margin - released)
                )
                logger.warning(
                    "pending_order_partially_reduced",
                    order_id=order.id,
                    released=str(released),
                    remaining=str(order.margin - released),
                )
            raise

        await self._store.remove_pending_order(self._user_id, order.id)
        return entries

    async def fill_pending_order(
        self, order: PendingOrder, price: Decimal
    ) -> Position | list[TradeHistoryEntry] | None:
        """Execute a triggered pending order at ``price``.

        Returns None if the order was cancelled before the fill.

        Raises:
            ValidationError: A reduce-only order found no opposite exposure;
                the order is dropped.
            StoreError: A reduce-only walk failed; the order stays pending
                with the margin not yet released.
            InsufficientBalanceError: The balance no longer covers the order;
                the order stays pending.
        """
        price = await self._market_price(order.symbol, price)

        async with self._lock:
            if order.reduce_only:
                try:
                    result: Position | list[TradeHistoryEntry] | None = (
                        await self._fill_reduce_only(order, price)
                    )
                finally:
                    await self._refresh()
            else:
                position = self._build_position(
                    order.symbol,
                    order.side,
                    price,
                    order.margin,
                    order.leverage,
                    order.take_profit,
                    order.stop_loss,
                )
                fee = opening_fee(order.margin, self._settings.fee_rate)
                result = await self._store.fill_pending_order(order, position, fee)
                if result is not None and order.trailing_stop_enabled:
                    result = await self._arm_trailing(result, order.trailing_stop_percent)
                await self._refresh()

        logger.info(
            "pending_order_filled",
            order_id=order.id,
            order_type=order.order_type.value,
            side=order.side.value,
            trigger_price=str(order.trigger_price),
            fill_price=str(price),
            reduce_only=order.reduce_only,
            filled=result is not None,
        )
        return result

    async def cancel_pending_order(self, order_id: str) -> bool:
        """Remove a pending order. Cancelling twice is a no-op."""
        async with self._lock:
            removed = await self._store.remove_pending_order(self._user_id, order_id)
            if removed:
                await self._refresh()
        logger.info("pending_order_cancelled", order_id=order_id, removed=removed)
        return removed

    # ──────────────────────────────────────────────
    # Positions
    # ──────────────────────────────────────────────

    async def close_position(
        self,
        position_id: str,
        reason: CloseReason = CloseReason.MANUAL,
        price: Decimal | None = None,
    ) -> TradeHistoryEntry:
        """Fully close a position at ``price`` (default: current market)."""
        return await self.close_position_partial(position_id, _HUNDRED, reason, price)

    async def close_position_partial(
        self,
        position_id: str,
        percent: Decimal,
        reason: CloseReason = CloseReason.MANUAL,
        price: Decimal | None = None,
    ) -> TradeHistoryEntry:
        """Close ``percent`` of a position; 100 closes it fully.

        Raises:
            ValidationError: If percent is outside (0, 100].
            PositionNotFoundError: If the position is not open.
            MarketUnavailableError: If no usable price is available.
        """
        validate_percent(percent)
        position = self.get_position(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        exit_price = await self._market_price(position.symbol, price)

        async with self._lock:
            entry = await self._store.close_position_partial(
                self._user_id, position_id, exit_price, percent, reason
            )
            self._anchors.reset(position_id)
            await self._refresh()

        logger.info(
            "position_closed" if percent == _HUNDRED else "position_partially_closed",
            position_id=position_id,
            reason=reason.value,
            percent=str(percent),
            exit_price=str(exit_price),
            pnl=str(entry.pnl),
            roi=str(entry.roi),
        )
        return entry

    async def update_position_risk(self, position_id: str, update: RiskUpdate) -> Position:
        """Replace TP/SL/trailing parameters and reset the trailing anchor."""
        validate_risk_update(update, self._settings)
        async with self._lock:
            position = await self._store.update_position_risk(
                self._user_id, position_id, update
            )
            self._anchors.reset(position_id)
            await self._refresh()

        logger.info(
            "position_risk_updated",
            position_id=position_id,
            take_profit=str(update.take_profit) if update.take_profit is not None else None,
            stop_loss=str(update.stop_loss) if update.stop_loss is not None else None,
            trailing=update.trailing_enabled,
            trailing_percent=(
                str(update.trailing_percent) if update.trailing_percent is not None else None
            ),
        )
        return position

    async def set_take_profit_ladder(
        self, position_id: str, levels: list[TakeProfitLevel]
    ) -> Position:
        """Replace the position's take-profit ladder, sorted nearest rung first."""
        position = self.get_position(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        validate_ladder(position.side, position.entry_price, levels)

        ordered = sorted(
            levels,
            key=lambda level: level.price,
            reverse=position.side is PositionSide.SHORT,
        )
        async with self._lock:
            updated = await self._store.update_take_profit_ladder(
                self._user_id, position_id, ordered
            )
            await self._refresh()
        logger.info("take_profit_ladder_set", position_id=position_id, rungs=len(ordered))
        return updated

    async def execute_ladder_rung(
        self, position_id: str, index: int, price: Decimal
    ) -> TradeHistoryEntry:
        """Mark rung ``index`` executed, then close its percent of the position.

        A rung that fails to close stays executed and is not retried.
        """
        position = self.get_position(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        rung = position.take_profit_ladder[index]
        exit_price = await self._market_price(position.symbol, price)

        levels = [
            TakeProfitLevel(
                price=level.price,
                percent_to_close=level.percent_to_close,
                executed=level.executed or i == index,
            )
            for i, level in enumerate(position.take_profit_ladder)
        ]
        async with self._lock:
            await self._store.update_take_profit_ladder(self._user_id, position_id, levels)
            try:
                entry = await self._store.close_position_partial(
                    self._user_id,
                    position_id,
                    exit_price,
                    rung.percent_to_close,
                    CloseReason.LADDER,
                )
                self._anchors.reset(position_id)
            finally:
                await self._refresh()

        logger.info(
            "ladder_rung_executed",
            position_id=position_id,
            rung=index,
            rung_price=str(rung.price),
            percent=str(rung.percent_to_close),
            exit_price=str(exit_price),
            pnl=str(entry.pnl),
        )
        return entry
