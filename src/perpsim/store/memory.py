"""In-memory paper store.

Keeps accounts, positions, pending orders and history in dicts guarded by a
single asyncio.Lock, so each mutation is atomic with respect to other
coroutines. State is lost on restart; use SqliteStore for persistence.
"""

import asyncio
from dataclasses import replace
from decimal import Decimal

from perpsim.exceptions import (
    InsufficientBalanceError,
    PositionNotFoundError,
    StoreError,
)
from perpsim.logging import get_logger
from perpsim.models import (
    CloseReason,
    PendingOrder,
    Position,
    RiskUpdate,
    TakeProfitLevel,
    TradeHistoryEntry,
)
from perpsim.store.base import (
    DurableStore,
    apply_risk_update,
    copy_position,
    settle_close,
)

logger = get_logger(__name__)

_HUNDRED = Decimal("100")


class InMemoryStore(DurableStore):
    """Paper-trading store held entirely in process memory."""

    def __init__(self) -> None:
        self._balances: dict[str, Decimal] = {}
        # dicts preserve insertion order, which is the stored order
        self._positions: dict[str, dict[str, Position]] = {}
        self._orders: dict[str, dict[str, PendingOrder]] = {}
        self._history: dict[str, list[TradeHistoryEntry]] = {}
        self._lock = asyncio.Lock()

    async def ensure_account(self, user_id: str, initial_balance: Decimal) -> Decimal:
        async with self._lock:
            if user_id not in self._balances:
                self._balances[user_id] = initial_balance
                self._positions[user_id] = {}
                self._orders[user_id] = {}
                self._history[user_id] = []
                logger.info(
                    "account_created", user_id=user_id, balance=str(initial_balance)
                )
            return self._balances[user_id]

    async def get_balance(self, user_id: str) -> Decimal:
        async with self._lock:
            return self._balance(user_id)

    def _balance(self, user_id: str) -> Decimal:
        if user_id not in self._balances:
            raise StoreError(f"Unknown account: {user_id}")
        return self._balances[user_id]

    def _position(self, user_id: str, position_id: str) -> Position:
        position = self._positions.get(user_id, {}).get(position_id)
        if position is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        return position

    def _open(self, position: Position, fee: Decimal) -> Position:
        balance = self._balance(position.user_id)
        cost = position.margin + fee
        if cost > balance:
            raise InsufficientBalanceError(
                f"Cost {cost} exceeds balance {balance}"
            )
        self._balances[position.user_id] = balance - cost
        self._positions[position.user_id][position.id] = copy_position(position)
        return position

    async def open_position(self, position: Position, fee: Decimal) -> Position:
        async with self._lock:
            return self._open(position, fee)

    async def close_position(
        self,
        user_id: str,
        position_id: str,
        exit_price: Decimal,
        reason: CloseReason = CloseReason.MANUAL,
    ) -> TradeHistoryEntry:
        return await self.close_position_partial(
            user_id, position_id, exit_price, _HUNDRED, reason
        )

    async def close_position_partial(
        self,
        user_id: str,
        position_id: str,
        exit_price: Decimal,
        percent: Decimal,
        reason: CloseReason = CloseReason.MANUAL,
    ) -> TradeHistoryEntry:
        async with self._lock:
            position = self._position(user_id, position_id)
            settlement = settle_close(position, exit_price, percent, reason)

            self._balances[user_id] = self._balance(user_id) + settlement.credit
            if settlement.remaining is None:
                del self._positions[user_id][position_id]
            else:
                self._positions[user_id][position_id] = settlement.remaining
            self._history[user_id].append(settlement.entry)
            return settlement.entry

    async def update_position_risk(
        self, user_id: str, position_id: str, update: RiskUpdate
    ) -> Position:
        async with self._lock:
            updated = apply_risk_update(self._position(user_id, position_id), update)
            self._positions[user_id][position_id] = updated
            return copy_position(updated)

    async def update_take_profit_ladder(
        self, user_id: str, position_id: str, levels: list[TakeProfitLevel]
    ) -> Position:
        async with self._lock:
            position = self._position(user_id, position_id)
            updated = replace(
                position, take_profit_ladder=[replace(level) for level in levels]
            )
            self._positions[user_id][position_id] = updated
            return copy_position(updated)

    async def add_pending_order(self, order: PendingOrder) -> PendingOrder:
        async with self._lock:
            self._balance(order.user_id)
            self._orders[order.user_id][order.id] = order
            return order

    async def remove_pending_order(self, user_id: str, order_id: str) -> bool:
        async with self._lock:
            return self._orders.get(user_id, {}).pop(order_id, None) is not None

    async def fill_pending_order(
        self, order: PendingOrder, position: Position, fee: Decimal
    ) -> Position | None:
        async with self._lock:
            orders = self._orders.get(order.user_id, {})
            if order.id not in orders:
                return None
            opened = self._open(position, fee)
            del orders[order.id]
            return opened

    async def list_positions(self, user_id: str) -> list[Position]:
        async with self._lock:
            return [copy_position(p) for p in self._positions.get(user_id, {}).values()]

    async def list_pending_orders(self, user_id: str) -> list[PendingOrder]:
        async with self._lock:
            return list(self._orders.get(user_id, {}).values())

    async def list_history(
        self, user_id: str, limit: int | None = 50
    ) -> list[TradeHistoryEntry]:
        async with self._lock:
            entries = list(reversed(self._history.get(user_id, [])))
            return entries[:limit] if limit is not None else entries
