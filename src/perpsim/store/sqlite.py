"""Async SQLite durable store.

Uses aiosqlite with WAL mode. Each mutation runs in one transaction that is
committed on success and rolled back on any failure, so balance, position
and history changes land together.

CRITICAL: All monetary values stored as TEXT in SQLite, restored as Decimal on read.
"""

import asyncio
import json
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Self

import aiosqlite

from perpsim.exceptions import (
    InsufficientBalanceError,
    PositionNotFoundError,
    SimulatorError,
    StoreError,
)
from perpsim.logging import get_logger
from perpsim.models import (
    CloseReason,
    OrderType,
    PendingOrder,
    Position,
    PositionSide,
    RiskUpdate,
    TakeProfitLevel,
    TradeHistoryEntry,
)
from perpsim.store.base import DurableStore, apply_risk_update, settle_close

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_HUNDRED = Decimal("100")

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS accounts (
    user_id TEXT PRIMARY KEY,
    balance TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS positions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    size TEXT NOT NULL,
    margin TEXT NOT NULL,
    leverage INTEGER NOT NULL,
    liquidation_price TEXT NOT NULL,
    take_profit TEXT,
    stop_loss TEXT,
    trailing_enabled INTEGER NOT NULL DEFAULT 0,
    trailing_percent TEXT,
    ladder TEXT NOT NULL DEFAULT '[]',
    opened_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS pending_orders (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    order_type TEXT NOT NULL,
    side TEXT NOT NULL,
    trigger_price TEXT NOT NULL,
    margin TEXT NOT NULL,
    leverage INTEGER NOT NULL,
    take_profit TEXT,
    stop_loss TEXT,
    trailing_enabled INTEGER NOT NULL DEFAULT 0,
    trailing_percent TEXT,
    reduce_only INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS trade_history (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    user_id TEXT NOT NULL,
    symbol TEXT NOT NULL,
    side TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    exit_price TEXT NOT NULL,
    size TEXT NOT NULL,
    pnl TEXT NOT NULL,
    roi TEXT NOT NULL,
    closed_at REAL NOT NULL,
    reason TEXT NOT NULL
);
"""

_CREATE_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_positions_user ON positions(user_id, seq);
CREATE INDEX IF NOT EXISTS idx_orders_user ON pending_orders(user_id, seq);
CREATE INDEX IF NOT EXISTS idx_history_user ON trade_history(user_id, seq);
"""

_POSITION_COLUMNS = (
    "id, user_id, symbol, side, entry_price, size, margin, leverage, "
    "liquidation_price, take_profit, stop_loss, trailing_enabled, "
    "trailing_percent, ladder, opened_at"
)

_ORDER_COLUMNS = (
    "id, user_id, symbol, order_type, side, trigger_price, margin, leverage, "
    "take_profit, stop_loss, trailing_enabled, trailing_percent, reduce_only, "
    "created_at"
)

_HISTORY_COLUMNS = (
    "id, user_id, symbol, side, entry_price, exit_price, size, pnl, roi, "
    "closed_at, reason"
)


def _opt_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def _opt_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _ladder_to_json(levels: list[TakeProfitLevel]) -> str:
    return json.dumps(
        [
            {
                "price": str(level.price),
                "percent_to_close": str(level.percent_to_close),
                "executed": level.executed,
            }
            for level in levels
        ]
    )


def _ladder_from_json(raw: str) -> list[TakeProfitLevel]:
    return [
        TakeProfitLevel(
            price=Decimal(item["price"]),
            percent_to_close=Decimal(item["percent_to_close"]),
            executed=bool(item["executed"]),
        )
        for item in json.loads(raw)
    ]


def _position_params(p: Position) -> tuple:
    return (
        p.id,
        p.user_id,
        p.symbol,
        p.side.value,
        str(p.entry_price),
        str(p.size),
        str(p.margin),
        p.leverage,
        str(p.liquidation_price),
        _opt_str(p.take_profit),
        _opt_str(p.stop_loss),
        int(p.trailing_stop_enabled),
        _opt_str(p.trailing_stop_percent),
        _ladder_to_json(p.take_profit_ladder),
        p.opened_at,
    )


def _row_to_position(row: tuple) -> Position:
    return Position(
        id=row[0],
        user_id=row[1],
        symbol=row[2],
        side=PositionSide(row[3]),
        entry_price=Decimal(row[4]),
        size=Decimal(row[5]),
        margin=Decimal(row[6]),
        leverage=int(row[7]),
        liquidation_price=Decimal(row[8]),
        take_profit=_opt_dec(row[9]),
        stop_loss=_opt_dec(row[10]),
        trailing_stop_enabled=bool(row[11]),
        trailing_stop_percent=_opt_dec(row[12]),
        take_profit_ladder=_ladder_from_json(row[13]),
        opened_at=float(row[14]),
    )


def _row_to_order(row: tuple) -> PendingOrder:
    return PendingOrder(
        id=row[0],
        user_id=row[1],
        symbol=row[2],
        order_type=OrderType(row[3]),
        side=PositionSide(row[4]),
        trigger_price=Decimal(row[5]),
        margin=Decimal(row[6]),
        leverage=int(row[7]),
        take_profit=_opt_dec(row[8]),
        stop_loss=_opt_dec(row[9]),
        trailing_stop_enabled=bool(row[10]),
        trailing_stop_percent=_opt_dec(row[11]),
        reduce_only=bool(row[12]),
        created_at=float(row[13]),
    )


def _row_to_history(row: tuple) -> TradeHistoryEntry:
    return TradeHistoryEntry(
        id=row[0],
        user_id=row[1],
        symbol=row[2],
        side=PositionSide(row[3]),
        entry_price=Decimal(row[4]),
        exit_price=Decimal(row[5]),
        size=Decimal(row[6]),
        pnl=Decimal(row[7]),
        roi=Decimal(row[8]),
        closed_at=float(row[9]),
        reason=CloseReason(row[10]),
    )


class SqliteStore(DurableStore):
    """Durable store backed by a single SQLite file.

    Usage:
        async with SqliteStore("data/perpsim.db") as store:
            await store.ensure_account("paper-user", Decimal("10000"))
    """

    def __init__(self, db_path: str = "data/perpsim.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the connection, configure pragmas and create the schema."""
        db_dir = os.path.dirname(self._db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("PRAGMA journal_mode=WAL")
        await self._connection.execute("PRAGMA synchronous=NORMAL")
        await self._connection.executescript(_CREATE_TABLES_SQL)
        await self._connection.executescript(_CREATE_INDEXES_SQL)
        await self._connection.execute(
            "INSERT OR IGNORE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await self._connection.commit()
        logger.info("store_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("store_db_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Serialize, then commit on success or roll back on any error.

        Simulator errors pass through; driver errors become StoreError.
        """
        async with self._lock:
            db = self.db
            try:
                yield db
                await db.commit()
            except SimulatorError:
                await db.rollback()
                raise
            except aiosqlite.Error as e:
                await db.rollback()
                logger.error("store_transaction_failed", error=str(e), exc_info=True)
                raise StoreError(f"SQLite store failure: {e}") from e
            except BaseException:
                await db.rollback()
                raise

    # ──────────────────────────────────────────────
    # Internal helpers (call inside a transaction)
    # ──────────────────────────────────────────────

    @staticmethod
    async def _balance(db: aiosqlite.Connection, user_id: str) -> Decimal:
        async with db.execute(
            "SELECT balance FROM accounts WHERE user_id = ?", (user_id,)
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise StoreError(f"Unknown account: {user_id}")
        return Decimal(row[0])

    @staticmethod
    async def _set_balance(db: aiosqlite.Connection, user_id: str, balance: Decimal) -> None:
        await db.execute(
            "UPDATE accounts SET balance = ? WHERE user_id = ?", (str(balance), user_id)
        )

    @staticmethod
    async def _position(db: aiosqlite.Connection, user_id: str, position_id: str) -> Position:
        async with db.execute(
            f"SELECT {_POSITION_COLUMNS} FROM positions WHERE user_id = ? AND id = ?",
            (user_id, position_id),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            raise PositionNotFoundError(f"Position {position_id} not found")
        return _row_to_position(row)

    async def _open(self, db: aiosqlite.Connection, position: Position, fee: Decimal) -> Position:
        balance = await self._balance(db, position.user_id)
        cost = position.margin + fee
        if cost > balance:
            raise InsufficientBalanceError(f"Cost {cost} exceeds balance {balance}")
        await self._set_balance(db, position.user_id, balance - cost)
        await db.execute(
            f"INSERT INTO positions ({_POSITION_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            _position_params(position),
        )
        return position

    @staticmethod
    async def _replace_position(db: aiosqlite.Connection, p: Position) -> None:
        await db.execute(
            "UPDATE positions SET size = ?, margin = ?, take_profit = ?, stop_loss = ?, "
            "trailing_enabled = ?, trailing_percent = ?, ladder = ? "
            "WHERE user_id = ? AND id = ?",
            (
                str(p.size),
                str(p.margin),
                _opt_str(p.take_profit),
                _opt_str(p.stop_loss),
                int(p.trailing_stop_enabled),
                _opt_str(p.trailing_stop_percent),
                _ladder_to_json(p.take_profit_ladder),
                p.user_id,
                p.id,
            ),
        )

    # ──────────────────────────────────────────────
    # DurableStore
    # ──────────────────────────────────────────────

    async def ensure_account(self, user_id: str, initial_balance: Decimal) -> Decimal:
        async with self._transaction() as db:
            cursor = await db.execute(
                "INSERT OR IGNORE INTO accounts (user_id, balance) VALUES (?, ?)",
                (user_id, str(initial_balance)),
            )
            if cursor.rowcount:
                logger.info(
                    "account_created", user_id=user_id, balance=str(initial_balance)
                )
            return await self._balance(db, user_id)

    async def get_balance(self, user_id: str) -> Decimal:
        async with self._transaction() as db:
            return await self._balance(db, user_id)

    async def open_position(self, position: Position, fee: Decimal) -> Position:
        async with self._transaction() as db:
            return await self._open(db, position, fee)

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
        async with self._transaction() as db:
            position = await self._position(db, user_id, position_id)
            settlement = settle_close(position, exit_price, percent, reason)

            balance = await self._balance(db, user_id)
            await self._set_balance(db, user_id, balance + settlement.credit)
            if settlement.remaining is None:
                await db.execute(
                    "DELETE FROM positions WHERE user_id = ? AND id = ?",
                    (user_id, position_id),
                )
            else:
                await self._replace_position(db, settlement.remaining)

            e = settlement.entry
            await db.execute(
                f"INSERT INTO trade_history ({_HISTORY_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    e.id,
                    e.user_id,
                    e.symbol,
                    e.side.value,
                    str(e.entry_price),
                    str(e.exit_price),
                    str(e.size),
                    str(e.pnl),
                    str(e.roi),
                    e.closed_at,
                    e.reason.value,
                ),
            )
            return e

    async def update_position_risk(
        self, user_id: str, position_id: str, update: RiskUpdate
    ) -> Position:
        async with self._transaction() as db:
            position = await self._position(db, user_id, position_id)
            updated = apply_risk_update(position, update)
            await self._replace_position(db, updated)
            return updated

    async def update_take_profit_ladder(
        self, user_id: str, position_id: str, levels: list[TakeProfitLevel]
    ) -> Position:
        async with self._transaction() as db:
            position = await self._position(db, user_id, position_id)
            position.take_profit_ladder = list(levels)
            await self._replace_position(db, position)
            return position

    async def add_pending_order(self, order: PendingOrder) -> PendingOrder:
        async with self._transaction() as db:
            await self._balance(db, order.user_id)
            await db.execute(
                f"INSERT INTO pending_orders ({_ORDER_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    order.id,
                    order.user_id,
                    order.symbol,
                    order.order_type.value,
                    order.side.value,
                    str(order.trigger_price),
                    str(order.margin),
                    order.leverage,
                    _opt_str(order.take_profit),
                    _opt_str(order.stop_loss),
                    int(order.trailing_stop_enabled),
                    _opt_str(order.trailing_stop_percent),
                    int(order.reduce_only),
                    order.created_at,
                ),
            )
            return order

    async def remove_pending_order(self, user_id: str, order_id: str) -> bool:
        async with self._transaction() as db:
            cursor = await db.execute(
                "DELETE FROM pending_orders WHERE user_id = ? AND id = ?",
                (user_id, order_id),
            )
            return cursor.rowcount > 0

    async def fill_pending_order(
        self, order: PendingOrder, position: Position, fee: Decimal
    ) -> Position | None:
        async with self._transaction() as db:
            cursor = await db.execute(
                "DELETE FROM pending_orders WHERE user_id = ? AND id = ?",
                (order.user_id, order.id),
            )
            if cursor.rowcount == 0:
                return None
            # An InsufficientBalanceError here rolls the delete back too.
            return await self._open(db, position, fee)

    async def list_positions(self, user_id: str) -> list[Position]:
        async with self._transaction() as db:
            async with db.execute(
                f"SELECT {_POSITION_COLUMNS} FROM positions WHERE user_id = ? ORDER BY seq",
                (user_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_position(row) for row in rows]

    async def list_pending_orders(self, user_id: str) -> list[PendingOrder]:
        async with self._transaction() as db:
            async with db.execute(
                f"SELECT {_ORDER_COLUMNS} FROM pending_orders WHERE user_id = ? ORDER BY seq",
                (user_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_order(row) for row in rows]

    async def list_history(
        self, user_id: str, limit: int | None = 50
    ) -> list[TradeHistoryEntry]:
        sql = f"SELECT {_HISTORY_COLUMNS} FROM trade_history WHERE user_id = ? ORDER BY seq DESC"
        params: tuple = (user_id,)
        if limit is not None:
            sql += " LIMIT ?"
            params = (user_id, limit)
        async with self._transaction() as db:
            async with db.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        return [_row_to_history(row) for row in rows]
