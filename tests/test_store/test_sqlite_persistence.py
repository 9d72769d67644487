"""SQLite-specific behavior: state survives a reconnect."""

from decimal import Decimal

import pytest

from perpsim.config import StoreSettings
from perpsim.models import CloseReason, Position, PositionSide
from perpsim.store import InMemoryStore, SqliteStore, create_store


@pytest.mark.asyncio
async def test_state_survives_reconnect(tmp_path) -> None:
    db_path = str(tmp_path / "nested" / "perpsim.db")
    position = Position(
        id="p1",
        user_id="u1",
        symbol="ETH/USDT",
        side=PositionSide.SHORT,
        entry_price=Decimal("2000.5"),
        size=Decimal("1000"),
        margin=Decimal("200"),
        leverage=5,
        liquidation_price=Decimal("2390.5975"),
    )

    async with SqliteStore(db_path) as store:
        await store.ensure_account("u1", Decimal("1000"))
        await store.open_position(position, Decimal("0.2"))
        await store.close_position_partial(
            "u1", "p1", Decimal("1990.5"), Decimal("50"), CloseReason.MANUAL
        )

    async with SqliteStore(db_path) as store:
        assert await store.ensure_account("u1", Decimal("1")) == await store.get_balance("u1")
        [reopened] = await store.list_positions("u1")
        assert reopened.entry_price == Decimal("2000.5")
        assert reopened.margin == Decimal("100")
        [entry] = await store.list_history("u1")
        assert entry.side is PositionSide.SHORT
        assert entry.pnl > 0
        balance = await store.get_balance("u1")
        assert abs(balance - (Decimal("899.8") + entry.pnl)) < Decimal("1e-20")


def test_create_store_selects_backend(tmp_path) -> None:
    assert isinstance(create_store(StoreSettings()), InMemoryStore)
    sqlite = create_store(StoreSettings(backend="sqlite", db_path=str(tmp_path / "x.db")))
    assert isinstance(sqlite, SqliteStore)
