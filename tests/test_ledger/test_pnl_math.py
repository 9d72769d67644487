"""Tests for position P&L, ROI, fee and liquidation arithmetic."""

from decimal import Decimal

from perpsim.ledger.pnl import (
    is_liquidated,
    liquidation_price,
    opening_fee,
    realized_pnl,
    roi,
    unrealized_pnl,
)
from perpsim.models import Position, PositionSide


def _position(side: PositionSide = PositionSide.LONG) -> Position:
    return Position(
        id="p1",
        user_id="u1",
        symbol="BTC/USDT",
        side=side,
        entry_price=Decimal("30000"),
        size=Decimal("10000"),
        margin=Decimal("1000"),
        leverage=10,
        liquidation_price=liquidation_price(side, Decimal("30000"), 10, Decimal("0.005")),
    )


class TestRealizedPnl:
    def test_long_gain(self) -> None:
        """entry 30000, size 10000, price 30300 -> +100."""
        pnl = realized_pnl(PositionSide.LONG, Decimal("30000"), Decimal("30300"), Decimal("10000"))
        assert pnl == Decimal("100")

    def test_short_is_negated(self) -> None:
        pnl = realized_pnl(PositionSide.SHORT, Decimal("30000"), Decimal("30300"), Decimal("10000"))
        assert pnl == Decimal("-100")

    def test_unrealized_uses_full_size(self) -> None:
        assert unrealized_pnl(_position(), Decimal("29700")) == Decimal("-100")

    def test_flat_price_is_zero(self) -> None:
        assert unrealized_pnl(_position(PositionSide.SHORT), Decimal("30000")) == 0


class TestRoiAndFees:
    def test_roi_percent_of_margin(self) -> None:
        assert roi(Decimal("100"), Decimal("1000")) == Decimal("10")

    def test_roi_zero_margin(self) -> None:
        assert roi(Decimal("5"), Decimal("0")) == Decimal("0")

    def test_opening_fee(self) -> None:
        assert opening_fee(Decimal("1000"), Decimal("0.001")) == Decimal("1.000")


class TestLiquidation:
    def test_long_level(self) -> None:
        level = liquidation_price(PositionSide.LONG, Decimal("30000"), 10, Decimal("0.005"))
        assert level == Decimal("27150")

    def test_short_level(self) -> None:
        level = liquidation_price(PositionSide.SHORT, Decimal("30000"), 10, Decimal("0.005"))
        assert level == Decimal("32850")

    def test_is_liquidated_long(self) -> None:
        position = _position()
        assert not is_liquidated(position, Decimal("27151"))
        assert is_liquidated(position, Decimal("27150"))

    def test_is_liquidated_short(self) -> None:
        position = _position(PositionSide.SHORT)
        assert not is_liquidated(position, Decimal("32849"))
        assert is_liquidated(position, Decimal("33000"))
