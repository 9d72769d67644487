"""Tests for the pure trigger decision rules."""

from decimal import Decimal

import pytest

from perpsim.engine.anchors import TrailingAnchorBook
from perpsim.engine.trigger import (
    TriggerAction,
    effective_stop,
    evaluate_position,
    should_fill,
    trailing_level,
)
from perpsim.models import (
    CloseReason,
    OrderType,
    PendingOrder,
    Position,
    PositionSide,
    TakeProfitLevel,
)


def _position(
    side: PositionSide = PositionSide.LONG,
    take_profit: str | None = None,
    stop_loss: str | None = None,
    trailing: str | None = None,
    ladder: list[TakeProfitLevel] | None = None,
) -> Position:
    long = side is PositionSide.LONG
    return Position(
        id="p1",
        user_id="u1",
        symbol="BTC/USDT",
        side=side,
        entry_price=Decimal("30000"),
        size=Decimal("10000"),
        margin=Decimal("1000"),
        leverage=10,
        liquidation_price=Decimal("27150") if long else Decimal("32850"),
        take_profit=Decimal(take_profit) if take_profit else None,
        stop_loss=Decimal(stop_loss) if stop_loss else None,
        trailing_stop_enabled=trailing is not None,
        trailing_stop_percent=Decimal(trailing) if trailing else None,
        take_profit_ladder=ladder or [],
    )


def _order(side: PositionSide, order_type: OrderType, trigger: str) -> PendingOrder:
    return PendingOrder(
        id="o1",
        user_id="u1",
        symbol="BTC/USDT",
        order_type=order_type,
        side=side,
        trigger_price=Decimal(trigger),
        margin=Decimal("100"),
        leverage=5,
    )


class TestTrailingStop:
    def test_level_long_and_short(self) -> None:
        assert trailing_level(PositionSide.LONG, Decimal("31000"), Decimal("2")) == Decimal("30380")
        assert trailing_level(PositionSide.SHORT, Decimal("29000"), Decimal("2")) == Decimal("29580")

    def test_long_trailing_walkthrough(self) -> None:
        """Anchor 31000 at 2%: floor 30380, dip to 30500 holds, retrace to 30200 closes."""
        position = _position(trailing="2")
        book = TrailingAnchorBook()

        for price in ("30500", "31000"):
            decision = evaluate_position(position, Decimal(price), book.update(position, Decimal(price)))
            assert decision.action is TriggerAction.HOLD

        dip = evaluate_position(position, Decimal("30500"), book.update(position, Decimal("30500")))
        assert dip.action is TriggerAction.HOLD
        assert dip.effective_stop == Decimal("30380")

        retrace = evaluate_position(position, Decimal("30200"), book.update(position, Decimal("30200")))
        assert retrace.action is TriggerAction.CLOSE
        assert retrace.reason is CloseReason.TRAILING_STOP

    def test_anchor_ignored_when_trailing_disabled(self) -> None:
        decision = evaluate_position(_position(), Decimal("30200"), Decimal("31000"))
        assert decision.action is TriggerAction.HOLD
        assert decision.trailing_level is None


class TestEffectiveStop:
    def test_long_takes_higher(self) -> None:
        assert effective_stop(PositionSide.LONG, Decimal("30500"), Decimal("30380")) == Decimal("30500")

    def test_short_takes_lower(self) -> None:
        assert effective_stop(PositionSide.SHORT, Decimal("29500"), Decimal("29580")) == Decimal("29500")

    def test_either_missing(self) -> None:
        assert effective_stop(PositionSide.LONG, None, Decimal("1")) == Decimal("1")
        assert effective_stop(PositionSide.LONG, Decimal("2"), None) == Decimal("2")
        assert effective_stop(PositionSide.LONG, None, None) is None

    def test_explicit_stop_binding_reports_stop_loss(self) -> None:
        position = _position(stop_loss="30500", trailing="2")
        decision = evaluate_position(position, Decimal("30450"), Decimal("31000"))
        assert decision.action is TriggerAction.CLOSE
        assert decision.reason is CloseReason.STOP_LOSS


class TestTakeProfitAndStop:
    @pytest.mark.parametrize(
        ("side", "price", "reason"),
        [
            (PositionSide.LONG, "31000", CloseReason.TAKE_PROFIT),
            (PositionSide.LONG, "29000", CloseReason.STOP_LOSS),
            (PositionSide.SHORT, "29000", CloseReason.TAKE_PROFIT),
            (PositionSide.SHORT, "31000", CloseReason.STOP_LOSS),
        ],
    )
    def test_levels(self, side: PositionSide, price: str, reason: CloseReason) -> None:
        long = side is PositionSide.LONG
        position = _position(
            side,
            take_profit="31000" if long else "29000",
            stop_loss="29000" if long else "31000",
        )
        decision = evaluate_position(position, Decimal(price))
        assert decision.action is TriggerAction.CLOSE
        assert decision.reason is reason

    def test_between_levels_holds(self) -> None:
        position = _position(take_profit="31000", stop_loss="29000")
        assert evaluate_position(position, Decimal("30000")).action is TriggerAction.HOLD


class TestLiquidation:
    def test_long_liquidated(self) -> None:
        decision = evaluate_position(_position(), Decimal("27000"))
        assert decision.reason is CloseReason.LIQUIDATION

    def test_disabled(self) -> None:
        decision = evaluate_position(_position(), Decimal("27000"), liquidation_enabled=False)
        assert decision.action is TriggerAction.HOLD

    def test_stop_before_liquidation(self) -> None:
        decision = evaluate_position(_position(stop_loss="28000"), Decimal("27000"))
        assert decision.reason is CloseReason.STOP_LOSS


class TestLadder:
    def test_first_unexecuted_rung(self) -> None:
        ladder = [
            TakeProfitLevel(Decimal("30300"), Decimal("50"), executed=True),
            TakeProfitLevel(Decimal("30600"), Decimal("50")),
        ]
        decision = evaluate_position(_position(ladder=ladder), Decimal("30700"))
        assert decision.action is TriggerAction.LADDER
        assert decision.ladder_index == 1

    def test_unreached_rung_holds(self) -> None:
        ladder = [TakeProfitLevel(Decimal("30600"), Decimal("50"))]
        decision = evaluate_position(_position(ladder=ladder), Decimal("30500"))
        assert decision.action is TriggerAction.HOLD

    def test_short_rung(self) -> None:
        ladder = [TakeProfitLevel(Decimal("29500"), Decimal("50"))]
        decision = evaluate_position(_position(PositionSide.SHORT, ladder=ladder), Decimal("29400"))
        assert decision.ladder_index == 0


class TestShouldFill:
    @pytest.mark.parametrize(
        ("side", "order_type", "price", "expected"),
        [
            (PositionSide.LONG, OrderType.LIMIT, "29000", True),
            (PositionSide.LONG, OrderType.LIMIT, "29001", False),
            (PositionSide.SHORT, OrderType.LIMIT, "29000", True),
            (PositionSide.SHORT, OrderType.LIMIT, "28999", False),
            (PositionSide.LONG, OrderType.STOP, "29000", True),
            (PositionSide.LONG, OrderType.STOP, "28999", False),
            (PositionSide.SHORT, OrderType.STOP, "29000", True),
            (PositionSide.SHORT, OrderType.STOP, "29001", False),
        ],
    )
    def test_rules(
        self, side: PositionSide, order_type: OrderType, price: str, expected: bool
    ) -> None:
        order = _order(side, order_type, "29000")
        assert should_fill(order, Decimal(price)) is expected
