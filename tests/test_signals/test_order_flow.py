"""Tests for the order-flow scalper (OBI against Bollinger extremes)."""

from decimal import Decimal

import pytest

from perpsim.market_data.models import OrderBookSnapshot
from perpsim.models import PositionSide
from perpsim.signals.models import Lethality, SignalLabel
from perpsim.signals.order_flow import STRATEGY_NAME, evaluate_order_flow


def _book(bid_size: str, ask_size: str) -> OrderBookSnapshot:
    return OrderBookSnapshot(
        bids=((Decimal("100"), Decimal(bid_size)),),
        asks=((Decimal("100.5"), Decimal(ask_size)),),
    )


@pytest.fixture
def banded_candles(make_candles):
    """Closes alternate 100/102: bands at 99 / 101 / 103."""
    return make_candles([100, 102] * 10)


def test_long_at_lower_band_with_bid_pressure(banded_candles) -> None:
    result = evaluate_order_flow(banded_candles, Decimal("98.5"), _book("8", "2"))

    assert result.strategy_name == STRATEGY_NAME
    assert result.signal is SignalLabel.LONG
    assert result.lethality is Lethality.HIGH
    assert result.setup.side is PositionSide.LONG
    assert result.setup.take_profit == Decimal("98.5") * Decimal("1.01")
    assert result.setup.stop_loss == Decimal("98.5") * Decimal("0.995")
    assert result.setup.position_size == Decimal("400")
    assert result.setup.leverage_hint == 10
    assert result.metrics["obi"] == Decimal("0.8")


def test_short_at_upper_band_with_ask_pressure(banded_candles) -> None:
    result = evaluate_order_flow(banded_candles, Decimal("104"), _book("2", "8"))

    assert result.signal is SignalLabel.SHORT
    assert result.setup.side is PositionSide.SHORT
    assert result.setup.take_profit < Decimal("104") < result.setup.stop_loss


def test_watch_state_near_upper_band(banded_candles) -> None:
    # OBI 0.38 is under the watch threshold but not the short threshold.
    result = evaluate_order_flow(banded_candles, Decimal("102.95"), _book("38", "62"))

    assert result.signal is SignalLabel.WAIT
    assert result.lethality is Lethality.MEDIUM
    assert any("Watching short" in reason for reason in result.reasons)


def test_pressure_without_band_touch_waits(banded_candles) -> None:
    result = evaluate_order_flow(banded_candles, Decimal("101"), _book("8", "2"))

    assert result.signal is SignalLabel.WAIT
    assert result.lethality is Lethality.LOW
    assert result.setup.side is None


def test_missing_book_or_history(make_candles) -> None:
    assert evaluate_order_flow(make_candles([100] * 25), Decimal("100"), None).signal is SignalLabel.WAIT
    short_history = evaluate_order_flow(make_candles([100] * 5), Decimal("100"), _book("8", "2"))
    assert short_history.signal is SignalLabel.WAIT
    assert short_history.reasons == ["Waiting for candle history and order book."]
