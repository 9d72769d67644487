"""Tests for the strategy dispatch table."""

from decimal import Decimal

import pytest

from perpsim.signals.models import SignalLabel
from perpsim.signals.registry import (
    STRATEGIES,
    STRATEGY_SPECS,
    StrategyContext,
    StrategyName,
    evaluate,
)


def test_every_strategy_has_data_requirements() -> None:
    assert set(STRATEGIES) == set(StrategyName)
    assert set(STRATEGY_SPECS) == set(StrategyName)


def test_only_order_flow_needs_a_book() -> None:
    needs_book = {name for name, spec in STRATEGY_SPECS.items() if spec.needs_book}
    assert needs_book == {StrategyName.ORDER_FLOW}


def test_pullback_requests_coarse_candles() -> None:
    spec = STRATEGY_SPECS[StrategyName.PULLBACK]
    assert spec.coarse_timeframe == "4h"
    assert spec.coarse_limit > 0


def test_evaluate_by_string_name() -> None:
    context = StrategyContext(
        symbol="BTC/USDT", current_price=Decimal("100"), balance=Decimal("1000")
    )

    result = evaluate("sentiment", context)

    assert result.strategy_name == "SENTIMENT SURGEON"
    assert result.signal is SignalLabel.WAIT


def test_evaluate_with_empty_context_waits() -> None:
    context = StrategyContext(symbol="BTC/USDT", current_price=Decimal("100"))

    for name in (StrategyName.ORDER_FLOW, StrategyName.LIQUIDITY_SWEEP):
        assert evaluate(name, context).signal is SignalLabel.WAIT


def test_unknown_strategy_raises() -> None:
    context = StrategyContext(symbol="BTC/USDT", current_price=Decimal("100"))
    with pytest.raises(ValueError):
        evaluate("astrology", context)
