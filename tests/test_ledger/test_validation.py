"""Tests for order, risk-update and ladder validation."""

from decimal import Decimal

import pytest

from perpsim.config import TradingSettings
from perpsim.exceptions import ValidationError
from perpsim.ledger.validation import (
    validate_ladder,
    validate_levels,
    validate_order,
    validate_percent,
    validate_risk_update,
)
from perpsim.models import OrderRequest, OrderType, PositionSide, RiskUpdate, TakeProfitLevel

PRICE = Decimal("30000")


@pytest.fixture
def settings() -> TradingSettings:
    return TradingSettings()


class TestValidateOrder:
    def test_market_reference_is_market_price(self, settings: TradingSettings) -> None:
        request = OrderRequest(side=PositionSide.LONG, amount=Decimal("100"), leverage=5)
        assert validate_order(request, PRICE, settings) == PRICE

    def test_pending_reference_is_trigger(self, settings: TradingSettings) -> None:
        request = OrderRequest(
            side=PositionSide.LONG,
            amount=Decimal("100"),
            leverage=5,
            order_type=OrderType.STOP,
            trigger_price=Decimal("31000"),
            stop_loss=Decimal("30500"),
        )
        # stop loss is checked against the trigger, not the market
        assert validate_order(request, PRICE, settings) == Decimal("31000")

    def test_non_finite_amount(self, settings: TradingSettings) -> None:
        request = OrderRequest(side=PositionSide.LONG, amount=Decimal("NaN"), leverage=5)
        with pytest.raises(ValidationError):
            validate_order(request, PRICE, settings)

    def test_reduce_only_skips_level_checks(self, settings: TradingSettings) -> None:
        request = OrderRequest(
            side=PositionSide.SHORT,
            amount=Decimal("100"),
            leverage=5,
            take_profit=Decimal("40000"),
            reduce_only=True,
        )
        assert validate_order(request, PRICE, settings) == PRICE


class TestValidateLevels:
    def test_short_directionality(self) -> None:
        validate_levels(PositionSide.SHORT, PRICE, Decimal("29000"), Decimal("31000"))
        with pytest.raises(ValidationError):
            validate_levels(PositionSide.SHORT, PRICE, Decimal("31000"), None)
        with pytest.raises(ValidationError):
            validate_levels(PositionSide.SHORT, PRICE, None, Decimal("29000"))

    def test_level_equal_to_price_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_levels(PositionSide.LONG, PRICE, PRICE, None)

    def test_non_positive_level(self) -> None:
        with pytest.raises(ValidationError):
            validate_levels(PositionSide.LONG, PRICE, None, Decimal("-1"))


class TestPercentAndRisk:
    @pytest.mark.parametrize("percent", ["0", "-1", "100.01", "Infinity"])
    def test_bad_percent(self, percent: str) -> None:
        with pytest.raises(ValidationError):
            validate_percent(Decimal(percent))

    def test_full_percent_ok(self) -> None:
        validate_percent(Decimal("100"))

    def test_risk_update_trailing_bound(self, settings: TradingSettings) -> None:
        validate_risk_update(
            RiskUpdate(trailing_enabled=True, trailing_percent=Decimal("50")), settings
        )
        with pytest.raises(ValidationError):
            validate_risk_update(
                RiskUpdate(trailing_enabled=True, trailing_percent=Decimal("50.5")), settings
            )

    def test_risk_update_disabled_trailing_ignores_percent(self, settings: TradingSettings) -> None:
        validate_risk_update(RiskUpdate(trailing_enabled=False, trailing_percent=None), settings)


class TestValidateLadder:
    def test_long_rungs_above_entry(self) -> None:
        validate_ladder(
            PositionSide.LONG,
            PRICE,
            [TakeProfitLevel(price=Decimal("31000"), percent_to_close=Decimal("30"))],
        )

    def test_percent_out_of_range(self) -> None:
        with pytest.raises(ValidationError):
            validate_ladder(
                PositionSide.LONG,
                PRICE,
                [TakeProfitLevel(price=Decimal("31000"), percent_to_close=Decimal("120"))],
            )
