"""Order and risk-parameter validation.

Every check raises ValidationError before any store call is made, so a
rejected request has no side effects.
"""

from decimal import Decimal

from perpsim.config import TradingSettings
from perpsim.exceptions import ValidationError
from perpsim.models import (
    OrderRequest,
    OrderType,
    PositionSide,
    RiskUpdate,
    TakeProfitLevel,
)

_HUNDRED = Decimal("100")


def _is_positive(value: Decimal | None) -> bool:
    return value is not None and value.is_finite() and value > 0


def validate_leverage(leverage: int, settings: TradingSettings) -> None:
    if not settings.min_leverage <= leverage <= settings.max_leverage:
        raise ValidationError(
            f"Leverage must be in [{settings.min_leverage}, {settings.max_leverage}], got {leverage}"
        )


def validate_percent(percent: Decimal) -> None:
    """Close percent must be in (0, 100]."""
    if not percent.is_finite() or percent <= 0 or percent > _HUNDRED:
        raise ValidationError(f"Percent must be in (0, 100], got {percent}")


def validate_trailing(
    enabled: bool, percent: Decimal | None, settings: TradingSettings
) -> None:
    """Trailing percent is required when enabled and must be in (0, max]."""
    if not enabled:
        return
    if not _is_positive(percent) or percent > settings.max_trailing_percent:
        raise ValidationError(
            f"Trailing percent must be in (0, {settings.max_trailing_percent}], got {percent}"
        )


def validate_levels(
    side: PositionSide,
    reference_price: Decimal,
    take_profit: Decimal | None,
    stop_loss: Decimal | None,
) -> None:
    """TP/SL must be positive finite numbers on the correct side of price.

    LONG: take_profit above and stop_loss below the reference price.
    SHORT: the mirror.
    """
    for name, level in (("take_profit", take_profit), ("stop_loss", stop_loss)):
        if level is not None and not _is_positive(level):
            raise ValidationError(f"{name} must be a positive finite number, got {level}")

    if side is PositionSide.LONG:
        if take_profit is not None and take_profit <= reference_price:
            raise ValidationError(
                f"LONG take_profit {take_profit} must be above {reference_price}"
            )
        if stop_loss is not None and stop_loss >= reference_price:
            raise ValidationError(
                f"LONG stop_loss {stop_loss} must be below {reference_price}"
            )
    else:
        if take_profit is not None and take_profit >= reference_price:
            raise ValidationError(
                f"SHORT take_profit {take_profit} must be below {reference_price}"
            )
        if stop_loss is not None and stop_loss <= reference_price:
            raise ValidationError(
                f"SHORT stop_loss {stop_loss} must be above {reference_price}"
            )


def validate_order(
    request: OrderRequest, market_price: Decimal, settings: TradingSettings
) -> Decimal:
    """Validate an order request and return its reference price.

    The reference price is the market price for MARKET orders and the
    trigger price otherwise; TP/SL directionality is checked against it.

    Raises:
        ValidationError: On any invalid field.
    """
    if not _is_positive(request.amount):
        raise ValidationError(f"Amount must be a positive finite number, got {request.amount}")
    validate_leverage(request.leverage, settings)

    if request.order_type is OrderType.MARKET:
        reference = market_price
    else:
        if not _is_positive(request.trigger_price):
            raise ValidationError(
                f"{request.order_type.value} order needs a positive trigger price"
            )
        reference = request.trigger_price

    if not request.reduce_only:
        validate_levels(request.side, reference, request.take_profit, request.stop_loss)
        validate_trailing(request.trailing_enabled, request.trailing_percent, settings)
    return reference


def validate_risk_update(update: RiskUpdate, settings: TradingSettings) -> None:
    """Levels must be positive finite; trailing percent in (0, max]."""
    for name, level in (("take_profit", update.take_profit), ("stop_loss", update.stop_loss)):
        if level is not None and not _is_positive(level):
            raise ValidationError(f"{name} must be a positive finite number, got {level}")
    validate_trailing(update.trailing_enabled, update.trailing_percent, settings)


def validate_ladder(
    side: PositionSide, entry_price: Decimal, levels: list[TakeProfitLevel]
) -> None:
    """Rungs must sit on the profit side of entry with percents in (0, 100]."""
    for level in levels:
        if not _is_positive(level.price):
            raise ValidationError(f"Ladder price must be positive, got {level.price}")
        if side is PositionSide.LONG and level.price <= entry_price:
            raise ValidationError(f"LONG ladder price {level.price} must be above entry")
        if side is PositionSide.SHORT and level.price >= entry_price:
            raise ValidationError(f"SHORT ladder price {level.price} must be below entry")
        validate_percent(level.percent_to_close)
