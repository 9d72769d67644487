"""Tests for the shared TickerService cache."""

from decimal import Decimal

import pytest

from perpsim.exceptions import MarketUnavailableError
from perpsim.market_data.models import Ticker
from perpsim.market_data.ticker_service import TickerService, is_usable_price


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.parametrize(
    ("price", "usable"),
    [("1", True), ("0", False), ("-3", False), ("NaN", False), ("Infinity", False)],
)
def test_is_usable_price(price: str, usable: bool) -> None:
    assert is_usable_price(Decimal(price)) is usable


def test_none_is_not_usable() -> None:
    assert is_usable_price(None) is False


@pytest.mark.asyncio
async def test_valid_price_roundtrip() -> None:
    clock = FakeClock()
    service = TickerService(max_age_seconds=30, time_fn=clock)
    await service.update(Ticker(symbol="BTC/USDT", last_price=Decimal("30000"), timestamp=clock.now))

    assert await service.get_valid_price("BTC/USDT") == Decimal("30000")
    assert await service.is_stale("BTC/USDT") is False


@pytest.mark.asyncio
async def test_stale_price_unavailable() -> None:
    clock = FakeClock()
    service = TickerService(max_age_seconds=30, time_fn=clock)
    await service.update(Ticker(symbol="BTC/USDT", last_price=Decimal("30000"), timestamp=clock.now))
    clock.now += 31

    assert await service.is_stale("BTC/USDT") is True
    with pytest.raises(MarketUnavailableError):
        await service.get_valid_price("BTC/USDT")


@pytest.mark.asyncio
async def test_missing_and_zero_price_unavailable() -> None:
    clock = FakeClock()
    service = TickerService(time_fn=clock)

    with pytest.raises(MarketUnavailableError):
        await service.get_valid_price("ETH/USDT")

    await service.update(Ticker(symbol="ETH/USDT", last_price=Decimal("0"), timestamp=clock.now))
    with pytest.raises(MarketUnavailableError):
        await service.get_valid_price("ETH/USDT")
    assert await service.get_price("ETH/USDT") == Decimal("0")
