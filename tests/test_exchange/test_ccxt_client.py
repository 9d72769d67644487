"""Tests for CcxtMarketDataClient.

All tests use mocked ccxt exchange methods to avoid real API calls.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import ccxt.async_support as ccxt_async
import pytest

from perpsim.config import ExchangeSettings
from perpsim.exceptions import MarketUnavailableError
from perpsim.exchange.ccxt_client import CcxtMarketDataClient


@pytest.fixture
def client() -> CcxtMarketDataClient:
    return CcxtMarketDataClient(ExchangeSettings(exchange_id="binance"))


class TestConstruction:
    def test_unknown_exchange_id(self) -> None:
        with pytest.raises(ValueError):
            CcxtMarketDataClient(ExchangeSettings(exchange_id="not-an-exchange"))

    def test_rate_limit_enabled(self, client: CcxtMarketDataClient) -> None:
        assert client.exchange.enableRateLimit is True


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_connect_loads_markets(self, client: CcxtMarketDataClient) -> None:
        client._exchange.load_markets = AsyncMock(return_value={"BTC/USDT": {}})
        await client.connect()
        client._exchange.load_markets.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_connect_failure_wrapped(self, client: CcxtMarketDataClient) -> None:
        client._exchange.load_markets = AsyncMock(side_effect=ccxt_async.NetworkError("down"))
        with pytest.raises(MarketUnavailableError):
            await client.connect()

    @pytest.mark.asyncio
    async def test_close(self, client: CcxtMarketDataClient) -> None:
        client._exchange.close = AsyncMock()
        await client.close()
        client._exchange.close.assert_awaited_once()


class TestFetching:
    @pytest.mark.asyncio
    async def test_fetch_ticker_converts_to_decimal(self, client: CcxtMarketDataClient) -> None:
        client._exchange.fetch_ticker = AsyncMock(
            return_value={
                "last": 30000.1,
                "percentage": -2.5,
                "high": 31000.0,
                "low": 29000.0,
                "baseVolume": 1234.5,
                "timestamp": 1_700_000_000_000,
            }
        )

        ticker = await client.fetch_ticker("BTC/USDT")

        assert ticker.last_price == Decimal("30000.1")
        assert ticker.change_24h_pct == Decimal("-2.5")
        assert ticker.volume_24h == Decimal("1234.5")
        assert ticker.timestamp == 1_700_000_000.0
        client._exchange.fetch_ticker.assert_awaited_once_with("BTC/USDT")

    @pytest.mark.asyncio
    async def test_fetch_ticker_without_last(self, client: CcxtMarketDataClient) -> None:
        client._exchange.fetch_ticker = AsyncMock(return_value={"last": None})
        with pytest.raises(MarketUnavailableError):
            await client.fetch_ticker("BTC/USDT")

    @pytest.mark.asyncio
    async def test_fetch_candles(self, client: CcxtMarketDataClient) -> None:
        client._exchange.fetch_ohlcv = AsyncMock(
            return_value=[
                [0, 1.0, 2.0, 0.5, 1.5, 10.0],
                [60_000, 1.5, 2.5, 1.0, 2.0, None],
            ]
        )

        candles = await client.fetch_candles("BTC/USDT", "1m", 2)

        assert [c.close for c in candles] == [Decimal("1.5"), Decimal("2.0")]
        assert candles[1].volume == Decimal("0")
        client._exchange.fetch_ohlcv.assert_awaited_once_with("BTC/USDT", "1m", limit=2)

    @pytest.mark.asyncio
    async def test_fetch_order_book(self, client: CcxtMarketDataClient) -> None:
        client._exchange.fetch_order_book = AsyncMock(
            return_value={"bids": [[100.0, 2.0]], "asks": [[101.0, 1.0], [102.0, 3.0]]}
        )

        book = await client.fetch_order_book("BTC/USDT", 50)

        assert book.bids == ((Decimal("100.0"), Decimal("2.0")),)
        assert len(book.asks) == 2

    @pytest.mark.asyncio
    async def test_exchange_error_wrapped(self, client: CcxtMarketDataClient) -> None:
        client._exchange.fetch_order_book = AsyncMock(side_effect=ccxt_async.ExchangeError("bad"))
        with pytest.raises(MarketUnavailableError):
            await client.fetch_order_book("BTC/USDT", 50)
