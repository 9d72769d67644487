"""Market-data client for any ccxt exchange, via ccxt async.

Wraps ``ccxt.async_support.<exchange_id>`` with market loading, Decimal
conversion at the boundary and async cleanup. Network and exchange errors
surface as MarketUnavailableError.
"""

import time

import ccxt.async_support as ccxt_async

from perpsim.config import ExchangeSettings
from perpsim.exceptions import MarketUnavailableError
from perpsim.exchange.client import MarketDataClient
from perpsim.logging import get_logger
from perpsim.market_data.models import Candle, OrderBookSnapshot, Ticker, to_decimal

logger = get_logger(__name__)


class CcxtMarketDataClient(MarketDataClient):
    """Concrete market-data client using ccxt async."""

    def __init__(self, settings: ExchangeSettings | None = None) -> None:
        self._settings = settings or ExchangeSettings()

        exchange_cls = getattr(ccxt_async, self._settings.exchange_id, None)
        if exchange_cls is None:
            raise ValueError(f"Unknown ccxt exchange id: {self._settings.exchange_id}")

        config: dict = {
            "apiKey": self._settings.api_key.get_secret_value(),
            "secret": self._settings.api_secret.get_secret_value(),
            "enableRateLimit": True,
            "options": {
                "defaultType": self._settings.default_type,
            },
        }
        self._exchange = exchange_cls(config)
        self._markets: dict = {}

    @property
    def exchange(self) -> ccxt_async.Exchange:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        """Initialize connection by loading markets."""
        logger.info("connecting_to_exchange", exchange_id=self._settings.exchange_id)
        try:
            self._markets = await self._exchange.load_markets()
        except ccxt_async.BaseError as e:
            raise MarketUnavailableError(f"Failed to load markets: {e}") from e
        logger.info(
            "exchange_connected",
            exchange_id=self._settings.exchange_id,
            market_count=len(self._markets),
        )

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        logger.info("closing_exchange_connection")
        await self._exchange.close()
        logger.info("exchange_connection_closed")

    async def fetch_ticker(self, symbol: str) -> Ticker:
        """Fetch the latest ticker and convert it to Decimal fields."""
        try:
            raw = await self._exchange.fetch_ticker(symbol)
        except ccxt_async.BaseError as e:
            raise MarketUnavailableError(f"Ticker fetch failed for {symbol}: {e}") from e

        last = raw.get("last")
        if last is None:
            raise MarketUnavailableError(f"Ticker for {symbol} has no last price")

        timestamp_ms = raw.get("timestamp")
        return Ticker(
            symbol=symbol,
            last_price=to_decimal(last),
            change_24h_pct=to_decimal(raw.get("percentage") or 0),
            high_24h=to_decimal(raw.get("high") or 0),
            low_24h=to_decimal(raw.get("low") or 0),
            volume_24h=to_decimal(raw.get("baseVolume") or 0),
            timestamp=timestamp_ms / 1000 if timestamp_ms else time.time(),
        )

    async def fetch_candles(
        self, symbol: str, timeframe: str, limit: int
    ) -> list[Candle]:
        """Fetch OHLCV rows and convert them to Candles, oldest first."""
        try:
            rows = await self._exchange.fetch_ohlcv(symbol, timeframe, limit=limit)
        except ccxt_async.BaseError as e:
            raise MarketUnavailableError(
                f"Candle fetch failed for {symbol} {timeframe}: {e}"
            ) from e
        candles = [Candle.from_ohlcv(row) for row in rows]
        logger.debug(
            "candles_fetched", symbol=symbol, timeframe=timeframe, count=len(candles)
        )
        return candles

    async def fetch_order_book(self, symbol: str, depth: int) -> OrderBookSnapshot:
        """Fetch an order-book snapshot limited to ``depth`` levels."""
        try:
            raw = await self._exchange.fetch_order_book(symbol, limit=depth)
        except ccxt_async.BaseError as e:
            raise MarketUnavailableError(f"Order book fetch failed for {symbol}: {e}") from e
        return OrderBookSnapshot.from_ccxt(raw)
