"""Market data layer -- candles, ticker cache and the polling price feed."""

from perpsim.market_data.models import Candle, OrderBookSnapshot, Ticker
from perpsim.market_data.price_feed import PollingPriceFeed, PriceFeed
from perpsim.market_data.ticker_service import TickerService

__all__ = [
    "Candle",
    "OrderBookSnapshot",
    "PollingPriceFeed",
    "PriceFeed",
    "Ticker",
    "TickerService",
]
