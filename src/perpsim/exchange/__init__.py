"""Exchange client layer -- public market data via ccxt."""

from perpsim.exchange.ccxt_client import CcxtMarketDataClient
from perpsim.exchange.client import MarketDataClient

__all__ = ["CcxtMarketDataClient", "MarketDataClient"]
