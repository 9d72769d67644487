"""Command-line entry point for the pullback backtest.

Fetches fine and coarse candles from the configured ccxt exchange, replays
the strategy and prints the JSON result.

Usage::

    perpsim-backtest BTC/USDT --trades
"""

import argparse
import asyncio
import json

from perpsim.backtest.engine import run_backtest
from perpsim.backtest.models import BacktestResult
from perpsim.config import AppSettings
from perpsim.exchange.client import MarketDataClient
from perpsim.logging import get_logger, setup_logging

logger = get_logger(__name__)


async def fetch_and_run(
    client: MarketDataClient,
    symbol: str,
    settings: AppSettings,
) -> BacktestResult:
    """Fetch history for ``symbol`` and replay the pullback strategy.

    Args:
        client: Connected market-data client.
        symbol: Trading pair (e.g., "BTC/USDT").
        settings: Application settings (strategy and backtest sections used).

    Returns:
        BacktestResult over the fetched history.
    """
    bt = settings.backtest
    fine = await client.fetch_candles(symbol, bt.fine_timeframe, bt.fine_limit)
    coarse = await client.fetch_candles(symbol, bt.coarse_timeframe, bt.coarse_limit)

    if not fine or not coarse:
        logger.warning(
            "backtest_no_data", symbol=symbol, fine=len(fine), coarse=len(coarse)
        )

    result = run_backtest(fine, coarse, settings.strategy, bt)
    logger.info(
        "backtest_finished",
        symbol=symbol,
        total_trades=result.total_trades,
        win_rate=str(result.win_rate),
        profit_factor=str(result.profit_factor),
        total_pnl_pct=str(result.total_pnl_pct),
    )
    return result


async def run_backtest_cli(symbol: str, include_trades: bool = False) -> dict:
    """Connect, fetch, replay and disconnect. Returns the JSON-ready result."""
    from perpsim.exchange.ccxt_client import CcxtMarketDataClient

    settings = AppSettings()
    client = CcxtMarketDataClient(settings.exchange)
    try:
        await client.connect()
        result = await fetch_and_run(client, symbol, settings)
    finally:
        await client.close()
    return result.to_dict() if include_trades else result.summary()


def main(argv: list[str] | None = None) -> None:
    """Synchronous entry point."""
    parser = argparse.ArgumentParser(
        prog="perpsim-backtest",
        description="Replay the macro-filtered pullback strategy on recent history.",
    )
    parser.add_argument("symbol", nargs="?", default=None, help="e.g. BTC/USDT")
    parser.add_argument("--trades", action="store_true", help="include every trade")
    args = parser.parse_args(argv)

    settings = AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    symbol = args.symbol or settings.trading.symbol

    output = asyncio.run(run_backtest_cli(symbol, include_trades=args.trades))
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
