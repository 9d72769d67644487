"""Entry point for the perpsim paper-trading service.

Wires all components together, optionally embeds the FastAPI order API,
and starts the trading session. When the API is enabled (default), the
session and the API share a single asyncio event loop via uvicorn's
programmatic API and FastAPI's lifespan context manager.

Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. CcxtMarketDataClient (public market data)
4. TickerService (shared price cache)
5. DurableStore (in-memory or SQLite)
6. TrailingAnchorBook + Ledger (positions, orders, history)
7. TriggerEngine (per-tick TP/SL/trailing/liquidation/ladder/fills)
8. PollingPriceFeed (REST ticker polling for the active symbol)
9. TradingSession (feed -> trigger engine)
10. SignalEngine (strategy evaluation on demand)
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI

from perpsim.config import AppSettings
from perpsim.engine.anchors import TrailingAnchorBook
from perpsim.engine.trigger import TriggerEngine
from perpsim.exchange.ccxt_client import CcxtMarketDataClient
from perpsim.ledger.manager import Ledger
from perpsim.logging import get_logger, setup_logging
from perpsim.market_data.price_feed import PollingPriceFeed
from perpsim.market_data.ticker_service import TickerService
from perpsim.orchestrator import TradingSession
from perpsim.signals.engine import SignalEngine
from perpsim.store import create_store


async def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all service components from settings.

    Note: Does NOT connect the exchange client or the store -- that happens
    in the lifespan (API mode) or run() (headless mode).

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    # 3. Market data client
    client = CcxtMarketDataClient(settings.exchange)

    # 4. Shared ticker cache
    ticker_service = TickerService(settings.trading.max_price_age_seconds)

    # 5. Durable store
    store = create_store(settings.store)

    # 6. Ledger with its trailing anchors
    anchors = TrailingAnchorBook()
    ledger = Ledger(store, ticker_service, anchors, settings.trading)

    # 7. Trigger engine
    trigger_engine = TriggerEngine(ledger, settings.trading)

    # 8. Price feed
    feed = PollingPriceFeed(client, ticker_service, settings.trading.price_poll_interval)

    # 9. Session
    session = TradingSession(feed, trigger_engine, ledger, settings.trading)

    # 10. Signals
    signal_engine = SignalEngine(client, ticker_service, settings.strategy)

    return {
        "client": client,
        "ticker_service": ticker_service,
        "store": store,
        "anchors": anchors,
        "ledger": ledger,
        "trigger_engine": trigger_engine,
        "feed": feed,
        "session": session,
        "signal_engine": signal_engine,
    }


def _setup_signal_handlers(stop_event: asyncio.Event) -> None:
    """Register SIGINT/SIGTERM to set ``stop_event``.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("perpsim.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


async def _startup(components: dict[str, Any]) -> None:
    await components["client"].connect()
    await components["store"].connect()
    await components["session"].start()


async def _shutdown(components: dict[str, Any]) -> None:
    await components["session"].stop()
    await components["store"].close()
    await components["client"].close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage component lifecycle within the FastAPI application.

    On startup: stores components on app.state, connects the market data
    client and the store, and starts the trading session.

    On shutdown: stops the session, closes the store, disconnects.
    """
    logger = get_logger("perpsim.main")
    settings = app.state.settings
    components = app.state.components

    app.state.ledger = components["ledger"]
    app.state.ticker_service = components["ticker_service"]
    app.state.signal_engine = components["signal_engine"]
    app.state.session = components["session"]

    await _startup(components)
    logger.info(
        "lifespan_started",
        symbol=settings.trading.symbol,
        store=settings.store.backend,
        exchange=settings.exchange.exchange_id,
    )

    yield

    await _shutdown(components)
    logger.info("perpsim_stopped")


async def run() -> None:
    """Run the paper-trading service.

    When the API is enabled (API_ENABLED=true, the default):
    - Creates the FastAPI app with lifespan
    - Runs the session and the API in a single asyncio event loop via uvicorn
    - Lifespan manages all component startup/shutdown

    When the API is disabled (API_ENABLED=false):
    - Runs the session headless until SIGINT/SIGTERM
    """
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("perpsim.main")

    # 3-10. Build all components
    components = await _build_components(settings)

    if settings.api.enabled:
        from perpsim.api.app import create_app

        app = create_app(lifespan=lifespan)
        app.state.settings = settings
        app.state.components = components

        logger.info(
            "starting_with_api",
            host=settings.api.host,
            port=settings.api.port,
            symbol=settings.trading.symbol,
        )

        config = uvicorn.Config(
            app,
            host=settings.api.host,
            port=settings.api.port,
            log_level="warning",  # Suppress uvicorn access logs
        )
        server = uvicorn.Server(config)
        await server.serve()
    else:
        stop_event = asyncio.Event()
        _setup_signal_handlers(stop_event)

        logger.info(
            "starting_without_api",
            symbol=settings.trading.symbol,
            store=settings.store.backend,
        )

        try:
            await _startup(components)
            await stop_event.wait()
        finally:
            await _shutdown(components)
            logger.info("perpsim_stopped")


def main() -> None:
    """Synchronous entry point."""
    asyncio.run(run())


if __name__ == "__main__":
    main()
