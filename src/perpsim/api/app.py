"""FastAPI application factory for the order placement API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from perpsim.api import routes
from perpsim.exceptions import (
    InsufficientBalanceError,
    MarketUnavailableError,
    PositionNotFoundError,
    SimulatorError,
    StoreError,
    ValidationError,
)

log = structlog.get_logger(__name__)

# Most specific first; handlers are looked up along the exception MRO.
ERROR_STATUS: dict[type[SimulatorError], int] = {
    PositionNotFoundError: 404,
    ValidationError: 422,
    InsufficientBalanceError: 409,
    MarketUnavailableError: 503,
    StoreError: 502,
}


def _error_handler(status_code: int):
    async def handler(request: Request, exc: SimulatorError) -> JSONResponse:
        log.warning(
            "api_request_rejected",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
            status_code=status_code,
        )
        return JSONResponse(
            status_code=status_code,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return handler


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the API application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to inject startup/shutdown logic.

    Returns:
        FastAPI application. Route handlers expect ``ledger``,
        ``ticker_service``, ``signal_engine`` and ``session`` on ``app.state``.
    """
    app = FastAPI(title="perpsim paper trading", lifespan=lifespan)

    app.state.ledger = None
    app.state.ticker_service = None
    app.state.signal_engine = None
    app.state.session = None

    for exc_class, status_code in ERROR_STATUS.items():
        app.add_exception_handler(exc_class, _error_handler(status_code))

    app.include_router(routes.router, prefix="/api")
    return app
