"""JSON API endpoints: account, positions, orders, history, signals and session."""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from perpsim.ledger.pnl import roi, unrealized_pnl
from perpsim.ledger.summary import account_summary
from perpsim.models import (
    OrderRequest,
    OrderType,
    PendingOrder,
    Position,
    PositionSide,
    RiskUpdate,
    TakeProfitLevel,
)
from perpsim.signals.registry import StrategyName
from perpsim.signals.sentiment import SentimentInputs

log = structlog.get_logger(__name__)

router = APIRouter()


# ──────────────────────────────────────────────
# Request bodies
# ──────────────────────────────────────────────


class OrderBody(BaseModel):
    side: PositionSide
    amount: Decimal
    leverage: int
    order_type: OrderType = OrderType.MARKET
    symbol: str | None = None
    trigger_price: Decimal | None = None
    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_enabled: bool = False
    trailing_percent: Decimal | None = None
    reduce_only: bool = False


class CloseBody(BaseModel):
    percent: Decimal = Decimal("100")


class RiskBody(BaseModel):
    take_profit: Decimal | None = None
    stop_loss: Decimal | None = None
    trailing_enabled: bool = False
    trailing_percent: Decimal | None = None


class LadderLevelBody(BaseModel):
    price: Decimal
    percent_to_close: Decimal


class LadderBody(BaseModel):
    levels: list[LadderLevelBody]


class SymbolBody(BaseModel):
    symbol: str


# ──────────────────────────────────────────────
# Serialization
# ──────────────────────────────────────────────


def _to_jsonable(obj: Any) -> Any:
    """Recursively convert dataclasses, Decimals and Enums for JSON."""
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: _to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, dict):
        return {k: _to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(item) for item in obj]
    return obj


async def _position_view(request: Request, position: Position) -> dict:
    data = _to_jsonable(position)
    price = await request.app.state.ticker_service.get_price(position.symbol)
    if price is not None and price.is_finite() and price > 0:
        pnl = unrealized_pnl(position, price)
        data["mark_price"] = str(price)
        data["unrealized_pnl"] = str(pnl)
        data["roi"] = str(roi(pnl, position.margin))
    else:
        data["mark_price"] = None
        data["unrealized_pnl"] = None
        data["roi"] = None
    return data


# ──────────────────────────────────────────────
# Account and state
# ──────────────────────────────────────────────


@router.get("/account")
async def get_account(request: Request) -> JSONResponse:
    """Balance, margin in use, equity, day P&L and win rate."""
    ledger = request.app.state.ledger
    ticker_service = request.app.state.ticker_service
    positions = ledger.positions

    prices: dict[str, Decimal] = {}
    for symbol in {p.symbol for p in positions}:
        price = await ticker_service.get_price(symbol)
        if price is not None and price.is_finite() and price > 0:
            prices[symbol] = price

    summary = account_summary(await ledger.get_balance(), positions, ledger.history, prices)
    return JSONResponse(content=summary.to_dict())


@router.get("/positions")
async def get_positions(request: Request) -> JSONResponse:
    ledger = request.app.state.ledger
    result = [await _position_view(request, p) for p in ledger.positions]
    return JSONResponse(content=result)


@router.get("/orders")
async def get_orders(request: Request) -> JSONResponse:
    ledger = request.app.state.ledger
    return JSONResponse(content=_to_jsonable(ledger.pending_orders))


@router.get("/history")
async def get_history(request: Request, limit: int = 50) -> JSONResponse:
    """Closed trades, newest first."""
    ledger = request.app.state.ledger
    return JSONResponse(content=_to_jsonable(ledger.history[: max(limit, 0)]))


# ──────────────────────────────────────────────
# Orders
# ──────────────────────────────────────────────


@router.post("/orders")
async def place_order(request: Request, body: OrderBody) -> JSONResponse:
    """Place a MARKET, LIMIT or STOP order (optionally reduce-only)."""
    ledger = request.app.state.ledger
    outcome = await ledger.place_order(OrderRequest(**body.model_dump()))

    if isinstance(outcome, Position):
        content = {"kind": "position", "position": await _position_view(request, outcome)}
    elif isinstance(outcome, PendingOrder):
        content = {"kind": "pending_order", "order": _to_jsonable(outcome)}
    else:
        content = {"kind": "reductions", "entries": _to_jsonable(outcome)}

    log.info("order_placed_via_api", kind=content["kind"], side=body.side.value)
    return JSONResponse(content=content)


@router.delete("/orders/{order_id}")
async def cancel_order(request: Request, order_id: str) -> JSONResponse:
    """Cancel a pending order. Cancelling an unknown order is not an error."""
    ledger = request.app.state.ledger
    removed = await ledger.cancel_pending_order(order_id)
    return JSONResponse(content={"order_id": order_id, "cancelled": removed})


# ──────────────────────────────────────────────
# Positions
# ──────────────────────────────────────────────


@router.post("/positions/{position_id}/close")
async def close_position(
    request: Request, position_id: str, body: CloseBody | None = None
) -> JSONResponse:
    """Close a position at market, fully or by percent."""
    ledger = request.app.state.ledger
    percent = body.percent if body is not None else Decimal("100")
    entry = await ledger.close_position_partial(position_id, percent)
    return JSONResponse(content=_to_jsonable(entry))


@router.patch("/positions/{position_id}/risk")
async def update_risk(request: Request, position_id: str, body: RiskBody) -> JSONResponse:
    ledger = request.app.state.ledger
    position = await ledger.update_position_risk(
        position_id, RiskUpdate(**body.model_dump())
    )
    return JSONResponse(content=await _position_view(request, position))


@router.put("/positions/{position_id}/ladder")
async def set_ladder(request: Request, position_id: str, body: LadderBody) -> JSONResponse:
    ledger = request.app.state.ledger
    levels = [
        TakeProfitLevel(price=level.price, percent_to_close=level.percent_to_close)
        for level in body.levels
    ]
    position = await ledger.set_take_profit_ladder(position_id, levels)
    return JSONResponse(content=await _position_view(request, position))


# ──────────────────────────────────────────────
# Signals and session
# ──────────────────────────────────────────────


@router.get("/signals/{strategy}")
async def get_signal(
    request: Request,
    strategy: str,
    symbol: str | None = None,
    fear_greed: int = 50,
    news_score: Decimal = Decimal("0"),
) -> JSONResponse:
    """Evaluate one strategy against current market data for ``symbol``."""
    try:
        name = StrategyName(strategy)
    except ValueError:
        return JSONResponse(
            status_code=404,
            content={
                "error": "UnknownStrategy",
                "detail": f"Unknown strategy {strategy!r}",
                "available": [s.value for s in StrategyName],
            },
        )

    engine = request.app.state.signal_engine
    if engine is None:
        return JSONResponse(
            status_code=503,
            content={"error": "SignalsUnavailable", "detail": "Signal engine not configured"},
        )

    ledger = request.app.state.ledger
    session = request.app.state.session
    symbol = symbol or (session.symbol if session is not None else None) or ledger.default_symbol

    sentiment = None
    if name is StrategyName.SENTIMENT:
        ticker = await request.app.state.ticker_service.get_ticker(symbol)
        sentiment = SentimentInputs(
            fear_greed=fear_greed,
            news_score=news_score,
            change_24h_pct=ticker.change_24h_pct if ticker is not None else Decimal("0"),
        )

    result = await engine.run(name, symbol, await ledger.get_balance(), sentiment)
    return JSONResponse(content=_to_jsonable(result.to_dict()))


@router.get("/status")
async def get_status(request: Request) -> JSONResponse:
    session = request.app.state.session
    if session is None:
        return JSONResponse(content={"running": False, "symbol": None})
    return JSONResponse(content=session.get_status())


@router.post("/session/symbol")
async def switch_symbol(request: Request, body: SymbolBody) -> JSONResponse:
    """Move the live price feed to another symbol."""
    session = request.app.state.session
    if session is None:
        return JSONResponse(
            status_code=503,
            content={"error": "SessionUnavailable", "detail": "No trading session running"},
        )
    await session.switch_symbol(body.symbol)
    return JSONResponse(content=session.get_status())
