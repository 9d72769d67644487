"""Tests for the JSON order placement API via FastAPI TestClient.

All ledger work runs inside the TestClient's event loop: the lifespan opens
the account and publishes the BTC/USDT price.
"""

import time
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from perpsim.api.app import create_app
from perpsim.exceptions import StoreError
from perpsim.ledger.manager import Ledger
from perpsim.market_data.models import Ticker
from perpsim.market_data.ticker_service import TickerService
from perpsim.signals.engine import SignalEngine
from perpsim.signals.models import SignalLabel, SignalResult
from perpsim.signals.registry import StrategyName
from perpsim.store.memory import InMemoryStore


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def signal_engine() -> AsyncMock:
    engine = AsyncMock(spec=SignalEngine)
    engine.run.return_value = SignalResult(
        strategy_name="ORDER FLOW SCALPER", signal=SignalLabel.WAIT, reasons=["quiet"]
    )
    return engine


@pytest.fixture
def client(memory_store, signal_engine, trading_settings):
    ticker_service = TickerService()
    ledger = Ledger(memory_store, ticker_service, settings=trading_settings)

    @asynccontextmanager
    async def lifespan(app):
        await ledger.open_account()
        await ticker_service.update(
            Ticker(symbol="BTC/USDT", last_price=Decimal("30000"), timestamp=time.time())
        )
        yield

    app = create_app(lifespan=lifespan)
    app.state.ledger = ledger
    app.state.ticker_service = ticker_service
    app.state.signal_engine = signal_engine

    with TestClient(app) as test_client:
        yield test_client


def _open_long(client: TestClient, **extra) -> dict:
    body = {"side": "LONG", "amount": "1000", "leverage": 10, **extra}
    response = client.post("/api/orders", json=body)
    assert response.status_code == 200, response.text
    return response.json()


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


class TestPlaceOrder:
    def test_market_order_opens_position(self, client: TestClient) -> None:
        data = _open_long(client)

        assert data["kind"] == "position"
        position = data["position"]
        assert position["side"] == "LONG"
        assert Decimal(position["size"]) == Decimal("10000")
        assert Decimal(position["liquidation_price"]) == Decimal("27150")
        assert Decimal(position["unrealized_pnl"]) == 0

        account = client.get("/api/account").json()
        assert Decimal(account["balance"]) == Decimal("8999")
        assert Decimal(account["equity"]) == Decimal("9999")
        assert account["open_positions"] == 1

    def test_limit_order_then_cancel(self, client: TestClient) -> None:
        data = _open_long(client, order_type="LIMIT", trigger_price="29000")
        assert data["kind"] == "pending_order"
        order_id = data["order"]["id"]
        assert [o["id"] for o in client.get("/api/orders").json()] == [order_id]

        first = client.delete(f"/api/orders/{order_id}").json()
        second = client.delete(f"/api/orders/{order_id}").json()

        assert first["cancelled"] is True
        assert second["cancelled"] is False
        assert client.get("/api/orders").json() == []

    def test_reduce_only(self, client: TestClient) -> None:
        _open_long(client)

        response = client.post(
            "/api/orders",
            json={"side": "SHORT", "amount": "250", "leverage": 10, "reduce_only": True},
        )

        assert response.json()["kind"] == "reductions"
        [position] = client.get("/api/positions").json()
        assert Decimal(position["margin"]) == Decimal("750")


class TestErrorMapping:
    def test_validation_error_is_422(self, client: TestClient) -> None:
        response = client.post(
            "/api/orders", json={"side": "LONG", "amount": "100", "leverage": 500}
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_malformed_body_is_422(self, client: TestClient) -> None:
        response = client.post("/api/orders", json={"amount": "100"})
        assert response.status_code == 422

    def test_insufficient_balance_is_409(self, client: TestClient) -> None:
        response = client.post(
            "/api/orders", json={"side": "LONG", "amount": "20000", "leverage": 2}
        )
        assert response.status_code == 409

    def test_market_unavailable_is_503(self, client: TestClient) -> None:
        response = client.post(
            "/api/orders",
            json={"side": "LONG", "amount": "100", "leverage": 2, "symbol": "ETH/USDT"},
        )
        assert response.status_code == 503

    def test_unknown_position_is_404(self, client: TestClient) -> None:
        response = client.post("/api/positions/nope/close")
        assert response.status_code == 404
        assert response.json()["error"] == "PositionNotFoundError"

    def test_store_error_is_502(self, client: TestClient, memory_store: InMemoryStore) -> None:
        memory_store.open_position = AsyncMock(side_effect=StoreError("db locked"))
        response = client.post(
            "/api/orders", json={"side": "LONG", "amount": "100", "leverage": 2}
        )
        assert response.status_code == 502


# ---------------------------------------------------------------------------
# Positions
# ---------------------------------------------------------------------------


class TestPositions:
    def test_partial_then_full_close(self, client: TestClient) -> None:
        position_id = _open_long(client)["position"]["id"]

        partial = client.post(f"/api/positions/{position_id}/close", json={"percent": "50"})
        assert partial.status_code == 200
        assert Decimal(partial.json()["size"]) == Decimal("5000")

        full = client.post(f"/api/positions/{position_id}/close")
        assert full.status_code == 200
        assert full.json()["reason"] == "MANUAL"

        assert client.get("/api/positions").json() == []
        assert len(client.get("/api/history").json()) == 2
        assert len(client.get("/api/history", params={"limit": 1}).json()) == 1

    def test_update_risk(self, client: TestClient) -> None:
        position_id = _open_long(client)["position"]["id"]

        response = client.patch(
            f"/api/positions/{position_id}/risk",
            json={"stop_loss": "29000", "trailing_enabled": True, "trailing_percent": "2"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["trailing_stop_enabled"] is True
        assert Decimal(data["stop_loss"]) == Decimal("29000")

    def test_set_ladder(self, client: TestClient) -> None:
        position_id = _open_long(client)["position"]["id"]

        response = client.put(
            f"/api/positions/{position_id}/ladder",
            json={
                "levels": [
                    {"price": "32000", "percent_to_close": "50"},
                    {"price": "31000", "percent_to_close": "25"},
                ]
            },
        )

        assert response.status_code == 200
        prices = [Decimal(level["price"]) for level in response.json()["take_profit_ladder"]]
        assert prices == [Decimal("31000"), Decimal("32000")]

    def test_ladder_on_loss_side_is_422(self, client: TestClient) -> None:
        position_id = _open_long(client)["position"]["id"]
        response = client.put(
            f"/api/positions/{position_id}/ladder",
            json={"levels": [{"price": "29000", "percent_to_close": "50"}]},
        )
        assert response.status_code == 422


# ---------------------------------------------------------------------------
# Signals and status
# ---------------------------------------------------------------------------


class TestSignalsAndStatus:
    def test_signal_evaluation(self, client: TestClient, signal_engine: AsyncMock) -> None:
        response = client.get("/api/signals/order_flow")

        assert response.status_code == 200
        assert response.json()["signal"] == "WAIT"
        args = signal_engine.run.await_args.args
        assert args[0] is StrategyName.ORDER_FLOW
        assert args[1] == "BTC/USDT"

    def test_sentiment_inputs_from_query(self, client: TestClient, signal_engine: AsyncMock) -> None:
        client.get("/api/signals/sentiment", params={"fear_greed": 20, "news_score": "0.4"})

        sentiment = signal_engine.run.await_args.args[3]
        assert sentiment.fear_greed == 20
        assert sentiment.news_score == Decimal("0.4")

    def test_unknown_strategy_is_404(self, client: TestClient) -> None:
        response = client.get("/api/signals/astrology")
        assert response.status_code == 404
        assert "pullback" in response.json()["available"]

    def test_status_without_session(self, client: TestClient) -> None:
        assert client.get("/api/status").json() == {"running": False, "symbol": None}
        assert client.post("/api/session/symbol", json={"symbol": "ETH/USDT"}).status_code == 503
