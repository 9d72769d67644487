"""Tests for environment-driven configuration."""

from decimal import Decimal

import pytest

from perpsim.config import AppSettings, StoreSettings, StrategySettings, TradingSettings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Run from an empty directory so no stray .env is picked up."""
    monkeypatch.chdir(tmp_path)


def test_defaults() -> None:
    settings = AppSettings()

    assert settings.trading.initial_balance == Decimal("10000")
    assert settings.trading.fee_rate == Decimal("0.001")
    assert settings.trading.liquidation_buffer == Decimal("0.005")
    assert settings.store.backend == "memory"
    assert settings.strategy.killzones == [(7, 10), (13, 16)]


def test_prefixed_env_vars(monkeypatch) -> None:
    monkeypatch.setenv("TRADING_MAX_LEVERAGE", "20")
    monkeypatch.setenv("TRADING_FEE_RATE", "0.0005")
    monkeypatch.setenv("STRATEGY_SENTIMENT_ALLOWED_ASSETS", '["BTC"]')

    assert TradingSettings().max_leverage == 20
    assert TradingSettings().fee_rate == Decimal("0.0005")
    assert StrategySettings().sentiment_allowed_assets == ["BTC"]


def test_nested_env_vars(monkeypatch) -> None:
    monkeypatch.setenv("STORE__BACKEND", "sqlite")
    monkeypatch.setenv("LOG_FORMAT", "json")

    settings = AppSettings()

    assert settings.store.backend == "sqlite"
    assert settings.log_format == "json"


def test_dotenv_file(tmp_path) -> None:
    (tmp_path / ".env").write_text("LOG_LEVEL=DEBUG\nAPI__PORT=9000\n")

    settings = AppSettings()

    assert settings.log_level == "DEBUG"
    assert settings.api.port == 9000


def test_invalid_backend_rejected() -> None:
    with pytest.raises(ValueError):
        StoreSettings(backend="postgres")
