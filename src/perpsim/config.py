"""Configuration system using pydantic-settings with environment variable loading.

Strategy thresholds (reward:risk multipliers, killzone hours, volatility
bands) are hand-tuned and live here as configuration rather than being
baked into the strategy functions.
"""

from decimal import Decimal
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class ExchangeSettings(BaseSettings):
    """Public market-data source (any ccxt exchange id)."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_")

    exchange_id: str = "binance"
    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    default_type: str = "spot"


class TradingSettings(BaseSettings):
    """Paper account and order validation parameters."""

    model_config = SettingsConfigDict(env_prefix="TRADING_")

    user_id: str = "paper-user"
    symbol: str = "BTC/USDT"
    initial_balance: Decimal = Decimal("10000")
    fee_rate: Decimal = Decimal("0.001")  # 0.1% of margin, charged when a position opens
    liquidation_buffer: Decimal = Decimal("0.005")
    min_leverage: int = 1
    max_leverage: int = 50
    max_trailing_percent: Decimal = Decimal("50")
    liquidation_enabled: bool = True
    price_poll_interval: float = 1.0  # seconds between ticker polls
    max_price_age_seconds: float = 30.0


class StrategySettings(BaseSettings):
    """Signal strategy constants.

    Grouped by strategy. All fields configurable via STRATEGY_ environment
    variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="STRATEGY_")

    # Order-flow scalper
    scalper_min_candles: int = 20
    obi_depth: int = 50
    obi_long_threshold: Decimal = Decimal("0.65")
    obi_short_threshold: Decimal = Decimal("0.35")
    obi_watch_threshold: Decimal = Decimal("0.40")
    bollinger_period: int = 20
    bollinger_k: Decimal = Decimal("2")
    scalper_stop_percent: Decimal = Decimal("0.005")
    scalper_target_percent: Decimal = Decimal("0.01")
    scalper_risk_usd: Decimal = Decimal("2")
    scalper_leverage: int = 10

    # Liquidity sweep / FVG hunter
    sweep_min_candles: int = 30
    sweep_lookback: int = 20
    sweep_reward_risk: Decimal = Decimal("2")

    # Institutional trap
    trap_min_candles: int = 60
    trap_lookback: int = 50
    trap_displacement_multiplier: Decimal = Decimal("2")
    killzones: list[tuple[int, int]] = [(7, 10), (13, 16)]  # UTC [start, end)
    lunch_window: tuple[int, int] = (17, 18)

    # Macro-filtered pullback
    pullback_min_coarse_candles: int = 50
    ema_fast: int = 9
    ema_mid: int = 21
    ema_slow: int = 45
    rsi_period: int = 14
    atr_period: int = 14
    atr_stop_multiplier: Decimal = Decimal("1.5")
    pullback_reward_risk: Decimal = Decimal("2")

    # Composite sentiment scorer
    sentiment_allowed_assets: list[str] = ["BTC", "ETH", "SOL"]
    sentiment_strong_threshold: Decimal = Decimal("0.5")
    sentiment_threshold: Decimal = Decimal("0.2")
    sentiment_max_leverage: int = 10
    sentiment_mid_leverage: int = 5
    sentiment_min_leverage: int = 3
    sentiment_high_volatility: Decimal = Decimal("6")
    sentiment_low_volatility: Decimal = Decimal("2")
    sentiment_balance_fraction: Decimal = Decimal("0.05")
    sentiment_min_stop_percent: Decimal = Decimal("1.5")
    sentiment_trailing_confidence: Decimal = Decimal("0.6")
    sentiment_trailing_volatility: Decimal = Decimal("3")


class BacktestSettings(BaseSettings):
    """Pullback backtest configuration."""

    model_config = SettingsConfigDict(env_prefix="BACKTEST_")

    warmup_candles: int = 200
    coarse_interval_ms: int = 4 * 60 * 60 * 1000
    fine_timeframe: str = "15m"
    coarse_timeframe: str = "4h"
    fine_limit: int = 1000
    coarse_limit: int = 200


class StoreSettings(BaseSettings):
    """Durable store backend selection."""

    model_config = SettingsConfigDict(env_prefix="STORE_")

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "data/perpsim.db"


class ApiSettings(BaseSettings):
    """Order placement HTTP surface."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "127.0.0.1"
    port: int = 8080
    enabled: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    exchange: ExchangeSettings = ExchangeSettings()
    trading: TradingSettings = TradingSettings()
    strategy: StrategySettings = StrategySettings()
    backtest: BacktestSettings = BacktestSettings()
    store: StoreSettings = StoreSettings()
    api: ApiSettings = ApiSettings()
