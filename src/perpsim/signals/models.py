"""Signal data models shared by every strategy.

A SignalResult is pure and recomputed on every evaluation cycle; it is
never persisted.

CRITICAL: All prices and sizes use Decimal. Never use float for signal computations.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from perpsim.models import PositionSide


class SignalLabel(str, Enum):
    """Signal label emitted by a strategy."""

    WAIT = "WAIT"
    LONG = "LONG"
    SHORT = "SHORT"
    BUY = "BUY"
    SELL = "SELL"
    STRONG_BUY = "STRONG BUY"
    STRONG_SELL = "STRONG SELL"
    SLEEP = "SLEEP"
    NO_TRADE = "NO TRADE"

    @property
    def side(self) -> PositionSide | None:
        """Trade direction implied by the label, if any."""
        if self in (SignalLabel.LONG, SignalLabel.BUY, SignalLabel.STRONG_BUY):
            return PositionSide.LONG
        if self in (SignalLabel.SHORT, SignalLabel.SELL, SignalLabel.STRONG_SELL):
            return PositionSide.SHORT
        return None


class Lethality(str, Enum):
    """Confidence classification attached to a signal."""

    DORMANT = "DORMANT"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class MacroTrend(str, Enum):
    """Higher-timeframe bias from the EMA stack."""

    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    NEUTRAL = "NEUTRAL"


@dataclass
class TradeSetup:
    """Proposed trade: entry, protective stop, target and sizing hints."""

    side: PositionSide | None = None
    entry: Decimal = Decimal("0")
    stop_loss: Decimal = Decimal("0")
    take_profit: Decimal = Decimal("0")
    leverage_hint: int = 0
    position_size: Decimal = Decimal("0")  # notional
    trailing_enabled: bool = False
    trailing_percent: Decimal | None = None
    risk_reward: str = ""


@dataclass
class SignalResult:
    """Output of one strategy evaluation."""

    strategy_name: str
    signal: SignalLabel
    setup: TradeSetup = field(default_factory=TradeSetup)
    reasons: list[str] = field(default_factory=list)
    lethality: Lethality = Lethality.DORMANT
    metrics: dict[str, object] = field(default_factory=dict)

    @property
    def is_actionable(self) -> bool:
        return self.signal.side is not None and self.setup.side is not None

    def to_dict(self) -> dict:
        """Serialize to dict for JSON output; Decimals become strings."""
        return {
            "strategy_name": self.strategy_name,
            "signal": self.signal.value,
            "lethality": self.lethality.value,
            "reasons": list(self.reasons),
            "setup": {
                "side": self.setup.side.value if self.setup.side else None,
                "entry": str(self.setup.entry),
                "stop_loss": str(self.setup.stop_loss),
                "take_profit": str(self.setup.take_profit),
                "leverage_hint": self.setup.leverage_hint,
                "position_size": str(self.setup.position_size),
                "trailing_enabled": self.setup.trailing_enabled,
                "trailing_percent": (
                    str(self.setup.trailing_percent)
                    if self.setup.trailing_percent is not None
                    else None
                ),
                "risk_reward": self.setup.risk_reward,
            },
            "metrics": {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.metrics.items()
            },
        }
