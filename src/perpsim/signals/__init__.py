"""Signal strategies and the indicator library they share.

Each strategy is a pure function returning a SignalResult. The registry maps
strategy names to those functions, and the SignalEngine fetches live market
data for them.
"""

from perpsim.signals.engine import SignalEngine
from perpsim.signals.models import (
    Lethality,
    MacroTrend,
    SignalLabel,
    SignalResult,
    TradeSetup,
)
from perpsim.signals.registry import (
    STRATEGIES,
    STRATEGY_SPECS,
    StrategyContext,
    StrategyName,
    evaluate,
)
from perpsim.signals.sentiment import SentimentInputs

__all__ = [
    "Lethality",
    "MacroTrend",
    "STRATEGIES",
    "STRATEGY_SPECS",
    "SentimentInputs",
    "SignalEngine",
    "SignalLabel",
    "SignalResult",
    "StrategyContext",
    "StrategyName",
    "TradeSetup",
    "evaluate",
]
