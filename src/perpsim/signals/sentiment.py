"""Composite sentiment scorer.

Blends three numeric inputs into one score in roughly [-1, 1]:

- fear/greed index (0-100): contrarian at the extremes, momentum in between
- news sentiment score (-1..1)
- 24h price change percent, which doubles as the volatility proxy

The score maps to a label, volatility picks the leverage, and confidence
scales the position size. Only allow-listed base assets are traded.
"""

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from perpsim.config import StrategySettings
from perpsim.models import PositionSide
from perpsim.signals.models import Lethality, SignalLabel, SignalResult, TradeSetup

STRATEGY_NAME = "SENTIMENT SURGEON"

_ZERO = Decimal("0")
_ONE = Decimal("1")
_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class SentimentInputs:
    """Externally ingested readings, consumed as plain numbers."""

    fear_greed: int = 50
    news_score: Decimal = Decimal("0")
    change_24h_pct: Decimal = Decimal("0")


def base_asset(symbol: str) -> str:
    """``BTC/USDT`` and ``BTCUSDT`` both give ``BTC``."""
    if "/" in symbol:
        return symbol.split("/", 1)[0]
    return symbol.removesuffix("USDT")


def sentiment_score(inputs: SentimentInputs) -> tuple[Decimal, list[str]]:
    """Score the inputs and collect the reasons behind each contribution."""
    score = _ZERO
    reasons: list[str] = []

    fg = inputs.fear_greed
    if fg > 75:
        score -= Decimal("0.2")
        reasons.append(f"Market is extremely greedy ({fg}). Caution advised.")
    elif fg < 25:
        score += Decimal("0.2")
        reasons.append(f"Market is extremely fearful ({fg}). Looking for value.")
    elif fg > 60:
        score += Decimal("0.2")
    elif fg < 40:
        score -= Decimal("0.2")

    if inputs.news_score > Decimal("0.3"):
        score += Decimal("0.3")
        reasons.append("Strong positive news sentiment.")
    elif inputs.news_score < Decimal("-0.3"):
        score -= Decimal("0.3")
        reasons.append("Negative news sentiment detected.")

    change = inputs.change_24h_pct
    if change > 5:
        score += Decimal("0.4")
        reasons.append(f"Strong bullish momentum (+{change}%).")
    elif change < -5:
        score -= Decimal("0.4")
        reasons.append(f"Significant bearish pressure ({change}%).")
    elif change > 1:
        score += Decimal("0.2")
    elif change < -1:
        score -= Decimal("0.2")

    return score, reasons


def leverage_for_volatility(volatility: Decimal, settings: StrategySettings) -> int:
    """Lower volatility allows higher leverage, capped at the configured max."""
    if volatility > settings.sentiment_high_volatility:
        return settings.sentiment_min_leverage
    if volatility < settings.sentiment_low_volatility:
        return settings.sentiment_max_leverage
    return settings.sentiment_mid_leverage


def label_for_score(score: Decimal, settings: StrategySettings) -> SignalLabel:
    if score >= settings.sentiment_strong_threshold:
        return SignalLabel.STRONG_BUY
    if score > settings.sentiment_threshold:
        return SignalLabel.BUY
    if score <= -settings.sentiment_strong_threshold:
        return SignalLabel.STRONG_SELL
    if score < -settings.sentiment_threshold:
        return SignalLabel.SELL
    return SignalLabel.WAIT


def evaluate_sentiment(
    inputs: SentimentInputs,
    balance: Decimal,
    current_price: Decimal,
    symbol: str,
    settings: StrategySettings | None = None,
) -> SignalResult:
    """Produce a sentiment signal and, for directional labels, a sized setup.

    Args:
        inputs: Fear/greed, news score and 24h change readings.
        balance: Account balance used for position sizing.
        current_price: Entry price for the setup.
        symbol: Trading symbol; the base asset must be allow-listed.
        settings: Strategy constants.

    Returns:
        SignalResult. NO TRADE for symbols outside the allow-list and WAIT
        for a weak score, both with a zeroed setup.
    """
    s = settings or StrategySettings()
    asset = base_asset(symbol)

    if asset not in s.sentiment_allowed_assets:
        allowed = ", ".join(s.sentiment_allowed_assets)
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=SignalLabel.NO_TRADE,
            setup=TradeSetup(entry=current_price),
            reasons=[f"Trading is restricted to {allowed}. Current: {asset}."],
            lethality=Lethality.DORMANT,
            metrics={"score": _ZERO, "leverage": 0, "risk_level": "Restricted"},
        )

    score, reasons = sentiment_score(inputs)
    volatility = abs(inputs.change_24h_pct)
    leverage = leverage_for_volatility(volatility, s)
    if volatility > s.sentiment_high_volatility:
        risk_level = "High (Reduced Lev)"
        reasons.append("High volatility detected. Reducing leverage to safety levels.")
    elif volatility < s.sentiment_low_volatility:
        risk_level = "Low"
        reasons.append(
            f"Low volatility allows for max authorized leverage ({leverage}x)."
        )
    else:
        risk_level = "Medium"

    signal = label_for_score(score, s)
    metrics: dict[str, object] = {
        "score": score,
        "leverage": leverage,
        "risk_level": risk_level,
        "volatility": volatility,
    }

    if signal is SignalLabel.WAIT:
        reasons.append("No clear edge identified. Patience is key.")
        return SignalResult(
            strategy_name=STRATEGY_NAME,
            signal=signal,
            setup=TradeSetup(entry=current_price, leverage_hint=leverage),
            reasons=reasons,
            lethality=Lethality.LOW,
            metrics=metrics,
        )

    confidence = abs(score)
    margin = balance * s.sentiment_balance_fraction * min(confidence, _ONE)
    position_size = (margin * leverage).to_integral_value(rounding=ROUND_FLOOR)

    stop_percent = max(volatility / 2, s.sentiment_min_stop_percent)
    stop_fraction = stop_percent / _HUNDRED
    target_fraction = stop_fraction * 2
    side = signal.side

    if side is PositionSide.LONG:
        take_profit = current_price * (_ONE + target_fraction)
        stop_loss = current_price * (_ONE - stop_fraction)
    else:
        take_profit = current_price * (_ONE - target_fraction)
        stop_loss = current_price * (_ONE + stop_fraction)

    trailing = (
        confidence > s.sentiment_trailing_confidence
        and volatility > s.sentiment_trailing_volatility
    )

    strong = signal in (SignalLabel.STRONG_BUY, SignalLabel.STRONG_SELL)
    return SignalResult(
        strategy_name=STRATEGY_NAME,
        signal=signal,
        setup=TradeSetup(
            side=side,
            entry=current_price,
            stop_loss=stop_loss,
            take_profit=take_profit,
            leverage_hint=leverage,
            position_size=position_size,
            trailing_enabled=trailing,
            trailing_percent=stop_percent if trailing else None,
            risk_reward="1:2",
        ),
        reasons=reasons,
        lethality=Lethality.HIGH if strong else Lethality.MEDIUM,
        metrics=metrics,
    )
