"""Stateless technical indicators over Decimal series.

Every function is deterministic and side-effect free. Series outputs are
aligned with their input: index ``i`` of the result describes input index
``i``, and positions without enough history hold ``None``. Callers must
supply contiguous, chronologically ordered series.

Results are quantized to 12 decimal places so that repeated division in
the EMA and Wilder recursions does not grow Decimal representations
without bound.

CRITICAL: All computations use Decimal. Never use float.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from perpsim.market_data.models import Candle, OrderBookSnapshot

#: Precision limit for indicator outputs (12 decimal places).
_QUANTIZE = Decimal("0.000000000001")

_HUNDRED = Decimal("100")


@dataclass(frozen=True)
class BollingerBands:
    """Bollinger band levels for the trailing window."""

    upper: Decimal
    middle: Decimal
    lower: Decimal


def _q(value: Decimal) -> Decimal:
    return value.quantize(_QUANTIZE)


def sma(values: Sequence[Decimal], period: int) -> list[Decimal | None]:
    """Simple moving average, ``None`` for indices below ``period - 1``."""
    if period <= 0:
        raise ValueError("period must be positive")
    result: list[Decimal | None] = [None] * len(values)
    if len(values) < period:
        return result

    window_sum = sum(values[:period], Decimal("0"))
    result[period - 1] = _q(window_sum / period)
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        result[i] = _q(window_sum / period)
    return result


def ema(values: Sequence[Decimal], period: int) -> list[Decimal | None]:
    """Exponential moving average seeded from the SMA at ``period - 1``.

    Uses the standard recursive formula:
        k = 2 / (period + 1)
        EMA_t = k * value_t + (1 - k) * EMA_{t-1}

    ``EMA[period - 1] == SMA[period - 1]`` by construction.
    """
    seeds = sma(values, period)
    result: list[Decimal | None] = [None] * len(values)
    if len(values) < period:
        return result

    k = Decimal("2") / (Decimal(period) + Decimal("1"))
    one_minus_k = Decimal("1") - k

    prev = seeds[period - 1]
    assert prev is not None
    result[period - 1] = prev
    for i in range(period, len(values)):
        prev = _q(k * values[i] + one_minus_k * prev)
        result[i] = prev
    return result


def _rsi_from_averages(avg_gain: Decimal, avg_loss: Decimal) -> Decimal:
    if avg_loss == 0:
        return _HUNDRED
    rs = avg_gain / avg_loss
    return _q(_HUNDRED - _HUNDRED / (Decimal("1") + rs))


def rsi(values: Sequence[Decimal], period: int = 14) -> list[Decimal | None]:
    """Relative Strength Index with Wilder smoothing.

    The first value appears at index ``period`` (it needs ``period`` price
    changes). A zero average loss yields 100 rather than dividing by zero.
    """
    if period <= 0:
        raise ValueError("period must be positive")
    result: list[Decimal | None] = [None] * len(values)
    if len(values) <= period:
        return result

    gains: list[Decimal] = []
    losses: list[Decimal] = []
    for i in range(1, len(values)):
        change = values[i] - values[i - 1]
        gains.append(change if change > 0 else Decimal("0"))
        losses.append(-change if change < 0 else Decimal("0"))

    avg_gain = _q(sum(gains[:period], Decimal("0")) / period)
    avg_loss = _q(sum(losses[:period], Decimal("0")) / period)
    result[period] = _rsi_from_averages(avg_gain, avg_loss)

    for i in range(period + 1, len(values)):
        avg_gain = _q((avg_gain * (period - 1) + gains[i - 1]) / period)
        avg_loss = _q((avg_loss * (period - 1) + losses[i - 1]) / period)
        result[i] = _rsi_from_averages(avg_gain, avg_loss)
    return result


def true_range(current: Candle, previous: Candle) -> Decimal:
    """max(high - low, |high - prev close|, |low - prev close|)."""
    return max(
        current.high - current.low,
        abs(current.high - previous.close),
        abs(current.low - previous.close),
    )


def atr(candles: Sequence[Candle], period: int = 14) -> list[Decimal | None]:
    """Average True Range, smoothed the same way as RSI's averages.

    First value at index ``period`` is the mean of the first ``period``
    true ranges; later values use Wilder smoothing.
    """
    if period <= 0:
        raise ValueError("period must be positive")
    result: list[Decimal | None] = [None] * len(candles)
    if len(candles) <= period:
        return result

    ranges = [true_range(candles[i], candles[i - 1]) for i in range(1, len(candles))]
    value = _q(sum(ranges[:period], Decimal("0")) / period)
    result[period] = value
    for i in range(period + 1, len(candles)):
        value = _q((value * (period - 1) + ranges[i - 1]) / period)
        result[i] = value
    return result


def bollinger_bands(
    values: Sequence[Decimal], period: int = 20, k: Decimal = Decimal("2")
) -> BollingerBands | None:
    """Bands over the trailing ``period`` values using population std dev.

    Returns None if fewer than ``period`` values are available.
    """
    if len(values) < period or period <= 0:
        return None
    window = values[-period:]
    mean = sum(window, Decimal("0")) / period
    variance = sum(((v - mean) ** 2 for v in window), Decimal("0")) / period
    std_dev = variance.sqrt()
    return BollingerBands(
        upper=_q(mean + k * std_dev),
        middle=_q(mean),
        lower=_q(mean - k * std_dev),
    )


def order_book_imbalance(book: OrderBookSnapshot | None, depth: int = 50) -> Decimal:
    """Share of resting size on the bid side across the top ``depth`` levels.

    Returns a value in [0, 1]: 0.5 is balanced, above 0.5 is buy-side
    pressure. An empty (or missing) book is exactly 0.5.
    """
    if book is None:
        return Decimal("0.5")
    bid_volume = sum((size for _, size in book.bids[:depth]), Decimal("0"))
    ask_volume = sum((size for _, size in book.asks[:depth]), Decimal("0"))
    total = bid_volume + ask_volume
    if total <= 0:
        return Decimal("0.5")
    return bid_volume / total


def highest_high(candles: Sequence[Candle]) -> Decimal:
    """Highest high across a non-empty window of candles."""
    return max(c.high for c in candles)


def lowest_low(candles: Sequence[Candle]) -> Decimal:
    """Lowest low across a non-empty window of candles."""
    return min(c.low for c in candles)


def closes(candles: Sequence[Candle]) -> list[Decimal]:
    """Close prices of a candle series."""
    return [c.close for c in candles]
