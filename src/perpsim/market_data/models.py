"""Market data models: candles, order-book snapshots and ticker updates.

CRITICAL: All price and volume fields use Decimal. Feed values arrive as
floats from ccxt and are converted with ``Decimal(str(x))`` at the boundary.
"""

from dataclasses import dataclass
from decimal import Decimal


def to_decimal(value: object) -> Decimal:
    """Convert a feed value (float, int, str) to Decimal without float noise."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


@dataclass(frozen=True)
class Candle:
    """A single OHLCV candle. Immutable once received."""

    open_time_ms: int
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal = Decimal("0")

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body(self) -> Decimal:
        return abs(self.close - self.open)

    @staticmethod
    def from_ohlcv(row: list) -> "Candle":
        """Build from a ccxt OHLCV row ``[ts, open, high, low, close, volume]``."""
        return Candle(
            open_time_ms=int(row[0]),
            open=to_decimal(row[1]),
            high=to_decimal(row[2]),
            low=to_decimal(row[3]),
            close=to_decimal(row[4]),
            volume=to_decimal(row[5] if row[5] is not None else 0),
        )


@dataclass(frozen=True)
class OrderBookSnapshot:
    """Top-of-book levels. Bids descending by price, asks ascending."""

    bids: tuple[tuple[Decimal, Decimal], ...] = ()
    asks: tuple[tuple[Decimal, Decimal], ...] = ()

    @staticmethod
    def from_ccxt(book: dict) -> "OrderBookSnapshot":
        """Convert a ccxt ``fetch_order_book`` result."""
        return OrderBookSnapshot(
            bids=tuple(
                (to_decimal(level[0]), to_decimal(level[1]))
                for level in book.get("bids", [])
            ),
            asks=tuple(
                (to_decimal(level[0]), to_decimal(level[1]))
                for level in book.get("asks", [])
            ),
        )


@dataclass(frozen=True)
class Ticker:
    """One price-feed update for a symbol."""

    symbol: str
    last_price: Decimal
    change_24h_pct: Decimal = Decimal("0")
    high_24h: Decimal = Decimal("0")
    low_24h: Decimal = Decimal("0")
    volume_24h: Decimal = Decimal("0")
    timestamp: float = 0.0
