"""UTC session windows ("killzones") used by institutional-style strategies."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from perpsim.config import StrategySettings


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DORMANT = "DORMANT"


@dataclass(frozen=True)
class MarketSession:
    """Named trading session and whether strategies should act in it."""

    name: str
    status: SessionStatus


_SESSION_NAMES = ("LONDON OPEN", "NEW YORK OPEN")


def _utc_hour(now: datetime) -> int:
    # Naive datetimes are taken to be UTC already.
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.hour


def is_killzone(now: datetime, killzones: list[tuple[int, int]]) -> bool:
    """True if ``now`` falls in any ``[start, end)`` UTC hour window."""
    hour = _utc_hour(now)
    return any(start <= hour < end for start, end in killzones)


def session_at(now: datetime, settings: StrategySettings | None = None) -> MarketSession:
    """Classify ``now`` into a market session."""
    s = settings or StrategySettings()
    hour = _utc_hour(now)

    for index, (start, end) in enumerate(s.killzones):
        if start <= hour < end:
            name = _SESSION_NAMES[index] if index < len(_SESSION_NAMES) else f"KILLZONE {index + 1}"
            return MarketSession(name=name, status=SessionStatus.ACTIVE)

    lunch_start, lunch_end = s.lunch_window
    if lunch_start <= hour < lunch_end:
        return MarketSession(name="NY LUNCH", status=SessionStatus.PAUSED)

    return MarketSession(name="ASIA / OFF-HOURS", status=SessionStatus.DORMANT)
