"""Tests for UTC session windows."""

from datetime import datetime, timedelta, timezone

import pytest

from perpsim.config import StrategySettings
from perpsim.signals.killzone import SessionStatus, is_killzone, session_at

KILLZONES = [(7, 10), (13, 16)]


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2024, 3, 5, hour, minute, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("hour", "minute", "expected"),
    [
        (6, 59, False),
        (7, 0, True),
        (9, 59, True),
        (10, 0, False),  # end hour is exclusive
        (13, 0, True),
        (16, 0, False),
    ],
)
def test_windows_are_half_open(hour: int, minute: int, expected: bool) -> None:
    assert is_killzone(_at(hour, minute), KILLZONES) is expected


def test_aware_times_are_converted_to_utc() -> None:
    cet = timezone(timedelta(hours=2))
    assert is_killzone(datetime(2024, 3, 5, 9, 30, tzinfo=cet), KILLZONES) is True
    assert is_killzone(datetime(2024, 3, 5, 12, 30, tzinfo=cet), KILLZONES) is False


def test_naive_times_are_treated_as_utc() -> None:
    assert is_killzone(datetime(2024, 3, 5, 14, 0), KILLZONES) is True


class TestSessionAt:
    def test_named_sessions(self) -> None:
        london = session_at(_at(8))
        new_york = session_at(_at(14))

        assert (london.name, london.status) == ("LONDON OPEN", SessionStatus.ACTIVE)
        assert (new_york.name, new_york.status) == ("NEW YORK OPEN", SessionStatus.ACTIVE)

    def test_lunch_is_paused(self) -> None:
        assert session_at(_at(17, 30)).status is SessionStatus.PAUSED

    def test_off_hours_dormant(self) -> None:
        assert session_at(_at(3)).status is SessionStatus.DORMANT

    def test_extra_configured_window_gets_generic_name(self) -> None:
        settings = StrategySettings(killzones=[(7, 10), (13, 16), (20, 22)])
        session = session_at(_at(21), settings)
        assert session.name == "KILLZONE 3"
        assert session.status is SessionStatus.ACTIVE
