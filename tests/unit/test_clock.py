"""Unit tests for the canonical-day clock."""

from datetime import date, datetime, timezone

import pytest

from ledgerquest.core.clock import FixedClock, SystemClock, epoch_day, resolve_timezone


def test_epoch_day_counts_from_1970():
    assert epoch_day(date(1970, 1, 1)) == 0
    assert epoch_day(date(1970, 1, 2)) == 1
    assert epoch_day(date(2025, 3, 11)) == 20158


def test_fixed_clock_advances_across_midnight():
    clock = FixedClock(datetime(2025, 3, 11, 23, 59, 59, tzinfo=timezone.utc))
    assert clock.today() == date(2025, 3, 11)
    clock.advance(seconds=1)
    assert clock.today() == date(2025, 3, 12)


def test_naive_datetimes_are_treated_as_utc():
    clock = FixedClock(datetime(2025, 3, 11, 12, 0))
    assert clock.now().tzinfo is timezone.utc
    clock.set(datetime(2025, 3, 12, 0, 0))
    assert clock.today() == date(2025, 3, 12)


def test_canonical_timezone_decides_the_day():
    # 02:00 UTC is still the previous evening in New York
    clock = FixedClock(
        datetime(2025, 3, 12, 2, 0, tzinfo=timezone.utc),
        tz=resolve_timezone("America/New_York"),
    )
    assert clock.today() == date(2025, 3, 11)


@pytest.mark.parametrize("name", [None, "", "UTC", "utc"])
def test_resolve_timezone_defaults_to_utc(name):
    assert resolve_timezone(name) is timezone.utc


def test_system_clock_is_timezone_aware():
    assert SystemClock().now().tzinfo is not None
