"""
Server clock for day-boundary decisions.

Every "which day is it" question (daily streaks, quest rotation, password
freshness) goes through a ``Clock`` so the canonical time zone is applied in
one place and tests can pin time.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

EPOCH = date(1970, 1, 1)


def resolve_timezone(name: Optional[str]) -> tzinfo:
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def epoch_day(day: date) -> int:
    """Days since 1970-01-01."""
    return (day - EPOCH).days


class Clock:
    """Base clock. Subclasses provide ``now``."""

    def __init__(self, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        """Calendar day in the canonical time zone."""
        return self.now().astimezone(self.tz).date()

    def epoch_day(self) -> int:
        return epoch_day(self.today())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Manually advanced clock for tests and replays.

    >>> clock = FixedClock(datetime(2025, 1, 1, 12, tzinfo=timezone.utc))
    >>> clock.advance(days=1)
    >>> clock.today()
    datetime.date(2025, 1, 2)
    """

    def __init__(self, current: datetime, tz: tzinfo = timezone.utc) -> None:
        super().__init__(tz)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def now(self) -> datetime:
        return self._current

    def set(self, current: datetime) -> None:
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        self._current = current

    def advance(self, **delta: float) -> None:
        self._current = self._current + timedelta(**delta)
