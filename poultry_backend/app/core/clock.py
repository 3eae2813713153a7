"""
Clock sources.

The core never reads the wall clock directly; a clock is injected so that
timestamps, invoice dates and aging are reproducible in tests.
"""

from datetime import date, datetime, timedelta, timezone


class SystemClock:
    """Wall clock in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Clock pinned to a given instant; can be advanced manually."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        self._instant = instant

    def now(self) -> datetime:
        return self._instant

    def today(self) -> date:
        return self._instant.date()

    def advance(self, **kwargs) -> None:
        self._instant = self._instant + timedelta(**kwargs)


system_clock = SystemClock()
