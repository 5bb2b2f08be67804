"""Test helpers: fixed clocks and local times in the test deployment."""

from datetime import date, datetime, timedelta

from leadwatch.utils.time_utils import instant_of

OFFSET = 330
DAY = date(2026, 3, 1)


class FakeClock:
    """Settable clock returning a fixed UTC instant."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def local(hhmm: str, day: date = DAY) -> datetime:
    """UTC instant of a local wall-clock time."""
    return instant_of(day, hhmm, OFFSET)
