"""Source of "today" for status derivation. Injected so overdue checks are deterministic."""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from fee_engine.core.config import settings


class Clock:
    def today(self) -> date:
        raise NotImplementedError


class SystemClock(Clock):
    """Calendar date in the configured timezone."""

    def __init__(self, tz_name: str) -> None:
        self.tz = ZoneInfo(tz_name)

    def today(self) -> date:
        return datetime.now(self.tz).date()


class FixedClock(Clock):
    def __init__(self, fixed: date) -> None:
        self.fixed = fixed

    def today(self) -> date:
        return self.fixed


_system_clock = SystemClock(settings.timezone)


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a FixedClock."""
    return _system_clock
