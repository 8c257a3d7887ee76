"""
Time sources for the scorer and router.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """Returns the current wall-clock time."""

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """System clock, optionally pinned to a business timezone."""

    def __init__(self, timezone: Optional[str] = None):
        self.tz = ZoneInfo(timezone) if timezone else None

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock frozen at a given instant. Used in tests and replays."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def set(self, instant: datetime):
        self.instant = instant
