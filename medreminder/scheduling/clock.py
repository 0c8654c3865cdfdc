from datetime import datetime, timedelta
from typing import Optional, Protocol

from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time as naive local date-time.

    Schedules are expressed in the patient's wall-clock time, so the engine
    works on naive datetimes in ``tz_name`` (or the host's local zone).
    """

    def __init__(self, tz_name: Optional[str] = None):
        self._tz = ZoneInfo(tz_name) if tz_name else None

    def now(self) -> datetime:
        if self._tz is None:
            return datetime.now()
        return datetime.now(self._tz).replace(tzinfo=None)


class FixedClock:
    """A clock that only moves when told to"""

    def __init__(self, at: datetime):
        self._at = at

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = at

    def advance(self, delta: timedelta) -> datetime:
        self._at = self._at + delta
        return self._at
