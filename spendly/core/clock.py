"""Clock sources for audit timestamps."""

import threading
from datetime import datetime, timezone
from typing import Optional, Protocol


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """
    Wall clock that never goes backwards within a process.

    If the system time steps back (NTP correction), the last returned
    instant is repeated until real time catches up.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        with self._lock:
            current = utcnow()
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current
