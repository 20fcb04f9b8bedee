"""Master clock abstractions used by the scheduling runtime.

Every component that needs "now" takes a clock rather than calling
``datetime.now`` directly, so tests can pin and step time.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock


class MasterClock:
    """Wall clock providing timezone-aware UTC timestamps."""

    def now_utc(self) -> datetime:
        """Return current UTC time as an aware datetime."""
        return datetime.now(timezone.utc)

    @staticmethod
    def _ensure_aware(dt: datetime) -> None:
        if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
            raise ValueError("Datetime must be timezone-aware")


class ControllableMasterClock(MasterClock):
    """Deterministic clock used for tests.

    Time only moves when :meth:`advance` or :meth:`set` is called.
    """

    def __init__(self, epoch: datetime) -> None:
        self._ensure_aware(epoch)
        self._current = epoch.astimezone(timezone.utc)
        self._lock = Lock()

    def now_utc(self) -> datetime:
        with self._lock:
            return self._current

    def advance(self, seconds: float = 0.0, *, minutes: float = 0.0, hours: float = 0.0) -> datetime:
        """Advance the clock (must be non-negative)."""
        delta = timedelta(seconds=seconds, minutes=minutes, hours=hours)
        if delta < timedelta(0):
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._current += delta
            return self._current

    def set(self, when: datetime) -> None:
        self._ensure_aware(when)
        with self._lock:
            self._current = when.astimezone(timezone.utc)
