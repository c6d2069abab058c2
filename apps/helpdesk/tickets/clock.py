from __future__ import annotations

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        ...


class SystemClock:
    """UTC wall clock that never goes backwards within the process."""

    def __init__(self) -> None:
        self._last: datetime | None = None
        self._lock = Lock()

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        with self._lock:
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current


class ManualClock:
    """Clock that only moves when told to; used by tests and data imports."""

    def __init__(self, start: datetime | None = None) -> None:
        self._current = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def advance(self, **kwargs: float) -> datetime:
        self._current = self._current + timedelta(**kwargs)
        return self._current

    def set(self, value: datetime) -> None:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self._current = value
