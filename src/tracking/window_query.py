"""Time-window queries over stored session logs."""

import time
from datetime import datetime, time as dt_time, timedelta
from typing import Optional

from .models import TimeParts, TimeWindow
from .session_store import SessionStore

__all__ = ["WindowQuery", "separate_time"]


def separate_time(duration_ms: int) -> TimeParts:
    """Break a non-negative duration into whole hours, minutes and seconds."""
    return TimeParts.from_ms(duration_ms)


class WindowQuery:
    """Computes covered time within arbitrary windows for a project."""

    def __init__(self, store: SessionStore):
        self._store = store

    def get_time_in_window(self, window: TimeWindow, project_key: str) -> int:
        """Total milliseconds of stored activity overlapping ``window``.

        Each stored session contributes its own overlap with the window, so
        sessions that overlap each other in storage are counted once each.
        """
        day_keys = self._store.day_keys_in_window(window)

        total = 0
        for day_key in day_keys:
            for session in self._store.load_day(project_key, day_key):
                total += session.overlap(window)
        return total

    def today_window(self, now_ms: Optional[int] = None) -> TimeWindow:
        """Start and end (inclusive) of the current day in the display timezone."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        tz = self._store.tz
        today = datetime.fromtimestamp(now_ms / 1000, tz=tz).date()

        start = datetime.combine(today, dt_time.min, tzinfo=tz)
        next_start = datetime.combine(today + timedelta(days=1), dt_time.min, tzinfo=tz)
        return TimeWindow(
            start=int(start.timestamp() * 1000),
            end=int(next_start.timestamp() * 1000) - 1,
        )

    def get_today_time(self, project_key: str, now_ms: Optional[int] = None) -> int:
        """Milliseconds of activity recorded for today in the display timezone."""
        return self.get_time_in_window(self.today_window(now_ms), project_key)
