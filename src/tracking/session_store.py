"""Per-project, per-day session logs with merge and midnight splitting."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from ..config import DEFAULT_TIMEZONE
from .models import MAX_TIME_BETWEEN_RECORDS, ONE_DAY_IN_MS, TimeWindow
from .protocols import StateStoreProtocol

__all__ = [
    "SessionStore",
    "STORAGE_KEY_PREFIX",
    "storage_key",
    "parse_storage_key",
    "split_at_utc_midnights",
]

logger = logging.getLogger(__name__)

STORAGE_KEY_PREFIX = "ascend.codingTime"

_DAY_KEY_LENGTH = len("YYYY-MM-DD")


def storage_key(project_key: str, day_key: str) -> str:
    """Persistence key of one project's log for one day."""
    return f"{STORAGE_KEY_PREFIX}.{project_key}.{day_key}"


def parse_storage_key(key: str) -> Optional[tuple[str, str]]:
    """Split a session-log key back into ``(project_key, day_key)``.

    Project keys are opaque and may contain dots, so the day key is taken
    from the end of the key.
    """
    prefix = STORAGE_KEY_PREFIX + "."
    if not key.startswith(prefix):
        return None
    rest = key[len(prefix):]
    project_key, sep, day_key = rest.rpartition(".")
    if not sep or not project_key or len(day_key) != _DAY_KEY_LENGTH:
        return None
    try:
        datetime.strptime(day_key, "%Y-%m-%d")
    except ValueError:
        return None
    return project_key, day_key


def split_at_utc_midnights(window: TimeWindow) -> Iterator[TimeWindow]:
    """Yield the pieces of ``window`` that each lie within one UTC day.

    Every piece but the last ends 1ms before a UTC midnight; the next piece
    starts exactly at that midnight.
    """
    start = window.start
    last_day = window.end // ONE_DAY_IN_MS
    while start // ONE_DAY_IN_MS != last_day:
        midnight = (start // ONE_DAY_IN_MS + 1) * ONE_DAY_IN_MS
        yield TimeWindow(start=start, end=midnight - 1)
        start = midnight
    yield TimeWindow(start=start, end=window.end)


class SessionStore:
    """In-memory cache of day logs, backed by a key/value state store.

    Logs are loaded lazily on first read or write of a (project, day) pair
    and kept for the lifetime of the store. Every mutation writes the whole
    day log back to the state store.

    Usage:
        store = SessionStore(SqliteStateStore(), timezone="Europe/Paris")
        store.record_session(TimeWindow(start, end), "my-repo")
        sessions = store.load_day("my-repo", "2024-01-01")
    """

    def __init__(self, state: StateStoreProtocol, timezone: str = DEFAULT_TIMEZONE):
        """Initialize the store.

        Args:
            state: Persistence adapter holding the day logs
            timezone: IANA timezone used to derive day keys
        """
        self._state = state
        self.timezone = timezone
        self._tz = ZoneInfo(timezone)
        self._sessions_by_day: dict[tuple[str, str], list[TimeWindow]] = {}
        self._lock = threading.RLock()

    @property
    def tz(self) -> ZoneInfo:
        return self._tz

    def day_key(self, timestamp_ms: int) -> str:
        """Calendar day (``YYYY-MM-DD``) of a timestamp in the display timezone."""
        return datetime.fromtimestamp(timestamp_ms / 1000, tz=self._tz).strftime("%Y-%m-%d")

    def day_keys_in_window(self, window: TimeWindow) -> list[str]:
        """Every day key touched by ``[window.start, window.end]``, in order."""
        if window.start > window.end:
            return []
        current = datetime.fromtimestamp(window.start / 1000, tz=self._tz).date()
        last = datetime.fromtimestamp(window.end / 1000, tz=self._tz).date()

        keys = []
        while current <= last:
            keys.append(current.isoformat())
            current += timedelta(days=1)
        return keys

    def load_day(self, project_key: str, day_key: str) -> list[TimeWindow]:
        """Return the cached log for a day, reading it through on first access."""
        with self._lock:
            cache_key = (project_key, day_key)
            sessions = self._sessions_by_day.get(cache_key)
            if sessions is None:
                sessions = self._read_day(project_key, day_key)
                self._sessions_by_day[cache_key] = sessions
            return sessions

    def _read_day(self, project_key: str, day_key: str) -> list[TimeWindow]:
        key = storage_key(project_key, day_key)
        stored = self._state.get(key)
        if stored is None:
            return []
        if not isinstance(stored, list):
            logger.warning(f"Ignoring non-list session log at {key}")
            return []

        sessions = []
        for entry in stored:
            window = TimeWindow.from_dict(entry)
            if window is None or not window.is_valid:
                logger.warning(f"Dropping malformed session {entry!r} from {key}")
                continue
            sessions.append(window)
        return sessions

    def stored_days(self) -> list[tuple[str, str]]:
        """Every ``(project_key, day_key)`` that has a persisted log."""
        days = []
        for key in self._state.keys():
            parsed = parse_storage_key(key)
            if parsed is not None:
                days.append(parsed)
        return days

    def record_session(self, window: TimeWindow, project_key: str) -> list[TimeWindow]:
        """Record an activity window for a project.

        Windows crossing UTC midnight are split so that no stored session
        spans two UTC days. Each piece is merged into, or appended to, its
        day log.

        Args:
            window: The activity interval. Empty or inverted windows are ignored.
            project_key: Opaque project identifier.

        Returns:
            Sessions that are new or changed in the persisted logs.
        """
        if not window.is_valid:
            return []

        delta: list[TimeWindow] = []
        with self._lock:
            for piece in split_at_utc_midnights(window):
                delta.extend(self._record_single_day(piece, project_key))
        return delta

    def _record_single_day(self, window: TimeWindow, project_key: str) -> list[TimeWindow]:
        if not window.is_valid:
            return []

        day_key = self.day_key(window.start)
        sessions = self.load_day(project_key, day_key)
        previous = list(sessions)

        # Only the most recent session is a merge candidate
        if sessions:
            last = sessions[-1]
            if (
                window.start <= last.end + MAX_TIME_BETWEEN_RECORDS
                and window.end >= last.start - MAX_TIME_BETWEEN_RECORDS
            ):
                sessions[-1] = TimeWindow(
                    start=min(last.start, window.start),
                    end=max(last.end, window.end),
                )
                return self._save_day(project_key, day_key, previous)

        sessions.append(window)
        return self._save_day(project_key, day_key, previous)

    def _save_day(
        self, project_key: str, day_key: str, previous: list[TimeWindow]
    ) -> list[TimeWindow]:
        """Persist a day log and return the entries not present before."""
        sessions = self._sessions_by_day.get((project_key, day_key), [])
        self._state.update(
            storage_key(project_key, day_key),
            [session.to_dict() for session in sessions],
        )
        return [session for session in sessions if session not in previous]
