"""Time tracker facade tying storage, queries and uploads together."""

import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..config import DEFAULT_TIMEZONE
from .challenge import Challenge, ChallengeDay
from .models import TimeParts, TimeWindow
from .protocols import StateStoreProtocol
from .session_store import SessionStore
from .upload_queue import UploadQueue
from .window_query import WindowQuery, separate_time

__all__ = ["TimeTracker", "ChallengeProgress"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChallengeProgress:
    """Time spent on the current challenge day."""

    day: ChallengeDay
    time_ms: int
    percent: Optional[int]
    should_validate: bool


class TimeTracker:
    """Records coding sessions per project and answers time queries.

    When an upload queue is given, every change to the stored sessions is
    queued for upload and a background drain is started. Without one,
    sessions stay purely local.

    Usage:
        tracker = TimeTracker(SqliteStateStore(), timezone="America/New_York")
        tracker.record_session(TimeWindow(start, end), "my-repo")
        parts = tracker.separate_time(tracker.get_today_time("my-repo"))
    """

    def __init__(
        self,
        state: StateStoreProtocol,
        timezone: str = DEFAULT_TIMEZONE,
        upload_queue: Optional[UploadQueue] = None,
    ):
        self.store = SessionStore(state, timezone)
        self.query = WindowQuery(self.store)
        self.upload_queue = upload_queue

    @property
    def timezone(self) -> str:
        return self.store.timezone

    def record_session(self, window: TimeWindow, project_key: str) -> list[TimeWindow]:
        """Record an activity window and queue the resulting changes for upload.

        Returns:
            Sessions that were added or changed in storage.
        """
        delta = self.store.record_session(window, project_key)
        if delta and self.upload_queue is not None:
            self.upload_queue.enqueue(project_key, delta)
            self.upload_queue.trigger_drain()
        return delta

    def get_time_in_window(self, window: TimeWindow, project_key: str) -> int:
        return self.query.get_time_in_window(window, project_key)

    def get_today_time(self, project_key: str, now_ms: Optional[int] = None) -> int:
        return self.query.get_today_time(project_key, now_ms)

    @staticmethod
    def separate_time(duration_ms: int) -> TimeParts:
        return separate_time(duration_ms)

    def reconcile_uploads(self) -> int:
        """Re-queue all stored sessions for upload (run once at startup)."""
        if self.upload_queue is None:
            logger.debug("Uploads disabled, skipping reconciliation")
            return 0
        return self.upload_queue.reconcile(self.store)

    def challenge_progress(
        self, challenge: Challenge, project_key: str, now_ms: Optional[int] = None
    ) -> ChallengeProgress:
        """Time spent on the challenge day that is current at ``now_ms``."""
        if now_ms is None:
            now_ms = int(time.time() * 1000)
        day = challenge.current_day(now_ms)
        time_ms = self.get_time_in_window(day.window, project_key)
        return ChallengeProgress(
            day=day,
            time_ms=time_ms,
            percent=challenge.progress_percent(time_ms),
            should_validate=challenge.should_validate(time_ms, now_ms),
        )
