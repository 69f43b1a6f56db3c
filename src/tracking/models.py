"""Value types shared by the tracking components."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

__all__ = [
    "TimeWindow",
    "TimeParts",
    "ms_to_iso",
    "ONE_SECOND_IN_MS",
    "ONE_MINUTE_IN_MS",
    "ONE_HOUR_IN_MS",
    "ONE_DAY_IN_MS",
    "MAX_TIME_BETWEEN_RECORDS",
]

ONE_SECOND_IN_MS = 1000
ONE_MINUTE_IN_MS = 60 * ONE_SECOND_IN_MS
ONE_HOUR_IN_MS = 60 * ONE_MINUTE_IN_MS
ONE_DAY_IN_MS = 24 * ONE_HOUR_IN_MS

# Largest gap between two sessions that still counts as continuous activity
MAX_TIME_BETWEEN_RECORDS = 5 * ONE_MINUTE_IN_MS


def ms_to_iso(timestamp_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string (``...123Z``)."""
    dt = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TimeWindow:
    """A contiguous interval of activity, in epoch milliseconds."""

    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start

    @property
    def is_valid(self) -> bool:
        return self.start < self.end

    def overlap(self, other: "TimeWindow") -> int:
        """Milliseconds shared with ``other`` (0 when disjoint or touching)."""
        overlap_start = max(self.start, other.start)
        overlap_end = min(self.end, other.end)
        if overlap_start < overlap_end:
            return overlap_end - overlap_start
        return 0

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}

    def to_upload_dict(self) -> dict:
        return {"start": ms_to_iso(self.start), "end": ms_to_iso(self.end)}

    @classmethod
    def from_dict(cls, data: object) -> Optional["TimeWindow"]:
        """Parse a stored ``{"start", "end"}`` mapping.

        Returns None for anything that is not a mapping of two integers.
        """
        if not isinstance(data, dict):
            return None
        start = data.get("start")
        end = data.get("end")
        for value in (start, end):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                return None
        return cls(start=int(start), end=int(end))


@dataclass(frozen=True)
class TimeParts:
    """A duration broken down into whole hours, minutes and seconds."""

    hours: int
    minutes: int
    seconds: int

    @classmethod
    def from_ms(cls, duration_ms: int) -> "TimeParts":
        total_seconds = int(duration_ms // ONE_SECOND_IN_MS)
        hours, remainder = divmod(total_seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return cls(hours=hours, minutes=minutes, seconds=seconds)

    def __str__(self) -> str:
        return f"{self.hours}h {self.minutes}m {self.seconds}s"
