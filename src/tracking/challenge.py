"""Coding challenge returned by the Ascend API.

A challenge asks for ``goal_hours`` of coding per day over ``total_days``
days, starting at ``started``. ``nb_done`` counts the days already validated;
the day currently being worked on starts ``nb_done`` days after ``started``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from .models import ONE_DAY_IN_MS, ONE_HOUR_IN_MS, TimeWindow

__all__ = ["Challenge", "ChallengeDay", "InvalidChallengeError"]


class InvalidChallengeError(ValueError):
    """The API returned a challenge payload that does not match the schema."""

    pass


@dataclass(frozen=True)
class ChallengeDay:
    """The challenge day that applies at a given moment."""

    window: TimeWindow
    day_done: bool
    day_number: int


def _parse_started(value: object) -> datetime:
    if not isinstance(value, str):
        raise InvalidChallengeError(f"'started' must be a string, got {value!r}")
    try:
        started = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidChallengeError(f"Invalid 'started' timestamp: {value!r}") from e
    if started.tzinfo is None:
        started = started.replace(tzinfo=timezone.utc)
    return started


def _parse_int(payload: dict, name: str) -> int:
    value = payload.get(name)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidChallengeError(f"'{name}' must be a non-negative integer, got {value!r}")
    return value


@dataclass
class Challenge:
    """A validated challenge payload."""

    started: datetime
    nb_done: int
    total_days: int
    goal_hours: Optional[float] = None
    raw: dict = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_payload(cls, payload: object) -> Optional["Challenge"]:
        """Validate an API payload.

        Returns:
            The challenge, or None when the payload reports an error
            (no active challenge).

        Raises:
            InvalidChallengeError: If the payload is malformed.
        """
        if not isinstance(payload, dict):
            raise InvalidChallengeError(f"Expected an object, got {type(payload).__name__}")
        if payload.get("error"):
            return None

        goal_hours = None
        challenge_data = payload.get("challengedata")
        if challenge_data is not None:
            if not isinstance(challenge_data, dict):
                raise InvalidChallengeError("'challengedata' must be an object")
            duration = challenge_data.get("duration")
            if duration is not None:
                if isinstance(duration, bool) or not isinstance(duration, (int, float)):
                    raise InvalidChallengeError(f"Invalid goal duration: {duration!r}")
                goal_hours = float(duration)

        return cls(
            started=_parse_started(payload.get("started")),
            nb_done=_parse_int(payload, "nb_done"),
            total_days=_parse_int(payload, "time"),
            goal_hours=goal_hours,
            raw=dict(payload),
        )

    @property
    def goal_ms(self) -> Optional[int]:
        if not self.goal_hours:
            return None
        return int(self.goal_hours * ONE_HOUR_IN_MS)

    def current_day(self, now_ms: int) -> ChallengeDay:
        """The challenge day in effect at ``now_ms``.

        If the next day to validate has not started yet, today has already
        been validated and the window is the previous (completed) day.
        """
        start = self.started + timedelta(days=self.nb_done)
        start_ms = int(start.timestamp() * 1000)
        day_done = start_ms > now_ms
        if day_done:
            start_ms -= ONE_DAY_IN_MS

        return ChallengeDay(
            window=TimeWindow(start=start_ms, end=start_ms + ONE_DAY_IN_MS),
            day_done=day_done,
            day_number=self.nb_done - 1 if day_done else self.nb_done,
        )

    def progress_percent(self, time_ms: int) -> Optional[int]:
        """Share of the daily goal reached, rounded to a whole percent."""
        goal = self.goal_ms
        if goal is None:
            return None
        return round(time_ms / goal * 100)

    def should_validate(self, time_ms: int, now_ms: int) -> bool:
        """True when the goal is met for a day that is not validated yet."""
        goal = self.goal_ms
        if goal is None:
            return False
        return time_ms >= goal and not self.current_day(now_ms).day_done
