"""Tracking module - session storage, time queries and uploads to Ascend."""

from .ascend_client import AscendClient, UploadResult
from .challenge import Challenge, ChallengeDay, InvalidChallengeError
from .http_client import AscendAuthError, AscendClientError
from .models import TimeParts, TimeWindow
from .protocols import SessionSinkProtocol, StateStoreProtocol
from .retry import RetryConfig, retry_with_backoff
from .session_store import SessionStore
from .state_store import SqliteStateStore
from .time_tracker import ChallengeProgress, TimeTracker
from .upload_queue import DrainResult, UploadQueue
from .window_query import WindowQuery, separate_time

__all__ = [
    "AscendClient",
    "UploadResult",
    "Challenge",
    "ChallengeDay",
    "InvalidChallengeError",
    "AscendAuthError",
    "AscendClientError",
    "TimeParts",
    "TimeWindow",
    "SessionSinkProtocol",
    "StateStoreProtocol",
    "RetryConfig",
    "retry_with_backoff",
    "SessionStore",
    "SqliteStateStore",
    "ChallengeProgress",
    "TimeTracker",
    "DrainResult",
    "UploadQueue",
    "WindowQuery",
    "separate_time",
]
