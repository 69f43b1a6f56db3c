"""Protocol types for the tracker's collaborators.

Defines the interfaces that the session store and upload queue require,
enabling easier testing and looser coupling.
"""

from typing import Any, Protocol, runtime_checkable

from .ascend_client import UploadResult
from .models import TimeWindow


@runtime_checkable
class StateStoreProtocol(Protocol):
    """Interface for the key/value persistence substrate."""

    def get(self, key: str) -> Any: ...

    def update(self, key: str, value: Any) -> None: ...

    def keys(self) -> list[str]: ...


@runtime_checkable
class SessionSinkProtocol(Protocol):
    """Interface for delivering sessions to the remote service."""

    def upload_sessions(
        self, repo_name: str, sessions: list[TimeWindow]
    ) -> UploadResult: ...
