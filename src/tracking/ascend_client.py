"""Ascend API client - uploads sessions and tracks challenge progress."""

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import DEFAULT_API_URL
from .challenge import Challenge
from .http_client import AscendAuthError, AscendClientError, BaseApiClient
from .models import TimeWindow

__all__ = [
    "AscendClient",
    "UploadResult",
]

logger = logging.getLogger(__name__)

SESSIONS_ENDPOINT = "vscode/sessions"
CHALLENGE_ENDPOINT = "vscode/challenge"
VALIDATE_DAY_ENDPOINT = "vscode/challenge/validate-day"


@dataclass
class UploadResult:
    """Result of a session upload."""

    success: bool
    sessions_uploaded: int = 0
    error: Optional[str] = None


class AscendClient(BaseApiClient):
    """Client for the Ascend API."""

    def __init__(self, api_url: str = DEFAULT_API_URL, upload_timeout: float = 10, **kwargs):
        """Initialize the client.

        Args:
            api_url: Ascend API base URL
            upload_timeout: Timeout in seconds for each session upload
            **kwargs: Passed through to BaseApiClient
        """
        super().__init__(api_url, **kwargs)
        self.upload_timeout = upload_timeout

    def upload_sessions(self, repo_name: str, sessions: list[TimeWindow]) -> UploadResult:
        """Send a batch of sessions for one repository.

        A single attempt is made; the caller is responsible for retrying
        failed batches.

        Args:
            repo_name: Project key the sessions belong to
            sessions: Sessions to deliver

        Returns:
            UploadResult with success status and count
        """
        if not sessions:
            return UploadResult(success=True, sessions_uploaded=0)

        payload = {
            "repoName": repo_name,
            "sessions": [session.to_upload_dict() for session in sessions],
        }
        try:
            self._request(
                "POST",
                SESSIONS_ENDPOINT,
                data=payload,
                retry=False,
                timeout=self.upload_timeout,
            )
            return UploadResult(success=True, sessions_uploaded=len(sessions))
        except AscendClientError as e:
            logger.warning(f"Upload failed for {repo_name}: {e}")
            return UploadResult(success=False, error=str(e))

    def get_current_challenge(self, repo_url: str) -> Optional[Challenge]:
        """Fetch the active challenge for a repository.

        Returns:
            The challenge, or None if there is no active challenge or the
            request was rejected.

        Raises:
            AscendAuthError: If the API key is invalid
            InvalidChallengeError: If the payload is malformed
        """
        try:
            payload = self._request("GET", CHALLENGE_ENDPOINT, params={"repo_url": repo_url})
        except AscendAuthError:
            raise
        except AscendClientError as e:
            logger.warning(f"Failed to fetch current challenge: {e}")
            return None
        return Challenge.from_payload(payload)

    def validate_day(self, challenge: Challenge) -> dict:
        """Report the current challenge day as completed."""
        return self._request("POST", VALIDATE_DAY_ENDPOINT, data=challenge.raw)
