"""Base HTTP client with retry logic for the Ascend API."""

import logging
from typing import Optional

import requests

from .. import __version__
from .retry import RetryConfig, RetryExhausted, retry_with_backoff

__all__ = [
    "BaseApiClient",
    "AscendClientError",
    "AscendAuthError",
]

logger = logging.getLogger(__name__)


class AscendClientError(Exception):
    """Ascend client error."""

    pass


class AscendAuthError(AscendClientError):
    """Authentication error."""

    pass


class _TransientError(Exception):
    """Internal: Marks an error as transient/retryable."""

    pass


class BaseApiClient:
    """Base HTTP client with retry logic.

    Handles:
    - Session management
    - API key header
    - Retry with exponential backoff
    - Error handling and classification
    """

    DEFAULT_RETRY_CONFIG = RetryConfig(
        max_retries=3,
        base_delay=1.0,
        max_delay=30.0,
        exponential_base=2.0,
        jitter=True,
    )

    USER_AGENT = f"Ascend-Tracker/{__version__}"

    def __init__(
        self,
        api_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize base API client.

        Args:
            api_url: Ascend API base URL
            api_key: API key sent in the ``x-api-key`` header
            timeout: Request timeout in seconds
            retry_config: Configuration for retry with exponential backoff
            session: Optional requests session (for dependency injection/testing)
        """
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.retry_config = retry_config or self.DEFAULT_RETRY_CONFIG
        self._session = session or requests.Session()
        self._owns_session = session is None

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict:
        """Get request headers with authentication."""
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": self.USER_AGENT,
        }
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
        retry: bool = True,
        timeout: Optional[float] = None,
    ) -> dict:
        """Make request to the Ascend API.

        Args:
            method: HTTP method
            endpoint: API endpoint (relative to api_url)
            data: JSON request body
            params: Query string parameters
            retry: Whether to retry on transient failures
            timeout: Per-request timeout override in seconds

        Returns:
            Response data as dict

        Raises:
            AscendAuthError: For 401/403 responses (not retried)
            AscendClientError: For other errors
        """
        url = f"{self.api_url}/{endpoint.lstrip('/')}"
        kwargs: dict = {
            "timeout": timeout if timeout is not None else self.timeout,
            "headers": self._get_headers(),
        }
        if data is not None:
            kwargs["json"] = data
        if params:
            kwargs["params"] = params

        def do_request() -> dict:
            try:
                response = self._session.request(method, url, **kwargs)

                if response.status_code == 401:
                    raise AscendAuthError("Invalid API key")
                if response.status_code == 403:
                    raise AscendAuthError("API key not authorized")

                # Server errors (5xx) are retryable
                if response.status_code >= 500:
                    raise _TransientError(f"Server error: {response.status_code}")

                response.raise_for_status()
                return response.json() if response.content else {}

            except requests.exceptions.ConnectionError:
                raise _TransientError("Cannot connect to Ascend API")
            except requests.exceptions.Timeout:
                raise _TransientError("Request timed out")
            except requests.exceptions.HTTPError as e:
                error_detail = ""
                try:
                    error_detail = e.response.json().get("message", "")
                except ValueError:
                    pass
                raise AscendClientError(
                    f"API error ({e.response.status_code}): {error_detail or str(e)}"
                ) from e
            except ValueError as e:
                raise AscendClientError(f"Invalid JSON response: {e}") from e

        if retry:
            try:
                return retry_with_backoff(
                    do_request,
                    config=self.retry_config,
                    retryable_exceptions=(_TransientError,),
                )
            except RetryExhausted as e:
                if e.last_error:
                    raise AscendClientError(str(e.last_error)) from e.last_error
                raise AscendClientError("Request failed after retries") from e
        else:
            try:
                return do_request()
            except _TransientError as e:
                raise AscendClientError(str(e)) from e

    def set_api_key(self, api_key: Optional[str]) -> None:
        """Set (or clear, with None) the API key."""
        self.api_key = api_key

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> "BaseApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
