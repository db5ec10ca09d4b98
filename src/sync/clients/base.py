"""Shared base class and errors for remote channel clients."""

from typing import Any

import requests

from common.constants import CONTROL_TIMEOUT

USER_AGENT = "kds-relay/1.0"


class SyncError(Exception):
    """Base exception for synchronization errors."""

    pass


class ChannelError(SyncError):
    """A remote channel rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(ChannelError):
    """Bearer token could not be obtained or was rejected."""

    pass


class CredentialsError(SyncError):
    """Channel credentials are missing or malformed."""

    pass


class RemoteClient:
    """Base class for clients talking to one remote channel over HTTP.

    Holds a ``requests.Session`` (injectable for tests) and translates
    transport failures into ``ChannelError``.
    """

    channel = "remote"

    def __init__(self, session: requests.Session | None = None, timeout: float = CONTROL_TIMEOUT):
        """Initialize client.

        Args:
            session: HTTP session to use (a new one is created if None)
            timeout: Per-request timeout in seconds
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def _request(self, method: str, url: str, **kwargs: Any) -> requests.Response:
        """Send a request and return the response if it succeeded.

        Raises:
            ChannelError: On timeout, transport failure or non-2xx status
        """
        kwargs.setdefault("timeout", self.timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ChannelError(f"{self.channel} timeout ({method} {url})") from e
        except requests.exceptions.RequestException as e:
            raise ChannelError(f"{self.channel} request error: {e}") from e

        if not 200 <= response.status_code < 300:
            raise ChannelError(
                f"{self.channel} {method} failed: HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def close(self) -> None:
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False
