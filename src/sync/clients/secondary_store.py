"""Secondary store client (GitHub Gist API)."""

import requests

from common.constants import SECONDARY_LOG_FILE, SECONDARY_STATUS_FILE
from common.logger import get_logger

from ..credentials import RemoteCredentials
from .base import RemoteClient

logger = get_logger(__name__)


class SecondaryStoreClient(RemoteClient):
    """Client for the secondary store.

    Writes replace named sub-files of one gist without touching the other
    files it holds. The backing API is rate limited, so callers gate
    publishes (see ``sync.gates.IntervalGate``).

    API Documentation: https://docs.github.com/en/rest/gists/gists#update-a-gist
    """

    channel = "secondary store"
    API_URL = "https://api.github.com/gists"

    def __init__(self, session: requests.Session | None = None, api_url: str = API_URL):
        super().__init__(session=session)
        self.api_url = api_url.rstrip("/")
        self.session.headers.update({"Accept": "application/vnd.github.v3+json"})

    def patch_files(self, credentials: RemoteCredentials, files: dict[str, str]) -> None:
        """Replace the content of the named sub-files.

        Args:
            credentials: Gist id and token
            files: Mapping of sub-file name to its new text content

        Raises:
            ChannelError: If the request fails
        """
        body = {"files": {name: {"content": content} for name, content in files.items()}}
        self._request(
            "PATCH",
            f"{self.api_url}/{credentials.secondary_store_id}",
            json=body,
            headers={"Authorization": f"token {credentials.secondary_store_token}"},
        )

    def publish(self, credentials: RemoteCredentials, status_json: str, log_text: str) -> None:
        """Publish the status document and the log mirror in one request."""
        self.patch_files(
            credentials,
            {
                SECONDARY_STATUS_FILE: status_json,
                SECONDARY_LOG_FILE: log_text or "(no log)",
            },
        )
