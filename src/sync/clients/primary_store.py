"""Primary store client (Firebase Realtime Database REST API)."""

from typing import Any

import requests

from common.constants import (
    PRIMARY_DUMP_PATH,
    PRIMARY_HISTORY_PATH,
    PRIMARY_LOG_PATH,
    PRIMARY_STATUS_PATH,
)
from common.logger import get_logger

from .base import ChannelError, RemoteClient

logger = get_logger(__name__)


class PrimaryStoreClient(RemoteClient):
    """Client for the primary realtime store.

    Every write is an idempotent "replace document" PUT of a JSON value at a
    fixed path, so a later publish always supersedes an earlier one no matter
    in which order they arrive.

    API Documentation: https://firebase.google.com/docs/reference/rest/database
    """

    channel = "primary store"

    def __init__(self, base_url: str, session: requests.Session | None = None):
        """Initialize primary store client.

        Args:
            base_url: Database root URL, e.g. https://<db>.firebasedatabase.app
        """
        super().__init__(session=session)
        self.base_url = base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def put_document(self, path: str, value: Any) -> None:
        """Replace the JSON value stored at path.

        Raises:
            ChannelError: If the store is not configured or the write fails
        """
        if not self.enabled:
            raise ChannelError("primary store URL not configured")
        self._request("PUT", f"{self.base_url}/{path}", json=value)

    def put_status(self, document: dict[str, Any]) -> None:
        """Write the current state document."""
        self.put_document(PRIMARY_STATUS_PATH, document)
        logger.debug(f"Primary store status written (count={document.get('count')})")

    def put_log(self, text: str) -> None:
        """Write the free-text log mirror."""
        self.put_document(PRIMARY_LOG_PATH, text)

    def put_history(self, history: list[dict[str, Any]]) -> None:
        """Write the bounded count history array."""
        self.put_document(PRIMARY_HISTORY_PATH, history)

    def put_dump(self, dump: dict[str, Any]) -> None:
        """Write a structured UI dump payload."""
        self.put_document(PRIMARY_DUMP_PATH, dump)
