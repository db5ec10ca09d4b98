"""Version guard shared by the update stream watcher and the poller."""

import threading


class VersionGuard:
    """Remember which update version is already being handled.

    Both update paths claim a version before downloading it, so the same
    notification can never trigger two downloads. A failed download releases
    its claim so a later notification for that version is retried.
    """

    def __init__(self, running_version: str):
        self.running_version = running_version
        self._lock = threading.Lock()
        self._last_handled: str | None = None

    @property
    def last_handled(self) -> str | None:
        with self._lock:
            return self._last_handled

    def claim(self, version: str) -> bool:
        """Claim version for download.

        Returns:
            False if version is the running one or already handled
        """
        with self._lock:
            if not version or version == self.running_version or version == self._last_handled:
                return False
            self._last_handled = version
            return True

    def release(self, version: str) -> None:
        """Drop the claim on version (after a failed download)."""
        with self._lock:
            if self._last_handled == version:
                self._last_handled = None
