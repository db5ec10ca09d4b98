"""Polling path for the remote version descriptor.

Used for a manual "check now" and as a periodic fallback where the event
stream is unavailable. Shares the Updater, and therefore the version guard,
with the stream watcher.
"""

from pathlib import Path

import requests

from common.constants import CONTROL_TIMEOUT
from common.logger import get_logger
from common.tasks import PeriodicLoop

from .descriptor import VersionDescriptor, parse_descriptor
from .updater import Updater

logger = get_logger(__name__)


class UpdatePoller:
    """Fetch the version descriptor on demand or on an interval."""

    def __init__(
        self,
        url: str,
        updater: Updater,
        session: requests.Session | None = None,
        interval: float = 3600.0,
    ):
        self.url = url
        self.updater = updater
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self._loop = PeriodicLoop("update-poll", interval, self.check_now, initial_delay=0)

    def fetch_descriptor(self) -> VersionDescriptor | None:
        """Fetch and parse the descriptor.

        Returns:
            The descriptor, or None if it is absent, blank or unreachable
        """
        try:
            response = self.session.get(self.url, timeout=CONTROL_TIMEOUT)
        except requests.exceptions.RequestException as e:
            logger.warning(f"Update check failed: {e}")
            return None

        if response.status_code != 200:
            logger.warning(f"Update check failed: HTTP {response.status_code}")
            return None

        if not response.text.strip():
            return None
        try:
            payload = response.json()
        except ValueError:
            logger.warning("Update descriptor is not valid JSON")
            return None
        return parse_descriptor(payload)

    def check_now(self) -> Path | None:
        """Run one version-compare/download/verify/install sequence.

        Returns:
            Path of the installed package, or None if nothing was installed
        """
        descriptor = self.fetch_descriptor()
        if descriptor is None:
            logger.debug("No update descriptor published")
            return None
        if descriptor.version == self.updater.guard.running_version:
            logger.info(f"Already on the latest version ({descriptor.version})")
            return None
        return self.updater.handle(descriptor.version, descriptor.url)

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()
