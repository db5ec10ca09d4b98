"""Version-compare, download, verify and install sequence.

Shared by the streaming watcher and the poller so both go through the same
version guard.
"""

from collections.abc import Callable
from pathlib import Path

from common.logger import get_logger

from .downloader import DownloadError, PackageDownloader
from .guard import VersionGuard
from .installer import Installer, InstallError

logger = get_logger(__name__)


class Updater:
    """Handle one "new version available" notification."""

    def __init__(
        self,
        guard: VersionGuard,
        downloader: PackageDownloader,
        installer: Installer,
        remote_log: Callable[[], None] | None = None,
    ):
        """Initialize updater.

        Args:
            guard: Version guard shared by all update paths
            downloader: Package downloader
            installer: Installer receiving verified packages
            remote_log: Best-effort upload of the log mirror after each step
        """
        self.guard = guard
        self.downloader = downloader
        self.installer = installer
        self.remote_log = remote_log

    def handle(self, version: str, url: str) -> Path | None:
        """Download and install version if it is new.

        Args:
            version: Advertised version
            url: Package download URL

        Returns:
            Path of the installed package, or None if skipped or failed
        """
        if not url or not self.guard.claim(version):
            return None

        self._log(f"Update {version} found, downloading {url}")
        try:
            path = self.downloader.download(url)
        except DownloadError as e:
            self.guard.release(version)
            self._log(f"Update {version} download failed: {e}", failed=True)
            return None

        self._log(f"Update {version} downloaded ({path.stat().st_size} bytes)")
        try:
            self.installer.install(path, version)
        except InstallError as e:
            self._log(f"Update {version} install failed: {e}", failed=True)
            return None

        self._log(f"Update {version} handed off for installation")
        return path

    def _log(self, message: str, failed: bool = False) -> None:
        if failed:
            logger.warning(message)
        else:
            logger.info(message)
        if self.remote_log is not None:
            try:
                self.remote_log()
            except Exception as e:
                logger.debug(f"Remote update log failed: {e}")
