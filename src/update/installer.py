"""Hand-off of verified update packages to an installer."""

import shlex
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from common.constants import DATA_TIMEOUT
from common.logger import get_logger

logger = get_logger(__name__)


class Installer(ABC):
    """Receives a downloaded, verified package."""

    @abstractmethod
    def install(self, path: Path, version: str) -> None:
        """Install the package at path.

        Raises:
            InstallError: If the installer rejects the package
        """
        pass


class InstallError(Exception):
    """The installer failed."""

    pass


class LoggingInstaller(Installer):
    """Installer that only records where the package was left."""

    def install(self, path: Path, version: str) -> None:
        logger.info(f"Update {version} ready for installation: {path}")


class CommandInstaller(Installer):
    """Installer running a shell-style command template.

    The placeholder ``{path}`` is replaced with the package path, e.g.
    ``adb install -r {path}``.
    """

    def __init__(self, command: str, timeout: float = DATA_TIMEOUT):
        self.command = command
        self.timeout = timeout

    def install(self, path: Path, version: str) -> None:
        args = [part.replace("{path}", str(path)) for part in shlex.split(self.command)]
        try:
            result = subprocess.run(args, capture_output=True, text=True, timeout=self.timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise InstallError(f"Install command failed to run: {e}") from e
        if result.returncode != 0:
            raise InstallError(
                f"Install command exited with {result.returncode}: {result.stderr.strip()}"
            )
        logger.info(f"Update {version} handed to installer")
