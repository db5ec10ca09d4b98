"""Package download with manual redirect handling and size verification."""

import tempfile
from pathlib import Path
from urllib.parse import urljoin

import requests

from common.constants import DATA_TIMEOUT, MAX_REDIRECTS, MIN_PACKAGE_BYTES, PACKAGE_SUFFIX
from common.logger import get_logger

logger = get_logger(__name__)

REDIRECT_STATUSES = {301, 302, 303, 307, 308}
CHUNK_SIZE = 64 * 1024


class UpdateError(Exception):
    """Base exception for self-update errors."""

    pass


class DownloadError(UpdateError):
    """Download failed or produced an implausible package."""

    pass


class PackageDownloader:
    """Download update packages into a local directory.

    Redirects are followed manually (release assets are served from a CDN
    behind one or more redirects) so each hop is bounded and a redirect is
    never mistaken for the final response.
    """

    def __init__(
        self,
        dest_dir: Path,
        session: requests.Session | None = None,
        max_redirects: int = MAX_REDIRECTS,
        min_bytes: int = MIN_PACKAGE_BYTES,
        timeout: float = DATA_TIMEOUT,
    ):
        """Initialize downloader.

        Args:
            dest_dir: Directory the downloaded package is written to
            session: HTTP session to use
            max_redirects: Maximum redirect hops to follow
            min_bytes: Smallest plausible package size
            timeout: Per-request timeout in seconds
        """
        self.dest_dir = dest_dir
        self.session = session or requests.Session()
        self.max_redirects = max_redirects
        self.min_bytes = min_bytes
        self.timeout = timeout

    def _resolve(self, url: str) -> requests.Response:
        """Follow redirects and return the final (streaming) response."""
        for _ in range(self.max_redirects + 1):
            response = self.session.get(url, allow_redirects=False, stream=True, timeout=self.timeout)
            if response.status_code not in REDIRECT_STATUSES:
                return response
            location = response.headers.get("Location")
            response.close()
            if not location:
                raise DownloadError(f"Redirect without Location (HTTP {response.status_code})")
            url = urljoin(url, location)
            logger.debug(f"Download redirected to {url}")
        raise DownloadError(f"Too many redirects (>{self.max_redirects})")

    @staticmethod
    def _discard(path: Path | None) -> None:
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial download {path}: {e}")

    def download(self, url: str) -> Path:
        """Download url to a temporary file in the destination directory.

        Args:
            url: Package URL

        Returns:
            Path of the verified package file

        Raises:
            DownloadError: On transport failure, non-2xx final status, local
                write failure, or a file smaller than the minimum plausible
                size (the partial file is removed)
        """
        try:
            response = self._resolve(url)
        except requests.exceptions.RequestException as e:
            raise DownloadError(f"Download request failed: {e}") from e

        path: Path | None = None
        try:
            if not 200 <= response.status_code < 300:
                raise DownloadError(f"Download failed: HTTP {response.status_code}")

            self.dest_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=self.dest_dir, prefix="update-", suffix=PACKAGE_SUFFIX, delete=False
            ) as tmp:
                path = Path(tmp.name)
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        tmp.write(chunk)
        except requests.exceptions.RequestException as e:
            self._discard(path)
            raise DownloadError(f"Download interrupted: {e}") from e
        except OSError as e:
            self._discard(path)
            raise DownloadError(f"Cannot write package to {self.dest_dir}: {e}") from e
        finally:
            response.close()

        try:
            size = path.stat().st_size
        except OSError as e:
            raise DownloadError(f"Downloaded package vanished: {e}") from e
        if size < self.min_bytes:
            path.unlink(missing_ok=True)
            raise DownloadError(f"Downloaded file too small ({size} bytes)")

        logger.info(f"Package downloaded ({size} bytes)")
        return path
