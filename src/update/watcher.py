"""Streaming watcher for the remote version descriptor.

Keeps a long-lived server-sent-events connection to the version descriptor
and reacts to "put"/"patch" events carrying a version and a download URL.

States:
    DISCONNECTED -> CONNECTING        on start()
    CONNECTING   -> STREAMING         on a successful stream response
    any          -> RECONNECTING      on read/connect failure or end of stream,
                                      then CONNECTING again after the backoff
    stop() is terminal: the live response is closed to unblock the read and
    the watcher ends in DISCONNECTED.
"""

import json
import threading
from collections.abc import Iterable
from enum import Enum

import requests

from common.constants import CONTROL_TIMEOUT, DATA_TIMEOUT, RECONNECT_BACKOFF_SECONDS
from common.logger import get_logger
from common.tasks import TaskRunner

from .descriptor import parse_descriptor
from .downloader import UpdateError
from .updater import Updater

logger = get_logger(__name__)

STREAM_EVENTS = {"put", "patch"}
CLOSING_EVENTS = {"cancel", "auth_revoked"}


class WatcherState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"


class UpdateStreamWatcher:
    """Watch the version descriptor over an event stream with reconnects."""

    def __init__(
        self,
        url: str,
        updater: Updater,
        runner: TaskRunner,
        session: requests.Session | None = None,
        backoff: float = RECONNECT_BACKOFF_SECONDS,
    ):
        """Initialize watcher.

        Args:
            url: Event-stream URL of the version descriptor
            updater: Shared update sequence (owns the version guard)
            runner: Runner used for downloads, so reading is never blocked
            session: HTTP session to use
            backoff: Seconds to wait before reconnecting
        """
        self.url = url
        self.updater = updater
        self.runner = runner
        self.session = session or requests.Session()
        self.backoff = backoff
        self.state = WatcherState.DISCONNECTED
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._response: requests.Response | None = None
        self._thread: threading.Thread | None = None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="update-stream", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5) -> None:
        """Stop watching; closes the live stream to unblock the read."""
        self._stop.set()
        with self._lock:
            response = self._response
        if response is not None:
            response.close()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning(f"Update stream thread did not stop within {timeout}s")
                return
            self._thread = None
        self.state = WatcherState.DISCONNECTED

    def _run(self) -> None:
        while not self._stop.is_set():
            self.run_once()
            if self._stop.is_set():
                break
            self.state = WatcherState.RECONNECTING
            logger.debug(f"Update stream reconnecting in {self.backoff}s")
            if self._stop.wait(self.backoff):
                break
        self.state = WatcherState.DISCONNECTED

    def run_once(self) -> None:
        """Connect and consume the stream until it ends or fails."""
        self.state = WatcherState.CONNECTING
        response = None
        try:
            response = self.session.get(
                self.url,
                headers={"Accept": "text/event-stream"},
                stream=True,
                timeout=(CONTROL_TIMEOUT, DATA_TIMEOUT),
            )
            with self._lock:
                self._response = response
                stopping = self._stop.is_set()
            # stop() ran while connecting and had no response to close
            if stopping:
                return
            if response.status_code != 200:
                raise UpdateError(f"Update stream rejected: HTTP {response.status_code}")

            self.state = WatcherState.STREAMING
            logger.info("Update stream connected")
            self.process_lines(response.iter_lines(decode_unicode=True))
        except Exception as e:
            # Closing the response from stop() surfaces here as a read error
            if not self._stop.is_set():
                logger.warning(f"Update stream error: {e}")
        finally:
            with self._lock:
                self._response = None
            if response is not None:
                response.close()

    def process_lines(self, lines: Iterable[str | bytes]) -> None:
        """Consume server-sent-event lines, tracking the current event type.

        Raises:
            UpdateError: When the server closes the stream with a cancel event
        """
        event_type = None
        for line in lines:
            if self._stop.is_set():
                return
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            if not line:
                event_type = None
                continue
            if line.startswith("event:"):
                event_type = line[len("event:") :].strip()
                if event_type in CLOSING_EVENTS:
                    raise UpdateError(f"Update stream closed by server ({event_type})")
            elif line.startswith("data:"):
                self.handle_event(event_type, line[len("data:") :].strip())

    def handle_event(self, event_type: str | None, data: str) -> bool:
        """Act on one event.

        Returns:
            True if the event announced a version and was handed to the updater
        """
        if event_type not in STREAM_EVENTS:
            return False
        try:
            payload = json.loads(data) if data else None
        except ValueError:
            logger.debug(f"Ignoring malformed update event: {data[:80]}")
            return False

        descriptor = parse_descriptor(payload)
        if descriptor is None:
            return False

        logger.debug(f"Update event: version={descriptor.version}")
        self.runner.submit("update download", self.updater.handle, descriptor.version, descriptor.url)
        return True
