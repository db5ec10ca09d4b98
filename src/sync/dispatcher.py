"""Multi-channel state dispatcher.

Publishes the reconciled state to three independent channels:

- primary store: unconditional overwrite of the state document, the log
  mirror and the count history on every dispatch;
- secondary store: skipped when the count is unchanged and the last publish
  on this channel was less than a minimum interval ago; a silent no-op until
  its credentials are available;
- push channel: skipped when the count equals the last value sent.

Each channel runs as its own background task. A failure on one channel never
prevents the others, and is only ever reported as a log entry.
"""

import json
import time
from collections.abc import Callable
from typing import Any

from common.constants import LOG_UPLOAD_LINES
from common.logger import get_logger
from common.tasks import TaskRunner
from reconcile.state import HistoryEntry, ReconciledState, format_time

from .clients.base import SyncError
from .clients.primary_store import PrimaryStoreClient
from .clients.push import PushClient
from .clients.secondary_store import SecondaryStoreClient
from .credentials import RemoteCredentialsLoader
from .gates import IntervalGate, ValueGate

logger = get_logger(__name__)


class SyncDispatcher:
    """Fan a reconciled state out to the configured remote channels."""

    def __init__(
        self,
        runner: TaskRunner,
        primary: PrimaryStoreClient | None = None,
        secondary: SecondaryStoreClient | None = None,
        secondary_credentials: RemoteCredentialsLoader | None = None,
        push: PushClient | None = None,
        log_tail: Callable[[int], str] | None = None,
        secondary_min_interval: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize dispatcher.

        Args:
            runner: Background task runner
            primary: Primary store client (None disables the channel)
            secondary: Secondary store client (None disables the channel)
            secondary_credentials: Lazy loader of secondary store credentials
            push: Push client (None disables the channel)
            log_tail: Returns the most recent N log lines for the log mirrors
            secondary_min_interval: Minimum seconds between unchanged-count
                secondary publishes
            clock: Source of POSIX timestamps
        """
        self.runner = runner
        self.primary = primary
        self.secondary = secondary
        self.secondary_credentials = secondary_credentials
        self.push = push
        self.log_tail = log_tail or (lambda lines: "")
        self.clock = clock
        self.secondary_gate = IntervalGate(secondary_min_interval)
        self.push_gate = ValueGate()

    def dispatch(
        self,
        state: ReconciledState,
        history: list[HistoryEntry],
        count_changed: bool,
    ) -> None:
        """Submit one publish per channel. Never blocks on the network.

        Args:
            state: Snapshot of the reconciled state
            history: Snapshot of the count history
            count_changed: Whether this dispatch follows a count change
        """
        if not state.has_confident_count:
            logger.debug("Dispatch skipped, no confident count yet")
            return

        now = self.clock()
        document = state.to_document(now)

        if self.primary is not None:
            self.runner.submit("primary store", self._publish_primary, document, history)

        if self.secondary is not None and self.secondary_credentials is not None:
            self.runner.submit("secondary store", self._publish_secondary, document, now, count_changed)

        if self.push is not None:
            if self.push_gate.claim(document["count"]):
                self.runner.submit("push", self._publish_push, document)
            else:
                logger.debug(f"Push skipped (count={document['count']} already sent)")

    def publish_dump(self, package: str, dump: str) -> None:
        """Submit a UI dump to the primary store's dump path."""
        if self.primary is None:
            return
        payload = {
            "time": format_time(self.clock()),
            "package": package,
            "lines": dump.splitlines(),
        }
        self.runner.submit("primary store dump", self._publish_dump, payload)

    def publish_log(self) -> None:
        """Submit the current log mirror to the primary store."""
        if self.primary is None:
            return
        self.runner.submit("primary store log", self._publish_log)

    def _publish_primary(self, document: dict[str, Any], history: list[HistoryEntry]) -> None:
        try:
            self.primary.put_status(document)
        except SyncError as e:
            logger.warning(f"Primary store publish failed: {e}")
            return

        log_text = self.log_tail(LOG_UPLOAD_LINES)
        try:
            if log_text:
                self.primary.put_log(log_text)
            self.primary.put_history([entry.to_dict() for entry in history])
        except SyncError as e:
            logger.warning(f"Primary store log/history publish failed: {e}")
            return

        logger.info(f"Primary store publish succeeded (count={document['count']})")

    def _publish_secondary(self, document: dict[str, Any], now: float, count_changed: bool) -> None:
        credentials = self.secondary_credentials.get()
        if credentials is None:
            return
        # The gate only records publishes that are actually attempted
        if not self.secondary_gate.allow(document["count"], now, force=count_changed):
            logger.debug(f"Secondary store publish skipped (count={document['count']} unchanged)")
            return
        try:
            self.secondary.publish(
                credentials,
                json.dumps(document, ensure_ascii=False),
                self.log_tail(LOG_UPLOAD_LINES),
            )
        except SyncError as e:
            logger.warning(f"Secondary store publish failed: {e}")
            return
        logger.info(f"Secondary store publish succeeded (count={document['count']})")

    def _publish_push(self, document: dict[str, Any]) -> None:
        count = document["count"]
        try:
            self.push.send(count, document["completed"], document["time"])
        except SyncError as e:
            self.push_gate.release(count)
            logger.warning(f"Push failed: {e}")
            return
        logger.info(f"Push succeeded (count={count})")

    def _publish_dump(self, payload: dict[str, Any]) -> None:
        try:
            self.primary.put_dump(payload)
        except SyncError as e:
            logger.warning(f"UI dump upload failed: {e}")
            return
        logger.info(f"UI dump uploaded ({len(payload['lines'])} lines)")

    def _publish_log(self) -> None:
        log_text = self.log_tail(LOG_UPLOAD_LINES)
        if not log_text:
            return
        try:
            self.primary.put_log(log_text)
        except SyncError as e:
            logger.debug(f"Log mirror upload failed: {e}")
