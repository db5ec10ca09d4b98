"""Change detection between extraction passes.

The Reconciler compares each fresh ObservedState against the last-known
ReconciledState, decides whether anything really changed, records count
changes in the history log and triggers the sync dispatcher.

Both the UI-change trigger and the heartbeat call into the same Reconciler,
possibly at the same time, so every read-modify-write of the state happens
under one lock.
"""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Protocol

from common.constants import KEY_LAST_COUNT, KEY_LAST_UPLOAD_TIME, UNKNOWN_COUNT
from common.logger import get_logger
from common.settings import SettingsStore
from extract.models import ObservedState

from .state import HistoryEntry, HistoryLog, ReconciledState

logger = get_logger(__name__)


class Dispatcher(Protocol):
    """Anything that can publish a reconciled state."""

    def dispatch(
        self,
        state: ReconciledState,
        history: list[HistoryEntry],
        count_changed: bool,
    ) -> None: ...


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconciliation pass."""

    dispatched: bool
    count_changed: bool
    state: ReconciledState


class Reconciler:
    """Owns the ReconciledState and decides when it must be republished."""

    def __init__(
        self,
        dispatcher: Dispatcher | None = None,
        settings: SettingsStore | None = None,
        history: HistoryLog | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize reconciler, restoring last-known values from settings.

        Args:
            dispatcher: Sync dispatcher to trigger on changes
            settings: Settings store persisting last count and publish time
            history: Count history ring (a new one is created if None)
            clock: Source of POSIX timestamps
        """
        self.dispatcher = dispatcher
        self.settings = settings
        self.history = history if history is not None else HistoryLog()
        self.clock = clock
        self._lock = threading.Lock()
        self._state = ReconciledState()

        if settings is not None:
            self._state.last_count = settings.get_int(KEY_LAST_COUNT, UNKNOWN_COUNT)
            self._state.last_publish_at = float(settings.get(KEY_LAST_UPLOAD_TIME, 0.0) or 0.0)

    @property
    def state(self) -> ReconciledState:
        """Snapshot of the current state."""
        with self._lock:
            return replace(self._state)

    def reconcile(self, observed: ObservedState) -> ReconcileResult:
        """Fold one extraction pass into the reconciled state.

        A None count never overwrites a confident value. When the count is
        missing but order identifiers are visible, their number stands in for
        the count. Nothing is dispatched until a confident count has been
        observed.

        Args:
            observed: Fresh extraction result

        Returns:
            What changed and whether a dispatch was triggered
        """
        order_ids = tuple(observed.sorted_order_ids)
        count = observed.in_progress_count
        if count is None and order_ids:
            count = len(order_ids)
            logger.debug(f"No count label found, using {count} visible order(s)")

        with self._lock:
            now = self.clock()
            previous = self._state

            count_changed = count is not None and count != previous.last_count
            orders_changed = order_ids != previous.last_order_ids
            completed = observed.completed_count
            completed_changed = completed is not None and completed != previous.last_completed_count

            if not (count_changed or orders_changed or completed_changed):
                return ReconcileResult(dispatched=False, count_changed=False, state=replace(previous))

            if count_changed:
                logger.info(f"In-progress count changed: {previous.last_count} -> {count}")
                self._state.last_count = count
                self.history.append(now, count)
                self._persist(KEY_LAST_COUNT, count)
            if orders_changed:
                logger.debug(f"Order ids changed: {list(previous.last_order_ids)} -> {list(order_ids)}")
                self._state.last_order_ids = order_ids
            if completed_changed:
                logger.info(f"Completed count changed: {previous.last_completed_count} -> {completed}")
                self._state.last_completed_count = completed

            self._state.last_change_at = now
            if not self._state.has_confident_count:
                # Completed count or orders alone must not publish an unknown count as 0
                logger.debug("Change recorded without a confident count, not publishing")
                return ReconcileResult(dispatched=False, count_changed=False, state=replace(self._state))
            snapshot = self._mark_published(now)

        self._dispatch(snapshot, count_changed)
        return ReconcileResult(dispatched=True, count_changed=count_changed, state=snapshot)

    def republish_if_stale(self, interval: float) -> bool:
        """Republish the current state if nothing was published within interval.

        Only applies once a confident count has been observed.

        Returns:
            True if a dispatch was triggered
        """
        with self._lock:
            now = self.clock()
            if not self._state.has_confident_count:
                return False
            if now - self._state.last_publish_at < interval:
                return False
            logger.info(f"Heartbeat republish (count={self._state.last_count})")
            snapshot = self._mark_published(now)

        self._dispatch(snapshot, count_changed=False)
        return True

    def _mark_published(self, now: float) -> ReconciledState:
        self._state.last_publish_at = now
        self._persist(KEY_LAST_UPLOAD_TIME, now)
        return replace(self._state)

    def _dispatch(self, snapshot: ReconciledState, count_changed: bool) -> None:
        if self.dispatcher is None:
            return
        self.dispatcher.dispatch(snapshot, self.history.entries(), count_changed)

    def _persist(self, key: str, value) -> None:
        if self.settings is None:
            return
        try:
            self.settings.set(key, value)
        except OSError as e:
            logger.warning(f"Failed to persist {key}: {e}")
