"""Heartbeat driver.

UI-change triggers can be missed or arrive stale. The heartbeat re-runs the
extraction pass on a fixed interval and, if nothing was published during
that interval, republishes the last confident state so downstream readers
see a fresh document at least once per interval.
"""

from collections.abc import Callable
from typing import Any

from common.logger import get_logger
from common.tasks import PeriodicLoop

from .reconciler import Reconciler

logger = get_logger(__name__)


class HeartbeatDriver:
    """Periodic re-validation and minimum republish cadence."""

    def __init__(self, reconciler: Reconciler, run_pass: Callable[[], Any], interval: float = 30.0):
        """Initialize heartbeat.

        Args:
            reconciler: Reconciler shared with the UI-change trigger
            run_pass: Extraction pass (extract -> reconcile -> dispatch)
            interval: Seconds between beats
        """
        self.reconciler = reconciler
        self.run_pass = run_pass
        self.interval = interval
        self._loop = PeriodicLoop("heartbeat", interval, self.beat)

    def beat(self) -> bool:
        """Run one heartbeat.

        Returns:
            True if the beat forced a republish
        """
        try:
            self.run_pass()
        except Exception as e:
            logger.warning(f"Heartbeat extraction pass failed: {e}")
        return self.reconciler.republish_if_stale(self.interval)

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()
