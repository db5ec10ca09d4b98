"""Per-channel dedup gates.

A gate decides, at submission time, whether a publish on its channel should
go ahead. Gates are shared by the UI-change and heartbeat triggers, so each
one guards its own state with a lock.

Example:
    >>> gate = IntervalGate(min_interval=10)
    >>> gate.allow(3, now=100.0)
    True
    >>> gate.allow(3, now=105.0)  # same count, too soon
    False
"""

import threading

from common.constants import UNKNOWN_COUNT


class IntervalGate:
    """Skip a publish when the count is unchanged and the last publish was recent.

    Protects rate-limited backends: a changed count always passes, an
    unchanged one passes at most once per ``min_interval`` seconds.
    """

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self._lock = threading.Lock()
        self._last_count = UNKNOWN_COUNT
        self._last_at: float | None = None

    def allow(self, count: int, now: float, force: bool = False) -> bool:
        """Return True and record the publish if it may go ahead.

        Args:
            count: Count about to be published
            now: Current POSIX time
            force: Bypass the gate (used when the reconciler saw a count change)
        """
        with self._lock:
            recent = self._last_at is not None and now - self._last_at < self.min_interval
            if not force and count == self._last_count and recent:
                return False
            self._last_count = count
            self._last_at = now
            return True


class ValueGate:
    """Skip a publish when the value equals the last one sent."""

    def __init__(self):
        self._lock = threading.Lock()
        self._last_value: int | None = None

    @property
    def last_value(self) -> int | None:
        with self._lock:
            return self._last_value

    def claim(self, value: int) -> bool:
        """Return True and record value if it differs from the last one sent."""
        with self._lock:
            if value == self._last_value:
                return False
            self._last_value = value
            return True

    def release(self, value: int) -> None:
        """Forget value after a failed send so a later trigger can retry it."""
        with self._lock:
            if self._last_value == value:
                self._last_value = None
