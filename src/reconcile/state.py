"""Reconciled state and count history."""

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from common.constants import HISTORY_LIMIT, STATE_SOURCE, UNKNOWN_COUNT

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_time(timestamp: float) -> str:
    """Format a POSIX timestamp the way remote documents expect it."""
    return datetime.fromtimestamp(timestamp).strftime(TIME_FORMAT)


@dataclass
class ReconciledState:
    """Authoritative last-known state, owned by the Reconciler.

    Attributes:
        last_count: Most recent confident in-progress count (-1 = unknown)
        last_order_ids: Most recent order identifiers, sorted
        last_completed_count: Most recent completed count (-1 = unknown)
        last_change_at: POSIX time of the last confirmed change (0 = never)
        last_publish_at: POSIX time of the last triggered dispatch (0 = never)
    """

    last_count: int = UNKNOWN_COUNT
    last_order_ids: tuple[int, ...] = ()
    last_completed_count: int = UNKNOWN_COUNT
    last_change_at: float = 0.0
    last_publish_at: float = 0.0

    @property
    def has_confident_count(self) -> bool:
        return self.last_count >= 0

    def to_document(self, now: float) -> dict:
        """Build the status document published to the remote stores.

        An unknown completed count is published as 0.
        """
        return {
            "count": max(self.last_count, 0),
            "time": format_time(now),
            "source": STATE_SOURCE,
            "orders": list(self.last_order_ids),
            "completed": max(self.last_completed_count, 0),
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One confirmed count change."""

    timestamp: float
    count: int

    def to_dict(self) -> dict:
        return {"time": format_time(self.timestamp), "count": self.count}


class HistoryLog:
    """Append-only ring of the most recent count changes."""

    def __init__(self, limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._entries: deque[HistoryEntry] = deque(maxlen=limit)
        self._lock = threading.Lock()

    def append(self, timestamp: float, count: int) -> HistoryEntry:
        entry = HistoryEntry(timestamp=timestamp, count=count)
        with self._lock:
            self._entries.append(entry)
        return entry

    def entries(self) -> list[HistoryEntry]:
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
