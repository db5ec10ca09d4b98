"""Key-value settings store.

The relay only needs a get/set-by-key contract for last-known counters,
configuration values and the rolling log mirror. This module provides a
JSON-file-backed implementation of that contract (or an in-memory one when
no path is given).
"""

import json
import threading
from pathlib import Path
from typing import Any


class SettingsStore:
    """Thread-safe key-value store persisted as a single JSON document."""

    def __init__(self, path: Path | None = None):
        """Initialize the store, loading existing values from disk.

        Args:
            path: JSON file to persist to (None keeps values in memory only)
        """
        self.path = path
        self._lock = threading.Lock()
        self._values: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError):
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value stored under key, or default."""
        with self._lock:
            return self._values.get(key, default)

    def get_int(self, key: str, default: int) -> int:
        """Return the value under key as an int, or default if missing or invalid."""
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Store value under key and persist the document."""
        with self._lock:
            self._values[key] = value
            self._save()

    def _save(self) -> None:
        if self.path is None:
            return
        # Ensure parent directory exists
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._values, f, indent=2, ensure_ascii=False)
        tmp_path.replace(self.path)
