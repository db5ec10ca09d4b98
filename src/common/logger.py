"""Logging utilities with rich console output and a rolling log mirror.

Every component logs through the standard ``logging`` module. Console output
goes through rich, and the root logger carries a ``RollingLogHandler`` that
turns each record into a ``LogEntry``: a bounded in-memory ring mirrored into
the settings store, plus a size-bounded append-only file. The remote log
uploads read from that handler.

Usage:
    from common.logger import get_logger

    logger = get_logger(__name__)
    logger.info("In-progress count changed: 2 -> 3")
    logger.warning("Secondary store publish failed (HTTP 502)")
"""

import logging
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from .constants import KEY_LOG, LOG_FILE_MAX_BYTES, LOG_RING_LIMIT
from .settings import SettingsStore

# Global console instance for consistent output
console = Console()
err_console = Console(stderr=True)


@dataclass(frozen=True)
class LogEntry:
    """A single line of the rolling log."""

    timestamp: datetime
    message: str

    def format(self) -> str:
        return f"[{self.timestamp:%H:%M:%S}] {self.message}"


def get_logger(
    name: str,
    level: str | None = None,
    show_time: bool = False,
    show_path: bool = False,
) -> logging.Logger:
    """Get a configured logger with rich output.

    Args:
        name: Logger name (typically __name__ of the module)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               If None, uses environment variable LOG_LEVEL or defaults to INFO.
        show_time: Show timestamp in console output
        show_path: Show file path in console output

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding multiple handlers if logger already configured
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    logger.setLevel(level)

    rich_handler = RichHandler(
        console=console,
        show_time=show_time,
        show_path=show_path,
        rich_tracebacks=True,
        # Messages embed remote payloads and exception text, never markup
        markup=False,
    )
    rich_handler.setFormatter(logging.Formatter(fmt="%(message)s", datefmt="[%X]"))
    logger.addHandler(rich_handler)

    # Propagate to the root logger, which carries the rolling log handler
    # (and lets pytest caplog capture records)
    logger.propagate = True

    return logger


class RollingLogHandler(logging.Handler):
    """Logging handler that keeps the relay's rolling log.

    Each record becomes a ``LogEntry``. The most recent ``ring_limit`` entries
    are kept in memory and mirrored into the settings store under ``log_text``.
    When a file path is given, entries are also appended to it; once the file
    grows past ``max_bytes`` it is trimmed to its most recent half.

    Failures writing the file are swallowed: logging must never break the
    pipeline it serves.
    """

    def __init__(
        self,
        settings: SettingsStore | None = None,
        log_file: Path | None = None,
        ring_limit: int = LOG_RING_LIMIT,
        max_bytes: int = LOG_FILE_MAX_BYTES,
        level: int = logging.INFO,
    ):
        super().__init__(level=level)
        self.settings = settings
        self.log_file = log_file
        self.max_bytes = max_bytes
        self._ring: deque[LogEntry] = deque(maxlen=ring_limit)
        self._write_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = LogEntry(
                timestamp=datetime.fromtimestamp(record.created),
                message=record.getMessage(),
            )
        except Exception:
            self.handleError(record)
            return

        with self._write_lock:
            self._ring.append(entry)
            lines = [e.format() for e in self._ring]
            try:
                if self.settings is not None:
                    self.settings.set(KEY_LOG, "\n".join(lines))
            except OSError:
                pass
            self._append_to_file(entry)

    def _append_to_file(self, entry: LogEntry) -> None:
        if self.log_file is None:
            return
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            if self.log_file.exists() and self.log_file.stat().st_size > self.max_bytes:
                text = self.log_file.read_text(encoding="utf-8", errors="replace")
                self.log_file.write_text(text[-(self.max_bytes // 2) :], encoding="utf-8")
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(entry.format() + "\n")
        except OSError:
            pass

    def entries(self) -> list[LogEntry]:
        """Return a copy of the in-memory ring, oldest first."""
        with self._write_lock:
            return list(self._ring)

    def tail(self, lines: int) -> str:
        """Return the most recent log lines as text.

        Reads the file mirror when it exists, falling back to the in-memory
        ring otherwise.

        Args:
            lines: Maximum number of lines to return
        """
        if self.log_file is not None:
            try:
                if self.log_file.exists():
                    content = self.log_file.read_text(encoding="utf-8", errors="replace")
                    return "\n".join(content.splitlines()[-lines:])
            except OSError:
                pass
        return "\n".join(e.format() for e in self.entries()[-lines:])


def setup_logging(
    level: str = "INFO",
    settings: SettingsStore | None = None,
    log_file: Path | None = None,
) -> RollingLogHandler:
    """Setup logging configuration for the entire application.

    This should be called once at the application entry point (CLI).

    Args:
        level: Default logging level for all modules
        settings: Settings store mirroring the in-memory log ring
        log_file: Optional path of the rolling log file mirror

    Returns:
        The rolling log handler installed on the root logger
    """
    level = os.getenv("LOG_LEVEL", level).upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        if isinstance(handler, RollingLogHandler):
            root_logger.removeHandler(handler)

    rolling = RollingLogHandler(settings=settings, log_file=log_file)
    root_logger.addHandler(rolling)
    return rolling


# Convenience functions for CLI output
def progress(message: str) -> None:
    """Print a progress message without the logger prefix."""
    console.print(message)


def success(message: str) -> None:
    """Print a success message with green checkmark."""
    console.print(f"[green]✓[/green] {message}")


def warning(message: str) -> None:
    """Print a warning message with yellow warning icon."""
    console.print(f"[yellow]⚠[/yellow] {message}")


def error(message: str) -> None:
    """Print an error message with red X icon."""
    err_console.print(f"[red]✗[/red] {message}")
