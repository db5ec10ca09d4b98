"""Background task submission.

Every network operation (each dispatch channel, token exchange, download)
runs as an independent background task. Callers never wait on these tasks;
a failure only ever shows up as a log entry.

Example:
    >>> runner = TaskRunner(max_workers=4)
    >>> runner.submit("primary", client.put_status, payload)
    >>> runner.shutdown()
"""

import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from .logger import get_logger

logger = get_logger(__name__)


class TaskRunner:
    """Fire-and-forget task submission on a bounded thread pool."""

    def __init__(self, max_workers: int = 8):
        """Initialize the runner.

        Args:
            max_workers: Maximum number of tasks running at once
        """
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kds-task")
        self._closed = threading.Event()

    def submit(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future | None:
        """Run func(*args, **kwargs) in the background.

        Args:
            name: Short task name used in failure log entries
            func: Callable to run

        Returns:
            The task's future, or None if the runner is already shut down
        """
        if self._closed.is_set():
            logger.debug(f"Task runner closed, dropping task '{name}'")
            return None
        try:
            return self._executor.submit(self._run, name, func, *args, **kwargs)
        except RuntimeError:
            # Raced with shutdown()
            return None

    @staticmethod
    def _run(name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except Exception as e:
            logger.warning(f"Task '{name}' failed: {e}")
            return None

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks and optionally wait for running ones."""
        self._closed.set()
        self._executor.shutdown(wait=wait, cancel_futures=True)


class PeriodicLoop:
    """Daemon thread calling a function at a fixed interval until stopped."""

    def __init__(self, name: str, interval: float, func: Callable[[], Any], initial_delay: float | None = None):
        """Initialize loop.

        Args:
            name: Thread name, also used in log entries
            interval: Seconds between calls
            func: Callable run on every tick; exceptions are logged, not raised
            initial_delay: Seconds before the first call (defaults to interval)
        """
        self.name = name
        self.interval = interval
        self.func = func
        self.initial_delay = interval if initial_delay is None else initial_delay
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 5) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def tick(self) -> None:
        """Run one iteration in the caller's thread."""
        try:
            self.func()
        except Exception as e:
            logger.warning(f"{self.name} iteration failed: {e}")

    def _loop(self) -> None:
        if self._stop.wait(self.initial_delay):
            return
        while not self._stop.is_set():
            self.tick()
            if self._stop.wait(self.interval):
                break


class InlineRunner(TaskRunner):
    """Runner that executes tasks synchronously in the caller's thread.

    Used by tests so the remote channels can be replaced by synchronous fakes.
    """

    def __init__(self):
        self._closed = threading.Event()
        self.submitted: list[str] = []

    def submit(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future | None:
        self.submitted.append(name)
        future: Future = Future()
        future.set_result(self._run(name, func, *args, **kwargs))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._closed.set()
