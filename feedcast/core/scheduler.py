"""Interval background tasks."""

import threading
from typing import Callable, Optional

import structlog

logger = structlog.get_logger(__name__)


class PeriodicTask:
    """Runs a function on a daemon thread at a fixed interval.

    Failures of the function are logged and do not stop the task.
    """

    def __init__(self, name: str, interval_seconds: float, func: Callable[[], object]):
        """Initialize the task.

        Args:
            name: Name used for the thread and in logs
            interval_seconds: Seconds between two runs
            func: Function to run
        """
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self._func = func
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the task thread if it is not running."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()
        logger.info("periodic_task_started", task=self.name, interval=self.interval_seconds)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the task and wait for the thread to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("periodic_task_stopped", task=self.name)

    def run_once(self) -> None:
        """Run the function once on the calling thread."""
        try:
            self._func()
        except Exception as e:
            logger.error("periodic_task_failed", task=self.name, error=str(e))

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
