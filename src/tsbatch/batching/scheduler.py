"""Flush triggers.

Two triggers request flushes independently:

- the count trigger runs on the producer thread right after an entry is
  accepted, and fires once the queue holds ``actions`` entries;
- the timer trigger runs on a background daemon thread and fires every
  ``flush_interval`` whether or not anything is queued.

Both call the same flush function, which is responsible for mutual
exclusion.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Callable

from tsbatch.batching.base import BatchConfig

logger = logging.getLogger(__name__)


class FlushReason(str, Enum):
    """What requested a flush."""

    COUNT = "count"  # queue reached the action threshold
    TIMER = "timer"  # periodic timer fired
    MANUAL = "manual"  # explicit flush() call
    SHUTDOWN = "shutdown"  # batching disabled or client closed


FlushFn = Callable[[FlushReason], object]


class FlushScheduler:
    """Drives the count and timer triggers for one batch processor."""

    def __init__(
        self,
        flush_fn: FlushFn,
        config: BatchConfig,
        *,
        name: str = "tsbatch-flush",
    ) -> None:
        """Initialize scheduler.

        Args:
            flush_fn: Called with the reason whenever a trigger fires.
            config: Batch configuration (threshold and interval).
            name: Name of the timer thread.
        """
        config.validate()
        self._flush_fn = flush_fn
        self._config = config
        self._name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self._timer_fires = 0

    @property
    def config(self) -> BatchConfig:
        """Get configuration."""
        return self._config

    @property
    def is_running(self) -> bool:
        """Whether the timer thread is alive."""
        thread = self._thread
        return thread is not None and thread.is_alive()

    @property
    def timer_fires(self) -> int:
        """Number of times the timer trigger has fired."""
        return self._timer_fires

    def notify(self, pending: int) -> bool:
        """Count trigger: flush if ``pending`` reached the threshold.

        Runs the flush on the calling thread; its errors propagate.

        Returns:
            True if a flush was requested.
        """
        if pending < self._config.actions:
            return False
        self._flush_fn(FlushReason.COUNT)
        return True

    def start(self) -> None:
        """Start the timer thread. Starting twice is a no-op."""
        with self._lock:
            if self._thread is not None:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name=self._name, daemon=True
            )
            self._thread.start()
        logger.debug(
            "Flush scheduler started (actions=%d, interval=%.3fs)",
            self._config.actions,
            self._config.flush_interval_seconds,
        )

    def stop(self, timeout: float | None = None) -> None:
        """Cancel the timer and wait for an in-progress timer flush.

        Args:
            timeout: Maximum seconds to wait for the timer thread.
        """
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop.set()

        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug("Flush scheduler stopped after %d timer fires", self._timer_fires)

    def _run(self) -> None:
        interval = self._config.flush_interval_seconds
        while not self._stop.wait(interval):
            self._timer_fires += 1
            try:
                self._flush_fn(FlushReason.TIMER)
            except Exception:
                logger.exception("Timer-triggered flush failed")
