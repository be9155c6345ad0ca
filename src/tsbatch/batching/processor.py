"""Flush executor.

``BatchProcessor`` owns the queue and the scheduler for one batching
session. A flush drains the queue, groups the snapshot by
(database, retention policy), and hands one ``BatchPoints`` per group to
the synchronous write function.

Concurrency:
    A single lock guards drain-and-send, so at most one flush runs at a
    time. A flush requested while another is running waits for it and
    then drains whatever is left. A count-triggered request re-checks the
    queue size once it holds the lock and is skipped if an earlier flush
    already brought the queue below the threshold.

Delivery:
    At most once. When a group's write raises, its points have already
    left the queue; they are counted as dropped, the remaining groups are
    still attempted, and ``BatchWriteError`` is raised at the end of the
    pass. Nothing is re-queued or retried.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable

from tsbatch.base import BatchWriteError, ConsistencyLevel
from tsbatch.batch import BatchEntry, BatchPoints
from tsbatch.batching.base import BatchConfig, FlushMetrics
from tsbatch.batching.buffer import BatchQueue
from tsbatch.batching.scheduler import FlushReason, FlushScheduler

logger = logging.getLogger(__name__)


WriteFn = Callable[[BatchPoints], None]


def group_entries(
    entries: list[BatchEntry],
    consistency: ConsistencyLevel = ConsistencyLevel.ONE,
) -> list[BatchPoints]:
    """Group entries by (database, retention policy).

    Groups appear in order of their first entry; points keep their
    relative order within a group.
    """
    groups: dict[tuple[str, str], BatchPoints] = {}
    for entry in entries:
        batch = groups.get(entry.key)
        if batch is None:
            batch = BatchPoints(
                database=entry.database,
                retention_policy=entry.retention_policy,
                consistency=consistency,
            )
            groups[entry.key] = batch
        batch.point(entry.point)
    return list(groups.values())


class BatchProcessor:
    """Batch queue, flush triggers and flush executor for one session.

    Example:
        >>> processor = BatchProcessor(client.write_batch, BatchConfig(actions=100))
        >>> processor.start()
        >>> processor.put(BatchEntry(point, "metrics", "default"))
        >>> processor.close()  # stops the timer and flushes
    """

    def __init__(
        self,
        write_func: WriteFn,
        config: BatchConfig | None = None,
        *,
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> None:
        """Initialize batch processor.

        Args:
            write_func: Synchronous write of one BatchPoints group.
            config: Batch configuration.
            consistency: Consistency level of flushed groups.
        """
        self._write_func = write_func
        self._config = config or BatchConfig()
        self._config.validate()
        self._consistency = consistency

        self._queue: BatchQueue[BatchEntry] = BatchQueue()
        self._flush_lock = threading.Lock()
        self._metrics = FlushMetrics()
        self._scheduler = FlushScheduler(self.flush, self._config)

    @property
    def config(self) -> BatchConfig:
        """Get configuration."""
        return self._config

    @property
    def metrics(self) -> FlushMetrics:
        """Get flush metrics."""
        return self._metrics

    @property
    def scheduler(self) -> FlushScheduler:
        """Get the flush scheduler."""
        return self._scheduler

    @property
    def pending(self) -> int:
        """Number of queued entries."""
        return self._queue.size

    def start(self) -> None:
        """Start the timer trigger."""
        self._scheduler.start()

    def offer(self, entry: BatchEntry) -> int:
        """Queue an entry without running the count trigger.

        Returns:
            Queue size right after the entry was added.
        """
        return self._queue.put(entry)

    def put(self, entry: BatchEntry) -> None:
        """Queue an entry, flushing on this thread if the threshold is hit.

        Raises:
            BatchWriteError: If a count-triggered flush had failures.
        """
        self._scheduler.notify(self.offer(entry))

    def flush(self, reason: FlushReason = FlushReason.MANUAL) -> int:
        """Drain the queue and write every group.

        Blocks while another flush is in progress.

        Args:
            reason: What requested the flush.

        Returns:
            Number of points written successfully.

        Raises:
            BatchWriteError: If one or more groups failed; the other groups
                were still written.
        """
        with self._flush_lock:
            if reason is FlushReason.COUNT and self._queue.size < self._config.actions:
                return 0

            entries = self._queue.drain()
            if not entries:
                return 0

            start = time.monotonic()
            written = 0
            failures: list[tuple[str, str, int, BaseException]] = []

            for batch in group_entries(entries, self._consistency):
                size = len(batch)
                try:
                    self._write_func(batch)
                except Exception as e:
                    logger.error(
                        "Failed to write %d point(s) to %s.%s: %s",
                        size,
                        batch.database,
                        batch.retention_policy,
                        e,
                    )
                    self._metrics.record_batch_failed(size)
                    failures.append((batch.database, batch.retention_policy, size, e))
                else:
                    self._metrics.record_batch_written(size)
                    written += size

            self._metrics.record_flush()
            logger.debug(
                "Flushed %d/%d point(s) in %.1fms (%s)",
                written,
                len(entries),
                (time.monotonic() - start) * 1000,
                reason.value,
            )

        if failures:
            raise BatchWriteError(failures) from failures[0][3]
        return written

    def close(self) -> int:
        """Stop the timer, then run one final blocking flush.

        Returns:
            Number of points written by the final flush.
        """
        self._scheduler.stop()
        return self.flush(FlushReason.SHUTDOWN)
