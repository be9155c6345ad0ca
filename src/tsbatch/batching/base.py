"""Configuration and metrics for the batching engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tsbatch.base import TimeUnit


@dataclass(frozen=True)
class BatchConfig:
    """Configuration for batch writing.

    Attributes:
        actions: Number of queued points that triggers a flush.
        flush_interval: Period of the flush timer, in ``flush_unit``.
        flush_unit: Unit of ``flush_interval``.
    """

    actions: int = 1000
    flush_interval: float = 1000
    flush_unit: TimeUnit = TimeUnit.MILLISECONDS

    @property
    def flush_interval_seconds(self) -> float:
        """Timer period in seconds."""
        return self.flush_unit.to_seconds(self.flush_interval)

    def validate(self) -> None:
        """Validate configuration values."""
        if self.actions <= 0:
            raise ValueError("actions must be positive")
        if self.flush_interval <= 0:
            raise ValueError("flush_interval must be positive")


@dataclass
class FlushMetrics:
    """Outcome accounting for flush passes.

    Only mutated by the thread holding the flush lock.

    Attributes:
        flush_count: Flush passes that drained at least one entry.
        batches_written: Groups written successfully.
        batches_failed: Groups whose write raised.
        points_written: Points in successful groups.
        points_dropped: Points in failed groups (not retried).
        last_flush_time: End of the last non-empty flush pass.
    """

    flush_count: int = 0
    batches_written: int = 0
    batches_failed: int = 0
    points_written: int = 0
    points_dropped: int = 0
    last_flush_time: datetime | None = None
    start_time: datetime = field(default_factory=datetime.now)

    def record_batch_written(self, size: int) -> None:
        self.batches_written += 1
        self.points_written += size

    def record_batch_failed(self, size: int) -> None:
        self.batches_failed += 1
        self.points_dropped += size

    def record_flush(self) -> None:
        self.flush_count += 1
        self.last_flush_time = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "flush_count": self.flush_count,
            "batches_written": self.batches_written,
            "batches_failed": self.batches_failed,
            "points_written": self.points_written,
            "points_dropped": self.points_dropped,
            "start_time": self.start_time.isoformat(),
            "last_flush_time": (
                self.last_flush_time.isoformat() if self.last_flush_time else None
            ),
        }
