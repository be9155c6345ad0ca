"""Write counters for diagnostics.

The client keeps three independent counters: every ``write`` call,
writes that were sent synchronously without batching, and points sent
through the batch-write path. They are written from the hot path and
read only for logging and export.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


class Counter:
    """Thread-safe monotonically increasing counter.

    Example:
        >>> writes = Counter("tsbatch_writes_total", "Total write calls")
        >>> writes.inc()
        >>> writes.inc(5)
        >>> writes.value
        6
    """

    def __init__(self, name: str, description: str = "") -> None:
        self._name = name
        self._description = description
        self._value = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        """Get counter name."""
        return self._name

    @property
    def description(self) -> str:
        """Get counter description."""
        return self._description

    @property
    def value(self) -> int:
        """Get current value."""
        with self._lock:
            return self._value

    def inc(self, value: int = 1) -> int:
        """Increment the counter and return the new value.

        Args:
            value: Amount to add (must not be negative).
        """
        if value < 0:
            raise ValueError("Counter can only increase")
        with self._lock:
            self._value += value
            return self._value

    def __repr__(self) -> str:
        return f"Counter({self._name!r}, value={self.value})"


@dataclass(frozen=True)
class WriteMetricsSnapshot:
    """Point-in-time copy of the write counters."""

    writes_total: int
    writes_unbatched: int
    points_batched: int

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return {
            "writes_total": self.writes_total,
            "writes_unbatched": self.writes_unbatched,
            "points_batched": self.points_batched,
        }


class WriteMetrics:
    """The client's write counters."""

    def __init__(self) -> None:
        self.writes_total = Counter(
            "tsbatch_writes_total", "Total single-point write calls"
        )
        self.writes_unbatched = Counter(
            "tsbatch_writes_unbatched_total", "Writes sent synchronously without batching"
        )
        self.points_batched = Counter(
            "tsbatch_points_batched_total", "Points sent through the batch-write path"
        )

    def counters(self) -> list[Counter]:
        return [self.writes_total, self.writes_unbatched, self.points_batched]

    def snapshot(self) -> WriteMetricsSnapshot:
        """Read all three counters."""
        return WriteMetricsSnapshot(
            writes_total=self.writes_total.value,
            writes_unbatched=self.writes_unbatched.value,
            points_batched=self.points_batched.value,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self.snapshot().to_dict()

    def to_prometheus(self) -> str:
        """Export the counters in Prometheus text exposition format."""
        lines = []
        for counter in self.counters():
            lines.append(f"# HELP {counter.name} {counter.description}")
            lines.append(f"# TYPE {counter.name} counter")
            lines.append(f"{counter.name} {counter.value}")
            lines.append("")
        return "\n".join(lines)

    def __str__(self) -> str:
        snap = self.snapshot()
        return (
            f"total writes: {snap.writes_total} "
            f"unbatched: {snap.writes_unbatched} "
            f"batched points: {snap.points_batched}"
        )
