"""Batch containers.

``BatchEntry`` is what producers put into the batch queue; ``BatchPoints``
is what gets serialized and handed to the transport in one write.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator

from tsbatch.base import ConsistencyLevel, TimeUnit
from tsbatch.point import Point


@dataclass(frozen=True, eq=False)
class BatchEntry:
    """A point together with its destination.

    Entries compare by identity; the same point written twice is two
    entries.
    """

    point: Point
    database: str
    retention_policy: str

    @property
    def key(self) -> tuple[str, str]:
        """Grouping key used when flushing."""
        return (self.database, self.retention_policy)


@dataclass
class BatchPoints:
    """Points sharing one database, retention policy and consistency level.

    Example:
        >>> batch = BatchPoints("metrics", "default").point(p1).point(p2)
        >>> body = batch.line_protocol()
    """

    database: str
    retention_policy: str
    consistency: ConsistencyLevel = ConsistencyLevel.ONE
    precision: TimeUnit = TimeUnit.NANOSECONDS
    tags: dict[str, str] = field(default_factory=dict)
    _points: list[Point] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        if not self.database:
            raise ValueError("database must not be empty")
        self.consistency = ConsistencyLevel.coerce(self.consistency)

    @property
    def points(self) -> list[Point]:
        """Points in insertion order (copy)."""
        return list(self._points)

    def point(self, point: Point) -> "BatchPoints":
        """Append a point and return self."""
        self._points.append(point)
        return self

    def extend(self, points: Iterable[Point]) -> "BatchPoints":
        """Append several points and return self."""
        self._points.extend(points)
        return self

    def line_protocol(self) -> str:
        """Serialize all points, one line per point."""
        lines = []
        for point in self._points:
            if self.tags:
                point = point.with_tags(self.tags)
            lines.append(point.line_protocol(self.precision))
        return "\n".join(lines)

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self._points)
