"""Base types shared across tsbatch.

This module defines the exception hierarchy, the time units understood by
the line protocol and the write consistency levels.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


# =============================================================================
# Exceptions
# =============================================================================


class TsBatchError(Exception):
    """Base exception for all tsbatch errors."""

    pass


class TransportError(TsBatchError):
    """Raised when the server rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        if status_code is not None:
            message = f"HTTP {status_code}: {message}"
        super().__init__(message)


class TransportConnectionError(TransportError):
    """Raised when the server cannot be reached."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        super().__init__(f"Failed to connect to {url}: {message}")


class BatchWriteError(TsBatchError):
    """Raised after a flush in which one or more groups failed to write.

    The points of failed groups have already been removed from the queue
    and are not retried.

    Attributes:
        failures: ``(database, retention_policy, point_count, error)`` per
            failed group.
        dropped_points: Total number of points that were not delivered.
    """

    def __init__(self, failures: list[tuple[str, str, int, BaseException]]) -> None:
        self.failures = failures
        self.dropped_points = sum(count for _, _, count, _ in failures)
        groups = ", ".join(f"{db}.{rp}" for db, rp, _, _ in failures)
        super().__init__(
            f"{len(failures)} batch write(s) failed ({groups}); "
            f"{self.dropped_points} point(s) dropped"
        )


class ConfigError(TsBatchError):
    """Base configuration error."""

    pass


class ConfigValidationError(ConfigError):
    """Configuration validation error."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__(f"Configuration validation failed: {', '.join(errors)}")


# =============================================================================
# Time Units
# =============================================================================


class TimeUnit(Enum):
    """Time units with their length in nanoseconds."""

    NANOSECONDS = 1
    MICROSECONDS = 1_000
    MILLISECONDS = 1_000_000
    SECONDS = 1_000_000_000
    MINUTES = 60_000_000_000
    HOURS = 3_600_000_000_000
    DAYS = 86_400_000_000_000

    @property
    def nanos(self) -> int:
        """Length of one unit in nanoseconds."""
        return self.value

    def to_seconds(self, duration: float) -> float:
        """Convert a duration in this unit to seconds."""
        return duration * self.value / 1_000_000_000

    def convert(self, duration: int, unit: "TimeUnit") -> int:
        """Convert an integer duration expressed in ``unit`` to this unit.

        Conversions to a coarser unit truncate.
        """
        return duration * unit.value // self.value

    @classmethod
    def from_string(cls, value: str) -> "TimeUnit":
        """Convert a unit name or precision token to a TimeUnit.

        Args:
            value: Either the enum name (case-insensitive, e.g. ``"seconds"``)
                or a precision token (``"ns"``, ``"u"``, ``"ms"``, ``"s"``,
                ``"m"``, ``"h"``).

        Raises:
            ValueError: If the value is not recognised.
        """
        token = value.strip()
        for unit, precision in _PRECISION_TOKENS.items():
            if token == precision:
                return unit
        try:
            return cls[token.upper()]
        except KeyError:
            raise ValueError(f"Unknown time unit: {value!r}") from None


_PRECISION_TOKENS: dict[TimeUnit, str] = {
    TimeUnit.NANOSECONDS: "ns",
    TimeUnit.MICROSECONDS: "u",
    TimeUnit.MILLISECONDS: "ms",
    TimeUnit.SECONDS: "s",
    TimeUnit.MINUTES: "m",
    TimeUnit.HOURS: "h",
}


def to_time_precision(unit: TimeUnit) -> str:
    """Map a time unit to its line-protocol precision token.

    Raises:
        ValueError: If the unit has no precision token (``DAYS``).
    """
    try:
        return _PRECISION_TOKENS[unit]
    except KeyError:
        raise ValueError(f"Time unit {unit.name} has no wire precision") from None


# =============================================================================
# Consistency
# =============================================================================


class ConsistencyLevel(str, Enum):
    """Write acknowledgement level requested from the cluster."""

    ALL = "all"
    ANY = "any"
    ONE = "one"
    QUORUM = "quorum"

    @classmethod
    def coerce(cls, value: Any) -> "ConsistencyLevel":
        """Accept either a ConsistencyLevel or its string value."""
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())
