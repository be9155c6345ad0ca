"""Point: a single timestamped measurement.

Points are immutable. Tags and fields are copied into read-only mappings
when the point is created, so a point handed to the batch queue cannot be
changed by the producer afterwards.

Example:
    >>> p = Point("cpu", fields={"idle": 90.5}, tags={"host": "a"}, time=1)
    >>> p.line_protocol()
    'cpu,host=a idle=90.5 1'
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping, Union

from tsbatch.base import TimeUnit

FieldValue = Union[str, int, float, bool]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_MEASUREMENT_ESCAPES = str.maketrans({",": r"\,", " ": r"\ "})
_KEY_ESCAPES = str.maketrans({",": r"\,", "=": r"\=", " ": r"\ "})


def escape_measurement(value: str) -> str:
    """Escape a measurement name."""
    return value.translate(_MEASUREMENT_ESCAPES)


def escape_key(value: str) -> str:
    """Escape a tag key, tag value or field key."""
    return value.translate(_KEY_ESCAPES)


def format_field_value(value: FieldValue) -> str:
    """Render a field value in line-protocol syntax.

    Raises:
        ValueError: If the value type is not supported.
    """
    # bool must be tested before int
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"{value}i"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Field value {value!r} cannot be written")
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise ValueError(f"Unsupported field type: {type(value).__name__}")


def datetime_to_nanos(value: datetime) -> int:
    """Convert a datetime to integer nanoseconds since the epoch.

    Naive datetimes are treated as UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return (
        delta.days * 86_400_000_000_000
        + delta.seconds * 1_000_000_000
        + delta.microseconds * 1_000
    )


@dataclass(frozen=True)
class Point:
    """One measurement with its tags, fields and timestamp.

    Attributes:
        measurement: Measurement name.
        fields: Field values (at least one).
        tags: Tag values; None values are dropped.
        time: Timestamp in ``precision`` units, a datetime, or None to let
            the server assign the time.
        precision: Unit of an integer ``time``.
    """

    measurement: str
    fields: Mapping[str, FieldValue]
    tags: Mapping[str, str] = field(default_factory=dict)
    time: int | datetime | None = None
    precision: TimeUnit = TimeUnit.NANOSECONDS

    def __post_init__(self) -> None:
        if not self.measurement:
            raise ValueError("measurement must not be empty")
        if not self.fields:
            raise ValueError(f"Point '{self.measurement}' must have at least one field")
        for key, value in self.fields.items():
            if value is None:
                raise ValueError(f"Field '{key}' of '{self.measurement}' is None")
            if not isinstance(value, (str, int, float, bool)):
                raise ValueError(
                    f"Field '{key}' has unsupported type {type(value).__name__}"
                )
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"Field '{key}' of '{self.measurement}' is {value!r}")
        if self.time is not None and not isinstance(self.time, (int, datetime)):
            raise ValueError(f"Unsupported time type: {type(self.time).__name__}")

        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(
            self,
            "tags",
            MappingProxyType(
                {str(k): str(v) for k, v in self.tags.items() if v is not None}
            ),
        )

    @property
    def time_nanos(self) -> int | None:
        """Timestamp as nanoseconds since the epoch, or None."""
        if self.time is None:
            return None
        if isinstance(self.time, datetime):
            return datetime_to_nanos(self.time)
        return self.time * self.precision.nanos

    def with_tags(self, tags: Mapping[str, str]) -> "Point":
        """Return a copy with ``tags`` added where not already present."""
        merged = dict(tags)
        merged.update(self.tags)
        return replace(self, tags=merged)

    def line_protocol(self, precision: TimeUnit = TimeUnit.NANOSECONDS) -> str:
        """Render this point as one line-protocol line.

        Args:
            precision: Precision the timestamp is written in.
        """
        parts = [escape_measurement(self.measurement)]
        for key in sorted(self.tags):
            value = self.tags[key]
            if value == "":
                continue
            parts.append(f",{escape_key(key)}={escape_key(value)}")

        field_set = ",".join(
            f"{escape_key(key)}={format_field_value(self.fields[key])}"
            for key in sorted(self.fields)
        )
        line = f"{''.join(parts)} {field_set}"

        nanos = self.time_nanos
        if nanos is not None:
            line = f"{line} {nanos // precision.nanos}"
        return line

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "measurement": self.measurement,
            "tags": dict(self.tags),
            "fields": dict(self.fields),
            "time": self.time.isoformat() if isinstance(self.time, datetime) else self.time,
            "precision": self.precision.name,
        }
