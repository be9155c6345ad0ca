"""Build points from a polars DataFrame."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime
from typing import Sequence

import polars as pl

from tsbatch.base import TimeUnit
from tsbatch.point import Point

logger = logging.getLogger(__name__)


def points_from_frame(
    frame: pl.DataFrame,
    measurement: str,
    *,
    tag_columns: Sequence[str] = (),
    field_columns: Sequence[str] | None = None,
    time_column: str | None = None,
    precision: TimeUnit = TimeUnit.NANOSECONDS,
) -> list[Point]:
    """Convert each row of ``frame`` to a Point.

    Args:
        frame: Source data.
        measurement: Measurement name of every point.
        tag_columns: Columns written as tags.
        field_columns: Columns written as fields. Defaults to every column
            that is neither a tag nor the time column.
        time_column: Column holding the timestamp (datetime, or integers in
            ``precision``). Without it the server assigns the time.
        precision: Unit of an integer time column.

    Returns:
        One point per row that has at least one non-null, finite field.

    Raises:
        ValueError: If a named column does not exist.
    """
    columns = set(frame.columns)
    named = list(tag_columns) + list(field_columns or []) + ([time_column] if time_column else [])
    missing = [name for name in named if name not in columns]
    if missing:
        raise ValueError(f"Columns not found: {', '.join(missing)}")

    if field_columns is None:
        excluded = set(tag_columns) | {time_column}
        field_columns = [name for name in frame.columns if name not in excluded]
    if not field_columns:
        raise ValueError("No field columns to write")

    points: list[Point] = []
    skipped = 0
    for row in frame.iter_rows(named=True):
        fields = {name: row[name] for name in field_columns if not _is_missing(row[name])}
        if not fields:
            skipped += 1
            continue
        tags = {name: str(row[name]) for name in tag_columns if row[name] is not None}
        points.append(
            Point(
                measurement,
                fields=fields,
                tags=tags,
                time=_row_time(row, time_column),
                precision=precision,
            )
        )

    if skipped:
        logger.debug("Skipped %d row(s) without field values", skipped)
    return points


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, float) and not math.isfinite(value))


def _row_time(row: dict, time_column: str | None) -> int | datetime | None:
    if time_column is None:
        return None
    value = row[time_column]
    if value is None or isinstance(value, (int, datetime)):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    raise ValueError(f"Unsupported time value in '{time_column}': {value!r}")


def read_frame(path: str) -> pl.DataFrame:
    """Read a CSV, Parquet or NDJSON file by extension."""
    lower = path.lower()
    if lower.endswith(".parquet"):
        frame = pl.read_parquet(path)
    elif lower.endswith((".ndjson", ".jsonl")):
        frame = pl.read_ndjson(path)
    elif lower.endswith(".csv"):
        frame = pl.read_csv(path, try_parse_dates=True)
    else:
        raise ValueError(f"Unsupported file format: {path}")
    return frame
