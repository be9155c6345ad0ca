"""Client for writing points to a time-series database.

``TimeSeriesClient`` is the entry point producers call. Each single-point
``write`` is either sent right away or, when batching is enabled, queued
and flushed later by the batching engine.

Example:
    >>> from tsbatch import connect, Point, TimeUnit
    >>>
    >>> with connect("http://localhost:8086", "root", "root") as client:
    ...     client.enable_batch(actions=2000, flush_interval=100, unit=TimeUnit.MILLISECONDS)
    ...     for value in readings:
    ...         client.write("metrics", None, Point("temp", fields={"value": value}))
    ... # leaving the block flushes everything still queued
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Sequence

from tsbatch.base import ConsistencyLevel, TimeUnit, to_time_precision
from tsbatch.batch import BatchEntry, BatchPoints
from tsbatch.batching import BatchConfig, BatchProcessor, FlushMetrics
from tsbatch.log import LogLevel
from tsbatch.metrics import WriteMetrics
from tsbatch.point import Point
from tsbatch.transport import Credentials, HttpTransport, Pong, Transport

if TYPE_CHECKING:
    import polars as pl

    from tsbatch.config import ClientConfig

logger = logging.getLogger(__name__)


class TimeSeriesClient:
    """Write façade with optional batching.

    Batching state lives on the instance: the processor is created by
    ``enable_batch`` and closed (with a final flush) by ``disable_batch``
    or ``close``. All methods are safe to call from any thread.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        default_retention_policy: str = "default",
        consistency: ConsistencyLevel = ConsistencyLevel.ONE,
    ) -> None:
        """Initialize client.

        Args:
            transport: Wire collaborator used for every request.
            default_retention_policy: Used when a write names none.
            consistency: Consistency level of batched groups.
        """
        if not default_retention_policy:
            raise ValueError("default_retention_policy must not be empty")
        self._transport = transport
        self._default_retention_policy = default_retention_policy
        self._consistency = ConsistencyLevel.coerce(consistency)
        self._log_level = LogLevel.NONE
        self._metrics = WriteMetrics()

        self._state_lock = threading.Lock()
        self._processor: BatchProcessor | None = None
        self._flush_metrics = FlushMetrics()

    @classmethod
    def from_config(
        cls,
        config: "ClientConfig",
        transport: Transport | None = None,
    ) -> "TimeSeriesClient":
        """Build a client from configuration.

        Args:
            config: Client settings.
            transport: Transport to use instead of an HttpTransport.
        """
        config.validate()
        if transport is None:
            transport = HttpTransport(
                config.url,
                Credentials(config.username, config.password),
                timeout=config.timeout_seconds,
            )
        client = cls(transport, default_retention_policy=config.default_retention_policy)
        client.set_log_level(config.log_level)
        if config.batch_enabled:
            client.enable_batch(
                config.batch_actions, config.batch_flush_interval, config.batch_flush_unit
            )
        return client

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def transport(self) -> Transport:
        """Get the transport."""
        return self._transport

    @property
    def default_retention_policy(self) -> str:
        """Get the default retention policy."""
        return self._default_retention_policy

    @property
    def is_batch_enabled(self) -> bool:
        """Whether writes are currently queued."""
        with self._state_lock:
            return self._processor is not None

    @property
    def metrics(self) -> WriteMetrics:
        """Get the write counters."""
        return self._metrics

    @property
    def flush_metrics(self) -> FlushMetrics:
        """Flush metrics of the current batching session, or of the last one."""
        with self._state_lock:
            if self._processor is not None:
                return self._processor.metrics
            return self._flush_metrics

    @property
    def pending(self) -> int:
        """Number of points waiting in the batch queue."""
        with self._state_lock:
            processor = self._processor
        return processor.pending if processor is not None else 0

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def with_default_retention_policy(self, retention_policy: str) -> "TimeSeriesClient":
        """Set the retention policy used when a write names none.

        Raises:
            ValueError: If ``retention_policy`` is None or empty.
        """
        if retention_policy is None:
            raise ValueError("retention_policy should not be None")
        if not retention_policy:
            raise ValueError("retention_policy should not be empty")
        self._default_retention_policy = retention_policy
        return self

    def set_log_level(self, log_level: LogLevel | str) -> "TimeSeriesClient":
        """Set how much HTTP traffic is logged."""
        if isinstance(log_level, str) and not isinstance(log_level, LogLevel):
            log_level = LogLevel.from_string(log_level)
        self._log_level = log_level
        if isinstance(self._transport, HttpTransport):
            self._transport.log_level = log_level
        return self

    def enable_batch(
        self,
        actions: int,
        flush_interval: float,
        unit: TimeUnit = TimeUnit.MILLISECONDS,
    ) -> "TimeSeriesClient":
        """Queue subsequent writes and flush them in batches.

        A flush happens when ``actions`` points are queued or every
        ``flush_interval`` ``unit``, whichever comes first. Calling this
        while batching is already enabled changes nothing.

        Raises:
            ValueError: If ``actions`` or ``flush_interval`` is not positive.
        """
        config = BatchConfig(actions=actions, flush_interval=flush_interval, flush_unit=unit)
        config.validate()

        with self._state_lock:
            if self._processor is not None:
                return self
            processor = BatchProcessor(self.write_batch, config, consistency=self._consistency)
            processor.start()
            self._processor = processor

        logger.info(
            "Batching enabled (actions=%d, interval=%s %s)",
            actions,
            flush_interval,
            unit.name.lower(),
        )
        return self

    def disable_batch(self) -> "TimeSeriesClient":
        """Send queued points and go back to synchronous writes.

        Blocks until the final flush finishes, including a flush that was
        already running.

        Raises:
            BatchWriteError: If the final flush had failures. Batching is
                disabled regardless.
        """
        with self._state_lock:
            processor = self._processor
            self._processor = None
        if processor is None:
            return self

        try:
            processor.close()
        finally:
            self._flush_metrics = processor.metrics
            if self._log_level is not LogLevel.NONE:
                logger.info("Batching disabled; %s", self._metrics)
        return self

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def write(self, database: str, retention_policy: str | None, point: Point) -> None:
        """Write one point.

        With batching enabled the point is queued and this returns without
        network I/O, unless the queue just reached its threshold, in which
        case this thread runs the flush. Otherwise the point is sent
        synchronously as a one-point batch.

        Args:
            database: Target database.
            retention_policy: Target retention policy, or None for the default.
            point: The point.

        Raises:
            TransportError: On a failed synchronous write.
            BatchWriteError: If a flush run by this call had failures.
        """
        if not database:
            raise ValueError("database must not be empty")
        self._metrics.writes_total.inc()
        retention_policy = self._retention_policy_or_default(retention_policy)

        with self._state_lock:
            processor = self._processor
            if processor is not None:
                pending = processor.offer(BatchEntry(point, database, retention_policy))

        if processor is not None:
            processor.scheduler.notify(pending)
            return

        batch = BatchPoints(database, retention_policy).point(point)
        self.write_batch(batch)
        self._metrics.writes_unbatched.inc()

    def write_batch(self, batch_points: BatchPoints) -> None:
        """Send a batch synchronously.

        Used by callers with pre-built batches and by the flush executor.
        """
        self._metrics.points_batched.inc(len(batch_points))
        if not len(batch_points):
            return
        self._transport.write(
            batch_points.database,
            batch_points.retention_policy,
            to_time_precision(batch_points.precision),
            batch_points.consistency,
            batch_points.line_protocol(),
        )

    def write_frame(
        self,
        database: str,
        retention_policy: str | None,
        frame: "pl.DataFrame",
        measurement: str,
        *,
        tag_columns: Sequence[str] = (),
        field_columns: Sequence[str] | None = None,
        time_column: str | None = None,
        precision: TimeUnit = TimeUnit.NANOSECONDS,
    ) -> int:
        """Write every row of a polars DataFrame as a point.

        With batching enabled each row goes through ``write``; otherwise
        all rows are sent in one synchronous batch.

        Returns:
            Number of points written or queued.
        """
        from tsbatch.frame import points_from_frame

        points = points_from_frame(
            frame,
            measurement,
            tag_columns=tag_columns,
            field_columns=field_columns,
            time_column=time_column,
            precision=precision,
        )
        if self.is_batch_enabled:
            for point in points:
                self.write(database, retention_policy, point)
        elif points:
            batch = BatchPoints(
                database, self._retention_policy_or_default(retention_policy)
            ).extend(points)
            self.write_batch(batch)
        return len(points)

    def flush(self) -> int:
        """Flush the batch queue now; a no-op when batching is disabled.

        Returns:
            Number of points written.
        """
        with self._state_lock:
            processor = self._processor
        if processor is None:
            return 0
        return processor.flush()

    def _retention_policy_or_default(self, retention_policy: str | None) -> str:
        return self._default_retention_policy if retention_policy is None else retention_policy

    # -------------------------------------------------------------------------
    # Server
    # -------------------------------------------------------------------------

    def ping(self) -> Pong:
        """Ping the server."""
        return self._transport.ping()

    def version(self) -> str:
        """Server version reported by ping."""
        return self.ping().version

    def query(
        self,
        command: str,
        database: str | None = None,
        time_unit: TimeUnit | None = None,
    ) -> dict[str, Any]:
        """Run an InfluxQL query and return the decoded response."""
        epoch = to_time_precision(time_unit) if time_unit is not None else None
        return self._transport.query(command, database, epoch)

    def create_database(self, name: str) -> None:
        """Create a database.

        Raises:
            ValueError: If the name contains ``-``.
        """
        if not name or "-" in name:
            raise ValueError(f"Invalid database name {name!r}: must be non-empty without '-'")
        self._transport.query(f"CREATE DATABASE {name}", method="POST")

    def delete_database(self, name: str) -> None:
        """Drop a database."""
        self._transport.query(f"DROP DATABASE {name}", method="POST")

    def describe_databases(self) -> list[str]:
        """List database names."""
        result = self._transport.query("SHOW DATABASES")
        try:
            values = result["results"][0]["series"][0].get("values") or []
        except (KeyError, IndexError, TypeError):
            return []
        return [str(row[0]) for row in values]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics."""
        return {
            "batch_enabled": self.is_batch_enabled,
            "pending": self.pending,
            "writes": self._metrics.to_dict(),
            "flush": self.flush_metrics.to_dict(),
        }

    def close(self) -> None:
        """Disable batching, flushing anything still queued."""
        self.disable_batch()

    def __enter__(self) -> "TimeSeriesClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TimeSeriesClient({self._transport!r}, batch_enabled={self.is_batch_enabled})"
