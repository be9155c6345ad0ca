"""tsbatch: buffered line-protocol writes for time-series databases.

Producers on any thread call ``TimeSeriesClient.write``. With batching
enabled, points are queued and flushed when the queue reaches a size
threshold or a timer fires, whichever comes first; disabling batching or
closing the client flushes whatever is left.

Example:
    >>> from tsbatch import Point, TimeUnit, connect
    >>>
    >>> client = connect("http://localhost:8086", "root", "root")
    >>> client.enable_batch(actions=1000, flush_interval=1, unit=TimeUnit.SECONDS)
    >>> client.write("metrics", None, Point("cpu", fields={"load": 0.42}, tags={"host": "a"}))
    >>> client.close()
"""

from tsbatch.base import (
    BatchWriteError,
    ConfigError,
    ConfigValidationError,
    ConsistencyLevel,
    TimeUnit,
    TransportConnectionError,
    TransportError,
    TsBatchError,
    to_time_precision,
)
from tsbatch.batch import BatchEntry, BatchPoints
from tsbatch.batching import BatchConfig, FlushMetrics
from tsbatch.client import TimeSeriesClient
from tsbatch.config import ClientConfig
from tsbatch.log import LogLevel, configure_logging
from tsbatch.metrics import WriteMetrics
from tsbatch.point import Point
from tsbatch.transport import Credentials, HttpTransport, Pong, Transport

__version__ = "0.1.0"


def connect(
    url: str,
    username: str,
    password: str,
    *,
    timeout: float = 30.0,
    default_retention_policy: str = "default",
) -> TimeSeriesClient:
    """Create a client talking HTTP to ``url``.

    Args:
        url: Base URL of the server, e.g. ``http://localhost:8086``.
        username: User to connect as.
        password: Password of that user.
        timeout: Socket timeout per request in seconds.
        default_retention_policy: Used when a write names none.
    """
    transport = HttpTransport(url, Credentials(username, password), timeout=timeout)
    return TimeSeriesClient(transport, default_retention_policy=default_retention_policy)


__all__ = [
    # Factory
    "connect",
    "TimeSeriesClient",
    "ClientConfig",
    # Data model
    "Point",
    "BatchEntry",
    "BatchPoints",
    "ConsistencyLevel",
    "TimeUnit",
    "to_time_precision",
    # Batching
    "BatchConfig",
    "FlushMetrics",
    "WriteMetrics",
    # Transport
    "Transport",
    "HttpTransport",
    "Credentials",
    "Pong",
    # Logging
    "LogLevel",
    "configure_logging",
    # Errors
    "TsBatchError",
    "TransportError",
    "TransportConnectionError",
    "BatchWriteError",
    "ConfigError",
    "ConfigValidationError",
]
