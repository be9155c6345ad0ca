"""Shared fixtures for tsbatch tests."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Any

import pytest

from tsbatch.base import ConsistencyLevel, TransportError
from tsbatch.client import TimeSeriesClient
from tsbatch.point import Point
from tsbatch.transport import Pong


@dataclass
class SentWrite:
    """One call to RecordingTransport.write."""

    database: str
    retention_policy: str
    precision: str
    consistency: ConsistencyLevel
    body: str

    @property
    def lines(self) -> list[str]:
        return self.body.split("\n") if self.body else []


@dataclass
class RecordingTransport:
    """In-memory transport that records writes and detects overlapping sends.

    Attributes:
        delay: Seconds each write sleeps while "on the wire".
        fail_databases: Writes to these databases raise TransportError.
    """

    delay: float = 0.0
    fail_databases: set[str] = field(default_factory=set)
    writes: list[SentWrite] = field(default_factory=list)
    queries: list[tuple[str, str | None, str | None, str]] = field(default_factory=list)
    query_result: dict[str, Any] = field(default_factory=dict)
    max_in_flight: int = 0
    _in_flight: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def write(
        self,
        database: str,
        retention_policy: str,
        precision: str,
        consistency: ConsistencyLevel,
        body: str,
    ) -> None:
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        try:
            if self.delay:
                time.sleep(self.delay)
            if database in self.fail_databases:
                raise TransportError(f"database not found: {database}", 404)
            with self._lock:
                self.writes.append(
                    SentWrite(database, retention_policy, precision, consistency, body)
                )
        finally:
            with self._lock:
                self._in_flight -= 1

    def ping(self) -> Pong:
        return Pong(version="1.8.10", response_time_ms=1.0)

    def query(
        self,
        command: str,
        database: str | None = None,
        epoch: str | None = None,
        method: str = "GET",
    ) -> dict[str, Any]:
        self.queries.append((command, database, epoch, method))
        return self.query_result

    @property
    def lines(self) -> list[str]:
        """Every line sent, in send order."""
        with self._lock:
            return [line for sent in self.writes for line in sent.lines]


def make_point(value: int, measurement: str = "cpu", **tags: str) -> Point:
    """Point with a single integer field and a fixed timestamp."""
    return Point(measurement, fields={"value": value}, tags=tags, time=value)


@pytest.fixture
def transport() -> RecordingTransport:
    """Create a recording transport."""
    return RecordingTransport()


@pytest.fixture
def client(transport: RecordingTransport):
    """Create a client on the recording transport; closed after the test."""
    client = TimeSeriesClient(transport)
    yield client
    client.close()
