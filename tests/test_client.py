"""Tests for TimeSeriesClient."""

from __future__ import annotations

import logging
import threading
import time

import polars as pl
import pytest

from tsbatch.base import BatchWriteError, ConsistencyLevel, TimeUnit, TransportError
from tsbatch.client import TimeSeriesClient
from tsbatch.config import ClientConfig
from tsbatch.log import LogLevel
from tsbatch.point import Point
from tsbatch.transport import Credentials, HttpTransport

from conftest import RecordingTransport, make_point


class TestUnbatchedWrites:
    """Writes while batching is disabled."""

    def test_single_write_sent_immediately(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.write("db", "rp", make_point(1))

        assert len(transport.writes) == 1
        sent = transport.writes[0]
        assert (sent.database, sent.retention_policy) == ("db", "rp")
        assert sent.precision == "ns"
        assert sent.lines == ["cpu value=1i 1"]

        stats = client.metrics.snapshot()
        assert stats.writes_total == 1
        assert stats.writes_unbatched == 1
        assert stats.points_batched == 1

    def test_default_retention_policy(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.write("db", None, make_point(1))
        client.with_default_retention_policy("autogen").write("db", None, make_point(2))

        assert [w.retention_policy for w in transport.writes] == ["default", "autogen"]

    def test_empty_database_rejected(self, client: TimeSeriesClient) -> None:
        with pytest.raises(ValueError):
            client.write("", "rp", make_point(1))
        assert client.metrics.writes_total.value == 0
        assert client.metrics.writes_unbatched.value == 0

    def test_transport_error_propagates(self) -> None:
        transport = RecordingTransport(fail_databases={"missing"})
        client = TimeSeriesClient(transport)

        with pytest.raises(TransportError) as exc_info:
            client.write("missing", "rp", make_point(1))

        assert exc_info.value.status_code == 404
        assert client.metrics.writes_unbatched.value == 0

    def test_write_batch_empty_sends_nothing(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        from tsbatch.batch import BatchPoints

        client.write_batch(BatchPoints("db", "rp"))
        assert transport.writes == []

    def test_write_batch_passes_consistency_and_precision(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        from tsbatch.batch import BatchPoints

        batch = BatchPoints(
            "db", "rp", consistency=ConsistencyLevel.ALL, precision=TimeUnit.SECONDS
        ).point(make_point(1))
        client.write_batch(batch)

        sent = transport.writes[0]
        assert sent.consistency is ConsistencyLevel.ALL
        assert sent.precision == "s"
        assert client.metrics.points_batched.value == 1


class TestBatchedWrites:
    """Writes while batching is enabled."""

    def test_count_threshold_sends_one_request(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=3, flush_interval=60, unit=TimeUnit.SECONDS)
        for i in (1, 2, 3):
            client.write("db", "rp", make_point(i))

        assert len(transport.writes) == 1
        assert transport.lines == ["cpu value=1i 1", "cpu value=2i 2", "cpu value=3i 3"]
        assert client.pending == 0

    def test_below_threshold_returns_without_sending(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("db", "rp", make_point(1))

        assert transport.writes == []
        assert client.pending == 1
        assert client.metrics.writes_unbatched.value == 0

    def test_groups_by_database_and_retention_policy(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("a", "x", make_point(1))
        client.write("b", "x", make_point(2))
        client.write("a", "x", make_point(3))
        client.write("a", None, make_point(4))

        assert client.flush() == 4
        assert [(w.database, w.retention_policy, len(w.lines)) for w in transport.writes] == [
            ("a", "x", 2),
            ("b", "x", 1),
            ("a", "default", 1),
        ]

    def test_timer_flushes_partial_batch(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=1000, flush_interval=20, unit=TimeUnit.MILLISECONDS)
        client.write("db", "rp", make_point(1))

        deadline = time.monotonic() + 2.0
        while not transport.writes and time.monotonic() < deadline:
            time.sleep(0.005)

        assert transport.lines == ["cpu value=1i 1"]

    def test_flush_when_disabled_is_noop(self, client: TimeSeriesClient) -> None:
        assert client.flush() == 0

    def test_flush_failure_raises_batch_write_error(self) -> None:
        transport = RecordingTransport(fail_databases={"bad"})
        client = TimeSeriesClient(transport)
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("bad", "rp", make_point(1))
        client.write("good", "rp", make_point(2))

        with pytest.raises(BatchWriteError) as exc_info:
            client.flush()

        assert exc_info.value.dropped_points == 1
        assert transport.lines == ["cpu value=2i 2"]
        assert client.flush_metrics.points_dropped == 1
        client.close()

    def test_non_finite_point_never_reaches_queue(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        """A bad value fails on construction, so queued neighbours still go out."""
        client.enable_batch(actions=2, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("db", None, make_point(1))

        with pytest.raises(ValueError):
            client.write("db", None, Point("cpu", fields={"value": float("nan")}))

        client.write("db", None, make_point(2))

        assert transport.lines == ["cpu value=1i 1", "cpu value=2i 2"]
        assert client.flush_metrics.points_dropped == 0

    def test_concurrent_producers_lose_nothing(self) -> None:
        transport = RecordingTransport(delay=0.001)
        client = TimeSeriesClient(transport)
        client.enable_batch(actions=25, flush_interval=5, unit=TimeUnit.MILLISECONDS)
        producers = 8
        per_producer = 250

        def produce(worker: int) -> None:
            for i in range(per_producer):
                client.write("db", "rp", make_point(worker * per_producer + i))

        threads = [threading.Thread(target=produce, args=(w,)) for w in range(producers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        client.disable_batch()

        lines = transport.lines
        assert transport.max_in_flight == 1
        assert len(lines) == producers * per_producer
        assert len(set(lines)) == producers * per_producer
        assert client.metrics.writes_total.value == producers * per_producer
        assert client.metrics.points_batched.value == producers * per_producer


class TestEnableDisable:
    """Tests for enable_batch and disable_batch."""

    @pytest.mark.parametrize(
        ("actions", "interval"),
        [(0, 100), (-1, 100), (10, 0), (10, -5)],
    )
    def test_enable_validates(
        self, client: TimeSeriesClient, actions: int, interval: int
    ) -> None:
        with pytest.raises(ValueError):
            client.enable_batch(actions, interval)
        assert not client.is_batch_enabled

    def test_enable_twice_keeps_first_config(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=2, flush_interval=60, unit=TimeUnit.SECONDS)
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)

        client.write("db", "rp", make_point(1))
        client.write("db", "rp", make_point(2))

        assert len(transport.writes) == 1

    def test_disable_flushes_pending_in_one_pass(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        for i in range(7):
            client.write("db", "rp", make_point(i))

        client.disable_batch()

        assert len(transport.writes) == 1
        assert len(transport.lines) == 7
        assert not client.is_batch_enabled
        assert client.flush_metrics.flush_count == 1
        assert client.flush_metrics.points_written == 7

    def test_no_timer_flush_after_disable(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=10, unit=TimeUnit.MILLISECONDS)
        client.write("db", "rp", make_point(1))
        client.disable_batch()
        sent = len(transport.writes)

        time.sleep(0.08)
        assert len(transport.writes) == sent

    def test_writes_after_disable_are_synchronous(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.disable_batch()
        client.write("db", "rp", make_point(1))

        assert len(transport.writes) == 1
        assert client.metrics.writes_unbatched.value == 1

    def test_disable_when_not_enabled(self, client: TimeSeriesClient) -> None:
        assert client.disable_batch() is client

    def test_disable_propagates_final_flush_error(self) -> None:
        transport = RecordingTransport(fail_databases={"bad"})
        client = TimeSeriesClient(transport)
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("bad", "rp", make_point(1))

        with pytest.raises(BatchWriteError):
            client.disable_batch()
        assert not client.is_batch_enabled

    def test_disable_logs_counters(
        self, transport: RecordingTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        client = TimeSeriesClient(transport).set_log_level(LogLevel.BASIC)
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        client.write("db", "rp", make_point(1))

        with caplog.at_level(logging.INFO, logger="tsbatch"):
            client.disable_batch()

        assert "total writes: 1 unbatched: 0 batched points: 1" in caplog.text

    def test_disable_silent_at_log_level_none(
        self, client: TimeSeriesClient, caplog: pytest.LogCaptureFixture
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        with caplog.at_level(logging.INFO, logger="tsbatch"):
            client.disable_batch()
        assert "total writes" not in caplog.text

    def test_context_manager_flushes(self, transport: RecordingTransport) -> None:
        with TimeSeriesClient(transport) as client:
            client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
            client.write("db", "rp", make_point(1))
            assert transport.writes == []

        assert transport.lines == ["cpu value=1i 1"]


class TestConfiguration:
    """Tests for client configuration."""

    @pytest.mark.parametrize("value", [None, ""])
    def test_retention_policy_must_be_set(self, client: TimeSeriesClient, value) -> None:
        with pytest.raises(ValueError):
            client.with_default_retention_policy(value)
        assert client.default_retention_policy == "default"

    def test_from_config_enables_batching(self, transport: RecordingTransport) -> None:
        config = ClientConfig(
            batch_enabled=True,
            batch_actions=2,
            batch_flush_interval=60,
            batch_flush_unit=TimeUnit.SECONDS,
            default_retention_policy="autogen",
        )
        client = TimeSeriesClient.from_config(config, transport)
        try:
            assert client.is_batch_enabled
            client.write("db", None, make_point(1))
            client.write("db", None, make_point(2))
            assert [w.retention_policy for w in transport.writes] == ["autogen"]
        finally:
            client.close()

    def test_from_config_builds_http_transport(self) -> None:
        config = ClientConfig(url="http://tsdb:8086", log_level=LogLevel.HEADERS)
        client = TimeSeriesClient.from_config(config)

        assert isinstance(client.transport, HttpTransport)
        assert client.transport.url == "http://tsdb:8086"
        assert client.transport.log_level is LogLevel.HEADERS

    def test_set_log_level_from_string(self) -> None:
        transport = HttpTransport("http://localhost:8086", Credentials("root", "root"))
        client = TimeSeriesClient(transport).set_log_level("full")
        assert transport.log_level is LogLevel.FULL
        assert client.get_stats()["batch_enabled"] is False


class TestServerOperations:
    """Tests for the query-based helpers."""

    def test_ping_and_version(self, client: TimeSeriesClient) -> None:
        assert client.ping().version == "1.8.10"
        assert client.version() == "1.8.10"

    def test_create_database(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.create_database("metrics")
        assert transport.queries == [("CREATE DATABASE metrics", None, None, "POST")]

    @pytest.mark.parametrize("name", ["", "bad-name"])
    def test_create_database_rejects_name(self, client: TimeSeriesClient, name: str) -> None:
        with pytest.raises(ValueError):
            client.create_database(name)

    def test_delete_database(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.delete_database("metrics")
        assert transport.queries == [("DROP DATABASE metrics", None, None, "POST")]

    def test_describe_databases(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        transport.query_result = {
            "results": [
                {"series": [{"name": "databases", "columns": ["name"], "values": [["_internal"], ["metrics"]]}]}
            ]
        }
        assert client.describe_databases() == ["_internal", "metrics"]

    def test_describe_databases_empty_response(self, client: TimeSeriesClient) -> None:
        assert client.describe_databases() == []

    def test_query_epoch(self, client: TimeSeriesClient, transport: RecordingTransport) -> None:
        client.query("SELECT * FROM cpu", "db", TimeUnit.MILLISECONDS)
        assert transport.queries == [("SELECT * FROM cpu", "db", "ms", "GET")]


class TestWriteFrame:
    """Tests for write_frame."""

    def test_unbatched_frame_is_one_request(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        frame = pl.DataFrame({"host": ["a", "b"], "value": [1.5, 2.5], "ts": [1, 2]})

        count = client.write_frame(
            "db", None, frame, "cpu", tag_columns=["host"], time_column="ts"
        )

        assert count == 2
        assert len(transport.writes) == 1
        assert transport.lines == ["cpu,host=a value=1.5 1", "cpu,host=b value=2.5 2"]

    def test_batched_frame_goes_through_queue(
        self, client: TimeSeriesClient, transport: RecordingTransport
    ) -> None:
        client.enable_batch(actions=100, flush_interval=60, unit=TimeUnit.SECONDS)
        frame = pl.DataFrame({"value": [1, 2, 3]})

        assert client.write_frame("db", "rp", frame, "m") == 3
        assert client.pending == 3
        assert client.metrics.writes_total.value == 3

        client.flush()
        assert transport.lines == ["m value=1i", "m value=2i", "m value=3i"]
