"""Tests for FlushScheduler."""

from __future__ import annotations

import threading
import time

import pytest

from tsbatch.base import TimeUnit
from tsbatch.batching.base import BatchConfig
from tsbatch.batching.scheduler import FlushReason, FlushScheduler


def wait_for(predicate, timeout: float = 2.0) -> bool:
    """Poll until predicate() is true or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class TestBatchConfig:
    """Tests for BatchConfig."""

    def test_interval_seconds(self) -> None:
        config = BatchConfig(actions=10, flush_interval=250, flush_unit=TimeUnit.MILLISECONDS)
        assert config.flush_interval_seconds == 0.25

    @pytest.mark.parametrize(
        "kwargs",
        [{"actions": 0}, {"actions": -1}, {"flush_interval": 0}, {"flush_interval": -5}],
    )
    def test_validate_rejects(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            BatchConfig(**kwargs).validate()


class TestCountTrigger:
    """Tests for the count trigger."""

    def test_fires_at_threshold(self) -> None:
        reasons: list[FlushReason] = []
        scheduler = FlushScheduler(reasons.append, BatchConfig(actions=3, flush_interval=60, flush_unit=TimeUnit.SECONDS))

        assert scheduler.notify(1) is False
        assert scheduler.notify(2) is False
        assert scheduler.notify(3) is True
        assert reasons == [FlushReason.COUNT]

    def test_runs_on_calling_thread_and_propagates(self) -> None:
        def flush(reason: FlushReason) -> None:
            raise RuntimeError("boom")

        scheduler = FlushScheduler(flush, BatchConfig(actions=1, flush_interval=60, flush_unit=TimeUnit.SECONDS))
        with pytest.raises(RuntimeError, match="boom"):
            scheduler.notify(1)


class TestTimerTrigger:
    """Tests for the periodic timer."""

    def test_fires_periodically(self) -> None:
        reasons: list[FlushReason] = []
        scheduler = FlushScheduler(
            reasons.append,
            BatchConfig(actions=100, flush_interval=20, flush_unit=TimeUnit.MILLISECONDS),
        )
        scheduler.start()
        try:
            assert wait_for(lambda: len(reasons) >= 3)
        finally:
            scheduler.stop()

        assert set(reasons) == {FlushReason.TIMER}
        assert scheduler.timer_fires >= 3

    def test_no_fires_after_stop(self) -> None:
        calls: list[FlushReason] = []
        scheduler = FlushScheduler(
            calls.append,
            BatchConfig(actions=100, flush_interval=10, flush_unit=TimeUnit.MILLISECONDS),
        )
        scheduler.start()
        assert wait_for(lambda: len(calls) >= 1)
        scheduler.stop()
        count = len(calls)

        time.sleep(0.1)
        assert len(calls) == count
        assert not scheduler.is_running

    def test_keeps_running_after_flush_error(self) -> None:
        calls: list[FlushReason] = []

        def flush(reason: FlushReason) -> None:
            calls.append(reason)
            if len(calls) == 1:
                raise RuntimeError("transport down")

        scheduler = FlushScheduler(
            flush, BatchConfig(actions=100, flush_interval=10, flush_unit=TimeUnit.MILLISECONDS)
        )
        scheduler.start()
        try:
            assert wait_for(lambda: len(calls) >= 3)
        finally:
            scheduler.stop()

    def test_stop_waits_for_running_flush(self) -> None:
        started = threading.Event()
        finished = threading.Event()

        def flush(reason: FlushReason) -> None:
            started.set()
            time.sleep(0.1)
            finished.set()

        scheduler = FlushScheduler(
            flush, BatchConfig(actions=100, flush_interval=10, flush_unit=TimeUnit.MILLISECONDS)
        )
        scheduler.start()
        assert started.wait(2.0)
        scheduler.stop()

        assert finished.is_set()

    def test_start_twice_is_noop(self) -> None:
        scheduler = FlushScheduler(
            lambda reason: None,
            BatchConfig(actions=1, flush_interval=1, flush_unit=TimeUnit.SECONDS),
        )
        scheduler.start()
        thread_count = threading.active_count()
        scheduler.start()
        try:
            assert threading.active_count() == thread_count
            assert scheduler.is_running
        finally:
            scheduler.stop()

    def test_stop_without_start(self) -> None:
        scheduler = FlushScheduler(lambda reason: None, BatchConfig())
        scheduler.stop()
        assert not scheduler.is_running
