"""
Unit tests for the metric series store.

Covers:
- Ring-buffer capacity and FIFO eviction
- Snapshot ordering and copy semantics
- Non-finite sample rejection
- Time-window selection and retention pruning
- Concurrent writer/reader safety
"""

import math
import threading

import pytest

from perfwatch.store import MetricSample, MetricSeriesStore


class TestRingBuffer:
    """Capacity and eviction."""

    def test_size_never_exceeds_capacity(self):
        store = MetricSeriesStore(history_size=10)
        for i in range(1, 26):
            store.ingest("cpu_percent", float(i), timestamp=float(i))

        assert store.size("cpu_percent") == 10

    def test_oldest_retained_is_k_minus_n_plus_one(self):
        store = MetricSeriesStore(history_size=10)
        k = 25
        for i in range(1, k + 1):
            store.ingest("cpu_percent", float(i), timestamp=float(i))

        samples = store.snapshot("cpu_percent", 10)
        assert samples[0].timestamp == float(k - 10 + 1)
        assert samples[-1].timestamp == float(k)

    def test_series_created_on_first_write(self):
        store = MetricSeriesStore()
        assert not store.has_metric("frame_rate")

        store.ingest("frame_rate", 60.0, 1.0)

        assert store.has_metric("frame_rate")
        assert store.metrics() == ["frame_rate"]

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            MetricSeriesStore(history_size=0)


class TestSnapshot:
    """Snapshot reads."""

    @pytest.fixture
    def store(self):
        store = MetricSeriesStore(history_size=100)
        for i in range(5):
            store.ingest("memory_mb", 100.0 + i, timestamp=float(i))
        return store

    def test_returns_most_recent_in_order(self, store):
        samples = store.snapshot("memory_mb", 3)
        assert [s.value for s in samples] == [102.0, 103.0, 104.0]

    def test_returns_fewer_when_history_short(self, store):
        assert len(store.snapshot("memory_mb", 50)) == 5

    def test_unknown_metric_is_empty(self, store):
        assert store.snapshot("network_latency_ms", 10) == []

    def test_non_positive_window_is_empty(self, store):
        assert store.snapshot("memory_mb", 0) == []
        assert store.snapshot("memory_mb", -3) == []

    def test_snapshot_is_a_copy(self, store):
        samples = store.snapshot("memory_mb", 5)
        samples.clear()

        assert store.size("memory_mb") == 5

    def test_samples_are_immutable(self, store):
        sample = store.latest("memory_mb")
        with pytest.raises(AttributeError):
            sample.value = 0.0

    def test_latest_and_current_values(self, store):
        store.ingest("frame_rate", 58.0, 10.0)

        assert store.latest("memory_mb") == MetricSample("memory_mb", 104.0, 4.0)
        assert store.latest("unknown") is None
        assert store.current_values() == {"memory_mb": 104.0, "frame_rate": 58.0}


class TestIngestValidation:
    """Bad readings are rejected, not stored."""

    @pytest.mark.parametrize("value", [math.nan, math.inf, -math.inf])
    def test_non_finite_rejected(self, value):
        store = MetricSeriesStore()

        assert store.ingest("cpu_percent", value, 1.0) is False
        assert store.size("cpu_percent") == 0

    @pytest.mark.parametrize("value", [None, "n/a", [1.0]])
    def test_non_numeric_rejected(self, value):
        store = MetricSeriesStore()

        assert store.ingest("cpu_percent", value, 1.0) is False
        assert not store.has_metric("cpu_percent")

    def test_finite_accepted(self):
        store = MetricSeriesStore()

        assert store.ingest("cpu_percent", 0, 1.0) is True
        assert store.latest("cpu_percent").value == 0.0


class TestWindowsAndPruning:
    """Time-based selection and retention."""

    @pytest.fixture
    def store(self):
        store = MetricSeriesStore()
        for t in range(10):
            store.ingest("frame_rate", 60.0, timestamp=float(t))
        return store

    def test_window_since(self, store):
        samples = store.window_since("frame_rate", 7.0)
        assert [s.timestamp for s in samples] == [7.0, 8.0, 9.0]

    def test_window_since_unknown(self, store):
        assert store.window_since("cpu_percent", 0.0) == []

    def test_prune_drops_old_samples(self, store):
        removed = store.prune(before=6.0)

        assert removed == 6
        assert store.size("frame_rate") == 4

    def test_emptied_series_stays_known(self, store):
        store.prune(before=100.0)

        assert store.has_metric("frame_rate")
        assert store.snapshot("frame_rate", 10) == []
        assert "frame_rate" not in store.current_values()


class TestConcurrency:
    """One writer, many readers."""

    def test_concurrent_ingest_and_snapshot(self):
        store = MetricSeriesStore(history_size=50)
        errors = []
        done = threading.Event()

        def writer():
            for i in range(2000):
                store.ingest("cpu_percent", float(i), float(i))
            done.set()

        def reader():
            try:
                while not done.is_set():
                    samples = store.snapshot("cpu_percent", 50)
                    assert len(samples) <= 50
                    timestamps = [s.timestamp for s in samples]
                    assert timestamps == sorted(timestamps)
            except AssertionError as e:
                errors.append(e)

        readers = [threading.Thread(target=reader) for _ in range(4)]
        for t in readers:
            t.start()
        writer()
        for t in readers:
            t.join()

        assert errors == []
        assert store.size("cpu_percent") == 50
        assert store.latest("cpu_percent").value == 1999.0
