"""Unit tests for in-process metrics."""

from kvcache.monitoring.metrics import CacheMetrics, Counter, Histogram


def test_counter_labels():
    """Test that counters accumulate per label set."""
    counter = Counter("c", "help")
    counter.inc(result="hit")
    counter.inc(2, result="hit")
    counter.inc(result="miss")

    assert counter.get(result="hit") == 3
    assert counter.get(result="miss") == 1
    assert counter.get(result="error") == 0


def test_histogram_buckets_and_overflow():
    """Test that observations above the last bucket land in the overflow slot."""
    histogram = Histogram("h", "help", buckets=[0.1, 1.0])
    histogram.observe(0.05, op="get")
    histogram.observe(0.5, op="get")
    histogram.observe(5.0, op="get")

    assert histogram.counts[(("op", "get"),)] == [1, 1, 1]
    assert histogram.count(op="get") == 3
    assert histogram.count(op="set") == 0


def test_cache_metrics_are_independent():
    """Test that each CacheMetrics instance keeps its own counters."""
    first = CacheMetrics()
    second = CacheMetrics()
    first.requests.inc(result="hit")

    assert second.requests.get(result="hit") == 0
    assert first.hit_ratio() == 1.0
    assert second.hit_ratio() == 0.0
