"""Tests for drove.stats — counters and collectors."""

from __future__ import annotations

import threading

from drove.stats import LoaderStats, NoOpStatisticsCollector, SimpleStatisticsCollector


class TestLoaderStats:
    def test_empty_rates(self):
        stats = LoaderStats()
        assert stats.cache_hit_rate == 0.0
        assert stats.avg_batch_size == 0.0

    def test_cache_hit_rate_counts_both_tiers(self):
        stats = LoaderStats(loads=10, cache_hits=3, value_cache_hits=2)
        assert stats.cache_hit_rate == 50.0

    def test_avg_batch_size(self):
        assert LoaderStats(batch_invocations=2, batch_loads=7).avg_batch_size == 3.5

    def test_to_dict(self):
        d = LoaderStats(loads=4, cache_hits=1, batch_invocations=1, batch_loads=3).to_dict()
        assert d["loads"] == 4
        assert d["cache_hit_rate"] == "25.0%"
        assert d["avg_batch_size"] == "3.0"

    def test_add(self):
        total = LoaderStats(loads=1, batch_errors=1) + LoaderStats(loads=2, load_errors=3)
        assert total.loads == 3
        assert total.batch_errors == 1
        assert total.load_errors == 3


class TestSimpleStatisticsCollector:
    def test_counts(self):
        collector = SimpleStatisticsCollector()
        collector.increment_load_count()
        collector.increment_load_count()
        collector.increment_cache_hit_count()
        collector.increment_value_cache_hit_count(3)
        collector.increment_batch_load_count(5)
        collector.increment_load_error_count()
        collector.increment_batch_error_count()

        stats = collector.get_statistics()
        assert stats.loads == 2
        assert stats.cache_hits == 1
        assert stats.value_cache_hits == 3
        assert stats.batch_invocations == 1
        assert stats.batch_loads == 5
        assert stats.load_errors == 1
        assert stats.batch_errors == 1

    def test_returns_snapshot(self):
        collector = SimpleStatisticsCollector()
        snapshot = collector.get_statistics()
        collector.increment_load_count()
        assert snapshot.loads == 0

    def test_thread_safe(self):
        collector = SimpleStatisticsCollector()

        def worker():
            for _ in range(1000):
                collector.increment_load_count()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert collector.get_statistics().loads == 8000


class TestNoOpStatisticsCollector:
    def test_discards_everything(self):
        collector = NoOpStatisticsCollector()
        collector.increment_load_count()
        collector.increment_batch_load_count(10)
        assert collector.get_statistics() == LoaderStats()
