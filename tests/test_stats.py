"""Unit tests for usage stats."""

from marketlink.core.stats import StatsCollector, format_duration


class TestStatsCollector:
    """Test suite for StatsCollector."""

    def test_counts_calls_and_cache_hits(self, clock):
        stats = StatsCollector(clock=clock)
        stats.record_call("quote", duration=0.2)
        stats.record_call("quote?symbol=AAPL")
        stats.record_cache_hit("quote")
        stats.record_call("history")

        snapshot = stats.snapshot()
        assert snapshot.total_calls == 4
        assert snapshot.cached_calls == 1
        assert snapshot.per_endpoint_counts == {"quote": 3, "history": 1}

    def test_recent_errors_bounded(self, clock):
        stats = StatsCollector(clock=clock)
        for i in range(30):
            stats.record_error(f"error {i}")
        snapshot = stats.snapshot()
        assert snapshot.total_errors == 30
        assert len(snapshot.recent_errors) == 20
        assert snapshot.recent_errors[0].message == "error 10"

    def test_summary(self, clock):
        stats = StatsCollector(clock=clock)
        for _ in range(3):
            stats.record_call("quote")
        stats.record_cache_hit("quote")
        stats.record_call("news")
        stats.record_error("x" * 80)
        stats.record_rate_limit_warning(remaining=5)
        clock.advance(125)

        summary = stats.summary()
        assert summary.session_duration == "2m 5s"
        assert summary.total_calls == 5
        assert summary.cached_calls == 1
        assert summary.cache_hit_rate == "20.0%"
        assert summary.calls_per_minute == 2
        assert summary.top_endpoints[0] == {"endpoint": "quote", "count": 4}
        assert summary.recent_errors == [{"message": "x" * 50, "ago": "2m ago"}]
        assert summary.rate_limit_warnings == 1
        assert summary.to_dict()["cache_hit_rate"] == "20.0%"

    def test_summary_empty_session(self, clock):
        summary = StatsCollector(clock=clock).summary()
        assert summary.cache_hit_rate == "N/A"
        assert summary.calls_per_minute == 0
        assert summary.session_duration == "0s"

    def test_reset(self, clock):
        stats = StatsCollector(clock=clock)
        stats.record_call("quote")
        stats.record_error("boom")
        stats.record_rate_limit_warning()
        stats.reset()
        snapshot = stats.snapshot()
        assert snapshot.total_calls == 0
        assert snapshot.recent_errors == []
        assert snapshot.rate_limit_warnings == 0


def test_format_duration():
    assert format_duration(5) == "5s"
    assert format_duration(65) == "1m 5s"
    assert format_duration(3 * 3600 + 120) == "3h 2m"
