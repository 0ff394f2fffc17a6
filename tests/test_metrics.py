"""Tests for notecraft.monitoring.metrics."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from notecraft.core.config import MonitoringConfig, ReportThresholds
from notecraft.monitoring.metrics import (
    APIUsageRecord,
    MetricKind,
    MetricsAggregator,
    compute_trend,
)


class TestMetricSeries:
    """Tests for running statistics."""

    def test_running_statistics(self, metrics: MetricsAggregator):
        for value in (3.0, 1.0, 2.0):
            metrics.record_sample("Research Job", MetricKind.EXECUTION_TIME, value)
        series = metrics.get_series("Research Job", MetricKind.EXECUTION_TIME)
        assert series.count == 3
        assert series.total == 6.0
        assert series.average == 2.0
        assert series.min == 1.0
        assert series.max == 3.0

    def test_recent_window_is_bounded(self):
        metrics = MetricsAggregator(MonitoringConfig(recent_window_size=10, trend_window=5))
        for value in range(25):
            metrics.record_sample("svc", MetricKind.THROUGHPUT, value)
        series = metrics.get_series("svc", MetricKind.THROUGHPUT)
        assert len(series.recent) == 10
        assert series.count == 25
        assert series.min == 0.0
        assert [s.value for s in series.recent][0] == 15.0

    def test_empty_series_average(self, metrics):
        assert metrics.get_series("missing", MetricKind.THROUGHPUT) is None


class TestTrend:
    """Tests for compute_trend() and MetricsAggregator.trend()."""

    def test_increasing(self):
        assert compute_trend([10] * 5 + [12] * 5, 5, 0.1) == "increasing"

    def test_decreasing(self):
        assert compute_trend([10] * 5 + [8] * 5, 5, 0.1) == "decreasing"

    def test_within_threshold_is_stable(self):
        assert compute_trend([10] * 5 + [10.5] * 5, 5, 0.1) == "stable"

    def test_too_few_values(self):
        assert compute_trend([1.0], 5, 0.1) == "stable"
        assert compute_trend([1.0, 2.0, 3.0], 5, 0.1) == "stable"

    def test_zero_baseline(self):
        assert compute_trend([0] * 5 + [1] * 5, 5, 0.1) == "increasing"
        assert compute_trend([0] * 10, 5, 0.1) == "stable"

    def test_short_history_compares_what_exists(self):
        assert compute_trend([1, 1, 5, 5, 5, 5, 5], 5, 0.1) == "increasing"

    def test_aggregator_trend(self, metrics):
        for value in [100] * 5 + [200] * 5:
            metrics.record_sample("llm", MetricKind.API_RESPONSE_TIME, value)
        assert metrics.trend("llm", MetricKind.API_RESPONSE_TIME) == "increasing"
        assert metrics.trend("missing", MetricKind.API_RESPONSE_TIME) == "stable"


class TestAPIUsage:
    """Tests for track_api_call() and the usage ledger."""

    def test_counts_and_timing(self, metrics):
        metrics.track_api_call("anthropic", "messages", 100.0)
        metrics.track_api_call("anthropic", "messages", 300.0)
        metrics.track_api_call("anthropic", "messages", 200.0, success=False)

        usage = metrics.get_api_usage("anthropic", "messages")
        assert usage.total_calls == 3
        assert usage.successful_calls == 2
        assert usage.failed_calls == 1
        assert usage.average_response_time_ms == 200.0
        assert usage.min_response_time_ms == 100.0
        assert usage.max_response_time_ms == 300.0
        assert usage.success_rate == pytest.approx(66.67, abs=0.01)
        assert usage.last_call_at is not None

    def test_feeds_derived_samples(self, metrics):
        metrics.track_api_call("tavily", "search", 250.0)
        metrics.track_api_call("tavily", "search", None)
        assert metrics.get_series("tavily", MetricKind.API_CALLS).count == 2
        assert metrics.get_series("tavily", MetricKind.API_RESPONSE_TIME).count == 1

    def test_quota_and_rate_limit_details(self, metrics):
        reset = datetime(2025, 1, 15, 12, 0, tzinfo=UTC)
        metrics.track_api_call(
            "tavily",
            "search",
            120.0,
            details={
                "quota_used": 850,
                "quota_limit": 1000,
                "rate_limit_remaining": 4,
                "rate_limit_reset": reset.isoformat(),
            },
        )
        usage = metrics.get_api_usage("tavily", "search")
        assert usage.quota_status() == {
            "used": 850,
            "limit": 1000,
            "remaining": 150,
            "usage_percent": 85.0,
        }
        assert usage.rate_limit_status() == {"remaining": 4, "reset_at": reset.isoformat()}

    def test_rate_limit_reset_from_epoch(self, metrics):
        metrics.track_api_call(
            "tavily", "search", 1.0, details={"rate_limit_remaining": 0, "rate_limit_reset": 0}
        )
        usage = metrics.get_api_usage("tavily", "search")
        assert usage.rate_limit_reset_at == datetime(1970, 1, 1, tzinfo=UTC)

    def test_empty_record(self):
        usage = APIUsageRecord("anthropic", "messages")
        assert usage.total_calls == 0
        assert usage.success_rate == 0.0
        assert usage.average_response_time_ms == 0.0
        assert usage.quota_status() is None
        assert usage.rate_limit_status() is None


class TestReports:
    """Tests for api_usage_report(), performance_report() and reset()."""

    def test_api_usage_report(self, metrics):
        metrics.track_api_call("anthropic", "messages", 100.0)
        metrics.track_api_call("anthropic", "count_tokens", 50.0, success=False)
        metrics.track_api_call("tavily", "search", 300.0, details={"quota_used": 90, "quota_limit": 100})

        report = metrics.api_usage_report()
        anthropic = report["services"]["anthropic"]
        assert anthropic["total_calls"] == 2
        assert anthropic["success_rate"] == 50.0
        assert anthropic["average_response_time_ms"] == 75.0
        assert set(anthropic["endpoints"]) == {"messages", "count_tokens"}
        assert anthropic["quota_status"] is None
        assert report["services"]["tavily"]["quota_status"]["usage_percent"] == 90.0

        summary = report["summary"]
        assert summary["total_api_calls"] == 3
        assert summary["total_failed_calls"] == 1
        assert summary["overall_success_rate"] == pytest.approx(66.7)
        assert summary["average_response_time_ms"] == pytest.approx(150.0)

    def test_performance_report(self, metrics):
        for value in range(15):
            metrics.record_sample("Writing Job", MetricKind.EXECUTION_TIME, value)
        report = metrics.performance_report()
        entry = report["metrics"]["Writing Job"]["execution_time"]
        assert entry["count"] == 15
        assert entry["min"] == 0.0
        assert entry["max"] == 14.0
        assert len(entry["recent_values"]) == 10
        assert entry["trend"] == "increasing"
        assert report["summary"]["total_samples"] == 15
        assert report["summary"]["components_monitored"] == 1
        assert "memory_mb" in report["summary"]["system"]

    def test_bottlenecks(self):
        metrics = MetricsAggregator(thresholds=ReportThresholds())
        metrics.record_sample("Research Job", MetricKind.EXECUTION_TIME, 45)
        metrics.record_sample("Writing Job", MetricKind.EXECUTION_TIME, 90)
        metrics.record_sample("anthropic", MetricKind.API_RESPONSE_TIME, 12000)
        metrics.record_sample("tavily", MetricKind.API_RESPONSE_TIME, 200)

        bottlenecks = {
            b["component"]: b["severity"] for b in metrics.analyze_performance()["bottlenecks"]
        }
        assert bottlenecks == {
            "Research Job": "medium",
            "Writing Job": "high",
            "anthropic": "high",
        }

    def test_reset(self, metrics):
        metrics.record_sample("svc", MetricKind.THROUGHPUT, 1)
        metrics.track_api_call("svc", "op", 1.0)
        metrics.reset()
        assert metrics.all_series() == []
        assert metrics.get_api_usage("svc", "op") is None
        assert metrics.api_usage_report()["summary"]["total_api_calls"] == 0
