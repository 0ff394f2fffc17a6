"""Running metric statistics and the API call ledger.

The ``MetricsAggregator`` owns two process-wide maps:

- ``MetricSeries`` per (component, metric kind): count, sum, min, max and a
  bounded window of the most recent samples, updated in O(1) per sample.
- ``APIUsageRecord`` per (service, endpoint): call counts, response times,
  quota and rate-limit state reported by the caller.

Both are created lazily on first observation and live until ``reset()``.
The aggregator is not thread-safe; it is meant to be driven from a single
event loop.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from notecraft.core.config import MonitoringConfig, ReportThresholds
from notecraft.core.logging import get_logger
from notecraft.monitoring.system_probe import SystemProbe
from notecraft.utils.time import utc_now

_logger = get_logger("metrics")

Trend = Literal["increasing", "decreasing", "stable"]

RECENT_VALUES_IN_REPORT = 10


class MetricKind(str, Enum):
    """Kinds of metric samples."""

    EXECUTION_TIME = "execution_time"
    API_CALLS = "api_calls"
    API_RESPONSE_TIME = "api_response_time"
    MEMORY_USAGE = "memory_usage"
    ERROR_RATE = "error_rate"
    SUCCESS_RATE = "success_rate"
    THROUGHPUT = "throughput"


@dataclass(frozen=True)
class MetricSample:
    """A single timestamped observation."""

    timestamp: datetime
    value: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "value": self.value}


@dataclass
class MetricSeries:
    """Running statistics for one (component, kind) pair.

    ``average`` is derived from ``total / count`` on every read so it can
    never drift from the running sum.
    """

    component: str
    kind: MetricKind
    window_size: int
    count: int = 0
    total: float = 0.0
    min: float | None = None
    max: float | None = None
    recent: deque[MetricSample] = field(init=False)

    def __post_init__(self) -> None:
        self.recent = deque(maxlen=self.window_size)

    @property
    def average(self) -> float:
        return self.total / self.count if self.count else 0.0

    def add(self, sample: MetricSample) -> None:
        self.count += 1
        self.total += sample.value
        self.min = sample.value if self.min is None else min(self.min, sample.value)
        self.max = sample.value if self.max is None else max(self.max, sample.value)
        self.recent.append(sample)


def compute_trend(values: list[float], window: int, threshold: float) -> Trend:
    """Compare the mean of the last ``window`` values against the ``window`` before.

    Fewer than two values, or no values before the last window, is stable.
    A zero baseline is treated as a change of unbounded size.
    """
    if len(values) < 2:
        return "stable"
    recent = values[-window:]
    older = values[-2 * window:-window]
    if not older:
        return "stable"
    recent_avg = sum(recent) / len(recent)
    older_avg = sum(older) / len(older)
    if older_avg == 0:
        if recent_avg > 0:
            return "increasing"
        if recent_avg < 0:
            return "decreasing"
        return "stable"
    change = (recent_avg - older_avg) / abs(older_avg)
    if change > threshold:
        return "increasing"
    if change < -threshold:
        return "decreasing"
    return "stable"


@dataclass
class APIUsageRecord:
    """Call ledger for one (service, endpoint) pair.

    ``total_calls == successful_calls + failed_calls`` always holds;
    ``average_response_time_ms`` is recomputed from the running total.
    """

    service: str
    endpoint: str
    successful_calls: int = 0
    failed_calls: int = 0
    total_response_time_ms: float = 0.0
    min_response_time_ms: float | None = None
    max_response_time_ms: float | None = None
    last_call_at: datetime | None = None
    quota_used: float = 0.0
    quota_limit: float | None = None
    rate_limit_remaining: int | None = None
    rate_limit_reset_at: datetime | None = None

    @property
    def total_calls(self) -> int:
        return self.successful_calls + self.failed_calls

    @property
    def average_response_time_ms(self) -> float:
        return self.total_response_time_ms / self.total_calls if self.total_calls else 0.0

    @property
    def success_rate(self) -> float:
        """Percentage of successful calls, 0 when no call was made."""
        return self.successful_calls / self.total_calls * 100 if self.total_calls else 0.0

    @property
    def quota_usage_percent(self) -> float | None:
        if not self.quota_limit:
            return None
        return self.quota_used / self.quota_limit * 100

    def quota_status(self) -> dict[str, Any] | None:
        if not self.quota_limit:
            return None
        return {
            "used": self.quota_used,
            "limit": self.quota_limit,
            "remaining": self.quota_limit - self.quota_used,
            "usage_percent": round(self.quota_usage_percent or 0.0, 1),
        }

    def rate_limit_status(self) -> dict[str, Any] | None:
        if self.rate_limit_remaining is None:
            return None
        return {
            "remaining": self.rate_limit_remaining,
            "reset_at": self.rate_limit_reset_at.isoformat() if self.rate_limit_reset_at else None,
        }


def _as_datetime(value: Any) -> datetime | None:
    """Accept a datetime, epoch seconds or an ISO-8601 string."""
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    return datetime.fromisoformat(str(value))


class MetricsAggregator:
    """Running statistics over metric samples and API calls."""

    def __init__(
        self,
        config: MonitoringConfig | None = None,
        thresholds: ReportThresholds | None = None,
        workflow_id: str | None = None,
    ) -> None:
        self.config = config or MonitoringConfig()
        self.thresholds = thresholds or ReportThresholds()
        self.workflow_id = workflow_id
        self.started_at = utc_now()
        self._series: dict[tuple[str, MetricKind], MetricSeries] = {}
        self._api_usage: dict[tuple[str, str], APIUsageRecord] = {}
        self._sample_count = 0

    # =========================================================================
    # Recording
    # =========================================================================

    def record_sample(
        self,
        component: str,
        kind: MetricKind,
        value: float,
        metadata: dict[str, Any] | None = None,
    ) -> MetricSeries:
        """Append a sample and update the running statistics."""
        key = (component, kind)
        series = self._series.get(key)
        if series is None:
            series = MetricSeries(component, kind, window_size=self.config.recent_window_size)
            self._series[key] = series
        series.add(MetricSample(utc_now(), float(value), dict(metadata or {})))
        self._sample_count += 1
        return series

    def track_api_call(
        self,
        service: str,
        endpoint: str,
        response_time_ms: float | None,
        success: bool = True,
        details: dict[str, Any] | None = None,
    ) -> APIUsageRecord:
        """Record one call to an external service.

        Args:
            service: Service name, e.g. "anthropic".
            endpoint: Endpoint or operation, e.g. "messages.create".
            response_time_ms: Measured response time, None when unknown.
            success: Whether the call succeeded.
            details: Optional ``quota_used``, ``quota_limit``,
                ``rate_limit_remaining`` and ``rate_limit_reset``.

        Returns:
            The updated usage record.
        """
        details = details or {}
        key = (service, endpoint)
        usage = self._api_usage.get(key)
        if usage is None:
            usage = APIUsageRecord(service=service, endpoint=endpoint)
            self._api_usage[key] = usage

        if success:
            usage.successful_calls += 1
        else:
            usage.failed_calls += 1
        usage.last_call_at = utc_now()

        if response_time_ms is not None:
            usage.total_response_time_ms += response_time_ms
            usage.min_response_time_ms = (
                response_time_ms
                if usage.min_response_time_ms is None
                else min(usage.min_response_time_ms, response_time_ms)
            )
            usage.max_response_time_ms = (
                response_time_ms
                if usage.max_response_time_ms is None
                else max(usage.max_response_time_ms, response_time_ms)
            )

        if details.get("quota_limit") is not None:
            usage.quota_limit = details["quota_limit"]
        if details.get("quota_used") is not None:
            usage.quota_used = details["quota_used"]
        if "rate_limit_remaining" in details:
            usage.rate_limit_remaining = details["rate_limit_remaining"]
        if "rate_limit_reset" in details:
            usage.rate_limit_reset_at = _as_datetime(details["rate_limit_reset"])

        self.record_sample(service, MetricKind.API_CALLS, 1)
        if response_time_ms is not None:
            self.record_sample(service, MetricKind.API_RESPONSE_TIME, response_time_ms)

        _logger.debug(
            "api.call_tracked",
            service=service,
            endpoint=endpoint,
            response_time_ms=response_time_ms,
            success=success,
            total_calls=usage.total_calls,
            success_rate=round(usage.success_rate, 1),
        )
        return usage

    # =========================================================================
    # Queries
    # =========================================================================

    def get_series(self, component: str, kind: MetricKind) -> MetricSeries | None:
        return self._series.get((component, kind))

    def get_api_usage(self, service: str, endpoint: str) -> APIUsageRecord | None:
        return self._api_usage.get((service, endpoint))

    def all_series(self) -> list[MetricSeries]:
        return list(self._series.values())

    def trend(self, component: str, kind: MetricKind) -> Trend:
        series = self._series.get((component, kind))
        if series is None:
            return "stable"
        return compute_trend(
            [s.value for s in series.recent],
            self.config.trend_window,
            self.config.trend_threshold,
        )

    def api_usage_report(self) -> dict[str, Any]:
        """Per-service and per-endpoint API usage with an overall summary."""
        services: dict[str, dict[str, Any]] = {}
        timed_total = 0.0
        timed_calls = 0

        for usage in self._api_usage.values():
            entry = services.setdefault(
                usage.service,
                {
                    "total_calls": 0,
                    "successful_calls": 0,
                    "failed_calls": 0,
                    "success_rate": 0.0,
                    "average_response_time_ms": 0.0,
                    "quota_status": None,
                    "rate_limit_status": None,
                    "endpoints": {},
                    "_timed_total": 0.0,
                    "_timed_calls": 0,
                },
            )
            entry["total_calls"] += usage.total_calls
            entry["successful_calls"] += usage.successful_calls
            entry["failed_calls"] += usage.failed_calls
            entry["endpoints"][usage.endpoint] = {
                "calls": usage.total_calls,
                "success_rate": round(usage.success_rate, 1),
                "average_response_time_ms": round(usage.average_response_time_ms, 1),
                "min_response_time_ms": usage.min_response_time_ms or 0.0,
                "max_response_time_ms": usage.max_response_time_ms or 0.0,
                "last_call_at": usage.last_call_at.isoformat() if usage.last_call_at else None,
            }
            quota = usage.quota_status()
            if quota is not None:
                entry["quota_status"] = quota
            rate_limit = usage.rate_limit_status()
            if rate_limit is not None:
                entry["rate_limit_status"] = rate_limit

            # Endpoints that never reported timing do not dilute the average
            if usage.total_response_time_ms > 0:
                entry["_timed_total"] += usage.total_response_time_ms
                entry["_timed_calls"] += usage.total_calls
                timed_total += usage.total_response_time_ms
                timed_calls += usage.total_calls

        for entry in services.values():
            total = entry["total_calls"]
            entry["success_rate"] = round(entry["successful_calls"] / total * 100, 1) if total else 0.0
            timed = entry.pop("_timed_calls")
            timed_sum = entry.pop("_timed_total")
            entry["average_response_time_ms"] = round(timed_sum / timed, 1) if timed else 0.0

        total_calls = sum(e["total_calls"] for e in services.values())
        successful = sum(e["successful_calls"] for e in services.values())
        return {
            "timestamp": utc_now().isoformat(),
            "workflow_id": self.workflow_id,
            "services": services,
            "summary": {
                "total_api_calls": total_calls,
                "total_successful_calls": successful,
                "total_failed_calls": total_calls - successful,
                "overall_success_rate": round(successful / total_calls * 100, 1)
                if total_calls
                else 0.0,
                "average_response_time_ms": round(timed_total / timed_calls, 1)
                if timed_calls
                else 0.0,
            },
        }

    def performance_report(self) -> dict[str, Any]:
        """Per-series statistics with trends, bottlenecks and a system summary."""
        metrics: dict[str, dict[str, Any]] = {}
        for series in self._series.values():
            metrics.setdefault(series.component, {})[series.kind.value] = {
                "count": series.count,
                "sum": series.total,
                "average": round(series.average, 2),
                "min": series.min if series.min is not None else 0.0,
                "max": series.max if series.max is not None else 0.0,
                "trend": self.trend(series.component, series.kind),
                "recent_values": [s.to_dict() for s in list(series.recent)[-RECENT_VALUES_IN_REPORT:]],
            }

        return {
            "timestamp": utc_now().isoformat(),
            "workflow_id": self.workflow_id,
            "duration_seconds": round((utc_now() - self.started_at).total_seconds(), 3),
            "metrics": metrics,
            "summary": {
                "total_samples": self._sample_count,
                "components_monitored": len({s.component for s in self._series.values()}),
                "system": SystemProbe.snapshot(),
            },
            "analysis": self.analyze_performance(),
        }

    def analyze_performance(self) -> dict[str, Any]:
        """Bottlenecks above the slow thresholds and every non-stable trend."""
        t = self.thresholds
        bottlenecks: list[dict[str, Any]] = []
        trends: dict[str, Trend] = {}

        for series in self._series.values():
            average = series.average
            if series.kind is MetricKind.EXECUTION_TIME and average > t.slow_execution_seconds:
                bottlenecks.append({
                    "component": series.component,
                    "kind": series.kind.value,
                    "average": round(average, 2),
                    "severity": "high" if average > t.very_slow_execution_seconds else "medium",
                })
            elif series.kind is MetricKind.API_RESPONSE_TIME and average > t.slow_response_ms:
                bottlenecks.append({
                    "component": series.component,
                    "kind": series.kind.value,
                    "average": round(average, 2),
                    "severity": "high" if average > t.very_slow_response_ms else "medium",
                })

            trend = self.trend(series.component, series.kind)
            if trend != "stable":
                trends[f"{series.component}:{series.kind.value}"] = trend

        return {"bottlenecks": bottlenecks, "trends": trends}

    def reset(self) -> None:
        """Drop every series and usage record."""
        self._series.clear()
        self._api_usage.clear()
        self._sample_count = 0
        self.started_at = utc_now()
        _logger.info("metrics.reset", workflow_id=self.workflow_id)
