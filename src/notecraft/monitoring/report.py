"""Consolidated monitoring reports.

``ReportGenerator`` assembles workflow status, job summaries, API usage,
performance figures and error statistics into one snapshot, derives
recommendations from fixed thresholds and persists the snapshot.

``collect_error_reports`` and ``build_workflow_report`` aggregate what a
finished run left on disk, for the ``notecraft report`` command.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Literal

from notecraft.core.config import ReportThresholds
from notecraft.core.logging import get_logger
from notecraft.monitoring.lifecycle import JobLifecycleTracker
from notecraft.monitoring.metrics import MetricsAggregator
from notecraft.state.base import ReportStore
from notecraft.utils.time import utc_now

if TYPE_CHECKING:
    from notecraft.execution.retry_policy import RetryPolicyEngine

_logger = get_logger("report")

Priority = Literal["high", "medium", "low"]

_CRITICAL_SEVERITIES = frozenset({"critical", "high"})


@dataclass(frozen=True)
class Recommendation:
    """An operator-facing action derived from report figures."""

    category: str
    priority: Priority
    message: str
    action: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


def build_recommendations(
    workflow: dict[str, Any],
    api_usage: dict[str, Any],
    performance: dict[str, Any],
    thresholds: ReportThresholds,
) -> list[Recommendation]:
    """Apply the report thresholds to already-assembled report sections."""
    recommendations: list[Recommendation] = []
    jobs = workflow.get("jobs", {})

    if jobs.get("failed", 0) > 0:
        recommendations.append(Recommendation(
            category="reliability",
            priority="high",
            message="Job failures detected. Check the error reports for the root cause.",
            action="check_error_logs",
        ))
    if jobs.get("retrying", 0) > 0:
        recommendations.append(Recommendation(
            category="reliability",
            priority="medium",
            message="Jobs are retrying. Check network health and API limits.",
            action="check_retry_causes",
        ))

    for service, data in api_usage.get("services", {}).items():
        success_rate = float(data.get("success_rate", 100.0))
        if data.get("total_calls", 0) and success_rate < thresholds.min_success_rate_percent:
            recommendations.append(Recommendation(
                category="api_reliability",
                priority="medium",
                message=f"{service} API success rate dropped to {success_rate:.1f}%.",
                action="investigate_api_failures",
            ))
        quota = data.get("quota_status")
        if quota and float(quota["usage_percent"]) > thresholds.max_quota_usage_percent:
            recommendations.append(Recommendation(
                category="quota_management",
                priority="high",
                message=f"{service} API quota usage reached {quota['usage_percent']}%.",
                action="monitor_quota_usage",
            ))
        average = float(data.get("average_response_time_ms", 0.0))
        if average > thresholds.max_avg_response_time_ms:
            recommendations.append(Recommendation(
                category="performance",
                priority="medium",
                message=f"{service} API responses average {average:.0f}ms.",
                action="optimize_api_calls",
            ))

    memory_mb = performance.get("summary", {}).get("system", {}).get("memory_mb")
    if memory_mb is not None and memory_mb > thresholds.max_memory_mb:
        recommendations.append(Recommendation(
            category="performance",
            priority="medium",
            message=f"Process memory is at {memory_mb:.0f}MB. Check for leaks.",
            action="check_memory_usage",
        ))
    if workflow.get("duration_seconds", 0.0) > thresholds.max_workflow_duration_seconds:
        recommendations.append(Recommendation(
            category="performance",
            priority="low",
            message="The workflow is running long. Consider optimizing slow stages.",
            action="optimize_workflow",
        ))
    return recommendations


class ReportGenerator:
    """Builds and persists consolidated monitoring snapshots."""

    def __init__(
        self,
        tracker: JobLifecycleTracker,
        metrics: MetricsAggregator,
        store: ReportStore | None = None,
        thresholds: ReportThresholds | None = None,
        engine: RetryPolicyEngine | None = None,
    ) -> None:
        self.tracker = tracker
        self.metrics = metrics
        self.store = store
        self.thresholds = thresholds or ReportThresholds()
        self.engine = engine

    def build_report(self) -> dict[str, Any]:
        """Assemble a snapshot without persisting it."""
        workflow = self.tracker.get_workflow_status().to_dict()
        api_usage = self.metrics.api_usage_report()
        performance = self.metrics.performance_report()
        recommendations = build_recommendations(
            workflow, api_usage, performance, self.thresholds
        )
        return {
            "timestamp": utc_now().isoformat(),
            "workflow_id": self.tracker.workflow_id,
            "workflow": workflow,
            "api_usage": api_usage,
            "performance": performance,
            "jobs": [job.summary() for job in self.tracker.jobs()],
            "errors": self.engine.error_statistics() if self.engine else None,
            "recommendations": [r.to_dict() for r in recommendations],
        }

    async def generate_comprehensive_report(self, save: bool = True) -> dict[str, Any]:
        """Assemble a snapshot and persist it with the latest pointer."""
        report = self.build_report()
        if save and self.store is not None:
            location = await self.store.save_snapshot(report)
            _logger.info(
                "report.saved",
                workflow_id=report["workflow_id"],
                location=location,
                status=report["workflow"]["status"],
                recommendations=len(report["recommendations"]),
            )
        return report


def summarize_error_reports(reports: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Totals by job and kind, critical errors and a chronological timeline."""
    errors = [r["error"] for r in reports if isinstance(r.get("error"), dict)]
    timeline = sorted(
        (
            {
                "time": e.get("created_at"),
                "job_name": e.get("job_name"),
                "kind": e.get("kind"),
                "severity": e.get("severity"),
                "message": e.get("message"),
            }
            for e in errors
        ),
        key=lambda entry: str(entry["time"] or ""),
    )
    return {
        "total_errors": len(errors),
        "by_job": dict(Counter(str(e.get("job_name")) for e in errors)),
        "by_kind": dict(Counter(str(e.get("kind")) for e in errors)),
        "critical_errors": [
            {
                "id": e.get("id"),
                "job_name": e.get("job_name"),
                "kind": e.get("kind"),
                "message": e.get("message"),
                "created_at": e.get("created_at"),
            }
            for e in errors
            if e.get("severity") in _CRITICAL_SEVERITIES
        ],
        "timeline": timeline,
    }


async def collect_error_reports(store: ReportStore) -> dict[str, Any]:
    """Summarize every error report the store holds."""
    return summarize_error_reports(await store.list_error_reports())


async def build_workflow_report(store: ReportStore) -> dict[str, Any]:
    """Combine the latest snapshot and all error reports into one document.

    ``status`` is the snapshot's workflow status, ``failed`` when there is no
    snapshot but critical errors exist, else ``unknown``.
    """
    latest = await store.load_latest()
    errors = await collect_error_reports(store)
    if latest is not None:
        status = latest.get("workflow", {}).get("status", "unknown")
    elif errors["critical_errors"]:
        status = "failed"
    else:
        status = "unknown"
    return {
        "generated_at": utc_now().isoformat(),
        "status": status,
        "monitoring": latest,
        "errors": errors,
    }
