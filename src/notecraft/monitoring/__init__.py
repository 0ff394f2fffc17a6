"""Job lifecycle tracking, metric aggregation and reporting."""

from notecraft.monitoring.lifecycle import (
    JobLifecycleTracker,
    JobRecord,
    JobStatus,
    WorkflowStatus,
)
from notecraft.monitoring.metrics import (
    APIUsageRecord,
    MetricKind,
    MetricSeries,
    MetricsAggregator,
)
from notecraft.monitoring.report import (
    Recommendation,
    ReportGenerator,
    build_workflow_report,
    collect_error_reports,
)
from notecraft.monitoring.system_probe import SystemProbe

__all__ = [
    "APIUsageRecord",
    "JobLifecycleTracker",
    "JobRecord",
    "JobStatus",
    "MetricKind",
    "MetricSeries",
    "MetricsAggregator",
    "Recommendation",
    "ReportGenerator",
    "SystemProbe",
    "WorkflowStatus",
    "build_workflow_report",
    "collect_error_reports",
]
