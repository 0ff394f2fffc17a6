"""Per-process wiring of the resilience and observability components.

A ``WorkflowContext`` is built once at process entry and passed to every
job, instead of module-level singletons:

    ctx = WorkflowContext.create(CoreConfig.from_yaml(Path("notecraft.yaml")))
    job_id = ctx.tracker.start_job("Research Job")
    ...
    await ctx.reporter.generate_comprehensive_report()
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field

from notecraft.core.config import CoreConfig
from notecraft.core.logging import configure_logging
from notecraft.execution.retry_policy import RetryPolicyEngine
from notecraft.monitoring.lifecycle import JobLifecycleTracker
from notecraft.monitoring.metrics import MetricsAggregator
from notecraft.monitoring.report import ReportGenerator
from notecraft.state import JsonReportStore, ReportStore


@dataclass
class WorkflowContext:
    """The components of one workflow run, sharing one workflow id."""

    config: CoreConfig
    store: ReportStore
    metrics: MetricsAggregator
    tracker: JobLifecycleTracker
    engine: RetryPolicyEngine
    reporter: ReportGenerator = field(repr=False)

    @property
    def workflow_id(self) -> str:
        return self.tracker.workflow_id

    @classmethod
    def create(
        cls,
        config: CoreConfig | None = None,
        store: ReportStore | None = None,
        *,
        configure_logs: bool = False,
        rng: random.Random | None = None,
    ) -> WorkflowContext:
        """Build and connect every component.

        Args:
            config: Configuration; defaults apply when omitted.
            store: Report store; a JsonReportStore on the configured output
                directories when omitted.
            configure_logs: Apply ``config.logging`` to the logging system.
            rng: Random source for retry jitter.
        """
        config = config or CoreConfig()
        if configure_logs:
            log = config.logging
            configure_logging(
                level=log.level,
                format=log.format,
                file_path=log.file_path,
                max_file_size_mb=log.max_file_size_mb,
                backup_count=log.backup_count,
                include_timestamps=log.include_timestamps,
                include_context=log.include_context,
                compress_logs=log.compress_logs,
            )
        if store is None:
            store = JsonReportStore(config.output.monitoring_dir, config.output.errors_dir)

        metrics = MetricsAggregator(config.monitoring, config.thresholds)
        tracker = JobLifecycleTracker(metrics=metrics)
        metrics.workflow_id = tracker.workflow_id
        engine = RetryPolicyEngine(config.retry, store, tracker, rng=rng)
        reporter = ReportGenerator(tracker, metrics, store, config.thresholds, engine)
        return cls(
            config=config,
            store=store,
            metrics=metrics,
            tracker=tracker,
            engine=engine,
            reporter=reporter,
        )

    def reset(self) -> None:
        """Start a fresh workflow: new id, no jobs, metrics or error history."""
        self.tracker.reset()
        self.metrics.reset()
        self.metrics.workflow_id = self.tracker.workflow_id
        self.engine.clear_history()
