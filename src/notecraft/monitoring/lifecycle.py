"""Job lifecycle tracking.

The ``JobLifecycleTracker`` owns every ``JobRecord`` of a workflow run and
derives the workflow-level status from them.

State machine::

    RUNNING --record_job_retry--> RETRYING --resume_job--> RUNNING
    RUNNING | RETRYING --complete_job--> COMPLETED | FAILED

A record is created already RUNNING by ``start_job``; PENDING only appears as
the workflow status before any job starts. Terminal records are never
modified again: calls against them are logged and ignored, as are calls with
an unknown job id.
"""

from __future__ import annotations

import itertools
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from notecraft.core.errors import JobError
from notecraft.core.logging import get_logger, sanitize_mapping
from notecraft.monitoring.metrics import MetricKind, MetricsAggregator
from notecraft.monitoring.system_probe import SystemProbe
from notecraft.utils.text import slugify
from notecraft.utils.time import epoch_ms, utc_now

_logger = get_logger("lifecycle")

UNKNOWN_ESTIMATE = "unknown"


class JobStatus(str, Enum):
    """Status of a single job."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def new_workflow_id(now: datetime | None = None) -> str:
    """``workflow-<epoch ms>-<6 random chars>``."""
    return f"workflow-{epoch_ms(now or utc_now())}-{secrets.token_hex(3)}"


@dataclass
class JobProgress:
    percent: float = 0.0
    stage: str = "initializing"
    message: str = ""


@dataclass
class ResourceSample:
    """Process memory around a job, in MB. None when the probe failed."""

    memory_at_start_mb: float | None = None
    memory_at_end_mb: float | None = None

    @property
    def memory_delta_mb(self) -> float | None:
        if self.memory_at_start_mb is None or self.memory_at_end_mb is None:
            return None
        return self.memory_at_end_mb - self.memory_at_start_mb


@dataclass
class JobRecord:
    """State of one job execution."""

    id: str
    name: str
    status: JobStatus
    started_at: datetime
    ended_at: datetime | None = None
    retry_count: int = 0
    progress: JobProgress = field(default_factory=JobProgress)
    resource_sample: ResourceSample = field(default_factory=ResourceSample)
    inputs: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] | None = None
    error: JobError | None = None
    stage_before_retry: str | None = field(default=None, repr=False)

    @property
    def duration_seconds(self) -> float | None:
        """Seconds between start and end; None until the job is terminal."""
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()

    def summary(self) -> dict[str, Any]:
        """Compact view used in reports."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "duration_seconds": self.duration_seconds,
            "progress": self.progress.percent,
            "retry_count": self.retry_count,
            "error": (
                {
                    "id": self.error.id,
                    "kind": self.error.kind.value,
                    "message": self.error.message,
                    "severity": self.error.severity.value,
                }
                if self.error
                else None
            ),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary(),
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "progress": {
                "percent": self.progress.percent,
                "stage": self.progress.stage,
                "message": self.progress.message,
            },
            "resource_sample": {
                "memory_at_start_mb": self.resource_sample.memory_at_start_mb,
                "memory_at_end_mb": self.resource_sample.memory_at_end_mb,
                "memory_delta_mb": self.resource_sample.memory_delta_mb,
            },
            "inputs": self.inputs,
            "outputs": self.outputs,
        }


@dataclass
class WorkflowStatus:
    """Aggregate view over every job of the workflow."""

    workflow_id: str
    status: str
    progress: float
    started_at: datetime
    duration_seconds: float
    total: int
    completed: int
    failed: int
    running: int
    retrying: int
    current_stage: str
    estimated_completion: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "status": self.status,
            "progress": self.progress,
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "jobs": {
                "total": self.total,
                "completed": self.completed,
                "failed": self.failed,
                "running": self.running,
                "retrying": self.retrying,
            },
            "current_stage": self.current_stage,
            "estimated_completion": self.estimated_completion,
        }


class JobLifecycleTracker:
    """Tracks job state transitions, progress and resource usage.

    Args:
        metrics: Aggregator receiving execution-time and memory samples when
            a job completes.
        memory_probe: Callable returning process memory in MB.
        clock: Callable returning the current UTC time.
    """

    def __init__(
        self,
        metrics: MetricsAggregator | None = None,
        memory_probe: Callable[[], float | None] = SystemProbe.get_memory_mb,
        clock: Callable[[], datetime] = utc_now,
        workflow_id: str | None = None,
    ) -> None:
        self.metrics = metrics
        self._memory_probe = memory_probe
        self._clock = clock
        self.workflow_id = workflow_id or new_workflow_id(clock())
        self.started_at = clock()
        self._jobs: dict[str, JobRecord] = {}
        self._seq = itertools.count(1)

    # =========================================================================
    # Transitions
    # =========================================================================

    def start_job(self, name: str, inputs: Mapping[str, Any] | None = None) -> str:
        """Create a RUNNING record for ``name`` and return its id."""
        now = self._clock()
        job_id = f"{slugify(name)}-{epoch_ms(now)}-{next(self._seq)}"
        record = JobRecord(
            id=job_id,
            name=name,
            status=JobStatus.RUNNING,
            started_at=now,
            progress=JobProgress(message=f"Starting {name}..."),
            resource_sample=ResourceSample(memory_at_start_mb=self._memory_probe()),
            inputs=sanitize_mapping(inputs),
        )
        self._jobs[job_id] = record
        _logger.info(
            "job.started",
            workflow_id=self.workflow_id,
            job_id=job_id,
            job_name=name,
            started_at=now.isoformat(),
        )
        return job_id

    def _active(self, job_id: str, operation: str) -> JobRecord | None:
        record = self._jobs.get(job_id)
        if record is None:
            _logger.warning("job.not_found", job_id=job_id, operation=operation)
            return None
        if record.status.is_terminal:
            _logger.warning(
                "job.already_terminal",
                job_id=job_id,
                status=record.status.value,
                operation=operation,
            )
            return None
        return record

    def update_job_progress(
        self,
        job_id: str,
        percent: float,
        stage: str | None = None,
        message: str | None = None,
    ) -> None:
        """Set progress, clamped to [0, 100]; stage and message only when given."""
        record = self._active(job_id, "update_progress")
        if record is None:
            return
        record.progress.percent = min(100.0, max(0.0, float(percent)))
        if stage:
            record.progress.stage = stage
        if message:
            record.progress.message = message
        _logger.info(
            "job.progress",
            job_id=job_id,
            job_name=record.name,
            percent=record.progress.percent,
            stage=record.progress.stage,
            progress_message=record.progress.message,
        )

    def record_job_retry(self, job_id: str, reason: str) -> None:
        """Move the job to RETRYING and count the retry. Progress is unchanged."""
        record = self._active(job_id, "record_retry")
        if record is None:
            return
        record.retry_count += 1
        if record.status is not JobStatus.RETRYING:
            record.stage_before_retry = record.progress.stage
        record.status = JobStatus.RETRYING
        record.progress.stage = "retrying"
        record.progress.message = f"Retrying ({record.retry_count}): {reason}"
        _logger.warning(
            "job.retry_recorded",
            job_id=job_id,
            job_name=record.name,
            retry_count=record.retry_count,
            reason=reason,
        )

    def resume_job(self, job_id: str) -> None:
        """Return a RETRYING job to RUNNING as the retry is re-invoked."""
        record = self._active(job_id, "resume")
        if record is None or record.status is not JobStatus.RETRYING:
            return
        record.status = JobStatus.RUNNING
        record.progress.stage = record.stage_before_retry or "running"
        record.stage_before_retry = None
        _logger.debug("job.resumed", job_id=job_id, retry_count=record.retry_count)

    def complete_job(
        self,
        job_id: str,
        outputs: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> None:
        """Seal the record as COMPLETED, or FAILED when ``error`` is given."""
        record = self._active(job_id, "complete")
        if record is None:
            return

        record.ended_at = self._clock()
        record.resource_sample.memory_at_end_mb = self._memory_probe()
        record.outputs = sanitize_mapping(outputs)
        if error is not None:
            record.error = JobError.from_exception(record.name, error)
            record.status = JobStatus.FAILED
            record.progress.stage = "failed"
            record.progress.message = f"Failed: {record.error.message}"
        else:
            record.status = JobStatus.COMPLETED
            record.progress.percent = 100.0
            record.progress.stage = "completed"
            record.progress.message = "Completed successfully"
        record.stage_before_retry = None

        duration = record.duration_seconds or 0.0
        delta = record.resource_sample.memory_delta_mb
        if self.metrics is not None:
            self.metrics.record_sample(record.name, MetricKind.EXECUTION_TIME, duration)
            if delta is not None:
                self.metrics.record_sample(record.name, MetricKind.MEMORY_USAGE, delta)

        log = _logger.info if record.status is JobStatus.COMPLETED else _logger.error
        log(
            f"job.{record.status.value}",
            job_id=job_id,
            job_name=record.name,
            duration_seconds=round(duration, 3),
            retry_count=record.retry_count,
            memory_delta_mb=round(delta, 2) if delta is not None else None,
            error_kind=record.error.kind.value if record.error else None,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_job(self, job_id: str) -> JobRecord | None:
        return self._jobs.get(job_id)

    def jobs(self) -> list[JobRecord]:
        """All records in start order."""
        return list(self._jobs.values())

    def get_workflow_status(self) -> WorkflowStatus:
        jobs = self.jobs()
        now = self._clock()
        counts = {status: 0 for status in JobStatus}
        for job in jobs:
            counts[job.status] += 1
        total = len(jobs)

        if total == 0:
            status = "pending"
        elif counts[JobStatus.FAILED]:
            status = "failed"
        elif counts[JobStatus.COMPLETED] == total:
            status = "completed"
        elif counts[JobStatus.RETRYING]:
            status = "retrying"
        else:
            status = "running"

        progress = sum(j.progress.percent for j in jobs) / total if total else 0.0

        return WorkflowStatus(
            workflow_id=self.workflow_id,
            status=status,
            progress=round(progress, 1),
            started_at=self.started_at,
            duration_seconds=(now - self.started_at).total_seconds(),
            total=total,
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            running=counts[JobStatus.RUNNING],
            retrying=counts[JobStatus.RETRYING],
            current_stage=self._current_stage(jobs),
            estimated_completion=self._estimate_completion(jobs, now),
        )

    @staticmethod
    def _current_stage(jobs: list[JobRecord]) -> str:
        for job in jobs:
            if job.status is JobStatus.RUNNING:
                return job.progress.stage
        statuses = {job.status for job in jobs}
        if JobStatus.RETRYING in statuses:
            return "retrying"
        if JobStatus.FAILED in statuses:
            return "failed"
        if jobs and statuses == {JobStatus.COMPLETED}:
            return "completed"
        return "pending"

    @staticmethod
    def _estimate_completion(jobs: list[JobRecord], now: datetime) -> str:
        """Extrapolate from the mean duration of completed jobs.

        Each running job is expected to take that mean scaled by the inverse
        of its progress fraction; the estimate is now plus the sum of the
        remaining times.
        """
        completed = [j for j in jobs if j.status is JobStatus.COMPLETED]
        running = [j for j in jobs if j.status is JobStatus.RUNNING]
        if not completed or not running:
            return UNKNOWN_ESTIMATE

        average = sum(j.duration_seconds or 0.0 for j in completed) / len(completed)
        remaining = 0.0
        for job in running:
            elapsed = (now - job.started_at).total_seconds()
            expected = average * (100 / max(job.progress.percent, 1.0))
            remaining += max(0.0, expected - elapsed)
        return (now + timedelta(seconds=remaining)).isoformat()

    def reset(self) -> None:
        """Forget every job and start a new workflow."""
        self._jobs.clear()
        now = self._clock()
        self.workflow_id = new_workflow_id(now)
        self.started_at = now
        _logger.info("workflow.reset", workflow_id=self.workflow_id)
