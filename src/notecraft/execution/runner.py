"""Process entry point for a single pipeline job.

``execute_job`` runs a job coroutine to completion. An unrecovered failure
is logged as a structured error and turned into a non-zero exit status;
recovered failures stay visible only in error reports and metrics.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from notecraft.core.errors import JobError
from notecraft.core.logging import get_logger

_logger = get_logger("runner")

T = TypeVar("T")

EXIT_JOB_FAILED = 1


def execute_job(entry: Callable[[], Awaitable[T]], job_name: str) -> T:
    """Run ``entry()`` in a fresh event loop.

    Args:
        entry: Zero-argument coroutine function running the whole job.
        job_name: Name used when the failure is not already a JobError.

    Returns:
        Whatever ``entry`` returns.

    Raises:
        SystemExit: With status 1 when the job fails.
    """
    try:
        return asyncio.run(entry())
    except Exception as exc:
        error = JobError.from_exception(job_name, exc)
        _logger.error(
            "job.unrecovered",
            job_name=error.job_name,
            error_id=error.id,
            kind=error.kind.value,
            severity=error.severity.value,
            error_message=error.message,
            retryable=error.retryable,
        )
        raise SystemExit(EXIT_JOB_FAILED) from exc
