"""Explicit instrumentation wrappers for pipeline jobs.

Higher-order functions composed at call sites:

- monitored_job(): runs a job under a lifecycle record and logging context
- tracked_call(): records an external call in the API ledger
- call_with_timeout(): bounds an awaitable, cancelling it on expiry
- run_with_recovery(): runs one step and recovers only that step on failure

Example:
    search = tracked_call(ctx.metrics, "tavily", "search", client.search)

    async def fact_check(job_id: str, article: str) -> dict:
        ctx.tracker.update_job_progress(job_id, 10, "searching")
        results = await run_with_recovery(
            ctx.engine,
            "Fact Check Job",
            lambda attempt, rc: call_with_timeout(
                search(article), rc.timeout_seconds or 30, job_name="Fact Check Job"
            ),
            job_id=job_id,
        )
        return {"results": results}

    outputs = await monitored_job(ctx.tracker, "Fact Check Job", fact_check)(article)
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, ParamSpec, TypeVar

from notecraft.core.errors import DetailKeys, ErrorKind, JobError, Severity
from notecraft.core.errors.classifier import ServiceName
from notecraft.core.logging import ExecutionContext, get_logger, with_context
from notecraft.execution.retry_policy import (
    RetryContext,
    RetryFunction,
    RetryPolicyEngine,
    SessionRestart,
)
from notecraft.monitoring.lifecycle import JobLifecycleTracker
from notecraft.monitoring.metrics import MetricsAggregator

_logger = get_logger("instrumentation")

P = ParamSpec("P")
T = TypeVar("T")


def monitored_job(
    tracker: JobLifecycleTracker,
    name: str,
    job: Callable[..., Awaitable[T]],
    inputs: Mapping[str, Any] | None = None,
) -> Callable[..., Awaitable[T]]:
    """Wrap ``job`` so every call runs under its own lifecycle record.

    The wrapped callable receives the new job id as its first argument.
    A mapping result becomes the record's outputs; an exception fails the
    record and propagates.
    """

    @functools.wraps(job)
    async def run(*args: Any, **kwargs: Any) -> T:
        job_id = tracker.start_job(name, inputs)
        ctx = ExecutionContext(
            workflow_id=tracker.workflow_id, job_id=job_id, job_name=name, component="job"
        )
        with with_context(ctx):
            try:
                result = await job(job_id, *args, **kwargs)
            except Exception as exc:
                tracker.complete_job(job_id, error=exc)
                raise
            outputs = dict(result) if isinstance(result, Mapping) else None
            tracker.complete_job(job_id, outputs=outputs)
            return result

    return run


def tracked_call(
    metrics: MetricsAggregator,
    service: str,
    endpoint: str,
    call: Callable[P, Awaitable[T]],
    details_from: Callable[[T], Mapping[str, Any]] | None = None,
) -> Callable[P, Awaitable[T]]:
    """Wrap ``call`` so each invocation lands in the API usage ledger.

    Args:
        metrics: Aggregator receiving the call.
        service: Service name for the ledger.
        endpoint: Endpoint name for the ledger.
        call: The async callable performing the request.
        details_from: Optional extractor of quota and rate-limit details
            from a successful result.
    """

    @functools.wraps(call)
    async def run(*args: P.args, **kwargs: P.kwargs) -> T:
        started = time.perf_counter()
        try:
            result = await call(*args, **kwargs)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            metrics.track_api_call(service, endpoint, elapsed_ms, success=False)
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        details = dict(details_from(result)) if details_from else None
        metrics.track_api_call(service, endpoint, elapsed_ms, success=True, details=details)
        return result

    return run


async def call_with_timeout(
    operation: Awaitable[T],
    timeout_seconds: float,
    *,
    job_name: str,
    description: str = "operation",
) -> T:
    """Await ``operation`` for at most ``timeout_seconds``.

    The operation is cancelled when the timeout expires, so no request keeps
    running in the background.

    Raises:
        JobError: TIMEOUT kind carrying ``timeout_seconds``.
    """
    try:
        return await asyncio.wait_for(operation, timeout_seconds)
    except TimeoutError as exc:
        _logger.warning(
            "operation.timed_out",
            job_name=job_name,
            description=description,
            timeout_seconds=timeout_seconds,
        )
        raise JobError(
            job_name,
            ErrorKind.TIMEOUT,
            f"{description} timed out after {timeout_seconds}s",
            details={DetailKeys.TIMEOUT_SECONDS: timeout_seconds},
            retryable=True,
            severity=Severity.MEDIUM,
        ) from exc


async def run_with_recovery(
    engine: RetryPolicyEngine,
    job_name: str,
    step: RetryFunction,
    *,
    job_id: str | None = None,
    service: ServiceName | None = None,
    timeout_seconds: float | None = None,
    restart_session: SessionRestart | None = None,
    retryable: bool = False,
    extra: dict[str, Any] | None = None,
) -> Any:
    """Run ``step(0, context)`` and hand any failure to the retry engine.

    Retries re-invoke only ``step``, never the surrounding job, so steps that
    already succeeded are not repeated.

    ``retryable`` marks failures nothing recognizes as worth one cautious
    retry.
    """
    context = RetryContext(
        job_name=job_name,
        retry_function=step,
        restart_session=restart_session,
        timeout_seconds=timeout_seconds,
        job_id=job_id,
        extra=dict(extra or {}),
    )
    try:
        result = step(0, context)
        if inspect.isawaitable(result):
            result = await result
        return result
    except Exception as exc:
        return await engine.handle_error(
            exc, context, service=service, retryable=retryable
        )
