"""Retry policy engine.

Decides whether a classified failure is retried and when, then re-invokes the
caller-supplied retry function. The engine never performs the failed
operation itself.

Decision table:

- Not retryable (authentication, quota, validation and anything the
  classifier marked so): enrich with diagnostics and raise immediately.
- Retry budget for the error's lineage spent: raise.
- Rate limit: wait the server-provided ``retry_after_seconds``, capped at
  ``max_rate_limit_wait_seconds``.
- Everything else: wait ``min(base * 2**n + uniform(0, jitter), max)``.
- Timeout: the next attempt receives a timeout ``timeout_multiplier`` larger
  than the larger of the current and the reported timeout.
- Browser failures asking for a session restart: call ``restart_session``
  before retrying.

A failing retry is wrapped with provenance of the error it retried and fed
back into the same decision table; the wrapped error shares the original's
lineage, so one failing step never gets more than ``max_retries`` attempts.

Every handled error is persisted as an error report before the decision is
acted on.

Example usage:
    engine = RetryPolicyEngine(RetryConfig(), store, tracker)

    async def call_llm(attempt: int, ctx: RetryContext) -> str:
        return await client.messages.create(..., timeout=ctx.timeout_seconds)

    try:
        text = await call_llm(0, ctx)
    except Exception as exc:
        text = await engine.handle_error(exc, RetryContext("Research Job", call_llm))
"""

from __future__ import annotations

import asyncio
import inspect
import math
import platform
import random
from collections import Counter
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from notecraft.core.config import RetryConfig
from notecraft.core.errors import (
    DetailKeys,
    ErrorKind,
    JobError,
    classify_exception,
    enrich,
    to_jsonable,
)
from notecraft.core.errors.classifier import ServiceName
from notecraft.core.logging import get_logger, sanitize_mapping
from notecraft.monitoring.lifecycle import JobLifecycleTracker
from notecraft.state.base import ReportStore
from notecraft.utils.time import utc_now

_logger = get_logger("retry_policy")

RECENT_ERRORS_IN_STATISTICS = 5

RetryFunction = Callable[[int, "RetryContext"], Any]
SessionRestart = Callable[[], Awaitable[None] | None]


@dataclass
class RetryContext:
    """What the engine needs to recover a failing step.

    Attributes:
        job_name: Name of the job the step belongs to.
        retry_function: Called as ``retry_function(attempt, context)`` with the
            1-based attempt number; may be sync or async.
        restart_session: Optional callback restarting the browser session.
        timeout_seconds: Timeout the next attempt should use.
        job_id: Lifecycle record to mark as retrying, if tracked.
        extra: Free-form context persisted with error reports (sanitized).
    """

    job_name: str
    retry_function: RetryFunction
    restart_session: SessionRestart | None = None
    timeout_seconds: float | None = None
    job_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_report(self) -> dict[str, Any]:
        """Sanitized, JSON-compatible view. Callables render as "[Function]"."""
        return {
            "job_name": self.job_name,
            "job_id": self.job_id,
            "timeout_seconds": self.timeout_seconds,
            "retry_function": "[Function]",
            "restart_session": "[Function]" if self.restart_session else None,
            "extra": to_jsonable(sanitize_mapping(self.extra)),
        }


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class RetryPolicyEngine:
    """Applies the retry decision table to classified errors.

    Args:
        config: Retry bounds and delays.
        store: Where error reports are persisted.
        tracker: Lifecycle tracker to mark jobs as retrying, if any.
        sleep: Awaitable sleep; injected by tests.
        rng: Random source for jitter; injected by tests.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        store: ReportStore | None = None,
        tracker: JobLifecycleTracker | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or RetryConfig()
        self.store = store
        self.tracker = tracker
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._history: list[JobError] = []
        self._retry_counts: dict[str, int] = {}

    # =========================================================================
    # Policy
    # =========================================================================

    def compute_backoff(self, attempt: int) -> float:
        """Delay in seconds before the retry following ``attempt`` (0-indexed)."""
        cfg = self.config
        jitter = self._rng.uniform(0, cfg.jitter_seconds) if cfg.jitter_seconds else 0.0
        return min(cfg.base_delay_seconds * (2**attempt) + jitter, cfg.max_delay_seconds)

    def retry_limit(self, error: JobError) -> int:
        if error.kind is ErrorKind.UNKNOWN:
            return min(self.config.unknown_error_max_retries, self.config.max_retries)
        return self.config.max_retries

    def retry_count(self, error: JobError) -> int:
        """Retries already spent on the error's lineage."""
        return self._retry_counts.get(error.lineage_id, 0)

    def _delay_for(self, error: JobError, attempt: int) -> float:
        if error.kind is ErrorKind.RATE_LIMIT:
            retry_after = error.details.get(DetailKeys.RETRY_AFTER_SECONDS)
            wait = self.config.default_rate_limit_wait_seconds
            if retry_after is not None and math.isfinite(float(retry_after)):
                wait = max(float(retry_after), 0.0)
            return min(wait, self.config.max_rate_limit_wait_seconds)
        return self.compute_backoff(attempt)

    # =========================================================================
    # Handling
    # =========================================================================

    async def handle_error(
        self,
        exc: BaseException,
        context: RetryContext,
        *,
        service: ServiceName | None = None,
        retryable: bool = False,
    ) -> Any:
        """Classify a raw exception, then ``handle()`` it."""
        error = classify_exception(
            exc,
            context.job_name,
            service=service,
            retryable=retryable,
            default_rate_limit_wait_seconds=self.config.default_rate_limit_wait_seconds,
            default_timeout_seconds=self.config.default_timeout_seconds,
        )
        if error is not exc and error.__cause__ is None:
            error.__cause__ = exc
        return await self.handle(error, context)

    async def handle(self, error: JobError, context: RetryContext) -> Any:
        """Recover from ``error`` by re-invoking the context's retry function.

        Returns:
            The result of the first successful retry.

        Raises:
            JobError: When the error is not retryable (enriched with
                diagnostics) or the lineage's retry budget is spent.
        """
        self._history.append(error)
        await self._save_error_report(error, context)

        count = self.retry_count(error)
        _logger.info(
            "error.handling",
            error_id=error.id,
            job_name=error.job_name,
            kind=error.kind.value,
            severity=error.severity.value,
            retryable=error.retryable,
            retry_count=count,
        )

        if not error.retryable or error.kind.escalates_immediately:
            enriched = enrich(error)
            _logger.error(
                "error.terminal",
                error_id=enriched.id,
                job_name=enriched.job_name,
                kind=enriched.kind.value,
                severity=enriched.severity.value,
                error_message=enriched.message,
            )
            raise enriched from error

        limit = self.retry_limit(error)
        if count >= limit:
            _logger.error(
                "retry.exhausted",
                error_id=error.id,
                job_name=error.job_name,
                kind=error.kind.value,
                retry_count=count,
                max_retries=limit,
            )
            raise error

        if error.kind is ErrorKind.BROWSER and error.needs_session_restart:
            if context.restart_session is not None:
                _logger.info("retry.restarting_session", error_id=error.id)
                await _maybe_await(context.restart_session())

        if error.kind is ErrorKind.TIMEOUT:
            reported = error.details.get(DetailKeys.TIMEOUT_SECONDS)
            base_timeout = max(
                context.timeout_seconds or 0.0,
                float(reported or self.config.default_timeout_seconds),
            )
            context = replace(
                context, timeout_seconds=base_timeout * self.config.timeout_multiplier
            )

        delay = self._delay_for(error, count)
        attempt = count + 1
        _logger.warning(
            "retry.scheduled",
            error_id=error.id,
            job_name=error.job_name,
            kind=error.kind.value,
            attempt=attempt,
            max_retries=limit,
            delay_seconds=round(delay, 3),
            timeout_seconds=context.timeout_seconds,
        )

        if self.tracker is not None and context.job_id is not None:
            self.tracker.record_job_retry(context.job_id, f"{error.kind.value}: {error.message}")

        await self._sleep(delay)
        self._retry_counts[error.lineage_id] = attempt

        if self.tracker is not None and context.job_id is not None:
            self.tracker.resume_job(context.job_id)

        try:
            return await _maybe_await(context.retry_function(attempt, context))
        except Exception as retry_exc:
            wrapped = self._wrap_retry_error(error, retry_exc, attempt)
            return await self.handle(wrapped, context)

    def _wrap_retry_error(
        self, original: JobError, retry_exc: BaseException, attempt: int
    ) -> JobError:
        """Attach provenance of ``original`` to the error a retry raised.

        A retry error that classifies to a known kind keeps its own
        classification; otherwise the original's classification is reused.
        """
        classified = classify_exception(
            retry_exc,
            original.job_name,
            default_rate_limit_wait_seconds=self.config.default_rate_limit_wait_seconds,
            default_timeout_seconds=self.config.default_timeout_seconds,
        )
        basis = original if classified.kind is ErrorKind.UNKNOWN else classified
        retry_message = classified.message if isinstance(retry_exc, JobError) else str(retry_exc)
        wrapped = JobError(
            original.job_name,
            basis.kind,
            f"Retry {attempt} failed: {retry_message}",
            details={
                **basis.details,
                DetailKeys.ORIGINAL_ERROR: original.to_dict(),
                DetailKeys.RETRY_ERROR: retry_message,
                DetailKeys.RETRY_COUNT: attempt,
            },
            retryable=basis.retryable,
            severity=basis.severity,
            lineage_id=original.lineage_id,
        )
        wrapped.__cause__ = retry_exc
        return wrapped

    async def _save_error_report(self, error: JobError, context: RetryContext) -> None:
        if self.store is None:
            return
        limit = self.config.error_history_limit
        recent = self._history[-limit:] if limit else []
        report = {
            "error": error.to_dict(),
            "context": context.to_report(),
            "environment": {
                "python_version": platform.python_version(),
                "platform": platform.platform(),
                "timestamp": utc_now().isoformat(),
            },
            "error_history": [e.to_dict() for e in recent],
        }
        try:
            location = await self.store.save_error_report(error.id, report)
        except OSError as e:
            _logger.warning("error.report_failed", error_id=error.id, error=str(e))
            return
        _logger.debug("error.report_saved", error_id=error.id, location=location)

    # =========================================================================
    # History
    # =========================================================================

    @property
    def history(self) -> list[JobError]:
        return list(self._history)

    def error_statistics(self) -> dict[str, Any]:
        """Totals by kind, job and severity plus the most recent errors."""
        return {
            "total_errors": len(self._history),
            "by_kind": dict(Counter(e.kind.value for e in self._history)),
            "by_job": dict(Counter(e.job_name for e in self._history)),
            "by_severity": dict(Counter(e.severity.value for e in self._history)),
            "retryable_errors": sum(1 for e in self._history if e.retryable),
            "recent_errors": [
                e.to_dict() for e in self._history[-RECENT_ERRORS_IN_STATISTICS:]
            ],
        }

    def clear_history(self) -> None:
        """Forget every handled error and retry count."""
        self._history.clear()
        self._retry_counts.clear()
        _logger.info("error.history_cleared")
