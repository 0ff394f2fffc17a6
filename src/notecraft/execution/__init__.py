"""Retry policy, instrumentation wrappers and the job entry point."""

from notecraft.execution.instrumentation import (
    call_with_timeout,
    monitored_job,
    run_with_recovery,
    tracked_call,
)
from notecraft.execution.retry_policy import RetryContext, RetryPolicyEngine
from notecraft.execution.runner import execute_job

__all__ = [
    "RetryContext",
    "RetryPolicyEngine",
    "call_with_timeout",
    "execute_job",
    "monitored_job",
    "run_with_recovery",
    "tracked_call",
]
