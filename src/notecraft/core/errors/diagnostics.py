"""Actionable diagnostics attached to terminal errors.

When the retry engine gives up on an error it enriches it with hints an
operator can act on: troubleshooting steps for credential failures,
suggestions for rejected input, and a short hint for every other kind.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from notecraft.core.errors.codes import DetailKeys, ErrorKind
from notecraft.core.errors.models import JobError

COMMON_AUTH_STEPS: tuple[str, ...] = (
    "Check that the credentials are configured in the deployment secrets",
    "Check that the API key has not expired",
    "Check that the API key carries the required permissions",
)

JOB_AUTH_STEPS: dict[str, tuple[str, ...]] = {
    "Research Job": (
        "Check that ANTHROPIC_API_KEY is set correctly",
        "Check that the Anthropic API usage limit has not been reached",
    ),
    "Writing Job": (
        "Check that ANTHROPIC_API_KEY is set correctly",
        "Check that the key has access to the configured writing model",
    ),
    "Fact Check Job": (
        "Check that TAVILY_API_KEY is set correctly",
        "Check that the Tavily API usage limit has not been reached",
    ),
    "Publishing Job": (
        "Check that NOTE_STORAGE_STATE_JSON is set correctly",
        "Check that the note.com login session is still valid",
        "Check that the stored browser state has not expired",
    ),
}

_KIND_HINTS: dict[ErrorKind, str] = {
    ErrorKind.QUOTA_EXCEEDED: "Usage quota exhausted; raise the plan limit or wait for the quota to reset",
    ErrorKind.RATE_LIMIT: "Rate limit persisted through every retry; reduce request frequency",
    ErrorKind.TIMEOUT: "Operation kept timing out; check service latency or raise the timeout",
    ErrorKind.NETWORK: "Network failures persisted; check connectivity to the service",
    ErrorKind.SERVICE_UNAVAILABLE: "Service stayed unavailable; check the provider status page",
    ErrorKind.API_ERROR: "The service kept returning errors; inspect the status code and response",
    ErrorKind.BROWSER: "Browser automation failed; check the target page and session state",
    ErrorKind.FILE_ERROR: "Check that the file exists and is readable by the job",
    ErrorKind.UNKNOWN: "Unclassified failure; inspect the error report for the original exception",
}


def auth_troubleshooting_steps(job_name: str) -> list[str]:
    """Common credential checks followed by the ones specific to ``job_name``."""
    return [*COMMON_AUTH_STEPS, *JOB_AUTH_STEPS.get(job_name, ())]


def validation_suggestions(details: Mapping[str, Any]) -> list[str]:
    """Suggestions derived from the validation detail keys."""
    suggestions: list[str] = []
    missing = details.get(DetailKeys.MISSING_FIELDS)
    if missing:
        suggestions.append(f"Missing required fields: {', '.join(map(str, missing))}")
    if details.get(DetailKeys.INVALID_FORMAT):
        suggestions.append("Check the format of the input data")
    if details.get(DetailKeys.LENGTH_ERROR):
        suggestions.append("Input data exceeds the allowed length")
    return suggestions


def enrich(error: JobError) -> JobError:
    """Return a copy of ``error`` carrying diagnostics for its kind."""
    extra: dict[str, Any] = {}
    message = error.message
    if error.kind is ErrorKind.AUTHENTICATION:
        extra[DetailKeys.TROUBLESHOOTING] = auth_troubleshooting_steps(error.job_name)
    elif error.kind is ErrorKind.VALIDATION:
        extra[DetailKeys.SUGGESTIONS] = validation_suggestions(error.details)
        if not message.startswith("Validation failed"):
            message = f"Validation failed: {message}"
    else:
        extra[DetailKeys.TROUBLESHOOTING] = [_KIND_HINTS[error.kind]]
    return error.evolve(message=message, extra_details=extra)
