"""Error kinds, severity levels and detail-key conventions.

This module provides:
- ErrorKind: The closed set of failure kinds every classifier maps onto
- Severity: How urgently a failure needs attention
- DetailKeys: Required and optional keys of ``JobError.details`` per kind
- RetryDelays: Named wait durations shared by classifiers and the retry engine

Error Kind Taxonomy
===================

| Kind | Typical source | Retryable | Severity |
|------|----------------|-----------|----------|
| api_error | HTTP 5xx / other 4xx | 5xx only | high |
| network_error | connection refused, DNS, navigation | yes | medium |
| authentication_error | HTTP 401/403, login wall | no | critical |
| validation_error | HTTP 400, malformed input | no | medium |
| timeout_error | deadline exceeded | yes | medium |
| rate_limit_error | HTTP 429 | yes | medium |
| quota_exceeded_error | HTTP 402, billing | no | critical |
| service_unavailable_error | HTTP 503/529 | yes | high |
| browser_error | automation target failures | unless session dead | medium |
| file_error | missing / unreadable local files | no | high |
| unknown_error | anything unmatched | caller decides | high |
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

# =============================================================================
# Error Kinds
# =============================================================================


class ErrorKind(str, Enum):
    """Normalized failure kinds shared by all external dependencies."""

    API_ERROR = "api_error"
    NETWORK = "network_error"
    AUTHENTICATION = "authentication_error"
    VALIDATION = "validation_error"
    TIMEOUT = "timeout_error"
    RATE_LIMIT = "rate_limit_error"
    QUOTA_EXCEEDED = "quota_exceeded_error"
    SERVICE_UNAVAILABLE = "service_unavailable_error"
    BROWSER = "browser_error"
    FILE_ERROR = "file_error"
    UNKNOWN = "unknown_error"

    @property
    def escalates_immediately(self) -> bool:
        """Kinds that never consume a retry slot, whatever the classifier says."""
        return self in (
            ErrorKind.AUTHENTICATION,
            ErrorKind.QUOTA_EXCEEDED,
            ErrorKind.VALIDATION,
        )


# =============================================================================
# Severity Levels
# =============================================================================


class Severity(str, Enum):
    """Severity levels for classified errors.

    ``rank`` orders severities so that a lower rank is more severe, allowing
    ``error.severity.rank <= Severity.HIGH.rank`` style checks.
    """

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 2,
    Severity.MEDIUM: 3,
    Severity.LOW: 4,
}


# =============================================================================
# Detail Keys
# =============================================================================


class DetailKeys:
    """Documented keys of ``JobError.details``.

    ``REQUIRED`` lists keys a JobError of the given kind must carry; the
    constructor rejects errors that omit them. Everything else is optional.
    """

    RETRY_AFTER_SECONDS = "retry_after_seconds"
    TIMEOUT_SECONDS = "timeout_seconds"
    STATUS_CODE = "status_code"
    SERVICE = "service"
    ENDPOINT = "endpoint"
    HEADERS = "headers"
    URL = "url"
    EXCEPTION_TYPE = "exception_type"
    NEEDS_SESSION_RESTART = "needs_session_restart"
    TROUBLESHOOTING = "troubleshooting"
    SUGGESTIONS = "suggestions"
    ORIGINAL_ERROR = "original_error"
    RETRY_ERROR = "retry_error"
    RETRY_COUNT = "retry_count"
    MISSING_FIELDS = "missing_fields"
    INVALID_FORMAT = "invalid_format"
    LENGTH_ERROR = "length_error"

    REQUIRED: ClassVar[dict[ErrorKind, tuple[str, ...]]] = {
        ErrorKind.RATE_LIMIT: (RETRY_AFTER_SECONDS,),
        ErrorKind.TIMEOUT: (TIMEOUT_SECONDS,),
    }

    @classmethod
    def required_for(cls, kind: ErrorKind) -> tuple[str, ...]:
        return cls.REQUIRED.get(kind, ())


# =============================================================================
# Retry Delay Constants
# =============================================================================


class RetryDelays:
    """Named wait durations in seconds.

    Classifiers use these when a service does not tell us how long to wait;
    the retry engine's own backoff comes from RetryConfig.
    """

    RATE_LIMIT_DEFAULT: float = 60.0  # no Retry-After header
    BROWSER_TIMEOUT_DEFAULT: float = 30.0  # automation default action timeout
