"""Service error classifiers.

Each classifier maps a raw exception raised while talking to one external
dependency onto a ``JobError`` whose kind, severity and retryability are
already decided:

- LLMErrorClassifier: errors from the ``anthropic`` SDK
- SearchErrorClassifier: errors from ``httpx`` calls to the search service
- BrowserErrorClassifier: errors from the browser-automation target
- classify_exception(): picks the right classifier for an arbitrary exception
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping
from email.utils import parsedate_to_datetime
from typing import Any, Literal

import anthropic
import httpx

from notecraft.core.errors.codes import DetailKeys, ErrorKind, RetryDelays, Severity
from notecraft.core.errors.models import JobError
from notecraft.core.logging import get_logger, sanitize_mapping
from notecraft.utils.time import utc_now

# Module-level logger for error classification
_logger = get_logger("errors")

ServiceName = Literal["llm", "search", "browser"]


# =============================================================================
# Default pattern strings.
# Kept at module scope so they are reviewable as data.
# =============================================================================

_DEFAULT_RATE_LIMIT_PATTERNS: list[str] = [
    r"rate.?limit",
    r"too many requests",
    r"\b429\b",
]

_DEFAULT_QUOTA_PATTERNS: list[str] = [
    r"billing",
    r"quota",
    r"insufficient.?(credit|funds|balance)",
    r"credit balance",
]

_DEFAULT_AUTH_PATTERNS: list[str] = [
    r"unauthori[sz]ed",
    r"authentication",
    r"invalid.?api.?key",
    r"\b401\b",
    r"\b403\b",
]

_DEFAULT_TIMEOUT_PATTERNS: list[str] = [
    r"timed?.?out",
    r"timeout",
    r"deadline exceeded",
]

_DEFAULT_NETWORK_PATTERNS: list[str] = [
    r"connection.?(refused|reset|aborted)",
    r"network is unreachable",
    r"name or service not known",
    r"getaddrinfo",
    r"net::err_",
]

# Browser automation message signals
_BROWSER_TIMEOUT_MS_RE = re.compile(r"timeout\s+(\d+)\s*ms\s+exceeded", re.IGNORECASE)
_BROWSER_NAVIGATION_PATTERNS: list[str] = [r"navigation", r"net::"]
_BROWSER_ELEMENT_PATTERNS: list[str] = [
    r"element.*not found",
    r"no element",
    r"waiting for (selector|locator)",
]
_BROWSER_LOGIN_REDIRECT_PATTERNS: list[str] = [
    r"redirect(ed)?.{0,20}login",
    r"login.?(page|wall|required)",
    r"/login\b",
]
_BROWSER_DEAD_SESSION_PATTERNS: list[str] = [
    r"target (page, context or browser )?(has been )?closed",
    r"browser (has been )?(closed|disconnected)",
    r"context (has been )?closed",
    r"session (expired|closed|not found)",
]


def _compile_patterns(strings: list[str]) -> list[re.Pattern[str]]:
    """Compile a list of regex strings into case-insensitive Pattern objects."""
    return [re.compile(p, re.IGNORECASE) for p in strings]


def _matches_any(text: str, patterns: list[re.Pattern[str]]) -> bool:
    return any(p.search(text) for p in patterns)


def parse_retry_after(
    headers: Mapping[str, str] | None,
    default_seconds: float = RetryDelays.RATE_LIMIT_DEFAULT,
) -> float:
    """Seconds to wait according to a Retry-After header.

    Accepts both delta-seconds and HTTP-date forms. Falls back to
    ``default_seconds`` when the header is absent, unparseable or not finite.
    """
    if not headers:
        return default_seconds
    raw = None
    for key, value in headers.items():
        if key.lower() == "retry-after":
            raw = value
            break
    if raw is None:
        return default_seconds
    try:
        seconds = float(raw)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            return default_seconds
        return max(seconds, 0.0)
    try:
        moment = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return default_seconds
    return max((moment - utc_now()).total_seconds(), 0.0)


# =============================================================================
# Base classifier
# =============================================================================


class ErrorClassifier:
    """Classifies exceptions by HTTP status code and message patterns.

    Subclasses add knowledge of a specific client library. The base class is
    used directly for exceptions that expose a ``status_code`` attribute or
    only carry a message.
    """

    service: str = "generic"

    def __init__(
        self,
        default_rate_limit_wait_seconds: float = RetryDelays.RATE_LIMIT_DEFAULT,
        default_timeout_seconds: float = RetryDelays.BROWSER_TIMEOUT_DEFAULT,
        rate_limit_patterns: list[str] | None = None,
        quota_patterns: list[str] | None = None,
        auth_patterns: list[str] | None = None,
    ):
        self.default_rate_limit_wait_seconds = default_rate_limit_wait_seconds
        self.default_timeout_seconds = default_timeout_seconds
        self.rate_limit_patterns = _compile_patterns(
            rate_limit_patterns or _DEFAULT_RATE_LIMIT_PATTERNS
        )
        self.quota_patterns = _compile_patterns(quota_patterns or _DEFAULT_QUOTA_PATTERNS)
        self.auth_patterns = _compile_patterns(auth_patterns or _DEFAULT_AUTH_PATTERNS)
        self.timeout_patterns = _compile_patterns(_DEFAULT_TIMEOUT_PATTERNS)
        self.network_patterns = _compile_patterns(_DEFAULT_NETWORK_PATTERNS)

    def classify(
        self,
        exc: BaseException,
        job_name: str,
        *,
        retryable: bool = False,
    ) -> JobError:
        """Classify ``exc`` raised inside ``job_name``.

        Args:
            exc: The raw exception.
            job_name: Name of the job that raised it.
            retryable: Retryability used when nothing matches (UNKNOWN kind).

        Returns:
            A JobError. A JobError input is returned unchanged.
        """
        if isinstance(exc, JobError):
            return exc
        error = self._classify(exc, job_name, retryable)
        _logger.debug(
            "error.classified",
            service=self.service,
            job_name=job_name,
            exception_type=type(exc).__name__,
            kind=error.kind.value,
            retryable=error.retryable,
            severity=error.severity.value,
        )
        return error

    def _classify(self, exc: BaseException, job_name: str, retryable: bool) -> JobError:
        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int):
            headers = getattr(exc, "headers", None)
            return self.from_status(job_name, status_code, str(exc), headers=headers, exc=exc)
        return self.from_message(job_name, exc, retryable=retryable)

    def _base_details(self, exc: BaseException | None) -> dict[str, Any]:
        details: dict[str, Any] = {DetailKeys.SERVICE: self.service}
        if exc is not None:
            details[DetailKeys.EXCEPTION_TYPE] = type(exc).__name__
        return details

    def from_status(
        self,
        job_name: str,
        status_code: int,
        message: str,
        *,
        headers: Mapping[str, str] | None = None,
        exc: BaseException | None = None,
    ) -> JobError:
        """Apply the status-code decision table."""
        details = self._base_details(exc)
        details[DetailKeys.STATUS_CODE] = status_code
        if headers:
            details[DetailKeys.HEADERS] = sanitize_mapping(dict(headers))

        if status_code == 429:
            details[DetailKeys.RETRY_AFTER_SECONDS] = parse_retry_after(
                headers, self.default_rate_limit_wait_seconds
            )
            return JobError(
                job_name,
                ErrorKind.RATE_LIMIT,
                f"{self.service} rate limit exceeded: {message}",
                details=details,
                retryable=True,
                severity=Severity.MEDIUM,
            )
        if status_code == 402 or _matches_any(message, self.quota_patterns):
            return JobError(
                job_name,
                ErrorKind.QUOTA_EXCEEDED,
                f"{self.service} quota exceeded: {message}",
                details=details,
                retryable=False,
                severity=Severity.CRITICAL,
            )
        if status_code in (401, 403):
            return JobError(
                job_name,
                ErrorKind.AUTHENTICATION,
                f"{self.service} authentication failed: {message}",
                details=details,
                retryable=False,
                severity=Severity.CRITICAL,
            )
        if status_code == 400:
            return JobError(
                job_name,
                ErrorKind.VALIDATION,
                f"{self.service} rejected the request: {message}",
                details=details,
                retryable=False,
                severity=Severity.MEDIUM,
            )
        if status_code in (503, 529):
            return JobError(
                job_name,
                ErrorKind.SERVICE_UNAVAILABLE,
                f"{self.service} unavailable: {message}",
                details=details,
                retryable=True,
                severity=Severity.HIGH,
            )
        if status_code >= 500:
            return JobError(
                job_name,
                ErrorKind.API_ERROR,
                f"{self.service} server error: {message}",
                details=details,
                retryable=True,
                severity=Severity.HIGH,
            )
        return JobError(
            job_name,
            ErrorKind.API_ERROR,
            f"{self.service} error: {message}",
            details=details,
            retryable=False,
            severity=Severity.HIGH,
        )

    def timeout_error(
        self,
        job_name: str,
        message: str,
        timeout_seconds: float | None = None,
        exc: BaseException | None = None,
    ) -> JobError:
        details = self._base_details(exc)
        details[DetailKeys.TIMEOUT_SECONDS] = (
            timeout_seconds if timeout_seconds is not None else self.default_timeout_seconds
        )
        return JobError(
            job_name,
            ErrorKind.TIMEOUT,
            message,
            details=details,
            retryable=True,
            severity=Severity.MEDIUM,
        )

    def network_error(
        self, job_name: str, message: str, exc: BaseException | None = None
    ) -> JobError:
        return JobError(
            job_name,
            ErrorKind.NETWORK,
            message,
            details=self._base_details(exc),
            retryable=True,
            severity=Severity.MEDIUM,
        )

    def from_message(
        self,
        job_name: str,
        exc: BaseException,
        *,
        retryable: bool = False,
    ) -> JobError:
        """Classify by message text alone."""
        message = str(exc) or type(exc).__name__
        if _matches_any(message, self.rate_limit_patterns):
            details = self._base_details(exc)
            details[DetailKeys.RETRY_AFTER_SECONDS] = self.default_rate_limit_wait_seconds
            return JobError(
                job_name,
                ErrorKind.RATE_LIMIT,
                message,
                details=details,
                retryable=True,
                severity=Severity.MEDIUM,
            )
        if _matches_any(message, self.quota_patterns):
            return JobError(
                job_name,
                ErrorKind.QUOTA_EXCEEDED,
                message,
                details=self._base_details(exc),
                retryable=False,
                severity=Severity.CRITICAL,
            )
        if _matches_any(message, self.timeout_patterns):
            return self.timeout_error(job_name, message, exc=exc)
        if _matches_any(message, self.network_patterns):
            return self.network_error(job_name, message, exc=exc)
        if _matches_any(message, self.auth_patterns):
            return JobError(
                job_name,
                ErrorKind.AUTHENTICATION,
                message,
                details=self._base_details(exc),
                retryable=False,
                severity=Severity.CRITICAL,
            )
        return JobError(
            job_name,
            ErrorKind.UNKNOWN,
            message,
            details=self._base_details(exc),
            retryable=retryable,
            severity=Severity.HIGH,
        )


# =============================================================================
# Service classifiers
# =============================================================================


class LLMErrorClassifier(ErrorClassifier):
    """Classifies errors raised by the ``anthropic`` SDK."""

    service = "llm"

    def _classify(self, exc: BaseException, job_name: str, retryable: bool) -> JobError:
        # APITimeoutError subclasses APIConnectionError
        if isinstance(exc, anthropic.APITimeoutError):
            return self.timeout_error(job_name, f"llm request timed out: {exc}", exc=exc)
        if isinstance(exc, anthropic.APIConnectionError):
            return self.network_error(job_name, f"llm connection failed: {exc}", exc=exc)
        if isinstance(exc, anthropic.APIStatusError):
            return self.from_status(
                job_name,
                exc.status_code,
                exc.message,
                headers=exc.response.headers,
                exc=exc,
            )
        return super()._classify(exc, job_name, retryable)


class SearchErrorClassifier(ErrorClassifier):
    """Classifies errors raised by ``httpx`` calls to the search service."""

    service = "search"

    def _classify(self, exc: BaseException, job_name: str, retryable: bool) -> JobError:
        if isinstance(exc, httpx.HTTPStatusError):
            details_message = exc.response.reason_phrase or str(exc)
            return self.from_status(
                job_name,
                exc.response.status_code,
                details_message,
                headers=exc.response.headers,
                exc=exc,
            )
        if isinstance(exc, httpx.TimeoutException):
            return self.timeout_error(job_name, f"search request timed out: {exc}", exc=exc)
        if isinstance(exc, httpx.TransportError):
            return self.network_error(job_name, f"search connection failed: {exc}", exc=exc)
        return super()._classify(exc, job_name, retryable)


class BrowserErrorClassifier(ErrorClassifier):
    """Classifies errors from the browser-automation target.

    Works on exception type names and messages so the automation library is
    not a dependency of this package.
    """

    service = "browser"

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self.navigation_patterns = _compile_patterns(_BROWSER_NAVIGATION_PATTERNS)
        self.element_patterns = _compile_patterns(_BROWSER_ELEMENT_PATTERNS)
        self.login_redirect_patterns = _compile_patterns(_BROWSER_LOGIN_REDIRECT_PATTERNS)
        self.dead_session_patterns = _compile_patterns(_BROWSER_DEAD_SESSION_PATTERNS)

    def _browser_error(
        self,
        job_name: str,
        message: str,
        exc: BaseException,
        *,
        retryable: bool,
        needs_session_restart: bool = False,
    ) -> JobError:
        details = self._base_details(exc)
        if needs_session_restart:
            details[DetailKeys.NEEDS_SESSION_RESTART] = True
        return JobError(
            job_name,
            ErrorKind.BROWSER,
            message,
            details=details,
            retryable=retryable,
            severity=Severity.MEDIUM,
        )

    def _classify(self, exc: BaseException, job_name: str, retryable: bool) -> JobError:
        message = str(exc) or type(exc).__name__
        type_name = type(exc).__name__

        if "Timeout" in type_name or isinstance(exc, TimeoutError):
            match = _BROWSER_TIMEOUT_MS_RE.search(message)
            timeout_seconds = int(match.group(1)) / 1000 if match else None
            return self.timeout_error(
                job_name, f"browser action timed out: {message}", timeout_seconds, exc
            )
        if _matches_any(message, self.dead_session_patterns):
            return self._browser_error(
                job_name,
                f"browser session lost: {message}",
                exc,
                retryable=False,
                needs_session_restart=True,
            )
        if _matches_any(message, self.login_redirect_patterns):
            return self._browser_error(
                job_name,
                f"redirected to login: {message}",
                exc,
                retryable=True,
                needs_session_restart=True,
            )
        if _matches_any(message, self.auth_patterns):
            return JobError(
                job_name,
                ErrorKind.AUTHENTICATION,
                f"browser authentication failed: {message}",
                details=self._base_details(exc),
                retryable=False,
                severity=Severity.CRITICAL,
            )
        if _matches_any(message, self.navigation_patterns):
            return self.network_error(job_name, f"navigation failed: {message}", exc=exc)
        if _matches_any(message, self.element_patterns):
            return self._browser_error(
                job_name, f"element not found: {message}", exc, retryable=True
            )
        return self._browser_error(job_name, f"browser error: {message}", exc, retryable=True)


_CLASSIFIERS: dict[str, type[ErrorClassifier]] = {
    "llm": LLMErrorClassifier,
    "search": SearchErrorClassifier,
    "browser": BrowserErrorClassifier,
}

_FILE_ERRORS = (FileNotFoundError, PermissionError, IsADirectoryError, NotADirectoryError)


def classify_exception(
    exc: BaseException,
    job_name: str,
    *,
    service: ServiceName | None = None,
    retryable: bool = False,
    default_rate_limit_wait_seconds: float = RetryDelays.RATE_LIMIT_DEFAULT,
    default_timeout_seconds: float = RetryDelays.BROWSER_TIMEOUT_DEFAULT,
) -> JobError:
    """Classify any exception raised inside a job.

    Args:
        exc: The raw exception.
        job_name: Name of the job that raised it.
        service: Force a specific service classifier.
        retryable: Retryability for errors nothing recognizes.
        default_rate_limit_wait_seconds: Wait used when a rate-limited
            response carries no Retry-After header.
        default_timeout_seconds: Timeout recorded for timeouts that do not
            report their own.

    Returns:
        The classified JobError.
    """
    if isinstance(exc, JobError):
        return exc

    options = {
        "default_rate_limit_wait_seconds": default_rate_limit_wait_seconds,
        "default_timeout_seconds": default_timeout_seconds,
    }
    if service is not None:
        return _CLASSIFIERS[service](**options).classify(exc, job_name, retryable=retryable)
    if isinstance(exc, anthropic.APIError):
        return LLMErrorClassifier(**options).classify(exc, job_name, retryable=retryable)
    if isinstance(exc, httpx.HTTPError):
        return SearchErrorClassifier(**options).classify(exc, job_name, retryable=retryable)

    generic = ErrorClassifier(**options)
    if isinstance(exc, TimeoutError):
        return generic.timeout_error(job_name, str(exc) or "operation timed out", exc=exc)
    if isinstance(exc, _FILE_ERRORS):
        details = {DetailKeys.EXCEPTION_TYPE: type(exc).__name__}
        filename = getattr(exc, "filename", None)
        if filename:
            details["path"] = str(filename)
        return JobError(
            job_name,
            ErrorKind.FILE_ERROR,
            str(exc),
            details=details,
            retryable=False,
            severity=Severity.HIGH,
        )
    if isinstance(exc, ConnectionError):
        return generic.network_error(job_name, str(exc) or "connection failed", exc=exc)
    if type(exc).__module__.startswith("playwright"):
        return BrowserErrorClassifier(**options).classify(exc, job_name, retryable=retryable)
    return generic.classify(exc, job_name, retryable=retryable)


__all__ = [
    "BrowserErrorClassifier",
    "ErrorClassifier",
    "LLMErrorClassifier",
    "SearchErrorClassifier",
    "classify_exception",
    "parse_retry_after",
]
