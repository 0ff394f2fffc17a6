"""Tests for notecraft.core.errors.classifier.

Covers the status-code decision table, message heuristics, the anthropic
and httpx service classifiers, the browser classifier and the
classify_exception() dispatcher.
"""

from __future__ import annotations

from datetime import timedelta
from email.utils import format_datetime

import anthropic
import httpx
import pytest

from notecraft.core.errors import (
    BrowserErrorClassifier,
    DetailKeys,
    ErrorClassifier,
    ErrorKind,
    JobError,
    LLMErrorClassifier,
    SearchErrorClassifier,
    Severity,
    classify_exception,
    parse_retry_after,
)
from notecraft.core.logging import REDACTED
from notecraft.utils.time import utc_now

LLM_URL = "https://api.anthropic.com/v1/messages"
SEARCH_URL = "https://api.tavily.com/search"


def _llm_status_error(
    cls: type[anthropic.APIStatusError],
    status: int,
    message: str,
    headers: dict[str, str] | None = None,
) -> anthropic.APIStatusError:
    request = httpx.Request("POST", LLM_URL)
    response = httpx.Response(status, headers=headers or {}, request=request)
    return cls(message, response=response, body=None)


def _search_status_error(status: int, headers: dict[str, str] | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", SEARCH_URL)
    response = httpx.Response(status, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class PlaywrightTimeoutError(Exception):
    pass


class PlaywrightError(Exception):
    pass


PlaywrightTimeoutError.__module__ = "playwright._impl._errors"
PlaywrightError.__module__ = "playwright._impl._errors"


# ─── parse_retry_after ─────────────────────────────────────────────────


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_delta_seconds(self):
        assert parse_retry_after({"Retry-After": "2"}) == 2.0

    def test_header_name_is_case_insensitive(self):
        assert parse_retry_after({"retry-after": "7"}) == 7.0

    def test_missing_header_uses_default(self):
        assert parse_retry_after({}, default_seconds=15.0) == 15.0
        assert parse_retry_after(None) == 60.0

    def test_unparseable_uses_default(self):
        assert parse_retry_after({"Retry-After": "soon"}, default_seconds=9.0) == 9.0

    def test_http_date(self):
        moment = utc_now() + timedelta(seconds=120)
        result = parse_retry_after({"Retry-After": format_datetime(moment, usegmt=True)})
        assert 100 <= result <= 121

    def test_negative_is_clamped(self):
        assert parse_retry_after({"Retry-After": "-5"}) == 0.0

    @pytest.mark.parametrize("raw", ["inf", "Infinity", "nan", "-inf"])
    def test_non_finite_uses_default(self, raw):
        assert parse_retry_after({"Retry-After": raw}, default_seconds=9.0) == 9.0


# ─── status-code decision table ────────────────────────────────────────


class TestStatusTable:
    """Tests for ErrorClassifier.from_status()."""

    @pytest.mark.parametrize(
        ("status", "kind", "retryable", "severity"),
        [
            (402, ErrorKind.QUOTA_EXCEEDED, False, Severity.CRITICAL),
            (401, ErrorKind.AUTHENTICATION, False, Severity.CRITICAL),
            (403, ErrorKind.AUTHENTICATION, False, Severity.CRITICAL),
            (400, ErrorKind.VALIDATION, False, Severity.MEDIUM),
            (503, ErrorKind.SERVICE_UNAVAILABLE, True, Severity.HIGH),
            (529, ErrorKind.SERVICE_UNAVAILABLE, True, Severity.HIGH),
            (500, ErrorKind.API_ERROR, True, Severity.HIGH),
            (502, ErrorKind.API_ERROR, True, Severity.HIGH),
            (404, ErrorKind.API_ERROR, False, Severity.HIGH),
        ],
    )
    def test_decision_table(self, status, kind, retryable, severity):
        error = ErrorClassifier().from_status("Research Job", status, "failure")
        assert error.kind is kind
        assert error.retryable is retryable
        assert error.severity is severity
        assert error.details[DetailKeys.STATUS_CODE] == status

    def test_rate_limit_uses_header(self):
        error = ErrorClassifier().from_status(
            "Research Job", 429, "slow down", headers={"retry-after": "2"}
        )
        assert error.kind is ErrorKind.RATE_LIMIT
        assert error.retryable is True
        assert error.severity is Severity.MEDIUM
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 2.0

    def test_rate_limit_without_header_uses_configured_default(self):
        classifier = ErrorClassifier(default_rate_limit_wait_seconds=45.0)
        error = classifier.from_status("Research Job", 429, "slow down")
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 45.0

    def test_quota_message_wins_over_bad_request(self):
        error = ErrorClassifier().from_status(
            "Research Job", 400, "Your credit balance is too low"
        )
        assert error.kind is ErrorKind.QUOTA_EXCEEDED

    def test_sensitive_headers_are_redacted(self):
        error = ErrorClassifier().from_status(
            "Research Job",
            500,
            "oops",
            headers={"x-api-key": "sk-secret", "request-id": "req_1"},
        )
        headers = error.details[DetailKeys.HEADERS]
        assert headers["x-api-key"] == REDACTED
        assert headers["request-id"] == "req_1"

    def test_status_code_attribute_is_used(self):
        class GatewayError(Exception):
            status_code = 503

        error = ErrorClassifier().classify(GatewayError("upstream"), "Research Job")
        assert error.kind is ErrorKind.SERVICE_UNAVAILABLE


# ─── message heuristics ────────────────────────────────────────────────


class TestMessageHeuristics:
    """Tests for ErrorClassifier.from_message()."""

    def test_rate_limit_message(self):
        error = ErrorClassifier().classify(RuntimeError("Rate limit exceeded"), "Research Job")
        assert error.kind is ErrorKind.RATE_LIMIT
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 60.0

    def test_timeout_message(self):
        error = ErrorClassifier(default_timeout_seconds=12.0).classify(
            RuntimeError("request timed out"), "Research Job"
        )
        assert error.kind is ErrorKind.TIMEOUT
        assert error.retryable is True
        assert error.details[DetailKeys.TIMEOUT_SECONDS] == 12.0

    def test_network_message(self):
        error = ErrorClassifier().classify(
            RuntimeError("connection reset by peer"), "Research Job"
        )
        assert error.kind is ErrorKind.NETWORK
        assert error.retryable is True

    def test_billing_message_is_quota_even_when_marked_retryable(self):
        error = classify_exception(
            RuntimeError("Your credit balance is too low; billing required"),
            "Writing Job",
            retryable=True,
        )
        assert error.kind is ErrorKind.QUOTA_EXCEEDED
        assert error.retryable is False
        assert error.severity is Severity.CRITICAL

    def test_auth_message(self):
        error = ErrorClassifier().classify(RuntimeError("Invalid API key"), "Research Job")
        assert error.kind is ErrorKind.AUTHENTICATION
        assert error.retryable is False

    def test_unmatched_is_unknown_and_not_retryable(self):
        error = ErrorClassifier().classify(RuntimeError("something odd"), "Research Job")
        assert error.kind is ErrorKind.UNKNOWN
        assert error.retryable is False

    def test_caller_can_mark_unknown_retryable(self):
        error = ErrorClassifier().classify(
            RuntimeError("something odd"), "Research Job", retryable=True
        )
        assert error.retryable is True

    def test_job_error_passes_through(self):
        original = JobError("Research Job", ErrorKind.NETWORK, "reset")
        assert ErrorClassifier().classify(original, "Other Job") is original

    def test_custom_patterns(self):
        classifier = ErrorClassifier(rate_limit_patterns=[r"slow ?down"])
        error = classifier.classify(RuntimeError("please SLOW DOWN"), "Research Job")
        assert error.kind is ErrorKind.RATE_LIMIT


# ─── LLM classifier ────────────────────────────────────────────────────


class TestLLMErrorClassifier:
    """Tests for errors raised by the anthropic SDK."""

    def test_rate_limit_with_retry_after(self):
        exc = _llm_status_error(
            anthropic.RateLimitError, 429, "rate_limit_error", {"retry-after": "2"}
        )
        error = LLMErrorClassifier().classify(exc, "Research Job")
        assert error.kind is ErrorKind.RATE_LIMIT
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 2.0
        assert error.details[DetailKeys.SERVICE] == "llm"

    def test_authentication(self):
        exc = _llm_status_error(anthropic.AuthenticationError, 401, "invalid x-api-key")
        error = LLMErrorClassifier().classify(exc, "Research Job")
        assert error.kind is ErrorKind.AUTHENTICATION
        assert error.severity is Severity.CRITICAL

    def test_permission_denied(self):
        exc = _llm_status_error(anthropic.PermissionDeniedError, 403, "forbidden")
        assert LLMErrorClassifier().classify(exc, "Writing Job").kind is ErrorKind.AUTHENTICATION

    def test_bad_request(self):
        exc = _llm_status_error(anthropic.BadRequestError, 400, "max_tokens too large")
        error = LLMErrorClassifier().classify(exc, "Writing Job")
        assert error.kind is ErrorKind.VALIDATION

    def test_overloaded(self):
        exc = _llm_status_error(anthropic.APIStatusError, 529, "Overloaded")
        error = LLMErrorClassifier().classify(exc, "Writing Job")
        assert error.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert error.retryable is True

    def test_server_error(self):
        exc = _llm_status_error(anthropic.InternalServerError, 500, "internal")
        error = LLMErrorClassifier().classify(exc, "Writing Job")
        assert error.kind is ErrorKind.API_ERROR
        assert error.retryable is True

    def test_timeout(self):
        exc = anthropic.APITimeoutError(request=httpx.Request("POST", LLM_URL))
        error = LLMErrorClassifier(default_timeout_seconds=20.0).classify(exc, "Research Job")
        assert error.kind is ErrorKind.TIMEOUT
        assert error.details[DetailKeys.TIMEOUT_SECONDS] == 20.0

    def test_connection_error(self):
        exc = anthropic.APIConnectionError(request=httpx.Request("POST", LLM_URL))
        error = LLMErrorClassifier().classify(exc, "Research Job")
        assert error.kind is ErrorKind.NETWORK
        assert error.retryable is True


# ─── Search classifier ─────────────────────────────────────────────────


class TestSearchErrorClassifier:
    """Tests for httpx errors from the search service."""

    def test_status_error(self):
        error = SearchErrorClassifier().classify(_search_status_error(503), "Fact Check Job")
        assert error.kind is ErrorKind.SERVICE_UNAVAILABLE
        assert error.details[DetailKeys.SERVICE] == "search"

    def test_rate_limit(self):
        exc = _search_status_error(429, {"Retry-After": "3"})
        error = SearchErrorClassifier().classify(exc, "Fact Check Job")
        assert error.kind is ErrorKind.RATE_LIMIT
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 3.0

    def test_unauthorized(self):
        error = SearchErrorClassifier().classify(_search_status_error(401), "Fact Check Job")
        assert error.kind is ErrorKind.AUTHENTICATION

    def test_timeout(self):
        exc = httpx.ReadTimeout("read timed out", request=httpx.Request("POST", SEARCH_URL))
        error = SearchErrorClassifier().classify(exc, "Fact Check Job")
        assert error.kind is ErrorKind.TIMEOUT

    def test_transport_error(self):
        exc = httpx.ConnectError("refused", request=httpx.Request("POST", SEARCH_URL))
        error = SearchErrorClassifier().classify(exc, "Fact Check Job")
        assert error.kind is ErrorKind.NETWORK


# ─── Browser classifier ────────────────────────────────────────────────


class TestBrowserErrorClassifier:
    """Tests for browser-automation failures."""

    def test_timeout_parses_milliseconds(self):
        exc = PlaywrightTimeoutError("Timeout 5000ms exceeded.")
        error = BrowserErrorClassifier().classify(exc, "Publishing Job")
        assert error.kind is ErrorKind.TIMEOUT
        assert error.details[DetailKeys.TIMEOUT_SECONDS] == 5.0

    def test_timeout_without_duration_uses_default(self):
        error = BrowserErrorClassifier().classify(PlaywrightTimeoutError("waiting"), "Publishing Job")
        assert error.details[DetailKeys.TIMEOUT_SECONDS] == 30.0

    def test_dead_session_requests_restart(self):
        exc = PlaywrightError("Target page, context or browser has been closed")
        error = BrowserErrorClassifier().classify(exc, "Publishing Job")
        assert error.kind is ErrorKind.BROWSER
        assert error.retryable is False
        assert error.needs_session_restart is True

    def test_login_redirect_is_retryable_with_restart(self):
        error = BrowserErrorClassifier().classify(
            PlaywrightError("Redirected to login page"), "Publishing Job"
        )
        assert error.kind is ErrorKind.BROWSER
        assert error.retryable is True
        assert error.needs_session_restart is True

    def test_element_not_found(self):
        error = BrowserErrorClassifier().classify(
            PlaywrightError("Element not found: #publish"), "Publishing Job"
        )
        assert error.kind is ErrorKind.BROWSER
        assert error.retryable is True
        assert error.needs_session_restart is False

    def test_navigation_failure_is_network(self):
        error = BrowserErrorClassifier().classify(
            PlaywrightError("net::ERR_NAME_NOT_RESOLVED at https://note.com"), "Publishing Job"
        )
        assert error.kind is ErrorKind.NETWORK

    def test_auth(self):
        error = BrowserErrorClassifier().classify(
            PlaywrightError("401 Unauthorized"), "Publishing Job"
        )
        assert error.kind is ErrorKind.AUTHENTICATION


# ─── classify_exception ────────────────────────────────────────────────


class TestClassifyException:
    """Tests for the dispatcher."""

    def test_dispatches_anthropic(self):
        exc = _llm_status_error(anthropic.RateLimitError, 429, "slow", {"retry-after": "1"})
        error = classify_exception(exc, "Research Job")
        assert error.details[DetailKeys.SERVICE] == "llm"

    def test_dispatches_httpx(self):
        error = classify_exception(_search_status_error(500), "Fact Check Job")
        assert error.details[DetailKeys.SERVICE] == "search"

    def test_dispatches_playwright_by_module(self):
        error = classify_exception(PlaywrightError("Element not found"), "Publishing Job")
        assert error.kind is ErrorKind.BROWSER

    def test_forced_service(self):
        error = classify_exception(
            RuntimeError("Element not found"), "Publishing Job", service="browser"
        )
        assert error.kind is ErrorKind.BROWSER

    def test_builtin_timeout(self):
        error = classify_exception(TimeoutError(), "Research Job", default_timeout_seconds=10.0)
        assert error.kind is ErrorKind.TIMEOUT
        assert error.details[DetailKeys.TIMEOUT_SECONDS] == 10.0

    def test_file_error(self):
        exc = FileNotFoundError(2, "No such file or directory", "/data/article.md")
        error = classify_exception(exc, "Writing Job")
        assert error.kind is ErrorKind.FILE_ERROR
        assert error.retryable is False
        assert error.severity is Severity.HIGH
        assert error.details["path"] == "/data/article.md"

    def test_connection_error(self):
        error = classify_exception(ConnectionRefusedError("refused"), "Research Job")
        assert error.kind is ErrorKind.NETWORK

    def test_unknown_respects_retryable_flag(self):
        assert classify_exception(ValueError("odd"), "Research Job").retryable is False
        assert classify_exception(ValueError("odd"), "Research Job", retryable=True).retryable

    def test_job_error_passthrough(self):
        original = JobError("Research Job", ErrorKind.NETWORK, "reset")
        assert classify_exception(original, "Research Job") is original
