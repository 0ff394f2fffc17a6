"""Tests for notecraft.core.errors models, codes and diagnostics."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from notecraft.core.errors import (
    DetailKeys,
    ErrorKind,
    JobError,
    Severity,
    auth_troubleshooting_steps,
    enrich,
    to_jsonable,
    validation_suggestions,
)


class TestErrorKind:
    """Tests for the kind taxonomy."""

    def test_values_are_snake_case_strings(self):
        assert ErrorKind.RATE_LIMIT.value == "rate_limit_error"
        assert ErrorKind.NETWORK == "network_error"
        assert len(ErrorKind) == 11

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.AUTHENTICATION, ErrorKind.QUOTA_EXCEEDED, ErrorKind.VALIDATION],
    )
    def test_escalating_kinds(self, kind: ErrorKind):
        assert kind.escalates_immediately

    @pytest.mark.parametrize(
        "kind",
        [ErrorKind.NETWORK, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMIT, ErrorKind.UNKNOWN],
    )
    def test_retryable_kinds_do_not_escalate(self, kind: ErrorKind):
        assert not kind.escalates_immediately

    def test_severity_rank_orders_most_severe_first(self):
        ranks = [s.rank for s in (Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW)]
        assert ranks == sorted(ranks)
        assert Severity.CRITICAL.rank < Severity.LOW.rank


class TestJobErrorConstruction:
    """Tests for JobError creation and required detail keys."""

    def test_id_contains_slug_and_kind(self):
        error = JobError("Research Job", ErrorKind.NETWORK, "connection reset")
        assert error.id.startswith("research-job-network_error-")
        assert error.lineage_id == error.id

    def test_ids_are_unique(self):
        created = datetime(2025, 1, 15, tzinfo=UTC)
        a = JobError("Research Job", ErrorKind.NETWORK, "x", created_at=created)
        b = JobError("Research Job", ErrorKind.NETWORK, "x", created_at=created)
        assert a.id != b.id

    def test_defaults(self):
        error = JobError("Writing Job", ErrorKind.UNKNOWN, "boom")
        assert error.retryable is False
        assert error.severity is Severity.HIGH
        assert dict(error.details) == {}
        assert error.created_at.tzinfo is not None

    def test_rate_limit_requires_retry_after(self):
        with pytest.raises(ValueError, match="retry_after_seconds"):
            JobError("Research Job", ErrorKind.RATE_LIMIT, "slow down")

    def test_timeout_requires_timeout_seconds(self):
        with pytest.raises(ValueError, match="timeout_seconds"):
            JobError("Research Job", ErrorKind.TIMEOUT, "too slow")

    def test_rate_limit_with_required_key(self):
        error = JobError(
            "Research Job",
            ErrorKind.RATE_LIMIT,
            "slow down",
            details={DetailKeys.RETRY_AFTER_SECONDS: 2.0},
            retryable=True,
        )
        assert error.details[DetailKeys.RETRY_AFTER_SECONDS] == 2.0

    def test_str_and_repr(self):
        error = JobError("Research Job", ErrorKind.NETWORK, "connection reset")
        assert str(error) == "[network_error] connection reset"
        assert "network_error" in repr(error)

    def test_is_raisable(self):
        with pytest.raises(JobError) as exc_info:
            raise JobError("Research Job", ErrorKind.NETWORK, "connection reset")
        assert exc_info.value.kind is ErrorKind.NETWORK


class TestJobErrorImmutability:
    """Classification fields cannot change after construction."""

    @pytest.mark.parametrize(
        "field", ["id", "job_name", "kind", "message", "retryable", "severity", "lineage_id"]
    )
    def test_fields_cannot_be_reassigned(self, field: str):
        error = JobError("Research Job", ErrorKind.NETWORK, "connection reset")
        with pytest.raises(AttributeError):
            setattr(error, field, "changed")

    def test_fields_cannot_be_deleted(self):
        error = JobError("Research Job", ErrorKind.NETWORK, "connection reset")
        with pytest.raises(AttributeError):
            del error.kind

    def test_details_are_read_only(self):
        error = JobError(
            "Research Job", ErrorKind.NETWORK, "reset", details={"service": "llm"}
        )
        with pytest.raises(TypeError):
            error.details["service"] = "search"  # type: ignore[index]

    def test_details_are_copied_from_input(self):
        source = {"service": "llm"}
        error = JobError("Research Job", ErrorKind.NETWORK, "reset", details=source)
        source["service"] = "search"
        assert error.details["service"] == "llm"

    def test_exception_chaining_still_works(self):
        cause = RuntimeError("root")
        error = JobError("Research Job", ErrorKind.UNKNOWN, "wrapped")
        error.__cause__ = cause
        assert error.__cause__ is cause


class TestJobErrorDerivation:
    """Tests for evolve(), from_exception() and to_dict()."""

    def test_evolve_keeps_lineage_and_classification(self):
        error = JobError(
            "Research Job",
            ErrorKind.NETWORK,
            "reset",
            details={"service": "llm"},
            retryable=True,
            severity=Severity.MEDIUM,
        )
        evolved = error.evolve(message="reset again", extra_details={"attempt": 2})
        assert evolved.id != error.id
        assert evolved.lineage_id == error.lineage_id
        assert evolved.kind is ErrorKind.NETWORK
        assert evolved.retryable is True
        assert evolved.severity is Severity.MEDIUM
        assert evolved.message == "reset again"
        assert dict(evolved.details) == {"service": "llm", "attempt": 2}
        assert "attempt" not in error.details

    def test_from_exception_builds_unknown(self):
        error = JobError.from_exception("Writing Job", KeyError("title"))
        assert error.kind is ErrorKind.UNKNOWN
        assert error.retryable is False
        assert error.details[DetailKeys.EXCEPTION_TYPE] == "KeyError"

    def test_from_exception_uses_type_name_for_empty_message(self):
        error = JobError.from_exception("Writing Job", RuntimeError())
        assert error.message == "RuntimeError"

    def test_from_exception_passes_job_error_through(self):
        original = JobError("Writing Job", ErrorKind.NETWORK, "reset")
        assert JobError.from_exception("Other Job", original) is original

    def test_to_dict(self):
        error = JobError(
            "Research Job",
            ErrorKind.AUTHENTICATION,
            "bad key",
            details={"status_code": 401},
            severity=Severity.CRITICAL,
        )
        data = error.to_dict()
        assert data["kind"] == "authentication_error"
        assert data["severity"] == "critical"
        assert data["details"] == {"status_code": 401}
        assert data["lineage_id"] == error.id
        datetime.fromisoformat(data["created_at"])


class TestToJsonable:
    """Tests for the detail value converter."""

    def test_callables_render_as_function(self):
        assert to_jsonable({"fn": lambda: None}) == {"fn": "[Function]"}

    def test_nested_containers(self):
        value = {"a": (1, 2), "b": {"c": {3}}}
        assert to_jsonable(value) == {"a": [1, 2], "b": {"c": [3]}}

    def test_exceptions_and_datetimes(self):
        moment = datetime(2025, 1, 15, tzinfo=UTC)
        result = to_jsonable({"exc": ValueError("bad"), "at": moment})
        assert result["exc"] == {"type": "ValueError", "message": "bad"}
        assert result["at"] == moment.isoformat()


class TestDiagnostics:
    """Tests for terminal-error enrichment."""

    def test_auth_steps_include_job_specific_checks(self):
        steps = auth_troubleshooting_steps("Publishing Job")
        assert any("NOTE_STORAGE_STATE_JSON" in s for s in steps)
        assert len(steps) > len(auth_troubleshooting_steps("Unknown Job"))

    def test_enrich_auth(self):
        error = JobError(
            "Fact Check Job", ErrorKind.AUTHENTICATION, "401", severity=Severity.CRITICAL
        )
        enriched = enrich(error)
        steps = enriched.details[DetailKeys.TROUBLESHOOTING]
        assert any("TAVILY_API_KEY" in s for s in steps)
        assert enriched.lineage_id == error.lineage_id

    def test_enrich_validation_adds_prefix_and_suggestions(self):
        error = JobError(
            "Writing Job",
            ErrorKind.VALIDATION,
            "bad article",
            details={DetailKeys.MISSING_FIELDS: ["title", "body"], DetailKeys.LENGTH_ERROR: True},
        )
        enriched = enrich(error)
        assert enriched.message == "Validation failed: bad article"
        suggestions = enriched.details[DetailKeys.SUGGESTIONS]
        assert "Missing required fields: title, body" in suggestions
        assert "Input data exceeds the allowed length" in suggestions

    def test_enrich_validation_does_not_double_prefix(self):
        error = JobError("Writing Job", ErrorKind.VALIDATION, "Validation failed: x")
        assert enrich(error).message == "Validation failed: x"

    def test_validation_suggestions_empty(self):
        assert validation_suggestions({}) == []

    def test_enrich_other_kind_adds_hint(self):
        error = JobError("Research Job", ErrorKind.QUOTA_EXCEEDED, "billing")
        hints = enrich(error).details[DetailKeys.TROUBLESHOOTING]
        assert len(hints) == 1
        assert "quota" in hints[0].lower()
