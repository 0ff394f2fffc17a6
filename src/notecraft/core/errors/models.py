"""The classified error model.

``JobError`` is the single typed representation of any failure inside a
pipeline job. Classifiers produce it from raw exceptions; the retry engine
consumes it, enriches it and raises it again when recovery is impossible.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Any

from notecraft.core.errors.codes import DetailKeys, ErrorKind, Severity
from notecraft.utils.text import slugify
from notecraft.utils.time import epoch_ms, utc_now

_FROZEN_FIELDS = frozenset({
    "id",
    "job_name",
    "kind",
    "message",
    "details",
    "retryable",
    "severity",
    "created_at",
    "lineage_id",
})


class JobError(Exception):
    """A failure classified by kind, severity and retryability.

    Classification fields are fixed at construction; assigning to any of them
    raises AttributeError. Use ``evolve()`` to derive an enriched copy.

    Attributes:
        id: Unique identifier built from job name, kind and creation time.
        job_name: Name of the job that failed, e.g. "Research Job".
        kind: Normalized error kind.
        message: Human-readable description.
        details: Read-only mapping of kind-specific data (see DetailKeys).
        retryable: Whether the retry engine may attempt recovery.
        severity: How urgently the failure needs attention.
        created_at: UTC creation time.
        lineage_id: Id shared by an error and every error wrapping its failed
            retries. Equal to ``id`` for a fresh error.
    """

    def __init__(
        self,
        job_name: str,
        kind: ErrorKind,
        message: str,
        *,
        details: Mapping[str, Any] | None = None,
        retryable: bool = False,
        severity: Severity = Severity.HIGH,
        lineage_id: str | None = None,
        created_at: datetime | None = None,
    ) -> None:
        details = dict(details or {})
        missing = [key for key in DetailKeys.required_for(kind) if key not in details]
        if missing:
            raise ValueError(f"{kind.value} requires detail keys: {', '.join(missing)}")

        super().__init__(message)
        created = created_at or utc_now()
        error_id = (
            f"{slugify(job_name)}-{kind.value}-{epoch_ms(created)}-{uuid.uuid4().hex[:6]}"
        )
        set_field = super().__setattr__
        set_field("id", error_id)
        set_field("job_name", job_name)
        set_field("kind", kind)
        set_field("message", message)
        set_field("details", MappingProxyType(details))
        set_field("retryable", retryable)
        set_field("severity", severity)
        set_field("created_at", created)
        set_field("lineage_id", lineage_id or error_id)

    # Declared for type checkers; populated in __init__.
    id: str
    job_name: str
    kind: ErrorKind
    message: str
    details: Mapping[str, Any]
    retryable: bool
    severity: Severity
    created_at: datetime
    lineage_id: str

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _FROZEN_FIELDS:
            raise AttributeError(f"JobError.{name} cannot be reassigned")
        super().__setattr__(name, value)

    def __delattr__(self, name: str) -> None:
        if name in _FROZEN_FIELDS:
            raise AttributeError(f"JobError.{name} cannot be deleted")
        super().__delattr__(name)

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"JobError(id={self.id!r}, kind={self.kind.value!r}, "
            f"retryable={self.retryable}, severity={self.severity.value!r})"
        )

    @property
    def needs_session_restart(self) -> bool:
        return bool(self.details.get(DetailKeys.NEEDS_SESSION_RESTART, False))

    def evolve(
        self,
        *,
        message: str | None = None,
        extra_details: Mapping[str, Any] | None = None,
    ) -> JobError:
        """Return a new error of the same classification with added details.

        The copy gets a fresh id but keeps this error's lineage.
        """
        return JobError(
            self.job_name,
            self.kind,
            message or self.message,
            details={**self.details, **(extra_details or {})},
            retryable=self.retryable,
            severity=self.severity,
            lineage_id=self.lineage_id,
        )

    @classmethod
    def from_exception(
        cls,
        job_name: str,
        exc: BaseException,
        *,
        retryable: bool = False,
    ) -> JobError:
        """Wrap an unclassified exception as an UNKNOWN error."""
        if isinstance(exc, JobError):
            return exc
        return cls(
            job_name,
            ErrorKind.UNKNOWN,
            str(exc) or type(exc).__name__,
            details={DetailKeys.EXCEPTION_TYPE: type(exc).__name__},
            retryable=retryable,
            severity=Severity.HIGH,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for reports and logs."""
        return {
            "id": self.id,
            "job_name": self.job_name,
            "kind": self.kind.value,
            "message": self.message,
            "details": to_jsonable(self.details),
            "retryable": self.retryable,
            "severity": self.severity.value,
            "created_at": self.created_at.isoformat(),
            "lineage_id": self.lineage_id,
        }


def to_jsonable(value: Any) -> Any:
    """Best-effort conversion of detail values into JSON-friendly types."""
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, JobError):
        return value.to_dict()
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value)}
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if callable(value):
        return "[Function]"
    return str(value)
