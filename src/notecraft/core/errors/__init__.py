"""Error classification and diagnostics.

Re-exports the public error symbols.
"""

from notecraft.core.errors.codes import (
    DetailKeys,
    ErrorKind,
    RetryDelays,
    Severity,
)
from notecraft.core.errors.models import JobError, to_jsonable
from notecraft.core.errors.classifier import (
    BrowserErrorClassifier,
    ErrorClassifier,
    LLMErrorClassifier,
    SearchErrorClassifier,
    classify_exception,
    parse_retry_after,
)
from notecraft.core.errors.diagnostics import (
    auth_troubleshooting_steps,
    enrich,
    validation_suggestions,
)

__all__ = [
    "DetailKeys",
    "ErrorKind",
    "RetryDelays",
    "Severity",
    "JobError",
    "to_jsonable",
    "BrowserErrorClassifier",
    "ErrorClassifier",
    "LLMErrorClassifier",
    "SearchErrorClassifier",
    "classify_exception",
    "parse_retry_after",
    "auth_troubleshooting_steps",
    "enrich",
    "validation_suggestions",
]
