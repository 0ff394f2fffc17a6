"""Structured logging infrastructure for Notecraft.

Provides structured logging using structlog with pipeline-specific context
such as workflow_id, job_id and job name. Supports console and JSON output,
optionally mirrored to a rotating log file.

Example usage:
    from notecraft.core.logging import get_logger, configure_logging, with_context

    # Configure once at process entry
    configure_logging(level="DEBUG", format="console")

    # Get a component-specific logger
    logger = get_logger("lifecycle")
    logger.info("job.started", job_name="Research Job")

    # Correlate everything logged inside a job
    ctx = ExecutionContext(workflow_id="workflow-...", job_id="research-job-...")
    with with_context(ctx):
        logger.info("job.progress", percent=50)  # includes workflow_id, job_id
"""

from __future__ import annotations

import gzip
import logging
import os
import shutil
import sys
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Sensitive field patterns that should never be logged or persisted
SENSITIVE_PATTERNS = frozenset({
    "api_key",
    "apikey",
    "api-key",
    "token",
    "secret",
    "password",
    "credential",
    "auth",
    "bearer",
    "authorization",
    "cookie",
})

REDACTED = "[REDACTED]"


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable context for correlating log entries across a workflow run.

    Attributes:
        workflow_id: Identifier of the monitored workflow run.
        job_id: Job currently executing (None outside a job).
        job_name: Human-readable job name, e.g. "Research Job".
        component: Component emitting the log line.
    """

    workflow_id: str
    job_id: str | None = None
    job_name: str | None = None
    component: str = "unknown"

    def with_job(self, job_id: str, job_name: str | None = None) -> ExecutionContext:
        """Return a copy scoped to a specific job."""
        return replace(self, job_id=job_id, job_name=job_name or self.job_name)

    def with_component(self, component: str) -> ExecutionContext:
        """Return a copy with a different component name."""
        return replace(self, component=component)

    def to_dict(self) -> dict[str, Any]:
        """Context fields for logging (None values omitted)."""
        result: dict[str, Any] = {
            "workflow_id": self.workflow_id,
            "component": self.component,
        }
        if self.job_id is not None:
            result["job_id"] = self.job_id
        if self.job_name is not None:
            result["job_name"] = self.job_name
        return result


_current_context: ContextVar[ExecutionContext | None] = ContextVar(
    "notecraft_context", default=None
)


def get_current_context() -> ExecutionContext | None:
    """Get the current ExecutionContext if set."""
    return _current_context.get()


@contextmanager
def with_context(ctx: ExecutionContext) -> Iterator[ExecutionContext]:
    """Set ExecutionContext for the duration of a block.

    Args:
        ctx: The ExecutionContext to use for the block.

    Yields:
        The ExecutionContext that was set.
    """
    token = _current_context.set(ctx)
    try:
        yield ctx
    finally:
        _current_context.reset(token)


def is_sensitive_key(key: str) -> bool:
    """True if a field name looks like it carries a credential."""
    key_lower = key.lower()
    return any(pattern in key_lower for pattern in SENSITIVE_PATTERNS)


def sanitize_mapping(data: Mapping[str, Any] | None) -> dict[str, Any]:
    """Recursively redact sensitive keys in a mapping.

    Used for log events as well as for job outputs and error details that
    end up in persisted reports.
    """
    if not data:
        return {}
    sanitized: dict[str, Any] = {}
    for key, value in data.items():
        key_str = str(key)
        if is_sensitive_key(key_str):
            sanitized[key_str] = REDACTED
        elif isinstance(value, Mapping):
            sanitized[key_str] = sanitize_mapping(value)
        else:
            sanitized[key_str] = value
    return sanitized


def _sanitize_event_dict(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that redacts sensitive fields."""
    return sanitize_mapping(event_dict)


def _add_timestamp(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that adds an ISO8601 UTC timestamp."""
    event_dict["timestamp"] = datetime.now(UTC).isoformat()
    return event_dict


def _add_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Structlog processor that merges the active ExecutionContext.

    Explicitly passed fields take precedence over context fields.
    """
    ctx = get_current_context()
    if ctx is not None:
        for key, value in ctx.to_dict().items():
            event_dict.setdefault(key, value)
    return event_dict


def _gzip_namer(name: str) -> str:
    return f"{name}.gz"


def _gzip_rotator(source: str, dest: str) -> None:
    """Compress a rotated log file, removing the uncompressed original."""
    with open(source, "rb") as f_in, gzip.open(dest, "wb", compresslevel=9) as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


def _make_file_handler(
    file_path: Path, max_file_size_mb: int, backup_count: int, compress: bool
) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        file_path,
        maxBytes=max_file_size_mb * 1024 * 1024,
        backupCount=backup_count,
        encoding="utf-8",
    )
    if compress:
        handler.namer = _gzip_namer
        handler.rotator = _gzip_rotator
    return handler


class NotecraftLogger:
    """Component-bound wrapper around a structlog logger.

    The underlying structlog logger is fetched on every call so that loggers
    created at import time respect a later configure_logging().
    """

    def __init__(self, component: str, **initial_context: Any) -> None:
        self._component = component
        self._context: dict[str, Any] = {"component": component, **initial_context}

    def _get_logger(self) -> structlog.stdlib.BoundLogger:
        logger: structlog.stdlib.BoundLogger = structlog.get_logger().bind(**self._context)
        return logger

    def bind(self, **context: Any) -> NotecraftLogger:
        """Create a new logger with additional bound context."""
        bound = {k: v for k, v in self._context.items() if k != "component"}
        return NotecraftLogger(self._component, **{**bound, **context})

    def debug(self, event: str, **kw: Any) -> None:
        self._get_logger().debug(event, **kw)

    def info(self, event: str, **kw: Any) -> None:
        self._get_logger().info(event, **kw)

    def warning(self, event: str, **kw: Any) -> None:
        self._get_logger().warning(event, **kw)

    def error(self, event: str, **kw: Any) -> None:
        self._get_logger().error(event, **kw)

    def critical(self, event: str, **kw: Any) -> None:
        self._get_logger().critical(event, **kw)

    def exception(self, event: str, **kw: Any) -> None:
        """Log an error with traceback; call from inside an except block."""
        self._get_logger().exception(event, **kw)


def _build_processors(renderer: Processor, include_timestamps: bool, include_context: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        _sanitize_event_dict,
    ]
    if include_context:
        processors.append(_add_context)
    if include_timestamps:
        processors.append(_add_timestamp)
    processors.extend([
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ])
    return processors


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO",
    format: Literal["json", "console", "both"] = "console",  # noqa: A002
    file_path: Path | None = None,
    max_file_size_mb: int = 50,
    backup_count: int = 5,
    include_timestamps: bool = True,
    include_context: bool = True,
    compress_logs: bool = True,
) -> None:
    """Configure Notecraft structured logging.

    Call once at process entry before any logging occurs.

    Args:
        level: Minimum log level to capture.
        format: "console" for human-readable stderr, "json" for structured
            output (to file_path if given, else stdout), "both" for console
            on stderr plus JSON-formatted file output.
        file_path: Optional log file. Required if format="both".
        max_file_size_mb: Size at which the log file is rotated.
        backup_count: Number of rotated log files to keep.
        include_timestamps: Add ISO8601 timestamps to entries.
        include_context: Add ExecutionContext fields to entries.
        compress_logs: Gzip rotated log files.

    Raises:
        ValueError: If format="both" but file_path is not provided.
    """
    if format == "both" and file_path is None:
        raise ValueError("file_path is required when format='both'")

    log_level = getattr(logging, level)
    handlers: list[logging.Handler] = []

    if format in ("console", "both"):
        handlers.append(logging.StreamHandler(sys.stderr))

    if format in ("json", "both"):
        if file_path is not None:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(
                _make_file_handler(file_path, max_file_size_mb, backup_count, compress_logs)
            )
        else:
            handlers.append(logging.StreamHandler(sys.stdout))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setLevel(log_level)
        root_logger.addHandler(handler)

    renderer: Processor
    if format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=_build_processors(renderer, include_timestamps, include_context),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def get_logger(component: str, **initial_context: Any) -> NotecraftLogger:
    """Get a Notecraft logger for a component.

    Args:
        component: The component name (e.g., "lifecycle", "retry_policy").
        **initial_context: Additional context to bind.

    Returns:
        A NotecraftLogger bound to the component.
    """
    return NotecraftLogger(component, **initial_context)


__all__ = [
    "REDACTED",
    "SENSITIVE_PATTERNS",
    "ExecutionContext",
    "NotecraftLogger",
    "configure_logging",
    "get_current_context",
    "get_logger",
    "is_sensitive_key",
    "sanitize_mapping",
    "with_context",
]
