"""Configuration models for the Notecraft resilience core.

Pydantic models for retry policy, metric aggregation, report thresholds,
output locations and logging. ``CoreConfig`` aggregates them and can be
loaded from YAML:

    retry:
      max_retries: 5
      base_delay_seconds: 2
    thresholds:
      max_quota_usage_percent: 90
    output:
      monitoring_dir: build/monitoring
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, model_validator

from notecraft.core import constants


class RetryConfig(BaseModel):
    """Configuration for the retry policy engine."""

    max_retries: int = Field(
        default=constants.DEFAULT_MAX_RETRIES,
        ge=0,
        description="Maximum retry invocations per failing step",
    )
    base_delay_seconds: float = Field(
        default=constants.DEFAULT_BASE_DELAY_SECONDS,
        gt=0,
        description="Initial backoff delay, doubled per attempt",
    )
    max_delay_seconds: float = Field(
        default=constants.DEFAULT_MAX_DELAY_SECONDS,
        gt=0,
        description="Ceiling for any computed backoff delay",
    )
    jitter_seconds: float = Field(
        default=constants.DEFAULT_JITTER_SECONDS,
        ge=0,
        description="Upper bound of the uniform random jitter added to each delay",
    )
    default_rate_limit_wait_seconds: float = Field(
        default=constants.DEFAULT_RATE_LIMIT_WAIT_SECONDS,
        gt=0,
        description="Wait used when a rate-limited response carries no retry-after",
    )
    max_rate_limit_wait_seconds: float = Field(
        default=constants.MAX_RATE_LIMIT_WAIT_SECONDS,
        gt=0,
        description="Ceiling for any rate-limit wait, including server-provided ones",
    )
    timeout_multiplier: float = Field(
        default=constants.TIMEOUT_RETRY_MULTIPLIER,
        ge=1,
        description="Factor applied to the timeout passed to the next attempt",
    )
    default_timeout_seconds: float = Field(
        default=constants.DEFAULT_OPERATION_TIMEOUT_SECONDS,
        gt=0,
        description="Timeout assumed when a timeout error does not carry one",
    )
    unknown_error_max_retries: int = Field(
        default=constants.UNKNOWN_ERROR_MAX_RETRIES,
        ge=0,
        description="Retry bound for unclassified errors explicitly marked retryable",
    )
    error_history_limit: int = Field(
        default=constants.ERROR_HISTORY_IN_REPORT,
        ge=0,
        description="Number of recent errors included in each error report",
    )

    @model_validator(mode="after")
    def _validate_delay_range(self) -> RetryConfig:
        if self.base_delay_seconds > self.max_delay_seconds:
            raise ValueError(
                f"base_delay_seconds ({self.base_delay_seconds}) must not exceed "
                f"max_delay_seconds ({self.max_delay_seconds})"
            )
        return self


class MonitoringConfig(BaseModel):
    """Configuration for metric aggregation."""

    recent_window_size: int = Field(
        default=constants.RECENT_WINDOW_SIZE,
        ge=1,
        description="Number of most recent samples kept per metric series",
    )
    trend_window: int = Field(
        default=constants.TREND_WINDOW,
        ge=1,
        description="Samples per window when comparing recent against previous values",
    )
    trend_threshold: float = Field(
        default=constants.TREND_THRESHOLD,
        gt=0,
        description="Relative change above which a trend is increasing or decreasing",
    )

    @model_validator(mode="after")
    def _validate_trend_fits_window(self) -> MonitoringConfig:
        if self.trend_window * 2 > self.recent_window_size:
            raise ValueError(
                f"recent_window_size ({self.recent_window_size}) must hold two "
                f"trend windows of {self.trend_window} samples"
            )
        return self


class ReportThresholds(BaseModel):
    """Thresholds that turn report figures into recommendations."""

    min_success_rate_percent: float = Field(default=95.0, ge=0, le=100)
    max_quota_usage_percent: float = Field(default=80.0, ge=0, le=100)
    max_avg_response_time_ms: float = Field(default=5000.0, gt=0)
    max_workflow_duration_seconds: float = Field(
        default=30 * constants.SECONDS_PER_MINUTE,
        gt=0,
        description="Workflows running longer than this are flagged",
    )
    max_memory_mb: float = Field(default=500.0, gt=0)
    slow_execution_seconds: float = Field(default=30.0, gt=0)
    very_slow_execution_seconds: float = Field(default=60.0, gt=0)
    slow_response_ms: float = Field(default=5000.0, gt=0)
    very_slow_response_ms: float = Field(default=10000.0, gt=0)

    @model_validator(mode="after")
    def _validate_severity_order(self) -> ReportThresholds:
        if self.slow_execution_seconds > self.very_slow_execution_seconds:
            raise ValueError("slow_execution_seconds must not exceed very_slow_execution_seconds")
        if self.slow_response_ms > self.very_slow_response_ms:
            raise ValueError("slow_response_ms must not exceed very_slow_response_ms")
        return self


class OutputConfig(BaseModel):
    """Where snapshots and error reports are written."""

    monitoring_dir: Path = Field(
        default=Path("outputs/monitoring"),
        description="Directory for monitoring snapshots and the latest-report pointer",
    )
    errors_dir: Path = Field(
        default=Path("outputs/errors"),
        description="Directory for per-error JSON reports",
    )


class LogConfig(BaseModel):
    """Configuration for structured logging."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum log level to capture",
    )
    format: Literal["json", "console", "both"] = Field(
        default="console",
        description="Output format: json for structured, console for human-readable, "
        "both for console to stderr and JSON to file",
    )
    file_path: Path | None = Field(
        default=None,
        description="Path for log file output (required if format='both')",
    )
    max_file_size_mb: int = Field(default=50, gt=0, le=1000)
    backup_count: int = Field(default=5, ge=0, le=100)
    include_timestamps: bool = Field(default=True)
    include_context: bool = Field(
        default=True,
        description="Include bound context (workflow_id, job_id) in log entries",
    )
    compress_logs: bool = Field(default=True, description="Gzip rotated log files")

    @model_validator(mode="after")
    def _validate_file_path_for_both(self) -> LogConfig:
        if self.format == "both" and self.file_path is None:
            raise ValueError("file_path is required when format='both'")
        return self


class CoreConfig(BaseModel):
    """Complete configuration for a workflow process."""

    retry: RetryConfig = Field(default_factory=RetryConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)
    thresholds: ReportThresholds = Field(default_factory=ReportThresholds)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> CoreConfig:
        """Load configuration from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls.model_validate(data or {})

    @classmethod
    def from_yaml_string(cls, yaml_str: str) -> CoreConfig:
        """Load configuration from a YAML string."""
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data or {})
