"""Rich output formatting for the Notecraft CLI.

Centralizes the shared console, status colors and table builders.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from notecraft.core.constants import SECONDS_PER_HOUR, SECONDS_PER_MINUTE

# =============================================================================
# Shared console instance
# =============================================================================

console = Console()


# =============================================================================
# Color schemes for status values
# =============================================================================


class StatusColors:
    """Color mappings for workflow, job, severity and priority values."""

    STATUS: dict[str, str] = {
        "pending": "yellow",
        "running": "blue",
        "retrying": "magenta",
        "completed": "green",
        "failed": "red",
        "unknown": "dim",
    }

    SEVERITY: dict[str, str] = {
        "critical": "bold red",
        "high": "red",
        "medium": "yellow",
        "low": "dim",
    }

    PRIORITY: dict[str, str] = {
        "high": "red",
        "medium": "yellow",
        "low": "dim",
    }

    @classmethod
    def status(cls, value: str) -> str:
        return f"[{cls.STATUS.get(value, 'white')}]{value}[/]"

    @classmethod
    def severity(cls, value: str) -> str:
        return f"[{cls.SEVERITY.get(value, 'white')}]{value}[/]"


# =============================================================================
# Formatters
# =============================================================================


def format_duration(seconds: float | None) -> str:
    """Format a duration as e.g. ``45.2s``, ``3m 05s`` or ``1h 02m``."""
    if seconds is None:
        return "-"
    if seconds < SECONDS_PER_MINUTE:
        return f"{seconds:.1f}s"
    if seconds < SECONDS_PER_HOUR:
        minutes, secs = divmod(int(seconds), SECONDS_PER_MINUTE)
        return f"{minutes}m {secs:02d}s"
    hours, rest = divmod(int(seconds), SECONDS_PER_HOUR)
    return f"{hours}h {rest // SECONDS_PER_MINUTE:02d}m"


# =============================================================================
# Table builders
# =============================================================================


def create_jobs_table(jobs: list[dict[str, Any]]) -> Table:
    table = Table(title="Jobs", show_lines=False)
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Progress", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Error")
    for job in jobs:
        error = job.get("error") or {}
        table.add_row(
            str(job.get("name")),
            StatusColors.status(str(job.get("status"))),
            f"{float(job.get('progress') or 0):.0f}%",
            str(job.get("retry_count", 0)),
            format_duration(job.get("duration_seconds")),
            escape(f"{error.get('kind')}: {error.get('message')}") if error else "",
        )
    return table


def create_api_usage_table(api_usage: dict[str, Any]) -> Table:
    table = Table(title="API usage")
    table.add_column("Service", style="bold")
    table.add_column("Calls", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Avg response", justify="right")
    table.add_column("Quota")
    for service, data in api_usage.get("services", {}).items():
        quota = data.get("quota_status")
        table.add_row(
            service,
            str(data.get("total_calls", 0)),
            f"{data.get('success_rate', 0)}%",
            f"{data.get('average_response_time_ms', 0):.0f}ms",
            f"{quota['used']}/{quota['limit']} ({quota['usage_percent']}%)" if quota else "-",
        )
    return table


def create_recommendations_table(recommendations: list[dict[str, Any]]) -> Table:
    table = Table(title="Recommendations")
    table.add_column("Priority")
    table.add_column("Category")
    table.add_column("Message")
    for rec in recommendations:
        priority = str(rec.get("priority"))
        table.add_row(
            f"[{StatusColors.PRIORITY.get(priority, 'white')}]{priority}[/]",
            str(rec.get("category")),
            escape(str(rec.get("message"))),
        )
    return table


def create_errors_table(errors: list[dict[str, Any]]) -> Table:
    table = Table(title="Error reports")
    table.add_column("Time")
    table.add_column("Job", style="bold")
    table.add_column("Kind")
    table.add_column("Severity")
    table.add_column("Retryable")
    table.add_column("Message")
    for error in errors:
        table.add_row(
            str(error.get("created_at", "")),
            str(error.get("job_name", "")),
            str(error.get("kind", "")),
            StatusColors.severity(str(error.get("severity", ""))),
            "yes" if error.get("retryable") else "no",
            escape(str(error.get("message", ""))),
        )
    return table
