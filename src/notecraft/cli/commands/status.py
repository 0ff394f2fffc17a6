"""``notecraft status``: show the latest monitoring snapshot."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.panel import Panel

from ..helpers import ErrorMessages, create_store, load_config
from ..output import (
    StatusColors,
    console,
    create_api_usage_table,
    create_jobs_table,
    create_recommendations_table,
    format_duration,
)


def status(
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    monitoring_dir: Path | None = typer.Option(
        None, "--monitoring-dir", help="Override the snapshot directory"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output the snapshot as JSON"),
) -> None:
    """Show workflow status from the latest monitoring snapshot.

    Examples:
        notecraft status
        notecraft status --monitoring-dir outputs/monitoring --json
    """
    config = load_config(console, config_path)
    store = create_store(config, monitoring_dir=monitoring_dir)
    snapshot = asyncio.run(store.load_latest())
    if snapshot is None:
        console.print(f"[yellow]{ErrorMessages.NO_SNAPSHOT}[/yellow] in {store.monitoring_dir}")
        raise typer.Exit(1)

    if json_output:
        console.print_json(json.dumps(snapshot, default=str))
        return

    workflow = snapshot.get("workflow", {})
    jobs = workflow.get("jobs", {})
    lines = [
        f"Workflow: [bold]{workflow.get('workflow_id', snapshot.get('workflow_id'))}[/bold]",
        f"Status: {StatusColors.status(str(workflow.get('status', 'unknown')))}",
        f"Progress: {workflow.get('progress', 0)}%",
        f"Stage: {workflow.get('current_stage', '-')}",
        f"Duration: {format_duration(workflow.get('duration_seconds'))}",
        f"Estimated completion: {workflow.get('estimated_completion', 'unknown')}",
        (
            f"Jobs: {jobs.get('total', 0)} total, {jobs.get('completed', 0)} completed, "
            f"{jobs.get('failed', 0)} failed, {jobs.get('running', 0)} running, "
            f"{jobs.get('retrying', 0)} retrying"
        ),
    ]
    console.print(Panel("\n".join(lines), title="Notecraft workflow", expand=False))

    if snapshot.get("jobs"):
        console.print(create_jobs_table(snapshot["jobs"]))
    api_usage = snapshot.get("api_usage") or {}
    if api_usage.get("services"):
        console.print(create_api_usage_table(api_usage))
    if snapshot.get("recommendations"):
        console.print(create_recommendations_table(snapshot["recommendations"]))
