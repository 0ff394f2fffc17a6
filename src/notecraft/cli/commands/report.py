"""``notecraft report``: aggregate a finished run into one document."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer

from notecraft.monitoring.report import build_workflow_report

from ..helpers import create_store, load_config
from ..output import StatusColors, console

WORKFLOW_REPORT_FILENAME = "workflow-report.json"


def report(
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the report (default: <monitoring dir>/workflow-report.json)",
    ),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    monitoring_dir: Path | None = typer.Option(
        None, "--monitoring-dir", help="Override the snapshot directory"
    ),
    errors_dir: Path | None = typer.Option(
        None, "--errors-dir", help="Override the error report directory"
    ),
) -> None:
    """Combine the latest snapshot and every error report.

    Exits with status 1 when the workflow failed, so CI can gate on it.
    """
    config = load_config(console, config_path)
    store = create_store(config, monitoring_dir=monitoring_dir, errors_dir=errors_dir)
    document = asyncio.run(build_workflow_report(store))

    target = output or store.monitoring_dir / WORKFLOW_REPORT_FILENAME
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False, default=str)

    errors = document["errors"]
    console.print(f"Workflow status: {StatusColors.status(document['status'])}")
    console.print(
        f"Errors: {errors['total_errors']} total, "
        f"{len(errors['critical_errors'])} critical or high"
    )
    for job, count in sorted(errors["by_job"].items()):
        console.print(f"  {job}: {count}")
    console.print(f"[dim]Report written to {target}[/dim]")

    if document["status"] == "failed":
        raise typer.Exit(1)
