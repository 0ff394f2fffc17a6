"""``notecraft errors``: list persisted error reports."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import typer
from rich.markup import escape

from notecraft.core.errors import ErrorKind

from ..helpers import create_store, load_config
from ..output import console, create_errors_table


def errors(
    kind: str | None = typer.Option(
        None,
        "--kind",
        "-k",
        help="Filter by error kind, e.g. rate_limit_error",
    ),
    job_name: str | None = typer.Option(None, "--job", help="Filter by job name"),
    config_path: Path | None = typer.Option(
        None, "--config", "-c", help="YAML configuration file"
    ),
    errors_dir: Path | None = typer.Option(
        None, "--errors-dir", help="Override the error report directory"
    ),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output errors as JSON"),
) -> None:
    """List handled errors, oldest first.

    Examples:
        notecraft errors
        notecraft errors --kind authentication_error
        notecraft errors --job "Publishing Job" --json
    """
    if kind is not None:
        valid = {k.value for k in ErrorKind}
        if kind not in valid:
            console.print(
                f"[red]Unknown error kind:[/red] {escape(kind)}. "
                f"Choose from: {', '.join(sorted(valid))}"
            )
            raise typer.Exit(2)

    config = load_config(console, config_path)
    store = create_store(config, errors_dir=errors_dir)
    reports = asyncio.run(store.list_error_reports())
    entries = [r["error"] for r in reports if isinstance(r.get("error"), dict)]
    if kind is not None:
        entries = [e for e in entries if e.get("kind") == kind]
    if job_name is not None:
        entries = [e for e in entries if e.get("job_name") == job_name]

    if json_output:
        console.print_json(json.dumps(entries, default=str))
        return
    if not entries:
        console.print("[green]No error reports found.[/green]")
        return
    console.print(create_errors_table(entries))
    console.print(f"\n[dim]{len(entries)} error(s) in {store.errors_dir}[/dim]")
