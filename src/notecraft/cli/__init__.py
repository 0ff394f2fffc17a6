"""Notecraft CLI.

Inspects what a workflow run left on disk: the latest monitoring snapshot,
per-error reports, and the combined workflow report.

Package structure:
    cli/
    ├── __init__.py           # app assembly and global options
    ├── helpers.py            # logging state, config and store helpers
    ├── output.py             # Rich formatting
    └── commands/
        ├── status.py         # status command
        ├── errors.py         # errors command
        └── report.py         # report command
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from notecraft import __version__

# Re-export helpers module for direct access to internal state (conftest.py needs this)
from . import helpers as helpers
from .commands import errors, report, status
from .helpers import (
    configure_global_logging,
    set_log_file,
    set_log_format,
    set_log_level,
)
from .output import console

# =============================================================================
# Typer app definition
# =============================================================================

app = typer.Typer(
    name="notecraft",
    help="Resilience and observability for note-generation workflows",
    add_completion=False,
)


# =============================================================================
# Global option callbacks
# =============================================================================


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"Notecraft v{__version__}")
        raise typer.Exit()


def log_level_callback(value: str | None) -> str | None:
    if value:
        set_log_level(value)
    return value


def log_file_callback(value: Path | None) -> Path | None:
    if value:
        set_log_file(value)
    return value


def log_format_callback(value: str | None) -> str | None:
    if value:
        set_log_format(value)
    return value


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            "-L",
            callback=log_level_callback,
            help="Logging level (DEBUG, INFO, WARNING, ERROR)",
            envvar="NOTECRAFT_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            callback=log_file_callback,
            help="Path for log file output",
            envvar="NOTECRAFT_LOG_FILE",
        ),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option(
            "--log-format",
            callback=log_format_callback,
            help="Log format: json, console, or both",
            envvar="NOTECRAFT_LOG_FORMAT",
        ),
    ] = None,
) -> None:
    """Notecraft - inspect workflow health, errors and reports."""
    configure_global_logging(console)


# =============================================================================
# Command registration
# =============================================================================

app.command()(status)
app.command()(errors)
app.command()(report)


__all__ = ["app", "main", "console"]
