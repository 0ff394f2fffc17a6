"""Shared utilities for Notecraft CLI commands.

- Logging configuration state set by the global options
- Config loading and report store construction
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from notecraft.core.config import CoreConfig
from notecraft.core.logging import configure_logging, get_logger
from notecraft.state import JsonReportStore

_logger = get_logger("cli")


class ErrorMessages:
    """Constants for CLI error messages."""

    CONFIG_LOAD_ERROR = "Error loading config"
    NO_SNAPSHOT = "No monitoring snapshot found"


# =============================================================================
# Logging configuration
# =============================================================================


@dataclass
class CliLoggingConfig:
    """CLI logging configuration state set by the global options."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    file: Path | None = None
    format: Literal["json", "console", "both"] = "console"
    configured: bool = False


# Single global config instance
_log_config = CliLoggingConfig()


def get_log_config() -> CliLoggingConfig:
    return _log_config


def set_log_level(level: str) -> None:
    _log_config.level = level.upper()  # type: ignore[assignment]


def set_log_file(path: Path | None) -> None:
    _log_config.file = path


def set_log_format(fmt: str) -> None:
    _log_config.format = fmt.lower()  # type: ignore[assignment]


def configure_global_logging(console: Console) -> None:
    """Configure logging from the global CLI options, once per session.

    Raises:
        typer.Exit: If logging configuration fails.
    """
    if _log_config.configured:
        return
    if _log_config.level not in ("DEBUG", "INFO", "WARNING", "ERROR"):
        console.print(f"[red]Logging configuration error:[/red] unknown level {_log_config.level}")
        raise typer.Exit(1)
    try:
        configure_logging(
            level=_log_config.level,
            format=_log_config.format,
            file_path=_log_config.file,
        )
        _log_config.configured = True
    except ValueError as e:
        # e.g. format="both" without file_path
        console.print(f"[red]Logging configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def reset_logging_state() -> None:
    """Reset logging state so tests can reconfigure."""
    _log_config.level = "WARNING"
    _log_config.file = None
    _log_config.format = "console"
    _log_config.configured = False


# =============================================================================
# Config and store helpers
# =============================================================================


def load_config(console: Console, config_path: Path | None) -> CoreConfig:
    """Load configuration, or defaults when no path is given.

    Raises:
        typer.Exit: If the file cannot be read or does not validate.
    """
    if config_path is None:
        return CoreConfig()
    try:
        return CoreConfig.from_yaml(config_path)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]{ErrorMessages.CONFIG_LOAD_ERROR}:[/red] {escape(str(e))}")
        raise typer.Exit(1) from None


def create_store(
    config: CoreConfig,
    monitoring_dir: Path | None = None,
    errors_dir: Path | None = None,
) -> JsonReportStore:
    """JSON store on the configured directories, with CLI overrides."""
    store = JsonReportStore(
        monitoring_dir or config.output.monitoring_dir,
        errors_dir or config.output.errors_dir,
    )
    _logger.debug(
        "cli.store",
        monitoring_dir=str(store.monitoring_dir),
        errors_dir=str(store.errors_dir),
    )
    return store
