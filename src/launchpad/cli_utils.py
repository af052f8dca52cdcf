"""Shared helpers for launchpad CLI commands.

Exit codes, the shared console, logging setup and small output helpers.
"""

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from launchpad.core.config import LaunchpadConfig, load_config
from launchpad.core.exceptions import ConfigError

EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

console = Console()


def _setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logging with a rich handler.

    Progress lines are printed through the console, so the default level
    only lets warnings through.

    Args:
        verbose: Show DEBUG messages.
        quiet: Only show errors. Ignored when verbose is set.

    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=verbose, show_path=verbose)],
        force=True,
    )


def _error(message: str) -> None:
    console.print(f"[red]Error:[/red] {escape(message)}")


def _warning(message: str) -> None:
    console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


def _info(message: str) -> None:
    console.print(f"[cyan]{escape(message)}[/cyan]")


def _success(message: str) -> None:
    console.print(f"[green]{escape(message)}[/green]")


def _load_config_or_exit(config_path: Path | None) -> LaunchpadConfig:
    """Load the config file, exiting with EXIT_CONFIG_ERROR on failure."""
    try:
        return load_config(config_path)
    except ConfigError as e:
        _error(str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from None
