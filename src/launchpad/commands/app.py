"""App command group for launchpad.

Runs lifecycle commands across the repositories of the configured workspace:
- `launchpad app run <command>`: any logical command or ``sh:<shell>``
- `launchpad app dev|start|build|test|lint|down`: presets of `run`
- `launchpad app stop|kill|status`: processes tracked by this session
- `launchpad app logs`: newest log of a repository
- `launchpad app list`: repositories found in the workspace

Example:
    $ launchpad app dev --all
    $ launchpad app run "sh:git pull" -r svc-a -r svc-b
    $ launchpad app test -r svc-a --watch
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Any

import typer

from launchpad.cli_utils import (
    EXIT_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    _error,
    _info,
    _load_config_or_exit,
    _warning,
    console,
)
from launchpad.core.config import LaunchpadConfig
from launchpad.runner.app_runner import AppRunner
from launchpad.runner.types import BatchResult, RunOptions

logger = logging.getLogger(__name__)

app_app = typer.Typer(
    name="app",
    help="Run and manage applications across workspace repositories",
    no_args_is_help=True,
)


def _repos_option() -> Any:
    return typer.Option(
        None,
        "--repos",
        "-r",
        help="Repository to run on (repeatable)",
    )


def _all_option() -> Any:
    return typer.Option(False, "--all", "-a", help="Run on all workspace repositories")


def _config_option() -> Any:
    return typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (default: ~/.config/launchpad/config.yaml)",
    )


def _build_runner(config: LaunchpadConfig) -> AppRunner:
    return AppRunner.from_config(config, console=console)


def _target_repositories(
    config: LaunchpadConfig,
    runner: AppRunner,
    repos: list[str] | None,
    all_repos: bool,
) -> list[str]:
    """Pick the repositories named on the command line.

    ``--all`` means the configured repositories, or every repository found
    in the workspace when the config lists none.

    Raises:
        typer.Exit: If nothing was selected.

    """
    if all_repos:
        targets = list(config.workspace.repositories) or runner.find_repositories()
        if not targets:
            _warning(f"No repositories found in workspace {config.workspace.path}")
            raise typer.Exit(code=EXIT_ERROR)
        return targets

    if repos:
        # Preserve order, drop duplicates so one key is never launched twice.
        return list(dict.fromkeys(repos))

    _error("Select repositories with --repos/-r or --all/-a")
    raise typer.Exit(code=EXIT_ERROR)


async def _run_session(
    runner: AppRunner,
    command: str,
    repositories: list[str],
    options: RunOptions,
) -> tuple[BatchResult | None, bool]:
    """Run the batch, then hold the foreground while processes remain.

    Child processes run in their own sessions and never see the terminal's
    Ctrl+C, so SIGINT/SIGTERM are caught here and turned into stop_all().

    Returns:
        Tuple of (batch result or None if interrupted early, interrupted).

    """
    loop = asyncio.get_running_loop()
    interrupted = asyncio.Event()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, interrupted.set)
            installed.append(sig)

    batch = asyncio.create_task(runner.run_command(command, repositories, options))
    stopper = asyncio.create_task(interrupted.wait())
    try:
        await asyncio.wait({batch, stopper}, return_when=asyncio.FIRST_COMPLETED)

        if not interrupted.is_set() and runner.get_running_processes():
            console.print("\n[dim]Processes are running. Press Ctrl+C to stop them.[/dim]")
            waiter = asyncio.create_task(runner.wait_all())
            await asyncio.wait({waiter, stopper}, return_when=asyncio.FIRST_COMPLETED)
            waiter.cancel()
            await asyncio.gather(waiter, return_exceptions=True)

        if interrupted.is_set():
            batch.cancel()
            await asyncio.gather(batch, return_exceptions=True)
            console.print("\n[yellow]Stopping all processes...[/yellow]")
            await runner.stop_all()
            result = None if batch.cancelled() else batch.result()
            return result, True

        return batch.result(), False
    finally:
        stopper.cancel()
        for sig in installed:
            loop.remove_signal_handler(sig)


def _run_command(
    command: str,
    repos: list[str] | None,
    all_repos: bool,
    options: RunOptions,
    config_path: Path | None,
) -> None:
    """Run a logical command and exit with the batch outcome."""
    config = _load_config_or_exit(config_path)
    runner = _build_runner(config)
    targets = _target_repositories(config, runner, repos, all_repos)

    _info(f"\nRunning '{command}' on {len(targets)} repositories...")
    console.print(f"[dim]Environment: {options.environment}[/dim]")
    console.print(f"[dim]Parallel: {'Yes' if options.parallel else 'No'}[/dim]")
    console.print(f"[dim]Repositories: {', '.join(targets)}[/dim]")

    try:
        result, interrupted = asyncio.run(_run_session(runner, command, targets, options))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=EXIT_INTERRUPTED) from None

    if interrupted:
        raise typer.Exit(code=EXIT_INTERRUPTED)
    if result is None or not result.ok:
        raise typer.Exit(code=EXIT_ERROR)
    raise typer.Exit(code=EXIT_SUCCESS)


# =============================================================================
# Run commands
# =============================================================================


@app_app.command(name="run")
def run_command(
    command: str = typer.Argument(..., help="Logical command, script name, or 'sh:<shell command>'"),
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    env: str = typer.Option("dev", "--env", "-e", help="Environment (dev, prod, test)"),
    parallel: bool = typer.Option(False, "--parallel", "-p", help="Run commands in parallel"),
    watch: bool = typer.Option(False, "--watch", "-w", help="Watch mode (if supported by command)"),
    fix: bool = typer.Option(False, "--fix", help="Auto-fix issues (lint)"),
    volumes: bool = typer.Option(False, "--volumes", help="Remove volumes (down)"),
    config: Path | None = _config_option(),
) -> None:
    """Run a command in the selected repositories.

    Shell commands must be prefixed with sh:, e.g. "sh:git pull". Commands
    without the prefix are not sniffed for shell syntax unless
    runner.shell_heuristics is enabled in the config.

    Exits with code 0 if every repository succeeded, 1 if any failed,
    2 on configuration errors and 130 when interrupted.
    """
    options = RunOptions(
        environment=env, parallel=parallel, watch=watch, fix=fix, volumes=volumes
    )
    _run_command(command, repos, all_repos, options, config)


@app_app.command(name="start")
def start_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    env: str = typer.Option("dev", "--env", "-e", help="Environment (dev, prod)"),
    parallel: bool = typer.Option(True, "--parallel/--sequential", "-p", help="Start in parallel"),
    config: Path | None = _config_option(),
) -> None:
    """Start applications."""
    _run_command("start", repos, all_repos, RunOptions(environment=env, parallel=parallel), config)


@app_app.command(name="dev")
def dev_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    parallel: bool = typer.Option(True, "--parallel/--sequential", "-p", help="Run in parallel"),
    config: Path | None = _config_option(),
) -> None:
    """Start applications in development mode with watching."""
    options = RunOptions(environment="dev", parallel=parallel, watch=True)
    _run_command("dev", repos, all_repos, options, config)


@app_app.command(name="build")
def build_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    env: str = typer.Option("prod", "--env", "-e", help="Build environment (dev, prod)"),
    parallel: bool = typer.Option(True, "--parallel/--sequential", "-p", help="Build in parallel"),
    config: Path | None = _config_option(),
) -> None:
    """Build applications."""
    _run_command("build", repos, all_repos, RunOptions(environment=env, parallel=parallel), config)


@app_app.command(name="test")
def test_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    watch: bool = typer.Option(False, "--watch", "-w", help="Watch mode for tests"),
    parallel: bool = typer.Option(False, "--parallel", "-p", help="Run tests in parallel"),
    config: Path | None = _config_option(),
) -> None:
    """Run tests."""
    options = RunOptions(environment="dev", parallel=parallel, watch=watch)
    _run_command("test", repos, all_repos, options, config)


@app_app.command(name="lint")
def lint_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    fix: bool = typer.Option(False, "--fix", help="Auto-fix linting issues"),
    parallel: bool = typer.Option(True, "--parallel/--sequential", "-p", help="Lint in parallel"),
    config: Path | None = _config_option(),
) -> None:
    """Run linting."""
    options = RunOptions(environment="dev", parallel=parallel, fix=fix)
    _run_command("lint", repos, all_repos, options, config)


@app_app.command(name="down")
def down_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = _all_option(),
    volumes: bool = typer.Option(False, "--volumes", help="Remove volumes as well"),
    config: Path | None = _config_option(),
) -> None:
    """Stop and remove Docker Compose services."""
    options = RunOptions(environment="dev", parallel=True, volumes=volumes)
    _run_command("down", repos, all_repos, options, config)


# =============================================================================
# Process management
# =============================================================================
#
# Process state lives in memory, so these only see processes tracked by the
# current session. Long-running commands stay in the foreground and are
# stopped from there.


@app_app.command(name="stop")
def stop_command(
    repos: list[str] | None = _repos_option(),
    all_repos: bool = typer.Option(False, "--all", "-a", help="Stop all running processes"),
    config: Path | None = _config_option(),
) -> None:
    """Stop running applications gracefully."""
    runner = _build_runner(_load_config_or_exit(config))
    if repos and not all_repos:
        result = asyncio.run(runner.stop_repositories(repos))
    else:
        result = asyncio.run(runner.stop_all())
    if not result.ok:
        raise typer.Exit(code=EXIT_ERROR)


@app_app.command(name="kill")
def kill_command(
    force: bool = typer.Option(False, "--force", help="Send SIGKILL instead of SIGTERM"),
    config: Path | None = _config_option(),
) -> None:
    """Kill all running processes immediately."""
    runner = _build_runner(_load_config_or_exit(config))
    result = asyncio.run(runner.kill_all(force=force))
    if not result.ok:
        raise typer.Exit(code=EXIT_ERROR)


@app_app.command(name="status")
def status_command(
    config: Path | None = _config_option(),
) -> None:
    """Show the status of running processes."""
    runner = _build_runner(_load_config_or_exit(config))
    runner.show_status()


# =============================================================================
# Inspection
# =============================================================================


@app_app.command(name="logs")
def logs_command(
    repo: str | None = typer.Option(None, "--repo", "-r", help="Repository to show logs for"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Follow logs in real-time"),
    lines: int | None = typer.Option(None, "--lines", "-n", min=0, help="Only show the last N lines"),
    command: str | None = typer.Option(None, "--command", help="Only logs of this command"),
    config: Path | None = _config_option(),
) -> None:
    """Show the newest log of a repository."""
    if not repo:
        _error("Select a repository with --repo/-r")
        raise typer.Exit(code=EXIT_ERROR)

    runner = _build_runner(_load_config_or_exit(config))
    try:
        found = asyncio.run(runner.show_logs(repo, follow=follow, lines=lines, command=command))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped following logs.[/yellow]")
        raise typer.Exit(code=EXIT_SUCCESS) from None

    if not found:
        raise typer.Exit(code=EXIT_ERROR)


@app_app.command(name="list")
def list_command(
    detailed: bool = typer.Option(False, "--detailed", help="Show detailed repository information"),
    config: Path | None = _config_option(),
) -> None:
    """List repositories in the workspace."""
    runner = _build_runner(_load_config_or_exit(config))
    runner.list_repositories(detailed=detailed)
