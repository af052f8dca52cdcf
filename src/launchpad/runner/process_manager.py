"""Process manager for commands running across repositories.

Spawns one OS process per (repository, command), streams its output into
a per-run log file, and supports graceful-then-forced termination.

Lifecycle of a tracked process:
    start()      spawn + register, returns the RunningProcess handle
    await_exit() wait for the exit code
    stop_*()     SIGTERM, then SIGKILL after ``sigterm_wait`` seconds
                 (``docker compose stop`` for Docker-based repositories)
    kill_all()   immediate SIGTERM/SIGKILL, no grace period

Every terminal state removes the entry from the tracking map. The map is
only touched from the event loop thread, so it needs no lock.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import IO

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from launchpad.core.exceptions import (
    CommandFailedError,
    ProcessAlreadyRunningError,
    RepositoryNotFoundError,
    SpawnError,
    StopError,
)
from launchpad.runner.command_resolver import CommandResolver, executable_argv
from launchpad.runner.docker_detector import DEFAULT_COMPOSE_FILE
from launchpad.runner.types import (
    BatchResult,
    CommandRequest,
    ProcessKey,
    ProcessState,
    RunningProcess,
    RunOptions,
    format_uptime,
)

logger = logging.getLogger(__name__)

DEFAULT_SIGTERM_WAIT = 5.0  # seconds between SIGTERM and SIGKILL
DEFAULT_STARTUP_DELAY = 1.0  # seconds before a long-running command counts as started
DEFAULT_DRAIN_TIMEOUT = 2.0  # seconds to finish reading pipes after exit
STREAM_LIMIT = 1024 * 1024  # longest line read from a child pipe

# Children get their own session so signals reach the whole process group
# (npm -> node, sh -> sleep).
USE_PROCESS_GROUPS = hasattr(os, "killpg")

_UNSAFE_LOG_CHARS = re.compile(r"[^\w.:@+-]")


def safe_log_part(value: str) -> str:
    """Replace characters that are unsafe in file names."""
    return _UNSAFE_LOG_CHARS.sub("_", value)


def log_file_name(repo: str, command: str, timestamp_ms: int | None = None) -> str:
    """Build ``<repo>-<command>-<unix_millis>.log`` with path-safe parts."""
    millis = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{safe_log_part(repo)}-{safe_log_part(command)}-{millis}.log"


class ProcessManager:
    """Spawns, tracks and terminates repository commands.

    Attributes:
        log_dir: Directory for per-run log files.
        command_resolver: Decides which commands are long-running.
        console: Rich console for progress output.
        sigterm_wait: Seconds between SIGTERM and SIGKILL on stop.
        startup_delay: Seconds after spawn before a long-running command
            is reported as started.
        drain_timeout: Seconds to keep reading pipes after the process
            exited (orphaned grandchildren may hold them open).

    """

    def __init__(
        self,
        log_dir: Path,
        command_resolver: CommandResolver,
        console: Console | None = None,
        sigterm_wait: float = DEFAULT_SIGTERM_WAIT,
        startup_delay: float = DEFAULT_STARTUP_DELAY,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ) -> None:
        self.log_dir = Path(log_dir)
        self.command_resolver = command_resolver
        self.console = console or Console()
        self.sigterm_wait = sigterm_wait
        self.startup_delay = startup_delay
        self.drain_timeout = drain_timeout
        self._processes: dict[ProcessKey, RunningProcess] = {}
        self._watch_tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Batch execution
    # ------------------------------------------------------------------

    async def run_parallel(
        self,
        tasks: Mapping[str, Awaitable[object]],
        command: str,
        count: int | None = None,
    ) -> BatchResult:
        """Run all repository tasks concurrently and wait for every one.

        Args:
            tasks: Repository name to the awaitable running its command.
            command: Logical command, for reporting.
            count: Number of repositories, for reporting (default len(tasks)).

        Returns:
            BatchResult; a failing task never cancels its siblings.

        """
        total = count if count is not None else len(tasks)
        self.console.print(
            f"\n[cyan]Running '{escape(command)}' in parallel on {total} repositories...[/cyan]\n"
        )

        repos = list(tasks)
        outcomes = await asyncio.gather(*tasks.values(), return_exceptions=True)

        result = BatchResult(command=command)
        for repo, outcome in zip(repos, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception | asyncio.CancelledError):
                    raise outcome
                result.failed[repo] = outcome
            else:
                result.succeeded.append(repo)

        if result.ok:
            self.console.print(
                f"\n[green]All repositories completed '{escape(command)}' successfully![/green]"
            )
        else:
            self.console.print(
                f"\n[red]Some repositories failed to complete '{escape(command)}'[/red]"
            )
            for repo, error in result.failed.items():
                self.console.print(f"[dim]  {escape(repo)}: {escape(str(error))}[/dim]")
        return result

    async def run_sequential(
        self,
        repositories: Iterable[str],
        run_fn: Callable[[str], Awaitable[object]],
        command: str,
    ) -> BatchResult:
        """Run a command one repository at a time, continuing past failures.

        Args:
            repositories: Repository names, in execution order.
            run_fn: Coroutine function running the command for one repository.
            command: Logical command, for reporting.

        Returns:
            BatchResult with every repository attempted.

        """
        repos = list(repositories)
        self.console.print(
            f"\n[cyan]Running '{escape(command)}' sequentially on {len(repos)} repositories...[/cyan]\n"
        )

        result = BatchResult(command=command)
        for repo in repos:
            try:
                await run_fn(repo)
            except Exception as e:
                logger.debug("Sequential '%s' failed for %s", command, repo, exc_info=True)
                result.failed[repo] = e
                self.console.print(f"[red]Failed '{escape(command)}' for {escape(repo)}[/red]")
                self.console.print(f"[dim]Error: {escape(str(e))}[/dim]")
                self.console.print("[yellow]Continuing with next repository...[/yellow]")
            else:
                result.succeeded.append(repo)
                self.console.print(f"[green]Completed '{escape(command)}' for {escape(repo)}[/green]")
        return result

    # ------------------------------------------------------------------
    # Single command
    # ------------------------------------------------------------------

    async def run_single_command(self, request: CommandRequest) -> RunningProcess:
        """Run one command in one repository.

        Short commands are awaited to completion. Long-running commands
        (dev servers, or anything in watch mode) return once they survived
        ``startup_delay`` seconds and keep running in the tracking map.

        Args:
            request: Resolved command and repository.

        Returns:
            The RunningProcess handle.

        Raises:
            RepositoryNotFoundError: If the repository directory is missing.
            ProcessAlreadyRunningError: If the same command is live there.
            SpawnError: If the process could not be created.
            CommandFailedError: If the process exited non-zero.

        """
        proc = await self.start(request)

        if self.is_long_running(request.command, request.options):
            try:
                await asyncio.wait_for(proc.exited.wait(), timeout=self.startup_delay)
            except TimeoutError:
                self.console.print(
                    f"[green]{escape(proc.repo)}: {escape(proc.command)} started "
                    f"(PID: {proc.pid})[/green]"
                )
                return proc
            self._raise_for_exit(proc)
            return proc

        await self.await_exit(proc)
        self._raise_for_exit(proc)
        self.console.print(
            f"[green]{escape(proc.repo)}: {escape(proc.command)} completed successfully[/green]"
        )
        return proc

    async def start(self, request: CommandRequest) -> RunningProcess:
        """Spawn a command and register it, without waiting for it.

        Raises:
            RepositoryNotFoundError: If the repository directory is missing.
            ProcessAlreadyRunningError: If the same command is live there.
            SpawnError: If the process could not be created.

        """
        key = ProcessKey(request.repo, request.command)
        existing = self._processes.get(key)
        if existing is not None and existing.is_alive:
            raise ProcessAlreadyRunningError(
                f"'{request.command}' is already running for {request.repo} (PID {existing.pid})",
                repo=request.repo,
                command=request.command,
            )

        repo_path = Path(request.repo_path)
        if not repo_path.is_dir():
            raise RepositoryNotFoundError(
                f"Repository '{request.repo}' not found at {repo_path}",
                repo=request.repo,
                command=request.command,
            )

        argv = executable_argv(request.argv)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        log_file = self.log_dir / log_file_name(request.repo, request.command)

        self.console.print(f"[blue]{escape(request.repo)}: {escape(' '.join(request.argv))}[/blue]")
        if request.docker_info.is_docker_compose:
            self.console.print(
                f"[dim]   Docker Compose detected: {escape(str(request.docker_info.compose_file))}[/dim]"
            )
        if request.npm_docker_info.uses_docker:
            self.console.print(
                "[dim]   Script uses Docker Compose: "
                f"{escape(str(request.npm_docker_info.docker_command))}[/dim]"
            )

        log_handle = log_file.open("w", encoding="utf-8")
        logger.info("Spawning %s in %s: %s", request.command, repo_path, " ".join(argv))
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                cwd=repo_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=USE_PROCESS_GROUPS,
                limit=STREAM_LIMIT,
            )
        except OSError as e:
            log_handle.write(f"[STDERR] {e}\n")
            log_handle.close()
            self.console.print(f"[red]{escape(request.repo)}: {escape(str(e))}[/red]")
            raise SpawnError(
                f"Failed to start '{argv[0]}' for {request.repo}: {e}",
                repo=request.repo,
                command=request.command,
            ) from e
        except BaseException:
            log_handle.close()
            raise

        proc = RunningProcess(
            repo=request.repo,
            command=request.command,
            pid=process.pid,
            process=process,
            start_time=datetime.now(UTC),
            log_file=log_file,
            repo_path=repo_path,
            argv=argv,
            is_docker_compose=request.docker_info.is_docker_compose,
            compose_file=request.docker_info.compose_file or request.npm_docker_info.compose_file,
            npm_uses_docker=request.npm_docker_info.uses_docker,
            docker_services=request.npm_docker_info.services,
            state=ProcessState.RUNNING,
        )
        self._processes[key] = proc

        echo_stdout = self.is_long_running(request.command, request.options)
        task = asyncio.create_task(self._watch(proc, log_handle, echo_stdout))
        self._watch_tasks.add(task)
        task.add_done_callback(self._watch_tasks.discard)
        return proc

    async def await_exit(self, proc: RunningProcess) -> int | None:
        """Wait until a started process has exited and return its exit code."""
        await proc.exited.wait()
        return proc.exit_code

    def is_long_running(self, command: str, options: RunOptions | None = None) -> bool:
        """Watch mode makes any command long-running."""
        if options is not None and options.watch:
            return True
        return self.command_resolver.is_long_running_command(command)

    def _raise_for_exit(self, proc: RunningProcess) -> None:
        if proc.exit_code == 0:
            return
        self.console.print(
            f"[red]{escape(proc.repo)}: {escape(proc.command)} failed with code {proc.exit_code}[/red]"
        )
        raise CommandFailedError(
            f"Command failed with code {proc.exit_code}",
            exit_code=proc.exit_code if proc.exit_code is not None else -1,
            repo=proc.repo,
            command=proc.command,
        )

    async def _watch(self, proc: RunningProcess, log_handle: IO[str], echo_stdout: bool) -> None:
        """Pump both pipes into the log until the process exits, then evict it."""
        process = proc.process
        readers = [
            asyncio.create_task(self._pump(proc, process.stdout, "STDOUT", log_handle, echo_stdout)),
            asyncio.create_task(self._pump(proc, process.stderr, "STDERR", log_handle, True)),
        ]
        try:
            exit_code = await process.wait()
            done, pending = await asyncio.wait(readers, timeout=self.drain_timeout)
            if pending:
                logger.debug("Pipes of %s still open after exit; abandoning", proc.repo)
            for reader in done:
                if reader.exception() is not None:
                    logger.warning("Log writer for %s failed: %s", proc.repo, reader.exception())
            proc.exit_code = exit_code
            if proc.state == ProcessState.RUNNING:
                proc.state = ProcessState.COMPLETED if exit_code == 0 else ProcessState.FAILED
            logger.info("%s '%s' exited with code %s", proc.repo, proc.command, exit_code)
        finally:
            for reader in readers:
                if not reader.done():
                    reader.cancel()
            await asyncio.gather(*readers, return_exceptions=True)
            log_handle.close()
            if proc.exit_code is None:
                proc.exit_code = process.returncode
            self._evict(proc)
            proc.exited.set()

    async def _pump(
        self,
        proc: RunningProcess,
        stream: asyncio.StreamReader | None,
        tag: str,
        log_handle: IO[str],
        echo: bool,
    ) -> None:
        if stream is None:
            return
        style = "red" if tag == "STDERR" else "dim"
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Line longer than STREAM_LIMIT; the buffer was discarded.
                log_handle.write(f"[{tag}] <line truncated>\n")
                continue
            if not raw:
                return
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            log_handle.write(f"[{tag}] {line}\n")
            log_handle.flush()
            if echo:
                self.console.print(f"[{style}]{escape(proc.repo)}: {escape(line)}[/{style}]")

    # ------------------------------------------------------------------
    # Stop / kill
    # ------------------------------------------------------------------

    async def stop_all(self) -> BatchResult:
        """Gracefully stop every tracked process."""
        processes = list(self._processes.values())
        if not processes:
            self.console.print("[yellow]No running processes to stop.[/yellow]")
            return BatchResult(command="stop")

        self.console.print(f"\n[cyan]Stopping {len(processes)} running process(es)...[/cyan]\n")
        result = await self._stop_many(processes)
        self.console.print("[green]All processes stopped.[/green]")
        return result

    async def stop_repositories(self, repositories: Iterable[str]) -> BatchResult:
        """Gracefully stop tracked processes of the named repositories."""
        wanted = set(repositories)
        processes = [proc for proc in self._processes.values() if proc.repo in wanted]
        if not processes:
            self.console.print("[yellow]No matching running processes to stop.[/yellow]")
            return BatchResult(command="stop")

        self.console.print(f"\n[cyan]Stopping {len(processes)} process(es)...[/cyan]\n")
        result = await self._stop_many(processes)
        self.console.print("[green]Selected processes stopped.[/green]")
        return result

    async def _stop_many(self, processes: list[RunningProcess]) -> BatchResult:
        outcomes = await asyncio.gather(
            *(self.stop_process(proc) for proc in processes), return_exceptions=True
        )
        result = BatchResult(command="stop")
        for proc, outcome in zip(processes, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.error("Failed to stop %s: %s", proc.repo, outcome)
                self.console.print(f"[red]Failed to stop {escape(proc.repo)}: {escape(str(outcome))}[/red]")
                result.failed[proc.repo] = outcome
            else:
                result.succeeded.append(proc.repo)
        return result

    async def stop_process(self, proc: RunningProcess) -> None:
        """Stop one process, via docker compose when it is Docker-based.

        Raises:
            StopError: If ``docker compose stop`` fails or cannot be run.

        """
        if proc.uses_docker:
            await self._stop_docker_compose(proc)
        else:
            await self._stop_regular(proc)

    async def _stop_docker_compose(self, proc: RunningProcess) -> None:
        compose_file = proc.compose_file or DEFAULT_COMPOSE_FILE
        argv = ["docker", "compose", "-f", compose_file, "stop"]

        self.console.print(f"[blue]{escape(proc.repo)}: Stopping Docker Compose services...[/blue]")
        try:
            stopper = await asyncio.create_subprocess_exec(
                *argv,
                cwd=proc.repo_path,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StopError(
                f"Cannot run docker compose stop: {e}", repo=proc.repo, command=proc.command
            ) from e

        _, stderr = await stopper.communicate()
        if stopper.returncode != 0:
            for line in stderr.decode("utf-8", errors="replace").splitlines():
                if line.strip():
                    self.console.print(f"[red]{escape(proc.repo)}: {escape(line.strip())}[/red]")
            raise StopError(
                f"Docker stop failed with code {stopper.returncode}",
                repo=proc.repo,
                command=proc.command,
            )

        self.console.print(f"[green]{escape(proc.repo)}: Docker Compose stopped[/green]")
        if proc.is_alive:
            proc.state = ProcessState.STOPPED
            self._signal(proc, signal.SIGTERM)
        self._evict(proc)

    async def _stop_regular(self, proc: RunningProcess) -> None:
        self.console.print(
            f"[blue]{escape(proc.repo)}: Stopping process (PID: {proc.pid})...[/blue]"
        )
        if not proc.is_alive:
            self.console.print(f"[dim]{escape(proc.repo)}: Process already stopped[/dim]")
            self._evict(proc)
            return

        proc.state = ProcessState.STOPPED
        self._signal(proc, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.process.wait(), timeout=self.sigterm_wait)
        except TimeoutError:
            logger.warning(
                "%s (PID %d) ignored SIGTERM for %.1fs, sending SIGKILL",
                proc.repo,
                proc.pid,
                self.sigterm_wait,
            )
            self.console.print(f"[yellow]{escape(proc.repo)}: Force killing process...[/yellow]")
            proc.state = ProcessState.KILLED
            self._signal(proc, signal.SIGKILL)
            await proc.process.wait()

        self._evict(proc)
        self.console.print(f"[green]{escape(proc.repo)}: Process stopped[/green]")

    async def kill_all(self, force: bool = False) -> BatchResult:
        """Signal every tracked process at once and forget all of them.

        Args:
            force: Send SIGKILL instead of SIGTERM.

        """
        processes = list(self._processes.values())
        result = BatchResult(command="kill")
        if not processes:
            self.console.print("[yellow]No running processes to kill.[/yellow]")
            return result

        sig = signal.SIGKILL if force else signal.SIGTERM
        self.console.print(
            f"\n[red]{'Force ' if force else ''}Killing {len(processes)} running process(es)...[/red]\n"
        )

        for proc in processes:
            try:
                self.console.print(
                    f"[red]{escape(proc.repo)}: Killing process (PID: {proc.pid}) with {sig.name}...[/red]"
                )
                proc.state = ProcessState.KILLED
                self._signal(proc, sig)
            except OSError as e:
                logger.error("Failed to kill %s: %s", proc.repo, e)
                self.console.print(f"[red]Failed to kill {escape(proc.repo)}: {escape(str(e))}[/red]")
                result.failed[proc.repo] = e
            else:
                result.succeeded.append(proc.repo)
                self.console.print(f"[green]{escape(proc.repo)}: Process killed[/green]")
            finally:
                self._evict(proc)

        self.console.print("[green]All processes killed.[/green]")
        return result

    def _signal(self, proc: RunningProcess, sig: signal.Signals) -> bool:
        """Send a signal to the process group; False if it is already gone."""
        if proc.process.returncode is not None:
            return False
        try:
            if USE_PROCESS_GROUPS:
                os.killpg(proc.pid, sig)
            else:
                proc.process.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.debug("Sent %s to %s (PID %d)", sig.name, proc.repo, proc.pid)
        return True

    def _evict(self, proc: RunningProcess) -> None:
        if self._processes.get(proc.key) is proc:
            del self._processes[proc.key]

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_running_processes(self) -> list[RunningProcess]:
        """Snapshot of the tracking map."""
        return list(self._processes.values())

    def get_process(self, repo: str, command: str) -> RunningProcess | None:
        return self._processes.get(ProcessKey(repo, command))

    async def wait_all(self) -> None:
        """Wait until every currently tracked process has exited."""
        processes = list(self._processes.values())
        if processes:
            await asyncio.gather(*(proc.exited.wait() for proc in processes))

    def show_status(self) -> None:
        """Print a table of tracked processes."""
        processes = self.get_running_processes()
        if not processes:
            self.console.print("[yellow]No running processes.[/yellow]")
            return

        now = datetime.now(UTC)
        table = Table(title="Process Status")
        table.add_column("Repository", style="cyan")
        table.add_column("Command")
        table.add_column("PID", justify="right")
        table.add_column("Status")
        table.add_column("Uptime", justify="right")
        table.add_column("Docker")
        table.add_column("Log", overflow="fold")

        for proc in processes:
            status = "Running" if proc.is_alive else "Stopped"
            docker = "-"
            if proc.is_docker_compose:
                docker = f"compose: {proc.compose_file}"
            elif proc.npm_uses_docker:
                docker = f"script: {proc.compose_file}"
            if proc.docker_services:
                docker += f" ({', '.join(proc.docker_services)})"
            table.add_row(
                proc.repo,
                proc.command,
                str(proc.pid),
                status,
                format_uptime(proc.uptime(now)),
                docker,
                str(proc.log_file),
            )
        self.console.print(table)
