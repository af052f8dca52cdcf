"""Tests for log file lookup and display."""

import asyncio
from pathlib import Path

import pytest
from rich.console import Console

from launchpad.runner.log_manager import LogManager, extract_timestamp, format_line


def write_log(log_dir: Path, name: str, lines: list[str]) -> Path:
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / name
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


@pytest.fixture
def log_dir(tmp_path: Path) -> Path:
    return tmp_path / "logs"


@pytest.fixture
def log_manager(log_dir: Path, console: Console) -> LogManager:
    return LogManager(log_dir, console=console, poll_interval=0.05)


# =============================================================================
# Test: lookup
# =============================================================================


class TestFindLogFiles:
    """Tests for find_log_files() and latest_log_file()."""

    def test_missing_directory(self, log_manager: LogManager) -> None:
        assert log_manager.find_log_files("svc-a") == []
        assert log_manager.latest_log_file("svc-a") is None

    def test_latest_by_embedded_timestamp(self, log_manager: LogManager, log_dir: Path) -> None:
        """The newest file is chosen by the millis in its name, not mtime."""
        newest = write_log(log_dir, "svc-a-dev-2000.log", ["[STDOUT] new"])
        write_log(log_dir, "svc-a-build-1000.log", ["[STDOUT] old"])
        write_log(log_dir, "svc-a-dev-300.log", ["[STDOUT] older"])

        assert log_manager.latest_log_file("svc-a") == newest

    def test_other_repositories_ignored(self, log_manager: LogManager, log_dir: Path) -> None:
        write_log(log_dir, "svc-a-dev-1.log", [])
        write_log(log_dir, "web-dev-2.log", [])
        write_log(log_dir, "svc-a-notes.txt", [])

        assert [p.name for p in log_manager.find_log_files("svc-a")] == ["svc-a-dev-1.log"]

    def test_filter_by_command(self, log_manager: LogManager, log_dir: Path) -> None:
        build = write_log(log_dir, "svc-a-build-1.log", [])
        write_log(log_dir, "svc-a-dev-2.log", [])

        assert log_manager.latest_log_file("svc-a", command="build") == build

    def test_longer_sibling_repository_excluded(self, log_manager: LogManager, log_dir: Path) -> None:
        """Logs of api-gateway are not taken for api when both are known."""
        own = write_log(log_dir, "api-dev-1.log", ["[STDOUT] api"])
        write_log(log_dir, "api-gateway-dev-2.log", ["[STDOUT] gateway"])

        found = log_manager.find_log_files("api", known_repos=["api", "api-gateway"])

        assert found == [own]
        assert log_manager.latest_log_file("api", known_repos=["api", "api-gateway"]) == own
        assert log_manager.latest_log_file("api-gateway", known_repos=["api", "api-gateway"]) == (
            log_dir / "api-gateway-dev-2.log"
        )

    def test_extract_timestamp(self) -> None:
        assert extract_timestamp(Path("svc-a-dev-1700000000123.log")) == 1700000000123
        assert extract_timestamp(Path("broken.log")) == 0


# =============================================================================
# Test: display
# =============================================================================


class TestShowLogs:
    """Tests for show_logs() and line formatting."""

    def test_format_line(self) -> None:
        assert format_line("[STDOUT] hello") == "[dim]hello[/dim]"
        assert format_line("[STDERR] bad") == "[red]bad[/red]"
        assert format_line("plain") == "plain"

    def test_format_line_escapes_markup(self) -> None:
        """Process output containing brackets is not treated as markup."""
        assert format_line("[STDOUT] [bold]x") == "[dim]\\[bold]x[/dim]"

    @pytest.mark.asyncio
    async def test_show_logs_prints_content(
        self, log_manager: LogManager, log_dir: Path, console: Console
    ) -> None:
        write_log(log_dir, "svc-a-dev-1.log", ["[STDOUT] listening on 3000", "[STDERR] warn"])

        found = await log_manager.show_logs("svc-a")

        text = console.file.getvalue()
        assert found is True
        assert "listening on 3000" in text
        assert "warn" in text
        assert "[STDOUT]" not in text

    @pytest.mark.asyncio
    async def test_show_logs_last_lines(
        self, log_manager: LogManager, log_dir: Path, console: Console
    ) -> None:
        write_log(log_dir, "svc-a-dev-1.log", [f"[STDOUT] line-{i}" for i in range(10)])

        await log_manager.show_logs("svc-a", lines=2)

        text = console.file.getvalue()
        assert "line-7" not in text
        assert "line-8" in text
        assert "line-9" in text

    @pytest.mark.asyncio
    async def test_show_logs_none_found(self, log_manager: LogManager, console: Console) -> None:
        found = await log_manager.show_logs("svc-a")

        assert found is False
        assert "No log files found for repository 'svc-a'" in console.file.getvalue()

    @pytest.mark.asyncio
    async def test_follow_prints_appended_lines(
        self, log_manager: LogManager, log_dir: Path, console: Console
    ) -> None:
        path = write_log(log_dir, "svc-a-dev-1.log", ["[STDOUT] first"])

        task = asyncio.create_task(log_manager.show_logs("svc-a", follow=True))
        await asyncio.sleep(0.1)
        with path.open("a", encoding="utf-8") as f:
            f.write("[STDERR] appended\n[STDOUT] partial")
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        text = console.file.getvalue()
        assert "first" in text
        assert "appended" in text
        assert "partial" not in text
        assert "Stopped following logs" in text
