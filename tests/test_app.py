"""Tests for the memwatch dashboard."""

import pytest
from rich.text import Text

from memwatch.app import (
    ProcessTable,
    RestartLog,
    WatchdogApp,
    WatchdogHeader,
    describe_status,
    format_bytes,
    format_uptime,
)
from memwatch.models import Assessment, RestartOutcome, ThresholdConfig, TickEvent, TickReport
from memwatch.watchdog import MemoryWatchdog

from conftest import FakeService, make_snapshot


def make_app(service=None, config=None):
    """Build a WatchdogApp around a FakeService."""
    service = service or FakeService()
    config = config or ThresholdConfig(program={"web": 500}, any=100, name="test")
    watchdog = MemoryWatchdog(service, config, reporter=lambda outcome: None)
    return WatchdogApp(watchdog, poll_rate=60.0)


def test_format_bytes_bytes():
    """Test format_bytes with byte values."""
    assert "B" in format_bytes(500)


def test_format_bytes_megabytes():
    """Test format_bytes with megabyte values."""
    assert "M" in format_bytes(5242880)


def test_format_uptime():
    """Test format_uptime with and without days."""
    assert format_uptime(3661) == "01:01:01"
    assert format_uptime(90061) == "1d 01:01:01"
    assert format_uptime(-5) == "00:00:00"


class TestDescribeStatus:
    """Tests for describe_status."""

    def test_stopped(self):
        """Test stopped processes."""
        assert describe_status(Assessment(make_snapshot(running=False), False, 500)) == "stopped"

    def test_warming_up(self):
        """Test running but ineligible processes."""
        assert describe_status(Assessment(make_snapshot(now=10), False, 500)) == "warming up"

    def test_unmonitored(self):
        """Test processes with no threshold."""
        assert describe_status(Assessment(make_snapshot(), True, 0)) == "unmonitored"

    def test_over_limit(self):
        """Test processes above their threshold."""
        assert "over limit" in describe_status(Assessment(make_snapshot(memory_usage=600), True, 500))

    def test_ok(self):
        """Test processes within their threshold."""
        assert describe_status(Assessment(make_snapshot(memory_usage=100), True, 500)) == "ok"


@pytest.mark.asyncio
async def test_app_creation():
    """Test WatchdogApp can be instantiated."""
    app = make_app()
    assert app.title == "memwatch"
    assert app.sub_title == "Supervisor Memory Watchdog"
    assert app._monitor is not None


@pytest.mark.asyncio
async def test_app_compose():
    """Test WatchdogApp composes correctly."""
    app = make_app()
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#watchdog-header") is not None
        assert pilot.app.query_one("#process-table") is not None
        assert pilot.app.query_one("#restart-log") is not None


@pytest.mark.asyncio
async def test_app_quit_binding():
    """Test that 'q' binding triggers quit."""
    app = make_app()
    async with app.run_test() as pilot:
        await pilot.press("q")
        assert pilot.app._exit


@pytest.mark.asyncio
async def test_app_receives_reports_from_monitor():
    """Test the first tick reaches the process table."""
    service = FakeService(roster=[make_snapshot(name="web", memory_usage=600)])
    app = make_app(service)
    async with app.run_test() as pilot:
        await pilot.pause(1.5)

        assert app._monitor.is_running
        process_table = pilot.app.query_one(ProcessTable)
        assert "app:web" in process_table._current_keys
        assert service.restarted == ["app:web"]


@pytest.mark.asyncio
async def test_process_table_removes_old_processes():
    """Test ProcessTable drops processes that left the roster."""
    app = make_app()
    async with app.run_test() as pilot:
        process_table = pilot.app.query_one(ProcessTable)

        process_table.update_assessments(
            [
                Assessment(make_snapshot(name="web"), True, 500),
                Assessment(make_snapshot(name="api"), True, 500),
            ]
        )
        assert process_table._current_keys == {"app:web", "app:api"}

        process_table.update_assessments([Assessment(make_snapshot(name="api", memory_usage=700), True, 500)])
        assert process_table._current_keys == {"app:api"}


@pytest.mark.asyncio
async def test_show_report_updates_header():
    """Test the header counts restarts and failures."""
    app = make_app()
    async with app.run_test() as pilot:
        outcome = RestartOutcome(
            process_identifier="app:web",
            succeeded=False,
            memory_at_restart=600,
            subject="[Failure](test/app:web)",
            message="[Failure](test/app:web) Process restart at 600 bytes",
            error="refused",
        )
        report = TickReport(
            event=TickEvent(headers={"eventname": "TICK_60"}),
            assessments=[Assessment(make_snapshot(memory_usage=600), True, 500)],
            outcomes=[outcome],
        )

        pilot.app.show_report(report)

        header = pilot.app.query_one("#watchdog-header", WatchdogHeader)
        assert header._process_count == 1
        assert header._restarts == 1
        assert header._failures == 1
        restart_log = pilot.app.query_one("#restart-log", RestartLog)
        assert restart_log.line_count >= 1


def test_cells_escape_markup():
    """Test process and group names with brackets render literally."""
    snapshot = make_snapshot(name="web[1]", group="[bold]edge")
    cells = ProcessTable._cells(Assessment(snapshot, True, 500))

    assert Text.from_markup(cells["name"]).plain == "web[1]"
    assert Text.from_markup(cells["group"]).plain == "[bold]edge"


@pytest.mark.asyncio
async def test_bracketed_names_render():
    """Test bracketed watchdog and process names do not break the dashboard."""
    service = FakeService(roster=[make_snapshot(name="web[/]", group="app[x]", memory_usage=10)])
    app = make_app(service, ThresholdConfig(any=100, name="prod[/b]"))
    async with app.run_test() as pilot:
        await pilot.pause(1.5)

        process_table = pilot.app.query_one(ProcessTable)
        assert "app[x]:web[/]" in process_table._current_keys
        header = pilot.app.query_one("#watchdog-header", WatchdogHeader)
        assert "prod[/b]" in Text.from_markup(header._render_summary()).plain
