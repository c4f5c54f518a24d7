"""memwatch - Textual dashboard for the memory watchdog."""

import time
from queue import Empty, Queue

from rich.markup import escape
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Log, Static

from memwatch.models import Assessment, RestartOutcome, ThresholdConfig, TickReport
from memwatch.monitor import WatchdogMonitor
from memwatch.watchdog import MemoryWatchdog


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(seconds: int) -> str:
    """Format an uptime in seconds as [Nd ]HH:MM:SS."""
    seconds = max(0, seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if days > 0:
        return f"{days}d {hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def describe_status(assessment: Assessment) -> str:
    """Short status label for the process table."""
    if not assessment.snapshot.running:
        return "stopped"
    if not assessment.eligible:
        return "warming up"
    if assessment.threshold == 0:
        return "unmonitored"
    if assessment.exceeded:
        return "[red]over limit[/red]"
    return "ok"


class WatchdogHeader(Static):
    """Header widget showing configuration and last tick summary."""

    DEFAULT_CSS = """
    WatchdogHeader {
        height: auto;
        min-height: 3;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, config: ThresholdConfig, *args, **kwargs) -> None:
        """Initialize WatchdogHeader."""
        super().__init__(*args, **kwargs)
        self._config = config
        self._last_tick: float | None = None
        self._process_count: int = 0
        self._restarts: int = 0
        self._failures: int = 0

    def on_mount(self) -> None:
        """Render the initial summary."""
        self.update(self._render_summary())

    def update_report(self, report: TickReport) -> None:
        """Update the summary from a tick report."""
        self._last_tick = time.time()
        self._process_count = len(report.assessments)
        self._restarts += len(report.outcomes)
        self._failures += sum(1 for outcome in report.outcomes if not outcome.succeeded)
        self.update(self._render_summary())

    def _render_summary(self) -> str:
        """Build the header text."""
        config = self._config
        label = f"[b]{escape(config.name)}[/b]  " if config.name else ""
        limit = format_bytes(config.any).strip() if config.any else "none"
        last = time.strftime("%H:%M:%S", time.localtime(self._last_tick)) if self._last_tick else "never"
        return (
            f"{label}Default limit: {limit}  Min uptime: {config.uptime}s  "
            f"Overrides: {len(config.program)} program, {len(config.group)} group\n"
            f"Last tick: {last}  Processes: {self._process_count}  "
            f"Restarts: {self._restarts} ({self._failures} failed)"
        )


class ProcessTable(Container):
    """Container for the supervised process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 2fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_keys: set[str] = set()

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("NAME", key="name", width=20)
        table.add_column("GROUP", key="group", width=16)
        table.add_column("PID", key="pid", width=8)
        table.add_column("UPTIME", key="uptime", width=14)
        table.add_column("RES", key="rss", width=8)
        table.add_column("LIMIT", key="limit", width=8)
        table.add_column("STATUS", key="status")

    def update_assessments(self, assessments: list[Assessment]) -> None:
        """
        Update the table with the latest tick's assessments.

        Rows are keyed by ``group:name``; rows for processes no longer in the
        roster are removed.
        """
        table = self.query_one("#process-table", DataTable)
        new_keys = {assessment.snapshot.identifier for assessment in assessments}

        for key in self._current_keys - new_keys:
            try:
                table.remove_row(key)
            except Exception:
                pass  # Row may not exist

        for assessment in assessments:
            key = assessment.snapshot.identifier
            if key in self._current_keys:
                self._update_row(table, key, assessment)
            else:
                self._add_row(table, key, assessment)

        self._current_keys = new_keys

    @staticmethod
    def _cells(assessment: Assessment) -> dict[str, str]:
        """Cell values for one assessment, keyed by column."""
        snapshot = assessment.snapshot
        running = snapshot.running
        return {
            "name": escape(snapshot.name),
            "group": escape(snapshot.group),
            "pid": str(snapshot.pid) if running else "-",
            "uptime": format_uptime(snapshot.uptime) if running else "-",
            "rss": format_bytes(snapshot.memory_usage) if running else "-",
            "limit": format_bytes(assessment.threshold) if assessment.threshold else "-",
            "status": describe_status(assessment),
        }

    def _update_row(self, table: DataTable, row_key: str, assessment: Assessment) -> None:
        """Update an existing row cell by cell."""
        try:
            for column, value in self._cells(assessment).items():
                table.update_cell(row_key, column, value)
        except Exception:
            pass  # Row may have been removed

    def _add_row(self, table: DataTable, row_key: str, assessment: Assessment) -> None:
        """Add a new row to the table."""
        try:
            table.add_row(*self._cells(assessment).values(), key=row_key)
        except Exception:
            pass  # Row may already exist


class RestartLog(Log):
    """Scrolling log of restart outcomes."""

    DEFAULT_CSS = """
    RestartLog {
        height: 1fr;
        border: solid $secondary;
    }
    """

    def add_outcome(self, outcome: RestartOutcome) -> None:
        """Append one restart outcome."""
        stamp = time.strftime("%H:%M:%S")
        line = f"{stamp} {outcome.message}"
        if outcome.error:
            line += f" ({outcome.error})"
        self.write_line(line)


class WatchdogApp(App):
    """Dashboard that runs the watchdog and shows what it does."""

    TITLE = "memwatch"
    SUB_TITLE = "Supervisor Memory Watchdog"

    CSS = """
    Screen {
        layout: vertical;
    }

    #watchdog-header {
        dock: top;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "tick", "Tick now"),
    ]

    def __init__(self, watchdog: MemoryWatchdog, poll_rate: float = 60.0) -> None:
        """Initialize the WatchdogApp."""
        super().__init__()
        self._watchdog = watchdog
        self._update_queue: Queue[TickReport] = Queue()
        self._monitor = WatchdogMonitor(watchdog, self._update_queue, poll_rate=poll_rate)

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield WatchdogHeader(self._watchdog.config, id="watchdog-header")
        yield ProcessTable()
        yield RestartLog(id="restart-log")
        yield Footer()

    def on_mount(self) -> None:
        """Start the watchdog monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the report queue and refresh the UI."""
        while True:
            try:
                report = self._update_queue.get_nowait()
            except Empty:
                break
            self.show_report(report)

    def show_report(self, report: TickReport) -> None:
        """Update every widget from one tick report."""
        self.query_one("#watchdog-header", WatchdogHeader).update_report(report)
        self.query_one(ProcessTable).update_assessments(report.assessments)
        restart_log = self.query_one("#restart-log", RestartLog)
        for outcome in report.outcomes:
            restart_log.add_outcome(outcome)

    def action_tick(self) -> None:
        """Run a tick immediately."""
        self._monitor.tick_now()
        self.notify("Tick requested")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()
