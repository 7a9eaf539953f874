"""proctop - Main Textual application."""

import argparse
from collections.abc import Sequence
from queue import Empty, Queue

from rich.markup import escape
from rich.text import Text
from textual import work
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Input, Static

from proctop.config import Settings, configure_logging
from proctop.control import terminate_entity
from proctop.models import CycleReport, CycleStatus, DerivedMetricRecord, SystemMetrics
from proctop.monitor import MAX_POLL_RATE, SystemMonitor
from proctop.ranking import SortKey, rank
from proctop.source import CounterSource, create_source

# Bounds for interactive refresh adjustment
MIN_REFRESH = 1.0
MAX_REFRESH = MAX_POLL_RATE
REFRESH_STEP = 1.0


def format_kb(size_kb: int) -> str:
    """Format kilobytes as human-readable string."""
    size: float = size_kb
    for unit in ["K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5d}{unit}" if unit == "K" else f"{size:5.1f}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(uptime: float) -> str:
    """Format seconds as [D days, ]HH:MM:SS."""
    days = int(uptime // 86400)
    hours = int((uptime % 86400) // 3600)
    minutes = int((uptime % 3600) // 60)
    seconds = int(uptime % 60)
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class HeaderStats(Static):
    """Header widget showing system CPU, memory and loop state."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 4;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._metrics: SystemMetrics | None = None
        self._refresh_interval: float = 1.0
        self._sort_key: SortKey = SortKey.CPU
        self._filter_text: str = ""
        self._status: str = "Sampling..."

    def on_mount(self) -> None:
        """Render initial content."""
        self._refresh_display()

    def update_stats(self, metrics: SystemMetrics) -> None:
        """Update the statistics from derived system metrics."""
        self._metrics = metrics
        self._refresh_display()

    def update_controls(
        self, refresh_interval: float, sort_key: SortKey, filter_text: str
    ) -> None:
        """Update the refresh interval, sort key and filter shown."""
        self._refresh_interval = refresh_interval
        self._sort_key = sort_key
        self._filter_text = filter_text
        self._refresh_display()

    def set_status(self, status: str) -> None:
        """Set the status line text."""
        self._status = status
        self._refresh_display()

    def _refresh_display(self) -> None:
        self.update(self.render_text())

    def render_text(self) -> str:
        """Build the header text."""
        lines = []
        metrics = self._metrics
        if metrics is None:
            lines.append("Loading system info...")
        else:
            bar_len = min(int(metrics.cpu_percent / 5), 20)
            cpu_bar = "[green]█[/green]" * bar_len + "[dim]░[/dim]" * (20 - bar_len)
            mem_len = min(int(metrics.memory_percent / 5), 20)
            mem_bar = "[cyan]█[/cyan]" * mem_len + "[dim]░[/dim]" * (20 - mem_len)
            # Use escaped brackets for the bar containers
            lines.append(f"CPU\\[{cpu_bar}] {metrics.cpu_percent:5.1f}%")
            lines.append(
                f"Mem\\[{mem_bar}] {metrics.memory_percent:5.1f}% "
                f"{format_kb(metrics.memory_used_kb).strip()}/"
                f"{format_kb(metrics.memory_total_kb).strip()}"
            )
            lines.append(
                f"Uptime: {format_uptime(metrics.uptime_seconds)}  "
                f"Tasks: {metrics.entity_count}"
            )

        filter_text = escape(self._filter_text) or "-"
        lines.append(
            f"Refresh: {self._refresh_interval:g}s  Sort: {self._sort_key.value.upper()}  "
            f"Filter: {filter_text}  {self._status}"
        )
        return "\n".join(lines)


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(
        self, *args, sort_key: SortKey = SortKey.CPU, filter_text: str = "", **kwargs
    ) -> None:
        """Initialize ProcessTable."""
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []
        self._records: list[DerivedMetricRecord] = []
        self._sort_key: SortKey = sort_key
        self._filter_text: str = filter_text

    @property
    def sort_key(self) -> SortKey:
        """Get current sort key."""
        return self._sort_key

    @property
    def filter_text(self) -> str:
        """Get current label filter."""
        return self._filter_text

    @property
    def displayed_pids(self) -> list[int]:
        """Get the pids shown, in display order."""
        return list(self._current_pids)

    def toggle_sort(self) -> SortKey:
        """Switch between CPU and memory ordering and return the new key."""
        self._sort_key = self._sort_key.toggle()
        self._render_rows()
        return self._sort_key

    def set_filter(self, text: str) -> None:
        """Show only processes whose name contains text; empty clears the filter."""
        self._filter_text = text
        self._render_rows()

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("PID", key="pid", width=8)
        table.add_column("CPU%", key="cpu", width=8)
        table.add_column("RES", key="rss", width=9)
        table.add_column("Name", key="name")

    def update_processes(self, records: Sequence[DerivedMetricRecord]) -> None:
        """Replace the table contents with newly derived records."""
        self._records = list(records)
        self._render_rows()

    def _render_rows(self) -> None:
        ranked = rank(self._records, self._sort_key, self._filter_text)
        self._current_pids = [record.pid for record in ranked]
        if not self.is_mounted:
            return

        table = self.query_one("#process-table", DataTable)
        table.clear()
        table.add_rows(
            [
                (
                    str(record.pid),
                    f"{record.cpu_percent:5.1f}",
                    format_kb(record.resident_kb),
                    Text(record.label[:50]),
                )
                for record in ranked
            ]
        )


class PromptInput(Input):
    """Single-line prompt for filter text and pids."""

    BINDINGS = [("escape", "app.cancel_prompt", "Cancel")]

    def __init__(self, *args, **kwargs) -> None:
        """Initialize PromptInput; it only takes focus while open."""
        super().__init__(*args, **kwargs)
        self.can_focus = False


class ProctopApp(App):
    """Main proctop application."""

    TITLE = "proctop"
    SUB_TITLE = "Process Monitor"
    AUTO_FOCUS = "#process-table"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
    }

    #prompt {
        dock: bottom;
        display: none;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "sort", "Sort"),
        ("f", "filter", "Filter"),
        ("k", "kill", "Kill PID"),
        ("plus", "slower", "Refresh +"),
        ("minus", "faster", "Refresh -"),
    ]

    def __init__(
        self, settings: Settings | None = None, source: CounterSource | None = None
    ) -> None:
        """
        Initialize the ProctopApp.

        Args:
            settings: Runtime configuration. Defaults to Settings().
            source: Counter source override; built from settings when omitted.
        """
        super().__init__()
        self._settings = settings if settings is not None else Settings()
        if source is None:
            source = create_source(self._settings.source, self._settings.proc_root)
        self._update_queue: Queue[CycleReport] = Queue()
        self._monitor = SystemMonitor(
            self._update_queue,
            poll_rate=self._settings.refresh_interval,
            source=source,
            max_failures=self._settings.max_failures,
        )
        self._prompt_mode: str | None = None

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield ProcessTable(
            sort_key=SortKey(self._settings.sort),
            filter_text=self._settings.filter,
        )
        yield PromptInput(id="prompt")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._update_controls()
        self.query_one("#process-table", DataTable).focus()
        self._monitor.start()
        # Set up a timer to poll the queue for updates
        self.set_interval(0.25, self._check_for_updates)

    def on_unmount(self) -> None:
        """Stop sampling when the app shuts down."""
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Drain the queue and apply the most recent report."""
        report = None
        while True:
            try:
                report = self._update_queue.get_nowait()
            except Empty:
                break

        if report is not None:
            self.apply_report(report)

    def apply_report(self, report: CycleReport) -> None:
        """Update the UI from one cycle report."""
        header = self.query_one("#header-stats", HeaderStats)

        if report.status is CycleStatus.OK:
            if report.system is not None:
                header.update_stats(report.system)
            header.set_status("")
            self.query_one(ProcessTable).update_processes(report.records)
        elif report.status is CycleStatus.UNAVAILABLE:
            # Keep the last good view on screen
            header.set_status(f"[yellow]{escape(report.message)}[/yellow]")
        else:
            self._monitor.stop()
            self.exit(return_code=1, message=report.message)

    def _update_controls(self) -> None:
        table = self.query_one(ProcessTable)
        self.query_one("#header-stats", HeaderStats).update_controls(
            self._monitor.poll_rate, table.sort_key, table.filter_text
        )

    def _open_prompt(self, mode: str, placeholder: str) -> None:
        prompt = self.query_one("#prompt", Input)
        self._prompt_mode = mode
        prompt.placeholder = placeholder
        prompt.value = ""
        prompt.display = True
        prompt.can_focus = True
        prompt.focus()

    def _close_prompt(self) -> None:
        prompt = self.query_one("#prompt", Input)
        self._prompt_mode = None
        prompt.display = False
        prompt.can_focus = False
        self.query_one("#process-table", DataTable).focus()

    def action_sort(self) -> None:
        """Toggle between CPU and memory ordering."""
        new_sort_key = self.query_one(ProcessTable).toggle_sort()
        self._update_controls()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_filter(self) -> None:
        """Prompt for a name filter."""
        self._open_prompt("filter", "Filter substring (empty clears)")

    def action_kill(self) -> None:
        """Prompt for a pid to terminate."""
        self._open_prompt("kill", "PID to kill")

    def action_cancel_prompt(self) -> None:
        """Close the prompt without acting."""
        if self._prompt_mode is not None:
            self._close_prompt()

    def action_slower(self) -> None:
        """Lengthen the refresh interval."""
        self._set_refresh(self._monitor.poll_rate + REFRESH_STEP)

    def action_faster(self) -> None:
        """Shorten the refresh interval."""
        self._set_refresh(self._monitor.poll_rate - REFRESH_STEP)

    def _set_refresh(self, value: float) -> None:
        # Intervals already below the step floor may stay there
        floor = min(MIN_REFRESH, self._monitor.poll_rate)
        self._monitor.poll_rate = min(MAX_REFRESH, max(floor, value))
        self._update_controls()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        """Apply the filter or kill request typed into the prompt."""
        mode = self._prompt_mode
        value = event.value.strip()
        self._close_prompt()

        if mode == "filter":
            self.query_one(ProcessTable).set_filter(value)
            self._update_controls()
        elif mode == "kill":
            try:
                pid = int(value)
            except ValueError:
                self.notify(f"Not a PID: {value!r}", severity="error")
                return
            self.request_termination(pid)

    @work(thread=True, group="terminate")
    def request_termination(self, pid: int) -> None:
        """Terminate pid off the UI thread and report the outcome."""
        result = terminate_entity(pid, timeout=self._settings.kill_timeout)
        self.call_from_thread(
            self.notify,
            result.message,
            severity="information" if result.ok else "error",
        )

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(prog="proctop", description="Terminal process monitor.")
    parser.add_argument("-i", "--interval", type=float, help="refresh interval in seconds")
    parser.add_argument("--source", choices=["psutil", "procfs"], help="counter source backend")
    parser.add_argument("--proc-root", help="proc tree root for the procfs backend")
    parser.add_argument("--sort", choices=["cpu", "mem"], help="initial sort key")
    parser.add_argument("--filter", help="only show processes whose name contains this text")
    parser.add_argument("--log-file", help="write logs to this file")
    parser.add_argument("--log-level", help="log level name, e.g. DEBUG")
    return parser


def load_settings(argv: list[str] | None = None) -> Settings:
    """Merge command-line flags over environment settings."""
    args = build_parser().parse_args(argv)
    overrides = {
        "refresh_interval": args.interval,
        "source": args.source,
        "proc_root": args.proc_root,
        "sort": args.sort,
        "filter": args.filter,
        "log_file": args.log_file,
        "log_level": args.log_level,
    }
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


def main(argv: list[str] | None = None) -> None:
    """Entry point for proctop application."""
    settings = load_settings(argv)
    configure_logging(settings)
    app = ProctopApp(settings)
    app.run()
    if app.return_code:
        raise SystemExit(app.return_code)


if __name__ == "__main__":
    main()
