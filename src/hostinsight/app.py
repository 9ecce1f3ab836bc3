"""hostinsight - Textual dashboard."""

from __future__ import annotations

import webbrowser
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal, VerticalScroll
from textual.widgets import DataTable, Footer, Header, Markdown, Sparkline, Static

from hostinsight.config import Settings, settings as default_settings
from hostinsight.errors import InvalidMetricsData, SensorReadError
from hostinsight.insight import InsightClient
from hostinsight.log import logger
from hostinsight.markup import render_page
from hostinsight.models import InsightResult, ProcessRecord, SystemSnapshot, format_bytes
from hostinsight.monitor import SystemMonitor, describe_host
from hostinsight.prompt import build_prompt

WAITING_TEXT = "*Press **e** to explain the current system state.*"
ANALYZING_TEXT = "*Analyzing system state... Please wait.*"
NO_DATA_TEXT = "**[!]** Not enough data collected yet. Please wait a moment."
NO_KEY_TEXT = "**[!]** No API key configured. Set `HOSTINSIGHT_API_KEY` and restart."


def usage_percent(used: int, total: int) -> float:
    return used / total * 100.0 if total else 0.0


class StatusCards(Horizontal):
    """Row of CPU, memory and disk cards."""

    DEFAULT_CSS = """
    StatusCards {
        height: auto;
    }

    StatusCards Static {
        width: 1fr;
        border: round $primary;
        padding: 0 1;
        content-align: center middle;
    }
    """

    def compose(self) -> ComposeResult:
        yield Static("CPU Load\n--", id="cpu-card")
        yield Static("Memory Usage\n--", id="memory-card")
        yield Static("Disk Usage\n--", id="disk-card")

    def update_cards(self, snapshot: SystemSnapshot) -> None:
        """Update the card values from a system snapshot."""
        mem = snapshot.memory
        disk = snapshot.disk
        self.query_one("#cpu-card", Static).update(f"CPU Load\n[b]{snapshot.cpu.load:.1f}%[/b]")
        self.query_one("#memory-card", Static).update(
            f"Memory Usage\n[b]{format_bytes(mem.used_bytes)} / {format_bytes(mem.total_bytes)}[/b]"
        )
        self.query_one("#disk-card", Static).update(
            f"Disk Usage ({disk.drive_label})\n"
            f"[b]{format_bytes(disk.used_bytes)} / {format_bytes(disk.total_bytes)}[/b]"
        )


class HistoryCharts(Horizontal):
    """CPU and memory usage sparklines over the whole session."""

    DEFAULT_CSS = """
    HistoryCharts {
        height: 5;
    }

    HistoryCharts Sparkline {
        width: 1fr;
        margin: 0 1;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        # Kept in full for the session.
        self.cpu_history: list[float] = []
        self.memory_history: list[float] = []

    def compose(self) -> ComposeResult:
        yield Sparkline([], id="cpu-chart")
        yield Sparkline([], id="memory-chart")

    def add_point(self, snapshot: SystemSnapshot) -> None:
        self.cpu_history.append(snapshot.cpu.load)
        self.memory_history.append(usage_percent(snapshot.memory.used_bytes, snapshot.memory.total_bytes))
        self.query_one("#cpu-chart", Sparkline).data = list(self.cpu_history)
        self.query_one("#memory-chart", Sparkline).data = list(self.memory_history)


class ProcessTable(Container):
    """Container for the top-process table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: list[int] = []

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        table.add_column("PID", key="pid", width=8)
        table.add_column("Name", key="name", width=30)
        table.add_column("CPU %", key="cpu", width=8)
        table.add_column("Memory", key="memory")

    def update_processes(self, processes: tuple[ProcessRecord, ...]) -> None:
        """
        Show ``processes`` in ranked order.

        Rows are rebuilt only when the ranking changes; otherwise cells are
        updated in place.
        """
        table = self.query_one("#process-table", DataTable)
        new_pids = [proc.pid for proc in processes]

        if new_pids != self._current_pids:
            table.clear()
            for proc in processes:
                table.add_row(*self._cells(proc), key=str(proc.pid))
        else:
            for proc in processes:
                row_key = str(proc.pid)
                for column, value in zip(("pid", "name", "cpu", "memory"), self._cells(proc)):
                    table.update_cell(row_key, column, value)

        self._current_pids = new_pids

    @staticmethod
    def _cells(proc: ProcessRecord) -> tuple[str, str, str, str]:
        return str(proc.pid), proc.name[:30], f"{proc.cpu_percent:.1f}%", proc.memory_label


class InsightPanel(VerticalScroll):
    """Shows the latest AI insight."""

    DEFAULT_CSS = """
    InsightPanel {
        height: 1fr;
        border: solid $accent;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.markdown_text = WAITING_TEXT

    def compose(self) -> ComposeResult:
        yield Markdown(self.markdown_text, id="insight-text")

    async def show(self, text: str) -> None:
        self.markdown_text = text
        await self.query_one("#insight-text", Markdown).update(text)


class HostInsightApp(App):
    """Main hostinsight application."""

    TITLE = "hostinsight"
    SUB_TITLE = "System Telemetry with AI Insight"

    CSS = """
    Screen {
        layout: vertical;
    }

    #host-info {
        height: 1;
        padding: 0 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("e", "explain", "Explain"),
        ("o", "open_report", "Open report"),
    ]

    def __init__(
        self,
        config: Settings | None = None,
        monitor: SystemMonitor | None = None,
        client: InsightClient | None = None,
    ) -> None:
        super().__init__()
        self._config = config or default_settings
        self._snapshot_queue: Queue[SystemSnapshot] = Queue()
        self._insight_queue: Queue[InsightResult] = Queue()
        self._error_queue: Queue[SensorReadError] = Queue()
        self._monitor = monitor or SystemMonitor(
            process_limit=self._config.process_limit,
            disk_mount=self._config.disk_mount,
        )
        if client is None and self._config.api_key:
            client = InsightClient(
                self._config.api_key,
                self._config.model,
                base_url=self._config.api_base_url,
                connect_timeout=self._config.connect_timeout,
                deadline=self._config.request_deadline,
            )
        self._client = client
        self._last_snapshot: SystemSnapshot | None = None
        self._insight_pending = False
        self._report_written = False

    def compose(self) -> ComposeResult:
        yield Header()
        yield Static(describe_host(), id="host-info")
        yield StatusCards(id="status-cards")
        yield HistoryCharts(id="history-charts")
        yield ProcessTable()
        yield InsightPanel(id="insight-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Start polling when the app is mounted."""
        self._monitor.start(
            self._snapshot_queue.put,
            interval=self._config.poll_interval,
            on_error=self._error_queue.put,
        )
        self.set_interval(0.5, self._check_for_updates)

    async def _check_for_updates(self) -> None:
        """Drain the queues and refresh the UI with the latest data."""
        while True:
            try:
                error = self._error_queue.get_nowait()
            except Empty:
                break
            self.notify(str(error), severity="warning")

        snapshot = None
        while True:
            try:
                snapshot = self._snapshot_queue.get_nowait()
            except Empty:
                break
        if snapshot is not None:
            self.update_snapshot(snapshot)

        while True:
            try:
                result = self._insight_queue.get_nowait()
            except Empty:
                break
            await self.show_insight(result)

    def update_snapshot(self, snapshot: SystemSnapshot) -> None:
        """Update every panel with the new system snapshot."""
        self._last_snapshot = snapshot
        self.query_one(StatusCards).update_cards(snapshot)
        self.query_one(HistoryCharts).add_point(snapshot)
        self.query_one(ProcessTable).update_processes(snapshot.processes)

    async def show_insight(self, result: InsightResult) -> None:
        """Display a finished explain request and write the HTML report."""
        self._insight_pending = False
        panel = self.query_one(InsightPanel)
        if not result.ok:
            await panel.show(f"**[X] Error:** {result.error}")
            return

        await panel.show(result.text or "")
        page = render_page(result.text, source=self._config.model)
        try:
            self._config.data_dir.mkdir(parents=True, exist_ok=True)
            self._config.report_path.write_text(page, encoding="utf-8")
            self._report_written = True
        except OSError as exc:
            logger.error("Could not write insight report to %s: %s", self._config.report_path, exc)
            self.notify(f"Could not write report: {exc}", severity="error")

    async def action_explain(self) -> None:
        """Send the last snapshot to the model."""
        panel = self.query_one(InsightPanel)
        if self._insight_pending:
            return
        if self._client is None:
            await panel.show(NO_KEY_TEXT)
            return
        if self._last_snapshot is None:
            await panel.show(NO_DATA_TEXT)
            return

        try:
            prompt = build_prompt(self._last_snapshot)
        except InvalidMetricsData as exc:
            await panel.show(f"**[X] Error:** {exc}")
            return

        self._insight_pending = True
        await panel.show(ANALYZING_TEXT)
        self._client.explain(prompt, on_insight=self._insight_queue.put)

    def action_open_report(self) -> None:
        """Open the rendered insight page in the browser."""
        if not self._report_written:
            self.notify("No insight report yet. Press e first.")
            return
        webbrowser.open(self._config.report_path.as_uri())

    async def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        if self._client is not None:
            self._client.close()
        self.exit()


def main() -> None:
    """Entry point for the hostinsight dashboard."""
    app = HostInsightApp()
    app.run()


if __name__ == "__main__":
    main()
