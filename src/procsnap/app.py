"""procsnap - process viewer on top of the Ps table."""

import logging
import os
from collections.abc import Iterable, Sequence
from enum import Enum
from queue import Empty, Queue

from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static
from textual.widgets.data_table import CellDoesNotExist, DuplicateKey, RowDoesNotExist

from procsnap.config import Config, parse_args
from procsnap.models import ProcessEntry
from procsnap.monitor import ProcessMonitor, SystemSnapshot

log = logging.getLogger("procsnap.app")

PAGE_SIZE = os.sysconf("SC_PAGE_SIZE")


class SortKey(Enum):
    """Sort keys for the process table."""

    TIME = "time"
    MEM = "mem"
    PID = "pid"
    USER = "user"


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_time(seconds: int) -> str:
    """Format seconds the way ps(1) prints TIME, [DD-]HH:MM:SS."""
    if seconds < 0:
        return "?"
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes, secs = divmod(rest, 60)
    clock = f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{days}-{clock}" if days else clock


def _row(proc: ProcessEntry) -> tuple[str, ...]:
    return (
        str(proc.pid),
        proc.users.user_name[:10],
        str(proc.priority),
        str(proc.niceness),
        proc.process_state,
        proc.process_state + proc.process_state_plus,
        format_bytes(proc.virtual_memory_size),
        format_bytes(proc.resident_set_size * PAGE_SIZE),
        format_bytes(proc.shared_memory * PAGE_SIZE),
        format_time(proc.cpu_time_consumed),
        format_time(proc.elapsed_time),
        proc.wait_channel[:16],
        proc.name[:50],
    )


COLUMNS = (
    ("PID", "pid", 8),
    ("USER", "user", 10),
    ("PR", "priority", 4),
    ("NI", "nice", 4),
    ("S", "state", 2),
    ("STAT", "stat", 5),
    ("VIRT", "virt", 7),
    ("RES", "res", 7),
    ("SHR", "shr", 7),
    ("TIME", "time", 11),
    ("ELAPSED", "elapsed", 11),
    ("WCHAN", "wchan", 16),
    ("Command", "command", None),
)


def format_table(processes: Iterable[ProcessEntry]) -> str:
    """Render processes as a plain text table, one line per process."""
    lines = []
    header = [(title, width) for title, _, width in COLUMNS]
    lines.append(" ".join(title.ljust(width) if width else title for title, width in header))
    for proc in processes:
        cells = _row(proc)
        lines.append(
            " ".join(
                cell.ljust(width) if width else cell
                for cell, (_, width) in zip(cells, header)
            )
        )
    return "\n".join(line.rstrip() for line in lines)


class HeaderStats(Static):
    """Summary of host load and the process table above the table."""

    DEFAULT_CSS = """
    HeaderStats {
        dock: top;
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__("Waiting for the first snapshot...", *args, **kwargs)
        self._snapshot: SystemSnapshot | None = None

    @property
    def task_count(self) -> int:
        return len(self._snapshot.processes) if self._snapshot is not None else 0

    @property
    def running_count(self) -> int:
        if self._snapshot is None:
            return 0
        return sum(1 for p in self._snapshot.processes if p.process_state == "R")

    def update_stats(self, snapshot: SystemSnapshot) -> None:
        """Show the host statistics carried by a system snapshot."""
        self._snapshot = snapshot
        self.update(self.summary())

    def summary(self) -> str:
        snap = self._snapshot
        if snap is None:
            return "Waiting for the first snapshot..."
        load1, load5, load15 = snap.load_avg
        cores = " ".join(f"{usage:3.0f}%" for usage in snap.cpu_percent_per_core)
        return "\n".join(
            [
                f"Tasks: {self.task_count}, {self.running_count} running"
                f"  Load: {load1:.2f} {load5:.2f} {load15:.2f}"
                f"  Up: {format_time(int(snap.uptime_seconds))}",
                f"CPU: {cores}",
                f"Mem: {format_bytes(snap.memory_used).strip()}/{format_bytes(snap.memory_total).strip()}"
                f" ({snap.memory_percent:.1f}%)"
                f"  Swap: {format_bytes(snap.swap_used).strip()}/{format_bytes(snap.swap_total).strip()}",
            ]
        )


class ProcessTable(Container):
    """Container for the process data table."""

    DEFAULT_CSS = """
    ProcessTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._current_pids: set[int] = set()
        self._sort_key: SortKey = SortKey.TIME
        self._sort_reverse: bool = True

    @property
    def sort_key(self) -> SortKey:
        return self._sort_key

    def cycle_sort(self) -> SortKey:
        """Cycle to the next sort key and return it."""
        keys = list(SortKey)
        self._sort_key = keys[(keys.index(self._sort_key) + 1) % len(keys)]
        # Heaviest first for resource columns
        self._sort_reverse = self._sort_key in (SortKey.TIME, SortKey.MEM)
        return self._sort_key

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-table")

    def on_mount(self) -> None:
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"
        for title, key, width in COLUMNS:
            table.add_column(title, key=key, width=width)

    def update_processes(self, processes: Sequence[ProcessEntry]) -> None:
        """
        Update the process table with a new snapshot.

        Existing rows are updated cell by cell instead of rebuilding the table.
        """
        table = self.query_one("#process-table", DataTable)
        sorted_processes = self._sort_processes(processes)
        new_pids = {proc.pid for proc in sorted_processes}

        for pid in self._current_pids - new_pids:
            try:
                table.remove_row(str(pid))
            except RowDoesNotExist:
                pass

        for proc in sorted_processes:
            row_key = str(proc.pid)
            if proc.pid in self._current_pids:
                self._update_row(table, row_key, proc)
            else:
                self._add_row(table, row_key, proc)

        self._current_pids = new_pids

    def _sort_processes(self, processes: Sequence[ProcessEntry]) -> list[ProcessEntry]:
        key_func = {
            SortKey.TIME: lambda p: p.cpu_time_consumed,
            SortKey.MEM: lambda p: p.resident_set_size,
            SortKey.PID: lambda p: p.pid,
            SortKey.USER: lambda p: p.users.user_name.lower(),
        }
        return sorted(processes, key=key_func[self._sort_key], reverse=self._sort_reverse)

    def _update_row(self, table: DataTable, row_key: str, proc: ProcessEntry) -> None:
        try:
            for (_, column_key, _), value in zip(COLUMNS, _row(proc)):
                table.update_cell(row_key, column_key, value)
        except CellDoesNotExist:
            pass  # Row was removed meanwhile

    def _add_row(self, table: DataTable, row_key: str, proc: ProcessEntry) -> None:
        try:
            table.add_row(*_row(proc), key=row_key)
        except DuplicateKey:
            pass


class ProcsnapApp(App):
    """Main procsnap application."""

    TITLE = "procsnap"
    SUB_TITLE = "Process Snapshot Viewer"

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("f6", "sort", "Sort"),
        ("r", "reload", "Reload"),
    ]

    def __init__(self, config: Config | None = None) -> None:
        super().__init__()
        self._config = config if config is not None else Config()
        self._update_queue: Queue[SystemSnapshot] = Queue()
        self._monitor = ProcessMonitor(
            self._update_queue,
            self._config.build_ps(),
            poll_rate=self._config.interval,
        )

    def compose(self) -> ComposeResult:
        yield HeaderStats(id="header-stats")
        yield ProcessTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start the monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: SystemSnapshot) -> None:
        self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
        self.query_one(ProcessTable).update_processes(snapshot.processes)

    def action_sort(self) -> None:
        """Cycle through sort keys."""
        new_sort_key = self.query_one(ProcessTable).cycle_sort()
        self.notify(f"Sort: {new_sort_key.value.upper()}")

    def action_reload(self) -> None:
        """Reload now instead of waiting for the next cycle."""
        self._monitor.request_reload()
        self.notify("Reloading")

    def action_quit(self) -> None:
        """Stop the monitor and exit."""
        self._monitor.stop()
        self.exit()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for procsnap."""
    config = Config.from_args(parse_args(argv))
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if config.once:
        ps = config.build_ps()
        ps.reload()
        print(format_table(ps.processes()))
        return

    log.info("reading %s every %.1fs", config.proc_root, config.interval)
    ProcsnapApp(config).run()


if __name__ == "__main__":
    main()
