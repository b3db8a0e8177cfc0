"""Background reload worker for procsnap."""

import logging
import threading
import time
from dataclasses import dataclass
from queue import Queue

import psutil

from procsnap.models import ProcessEntry
from procsnap.ps import Ps

log = logging.getLogger("procsnap.monitor")


@dataclass(slots=True)
class SystemSnapshot:
    """Snapshot of overall system state."""

    cpu_percent_per_core: list[float]
    memory_total: int
    memory_used: int
    memory_percent: float
    swap_total: int
    swap_used: int
    swap_percent: float
    load_avg: tuple[float, float, float]
    uptime_seconds: float
    processes: tuple[ProcessEntry, ...]


class ProcessMonitor:
    """
    Reloads a Ps table on a daemon thread and pushes SystemSnapshots to a
    thread-safe Queue.

    A failed cycle is logged and the loop carries on; the Ps instance keeps
    its previously published table in that case.
    """

    def __init__(
        self,
        update_queue: Queue[SystemSnapshot],
        ps: Ps | None = None,
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the ProcessMonitor.

        Args:
            update_queue: Thread-safe queue to push updates to.
            ps: Process table to reload. A default Ps() is created if omitted.
            poll_rate: How often to reload (in seconds). Default 2.0s.
        """
        self._queue = update_queue
        self._ps = ps if ps is not None else Ps()
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(percpu=True)

    @property
    def ps(self) -> Ps:
        return self._ps

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="ProcessMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_snapshot())
            except Exception:
                log.exception("reload failed, keeping previous process table")

            # Sleep until the next cycle, a reload request or stop()
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()

    def request_reload(self) -> None:
        """Run the next reload now instead of at the end of the poll interval."""
        self._wake_event.set()

    def collect_snapshot(self) -> SystemSnapshot:
        """Reload the process table and pair it with host statistics."""
        processes = self._ps.reload()

        cpu_percents = psutil.cpu_percent(percpu=True)
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()

        return SystemSnapshot(
            cpu_percent_per_core=cpu_percents,
            memory_total=mem.total,
            memory_used=mem.used,
            memory_percent=mem.percent,
            swap_total=swap.total,
            swap_used=swap.used,
            swap_percent=swap.percent,
            load_avg=psutil.getloadavg(),
            uptime_seconds=time.time() - psutil.boot_time(),
            processes=processes,
        )
