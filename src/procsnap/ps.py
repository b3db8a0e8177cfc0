"""Process table built from /proc, in the manner of ps(1)."""

import logging
import threading

from procsnap.errors import MissingFieldError, ProcessGoneError, ProcessUnreadableError
from procsnap.models import ProcessEntry, ProcessUsers
from procsnap.procfs import (
    ProcessSource,
    ProcFs,
    ProcMemStat,
    ProcStat,
    ProcStatus,
    clock_ticks_per_second,
)

log = logging.getLogger("procsnap.ps")


def _state_flags(stat: ProcStat, status: ProcStatus) -> str:
    flags = []
    if stat.nice < 0:
        flags.append("<")
    elif stat.nice > 0:
        flags.append("N")
    if stat.session == stat.pid:
        flags.append("s")
    lead = status.vm_lck[:1] if status.vm_lck else ""
    if lead.isdigit() and int(lead) > 0:
        flags.append("L")
    if stat.tpgid == stat.pid:
        flags.append("+")
    return "".join(flags)


def new_process_entry(
    stat: ProcStat,
    mem_stat: ProcMemStat,
    status: ProcStatus,
    name: str,
    selinux_context: str,
    wait_channel: str,
    uptime: int,
    clock_ticks: int,
) -> ProcessEntry:
    """
    Derive a ProcessEntry from the raw records of one process.

    Args:
        stat: Parsed /proc/<pid>/stat.
        mem_stat: Parsed /proc/<pid>/statm.
        status: Parsed /proc/<pid>/status.
        name: Command line; the status name is used when it is empty.
        selinux_context: Security label of the process.
        wait_channel: Kernel function the process sleeps in, if any.
        uptime: Host uptime in seconds.
        clock_ticks: Clock ticks per second.

    Raises:
        MissingFieldError: The status record has no process state.
    """
    if not status.state:
        raise MissingFieldError(stat.pid, "State")

    return ProcessEntry(
        pid=stat.pid,
        ppid=stat.ppid,
        process_group_id=stat.pgrp,
        session_id=stat.session,
        priority=stat.priority,
        niceness=stat.nice,
        scheduling_policy=stat.policy,
        real_time_priority=stat.rt_priority,
        cpu=stat.processor,
        thread_count=stat.num_threads,
        tty=stat.tty_nr,
        instruction_pointer=stat.kstkeip,
        virtual_memory_size=stat.vsize,
        resident_set_size=stat.rss,
        shared_memory=mem_stat.shared,
        major_page_faults=stat.majflt,
        minor_page_faults=stat.minflt,
        users=ProcessUsers.from_status(status.uid, status.gid),
        name=name or status.name,
        selinux_context=selinux_context,
        wait_channel=wait_channel,
        process_state=status.state[0],
        process_state_plus=_state_flags(stat, status),
        cpu_time_consumed=(stat.utime + stat.stime) // clock_ticks,
        c_cpu_time_consumed=(stat.cutime + stat.cstime) // clock_ticks,
        elapsed_time=uptime - stat.starttime // clock_ticks,
    )


class Ps:
    """
    Snapshot of every process visible in /proc.

    reload() builds a complete new table and publishes it by swapping a
    single reference, so processes() never returns a partially built
    table. Reloads are serialized; reads never wait on a reload in
    progress beyond the swap itself.
    """

    def __init__(
        self,
        source: ProcessSource | None = None,
        clock_ticks: int | None = None,
        strict: bool = False,
    ) -> None:
        """
        Initialize Ps.

        Args:
            source: Provider of raw process records. Defaults to ProcFs().
            clock_ticks: Clock ticks per second. None queries the host on
                every reload. Must be positive when given.
            strict: Abort the whole reload when a process lacks a mandatory
                field instead of omitting that process.
        """
        if clock_ticks is not None and clock_ticks <= 0:
            raise ValueError(f"clock_ticks must be positive, got {clock_ticks}")
        self._source: ProcessSource = source if source is not None else ProcFs()
        self._clock_ticks = clock_ticks
        self._strict = strict
        self._lock = threading.Lock()
        self._reload_lock = threading.Lock()
        self._entries: tuple[ProcessEntry, ...] = ()

    @property
    def strict(self) -> bool:
        return self._strict

    def processes(self) -> tuple[ProcessEntry, ...]:
        """Return the most recently published table."""
        with self._lock:
            return self._entries

    def reload(self) -> tuple[ProcessEntry, ...]:
        """
        Scan all processes and publish a new table.

        Processes that exit during the scan, or whose records this user
        may not read, are left out. If the reload raises, the previously
        published table stays in place.
        """
        with self._reload_lock:
            uptime = self._source.uptime_ms() // 1000
            clock_ticks = self._clock_ticks if self._clock_ticks is not None else clock_ticks_per_second()

            entries: list[ProcessEntry] = []
            for pid in self._source.pids():
                try:
                    entries.append(self._load_process(pid, uptime, clock_ticks))
                except ProcessGoneError:
                    log.debug("process %d exited during scan", pid)
                except ProcessUnreadableError:
                    log.debug("process %d is not readable, skipping", pid)
                except MissingFieldError as exc:
                    if self._strict:
                        raise
                    log.warning("skipping process %d: %s", pid, exc)

            table = tuple(entries)
            with self._lock:
                self._entries = table
            log.debug("published %d processes", len(table))
            return table

    def _load_process(self, pid: int, uptime: int, clock_ticks: int) -> ProcessEntry:
        source = self._source
        return new_process_entry(
            stat=source.stat(pid),
            mem_stat=source.mem_stat(pid),
            status=source.status(pid),
            name=source.cmdline(pid),
            selinux_context=source.security_context(pid),
            wait_channel=source.wchan(pid),
            uptime=uptime,
            clock_ticks=clock_ticks,
        )
