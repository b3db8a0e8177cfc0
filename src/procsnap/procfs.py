"""
Typed readers for the Linux /proc pseudo-filesystem.

Each per-process file is parsed into a small dataclass as soon as it is
read, so malformed content fails here rather than later during field
derivation. Read the man pages (proc(5))! Nothing in /proc is ever quite
as it seems.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from procsnap.errors import ProcessGoneError, ProcessUnreadableError, ProcFileParseError

log = logging.getLogger("procsnap.procfs")

DEFAULT_PROC_ROOT = Path("/proc")
DEFAULT_CLOCK_TICKS = 100


def clock_ticks_per_second() -> int:
    """
    Return the host's scheduler clock-tick rate.

    Falls back to DEFAULT_CLOCK_TICKS when sysconf cannot answer, so that
    tick arithmetic stays defined.
    """
    try:
        ticks = os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        log.warning("SC_CLK_TCK unavailable, assuming %d ticks/s", DEFAULT_CLOCK_TICKS)
        return DEFAULT_CLOCK_TICKS
    if ticks <= 0:
        log.warning("SC_CLK_TCK returned %d, assuming %d ticks/s", ticks, DEFAULT_CLOCK_TICKS)
        return DEFAULT_CLOCK_TICKS
    return ticks


@dataclass(slots=True, frozen=True)
class ProcStat:
    """Positional fields of /proc/<pid>/stat."""

    pid: int
    comm: str
    state: str
    ppid: int
    pgrp: int
    session: int
    tty_nr: int
    tpgid: int  # Foreground process group of the controlling terminal
    minflt: int
    majflt: int
    utime: int  # Clock ticks
    stime: int
    cutime: int
    cstime: int
    priority: int
    nice: int
    num_threads: int
    starttime: int  # Clock ticks after boot
    vsize: int  # Bytes
    rss: int  # Pages
    kstkeip: int
    processor: int
    rt_priority: int
    policy: int

    @classmethod
    def parse(cls, text: str) -> "ProcStat":
        # comm may itself contain spaces and parentheses, so split on the last ')'
        head, sep, tail = text.rpartition(")")
        pid, paren, comm = head.partition(" (")
        if not sep or not paren:
            raise ProcFileParseError(f"malformed stat record: {text!r}")
        # fields[0] is field 3 (state) in proc(5) numbering
        fields = tail.split()
        if len(fields) < 39:
            raise ProcFileParseError(f"stat record has {len(fields) + 2} fields, expected at least 41")
        try:
            return cls(
                pid=int(pid),
                comm=comm,
                state=fields[0],
                ppid=int(fields[1]),
                pgrp=int(fields[2]),
                session=int(fields[3]),
                tty_nr=int(fields[4]),
                tpgid=int(fields[5]),
                minflt=int(fields[7]),
                majflt=int(fields[9]),
                utime=int(fields[11]),
                stime=int(fields[12]),
                cutime=int(fields[13]),
                cstime=int(fields[14]),
                priority=int(fields[15]),
                nice=int(fields[16]),
                num_threads=int(fields[17]),
                starttime=int(fields[19]),
                vsize=int(fields[20]),
                rss=int(fields[21]),
                kstkeip=int(fields[27]),
                processor=int(fields[36]),
                rt_priority=int(fields[37]),
                policy=int(fields[38]),
            )
        except ValueError as exc:
            raise ProcFileParseError(f"malformed stat record: {exc}") from exc


@dataclass(slots=True, frozen=True)
class ProcMemStat:
    """Fields of /proc/<pid>/statm, all in pages."""

    size: int
    resident: int
    shared: int
    text: int
    lib: int
    data: int
    dirty: int

    @classmethod
    def parse(cls, text: str) -> "ProcMemStat":
        try:
            values = [int(v) for v in text.split()]
        except ValueError as exc:
            raise ProcFileParseError(f"malformed statm record: {text!r}") from exc
        if len(values) != 7:
            raise ProcFileParseError(f"statm record has {len(values)} fields, expected 7")
        return cls(*values)


@dataclass(slots=True, frozen=True)
class ProcStatus:
    """Key-value fields of /proc/<pid>/status."""

    name: str
    state: str | None
    uid: str
    gid: str
    vm_lck: str | None  # Absent for kernel threads
    fields: dict[str, str] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def parse(cls, text: str) -> "ProcStatus":
        fields: dict[str, str] = {}
        for line in text.splitlines():
            key, sep, value = line.partition(":")
            if sep:
                fields[key.strip()] = value.strip()
        try:
            uid = fields["Uid"]
            gid = fields["Gid"]
        except KeyError as exc:
            raise ProcFileParseError(f"status record lacks {exc.args[0]!r}") from exc
        for key, ids in (("Uid", uid), ("Gid", gid)):
            parts = ids.split()
            if len(parts) != 4 or not all(part.isdigit() for part in parts):
                raise ProcFileParseError(f"malformed {key} field: {ids!r}")
        return cls(
            name=fields.get("Name", ""),
            state=fields.get("State") or None,
            uid=uid,
            gid=gid,
            vm_lck=fields.get("VmLck") or None,
            fields=fields,
        )


class ProcessSource(Protocol):
    """Provider of raw per-process records and host context."""

    def pids(self) -> list[int]: ...

    def uptime_ms(self) -> int: ...

    def stat(self, pid: int) -> ProcStat: ...

    def mem_stat(self, pid: int) -> ProcMemStat: ...

    def status(self, pid: int) -> ProcStatus: ...

    def cmdline(self, pid: int) -> str: ...

    def security_context(self, pid: int) -> str: ...

    def wchan(self, pid: int) -> str: ...


class ProcFs:
    """
    ProcessSource backed by a procfs mount.

    Any read of a process that has already exited raises ProcessGoneError;
    a record this user may not read raises ProcessUnreadableError.
    """

    def __init__(self, root: Path | str = DEFAULT_PROC_ROOT) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def pids(self) -> list[int]:
        """List the pids currently visible under the procfs root."""
        return sorted(int(entry.name) for entry in self._root.iterdir() if entry.name.isdigit())

    def uptime_ms(self) -> int:
        text = (self._root / "uptime").read_text()
        try:
            return round(float(text.split()[0]) * 1000)
        except (IndexError, ValueError) as exc:
            raise ProcFileParseError(f"malformed uptime record: {text!r}") from exc

    def stat(self, pid: int) -> ProcStat:
        return ProcStat.parse(self._read_text(pid, "stat"))

    def mem_stat(self, pid: int) -> ProcMemStat:
        return ProcMemStat.parse(self._read_text(pid, "statm"))

    def status(self, pid: int) -> ProcStatus:
        return ProcStatus.parse(self._read_text(pid, "status"))

    def cmdline(self, pid: int) -> str:
        """Return the argument vector joined by spaces, empty for kernel threads."""
        raw = self._read_bytes(pid, "cmdline")
        args = [arg.decode(errors="replace") for arg in raw.split(b"\0") if arg]
        return " ".join(args)

    def security_context(self, pid: int) -> str:
        return self._read_optional(pid, "attr", "current").rstrip("\0\n")

    def wchan(self, pid: int) -> str:
        value = self._read_optional(pid, "wchan").strip()
        return "" if value == "0" else value

    def _read_bytes(self, pid: int, *parts: str) -> bytes:
        try:
            return self._root.joinpath(str(pid), *parts).read_bytes()
        except (FileNotFoundError, ProcessLookupError) as exc:
            raise ProcessGoneError(pid) from exc
        except PermissionError as exc:
            # hidepid mounts and Android restrict other users' records
            raise ProcessUnreadableError(pid) from exc

    def _read_text(self, pid: int, *parts: str) -> str:
        return self._read_bytes(pid, *parts).decode(errors="replace")

    def _read_optional(self, pid: int, *parts: str) -> str:
        # Labels and wait channels can be unsupported or restricted; only a
        # vanished process is an error here.
        try:
            return self._read_text(pid, *parts)
        except ProcessGoneError:
            if (self._root / str(pid)).is_dir():
                return ""
            raise
        except ProcessUnreadableError:
            log.debug("no access to %s for pid %d", "/".join(parts), pid)
            return ""
        except OSError as exc:
            log.debug("cannot read %s for pid %d: %s", "/".join(parts), pid, exc)
            return ""
