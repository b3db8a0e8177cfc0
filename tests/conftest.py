"""Shared fixtures: a synthetic ProcessSource and a fake /proc tree."""

from dataclasses import replace
from pathlib import Path

import pytest

from procsnap.errors import ProcessGoneError
from procsnap.procfs import ProcMemStat, ProcStat, ProcStatus


def make_stat(pid: int, **overrides) -> ProcStat:
    values = dict(
        pid=pid,
        comm=f"proc{pid}",
        state="S",
        ppid=1,
        pgrp=pid,
        session=0,
        tty_nr=0,
        tpgid=-1,
        minflt=100,
        majflt=2,
        utime=250,
        stime=50,
        cutime=0,
        cstime=0,
        priority=20,
        nice=0,
        num_threads=1,
        starttime=1000,
        vsize=4096 * 1024,
        rss=256,
        kstkeip=0,
        processor=0,
        rt_priority=0,
        policy=0,
    )
    values.update(overrides)
    return ProcStat(**values)


def make_status(name: str = "proc", state: str | None = "S (sleeping)", **overrides) -> ProcStatus:
    values = dict(
        name=name,
        state=state,
        uid="0\t0\t0\t0",
        gid="0\t0\t0\t0",
        vm_lck="0 kB",
    )
    values.update(overrides)
    return ProcStatus(**values)


class FakeSource:
    """In-memory ProcessSource."""

    def __init__(self, uptime_ms: int = 3_600_000) -> None:
        self.uptime = uptime_ms
        self.stats: dict[int, ProcStat] = {}
        self.statuses: dict[int, ProcStatus] = {}
        self.cmdlines: dict[int, str] = {}
        self.gone: set[int] = set()
        self.listed: list[int] | None = None

    def add(self, pid: int, cmdline: str = "", stat=None, status=None) -> None:
        self.stats[pid] = stat if stat is not None else make_stat(pid)
        self.statuses[pid] = status if status is not None else make_status(name=f"proc{pid}")
        self.cmdlines[pid] = cmdline

    def update_stat(self, pid: int, **changes) -> None:
        self.stats[pid] = replace(self.stats[pid], **changes)

    def _check(self, pid: int) -> None:
        if pid in self.gone or pid not in self.stats:
            raise ProcessGoneError(pid)

    def pids(self) -> list[int]:
        return list(self.listed) if self.listed is not None else list(self.stats)

    def uptime_ms(self) -> int:
        return self.uptime

    def stat(self, pid: int) -> ProcStat:
        self._check(pid)
        return self.stats[pid]

    def mem_stat(self, pid: int) -> ProcMemStat:
        self._check(pid)
        return ProcMemStat(size=1024, resident=256, shared=64, text=10, lib=0, data=100, dirty=0)

    def status(self, pid: int) -> ProcStatus:
        self._check(pid)
        return self.statuses[pid]

    def cmdline(self, pid: int) -> str:
        self._check(pid)
        return self.cmdlines[pid]

    def security_context(self, pid: int) -> str:
        self._check(pid)
        return "u:r:untrusted_app:s0"

    def wchan(self, pid: int) -> str:
        self._check(pid)
        return "do_epoll_wait"


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


def stat_line(pid: int, comm: str, state: str = "S", **fields: int) -> str:
    """Build a /proc/<pid>/stat line with 52 fields."""
    # proc(5) numbering, fields 4..52
    values = {n: 0 for n in range(4, 53)}
    names = {
        "ppid": 4, "pgrp": 5, "session": 6, "tty_nr": 7, "tpgid": 8,
        "minflt": 10, "majflt": 12, "utime": 14, "stime": 15, "cutime": 16,
        "cstime": 17, "priority": 18, "nice": 19, "num_threads": 20,
        "starttime": 22, "vsize": 23, "rss": 24, "kstkeip": 30,
        "processor": 39, "rt_priority": 40, "policy": 41,
    }
    for name, value in fields.items():
        values[names[name]] = value
    tail = " ".join(str(values[n]) for n in range(4, 53))
    return f"{pid} ({comm}) {state} {tail}\n"


STATUS_TEMPLATE = """Name:\t{name}
Umask:\t0022
State:\t{state}
Tgid:\t{pid}
Pid:\t{pid}
PPid:\t1
Uid:\t{uid}\t{uid}\t{uid}\t{uid}
Gid:\t{gid}\t{gid}\t{gid}\t{gid}
VmLck:\t{vm_lck}
Threads:\t1
"""


class ProcTree:
    """Writes a fake procfs layout under a temporary directory."""

    def __init__(self, root: Path) -> None:
        self.root = root
        (root / "uptime").write_text("7200.55 14000.10\n")

    def add(
        self,
        pid: int,
        comm: str = "bash",
        cmdline: bytes = b"/bin/bash\0--login\0",
        state: str = "S (sleeping)",
        vm_lck: str = "0 kB",
        uid: int = 1000,
        gid: int = 1000,
        context: bytes | None = b"unconfined\0",
        wchan: str = "do_wait",
        **stat_fields: int,
    ) -> Path:
        proc = self.root / str(pid)
        (proc / "attr").mkdir(parents=True)
        (proc / "stat").write_text(stat_line(pid, comm, state[:1], **stat_fields))
        (proc / "statm").write_text("5000 1200 300 100 0 800 0\n")
        (proc / "status").write_text(
            STATUS_TEMPLATE.format(name=comm, state=state, pid=pid, uid=uid, gid=gid, vm_lck=vm_lck)
        )
        (proc / "cmdline").write_bytes(cmdline)
        if context is not None:
            (proc / "attr" / "current").write_bytes(context)
        (proc / "wchan").write_text(wchan)
        return proc


@pytest.fixture
def proc_tree(tmp_path: Path) -> ProcTree:
    return ProcTree(tmp_path)


def deny_reads(monkeypatch, denied) -> None:
    """Make reads of the given paths fail the way hidepid mounts do."""
    read_bytes = Path.read_bytes

    def guarded(self):
        if self in denied:
            raise PermissionError(13, "Permission denied", str(self))
        return read_bytes(self)

    monkeypatch.setattr(Path, "read_bytes", guarded)
