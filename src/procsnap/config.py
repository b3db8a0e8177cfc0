"""Runtime configuration for procsnap."""

import argparse
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from procsnap.procfs import DEFAULT_PROC_ROOT, ProcFs
from procsnap.ps import Ps

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass
class Config:
    proc_root: Path = field(default_factory=lambda: DEFAULT_PROC_ROOT)
    interval: float = 2.0
    clock_ticks: int | None = None  # None: ask the host
    strict: bool = False
    once: bool = False
    log_level: str = "WARNING"

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "Config":
        return cls(
            proc_root=Path(args.proc_root),
            interval=max(0.1, args.interval),
            clock_ticks=args.clock_ticks,
            strict=bool(args.strict),
            once=bool(args.once),
            log_level=args.log_level.upper(),
        )

    def build_ps(self) -> Ps:
        return Ps(ProcFs(self.proc_root), clock_ticks=self.clock_ticks, strict=self.strict)


def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return number


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(prog="procsnap", description="Process snapshot viewer for Linux /proc")
    ap.add_argument("--proc-root", type=str, default=str(DEFAULT_PROC_ROOT), help="procfs mount to read")
    ap.add_argument("--interval", type=float, default=2.0, help="seconds between reloads")
    ap.add_argument("--clock-ticks", type=_positive_int, default=None, help="override clock ticks per second")
    ap.add_argument("--strict", action="store_true", help="fail the reload when a process lacks its state")
    ap.add_argument("--once", action="store_true", help="print one snapshot as a table and exit")
    ap.add_argument("--log-level", type=str.upper, choices=LOG_LEVELS, default="WARNING")
    return ap.parse_args(argv)
