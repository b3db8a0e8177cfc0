"""Data models for procsnap."""

import grp
import pwd
from dataclasses import dataclass


def _parse_ids(raw: str) -> tuple[int, int, int, int]:
    # "Uid:" and "Gid:" lines carry real, effective, saved and filesystem ids
    ids = [int(part) for part in raw.split()]
    if len(ids) != 4:
        raise ValueError(f"expected 4 ids, got {raw!r}")
    return ids[0], ids[1], ids[2], ids[3]


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


def _group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


@dataclass(slots=True, frozen=True)
class ProcessUsers:
    """Owning user and group ids of a process as of read time."""

    real_uid: int
    effective_uid: int
    saved_uid: int
    fs_uid: int
    real_gid: int
    effective_gid: int
    saved_gid: int
    fs_gid: int
    user_name: str  # Name of the effective uid
    group_name: str  # Name of the effective gid

    @classmethod
    def from_status(cls, uid: str, gid: str) -> "ProcessUsers":
        """
        Build from the raw "Uid:" and "Gid:" values of /proc/<pid>/status.

        Ids that have no entry in the password or group database are
        named by their number.
        """
        uids = _parse_ids(uid)
        gids = _parse_ids(gid)
        return cls(
            real_uid=uids[0],
            effective_uid=uids[1],
            saved_uid=uids[2],
            fs_uid=uids[3],
            real_gid=gids[0],
            effective_gid=gids[1],
            saved_gid=gids[2],
            fs_gid=gids[3],
            user_name=_user_name(uids[1]),
            group_name=_group_name(gids[1]),
        )

    @property
    def uid(self) -> int:
        return self.effective_uid

    @property
    def gid(self) -> int:
        return self.effective_gid


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """Immutable snapshot of a single process."""

    pid: int
    ppid: int
    process_group_id: int
    session_id: int
    priority: int
    niceness: int
    scheduling_policy: int
    real_time_priority: int
    cpu: int  # Index of the CPU last executed on
    thread_count: int
    tty: int  # Encoded device number of the controlling terminal
    instruction_pointer: int
    virtual_memory_size: int  # Bytes
    resident_set_size: int  # Pages
    shared_memory: int  # Pages
    major_page_faults: int
    minor_page_faults: int
    users: ProcessUsers
    name: str
    selinux_context: str
    wait_channel: str
    process_state: str  # 'R', 'S', 'Z', 'D', etc.
    process_state_plus: str  # ps-style flags such as '<', 'N', 's', 'L', '+'
    cpu_time_consumed: int  # Seconds, self
    c_cpu_time_consumed: int  # Seconds, waited-for children
    elapsed_time: int  # Seconds since start
