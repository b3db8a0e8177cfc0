"""Exceptions raised while reading and deriving process records."""


class ProcsnapError(Exception):
    """Base class for procsnap errors."""


class ProcessGoneError(ProcsnapError):
    """The process exited between enumeration and read."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"process {pid} no longer exists")
        self.pid = pid


class ProcFileParseError(ProcsnapError):
    """A file in /proc could not be parsed."""


class MissingFieldError(ProcsnapError):
    """A mandatory field was absent from an otherwise readable record."""

    def __init__(self, pid: int, field: str) -> None:
        super().__init__(f"process {pid}: mandatory field {field!r} is missing")
        self.pid = pid
        self.field = field


class ProcessUnreadableError(ProcsnapError):
    """The process exists but its records are not readable by this user."""

    def __init__(self, pid: int) -> None:
        super().__init__(f"process {pid} is not readable")
        self.pid = pid
