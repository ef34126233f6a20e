from pathlib import Path
from typing import List


class SpilloverError(Exception):
    """Base error for the project."""


class ConfigError(SpilloverError):
    pass


class LockError(SpilloverError):
    pass


class AlreadyRunning(LockError):
    def __init__(self, pid: int, age: float, lock_file: Path | None = None):
        self.pid = pid
        self.age = age
        self.lock_file = lock_file
        where = f", lock file: {lock_file}" if lock_file else ""
        super().__init__(
            f"Another instance is already running (PID: {pid}, age: {int(age)}s{where})"
        )


class SpaceQueryError(SpilloverError):
    pass


class ScanError(SpilloverError):
    """A subtree could not be read. Logged and skipped, never fatal."""

    def __init__(self, path: Path, cause: OSError):
        self.path = path
        self.cause = cause
        super().__init__(f"Cannot scan {path}: {cause.strerror or cause}")


class TransferError(SpilloverError):
    def __init__(
        self,
        reason: str,
        source: Path | None = None,
        destination: Path | None = None,
        copy_intact: bool = False,
    ):
        self.reason = reason
        self.source = source
        self.destination = destination
        # True when the destination holds a verified copy and only the
        # source removal failed.
        self.copy_intact = copy_intact
        msg = reason
        if source is not None:
            msg = f"{reason}: {source}"
            if destination is not None:
                msg += f" -> {destination}"
        super().__init__(msg)


class VerificationError(TransferError):
    def __init__(
        self,
        missing_or_mismatched: List[str],
        source: Path | None = None,
        destination: Path | None = None,
    ):
        self.missing_or_mismatched = list(missing_or_mismatched)
        super().__init__("verification failed", source, destination)
        shown = ", ".join(self.missing_or_mismatched[:10])
        more = len(self.missing_or_mismatched) - 10
        if more > 0:
            shown += f" (+{more} more)"
        self.args = (f"{self.args[0]} [{shown}]",)
