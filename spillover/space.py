import logging
import shutil
from pathlib import Path

from .errors import SpaceQueryError

log = logging.getLogger(__name__)


def used_percent(total: int, used: int, free: int) -> int:
    """Use% the way ``df`` prints it: used / (used + available), rounded up."""
    denom = used + free
    if denom <= 0:
        return 0
    return min(100, max(0, -(-used * 100 // denom)))


class SpaceMonitor:
    """Free-space percentage of the filesystem holding ``path``."""

    def __init__(self, path: Path, usage=shutil.disk_usage):
        self.path = path
        self.usage = usage

    def free_space_percent(self) -> int:
        try:
            total, used, free = self.usage(self.path)
        except OSError as e:
            raise SpaceQueryError(f"Cannot stat filesystem of {self.path}: {e}") from e
        pct = 100 - used_percent(total, used, free)
        log.debug("Free space on %s filesystem: %d%%", self.path, pct)
        return pct
