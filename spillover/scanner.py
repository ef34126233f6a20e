import logging
import os
import time
from pathlib import Path
from typing import Callable, Iterator, List

from .defaults import SECONDS_PER_DAY
from .errors import ScanError
from .models import CandidateDirectory, SourceMapping
from .utils import is_hidden

log = logging.getLogger(__name__)


class LeafScanner:
    """
    Walks a source root and lazily yields leaf directories (no subdirectories)
    old enough to move. Hidden directories and symlinks are never entered.
    Unreadable subtrees are logged and skipped.
    """

    def __init__(
        self,
        min_age_days: int = 0,
        max_depth: int | None = None,
        hidden_children_count: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self.min_age_days = min_age_days
        self.max_depth = max_depth if max_depth and max_depth > 0 else None
        # A directory whose only subdirectories are hidden is not a leaf
        self.hidden_children_count = hidden_children_count
        self.clock = clock

    def scan(self, mapping: SourceMapping) -> Iterator[CandidateDirectory]:
        now = self.clock()
        entries = self._list(mapping.source_root)
        if entries is None:
            return
        yield from self._walk(entries, mapping, 1, now)

    def is_leaf(self, path: Path) -> bool:
        entries = self._list(path)
        return entries is not None and not self._subdirs(entries)

    def _walk(self, entries: List[os.DirEntry], mapping: SourceMapping, depth: int, now: float):
        for entry in entries:
            if is_hidden(entry.name) or not _is_real_dir(entry):
                continue
            path = Path(entry.path)
            children = self._list(path)
            if children is None:
                continue

            if self._subdirs(children):
                if self.max_depth is None or depth < self.max_depth:
                    yield from self._walk(children, mapping, depth + 1, now)
                else:
                    log.debug("Skipping %s (not a leaf directory, depth limit %d reached)", path, self.max_depth)
                continue

            candidate = self._candidate(entry, mapping, now)
            if candidate is not None:
                yield candidate

    def _candidate(self, entry: os.DirEntry, mapping: SourceMapping, now: float) -> CandidateDirectory | None:
        try:
            mtime = entry.stat(follow_symlinks=False).st_mtime
        except OSError as e:
            log.warning("%s, skipping", ScanError(Path(entry.path), e))
            return None
        age_days = int((now - mtime) // SECONDS_PER_DAY)
        if age_days < self.min_age_days:
            log.debug("Skipping %s (age: %d days < %d days)", entry.path, age_days, self.min_age_days)
            return None
        return CandidateDirectory(
            path=Path(entry.path),
            source_root=mapping.source_root,
            mod_time=mtime,
            age_days=age_days,
        )

    def _subdirs(self, entries: List[os.DirEntry]) -> List[os.DirEntry]:
        return [
            e for e in entries
            if _is_real_dir(e) and (self.hidden_children_count or not is_hidden(e.name))
        ]

    @staticmethod
    def _list(path: Path) -> List[os.DirEntry] | None:
        try:
            with os.scandir(path) as it:
                return sorted(it, key=lambda e: e.name)
        except OSError as e:
            log.warning("%s, skipping subtree", ScanError(path, e))
            return None


def _is_real_dir(entry: os.DirEntry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError:
        return False
