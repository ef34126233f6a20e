import logging
from pathlib import Path
from typing import Collection, Iterable

from .models import CandidateDirectory, SourceMapping
from .scanner import LeafScanner

log = logging.getLogger(__name__)


class Selector:
    """Picks the oldest eligible leaf across all mappings."""

    def __init__(self, scanner: LeafScanner):
        self.scanner = scanner

    def find_oldest(
        self,
        mappings: Iterable[SourceMapping],
        exclude: Collection[Path] = (),
    ) -> CandidateDirectory | None:
        oldest: CandidateDirectory | None = None
        seen = 0
        for mapping in mappings:
            for cand in self.scanner.scan(mapping):
                if cand.path in exclude:
                    continue
                seen += 1
                # strict < keeps the first one found on ties
                if oldest is None or cand.mod_time < oldest.mod_time:
                    oldest = cand
        if oldest is None:
            log.debug("No eligible leaf directories found")
        else:
            log.debug(
                "Oldest of %d eligible directories: %s (%d days)", seen, oldest.path, oldest.age_days
            )
        return oldest
