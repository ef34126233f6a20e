import enum
import logging
from pathlib import Path
from typing import List, Sequence

from .models import MigrationConfig, MoveResult, RunSummary, SourceMapping
from .mover import TransferEngine
from .selector import Selector
from .space import SpaceMonitor

log = logging.getLogger(__name__)

SUFFICIENT_SPACE = "sufficient space"
TARGET_REACHED = "target free space reached"
NO_CANDIDATES = "no eligible directories"
BUDGET_EXHAUSTED = "move budget exhausted"


class Phase(enum.Enum):
    IDLE = "idle"
    SPACE_CHECKED = "space checked"
    SELECTING = "selecting"
    TRANSFERRING = "transferring"
    RECORDING = "recording"
    FINISHED = "finished"


class MigrationLoop:
    """
    Moves the oldest leaf directories off the first source's filesystem until
    free space reaches the target, candidates run out or the move budget is
    spent. A failed transfer propagates and ends the run.
    """

    def __init__(
        self,
        mappings: Sequence[SourceMapping],
        config: MigrationConfig,
        space: SpaceMonitor,
        selector: Selector,
        engine: TransferEngine,
        monitor=None,
        log_target: Path | None = None,
    ):
        self.mappings = list(mappings)
        self.config = config
        self.space = space
        self.selector = selector
        self.engine = engine
        self.monitor = monitor
        self.log_target = log_target
        self.phase = Phase.IDLE
        self.results: List[MoveResult] = []

    def _enter(self, phase: Phase) -> None:
        log.debug("Phase: %s -> %s", self.phase.value, phase.value)
        self.phase = phase

    def run(self) -> RunSummary:
        cfg = self.config
        free = self.space.free_space_percent()
        self._enter(Phase.SPACE_CHECKED)
        log.info("Current free space on %s filesystem: %d%%", self.space.path, free)

        if free >= cfg.low_space_pct:
            log.info("Sufficient free space (%d%% >= %d%%), exiting", free, cfg.low_space_pct)
            self._enter(Phase.FINISHED)
            return RunSummary(0, 0, free, (), SUFFICIENT_SPACE, cfg.dry_run)

        log.warning("Free space is low (%d%% < %d%%), starting cleanup", free, cfg.low_space_pct)
        if self.monitor is not None and self.log_target is not None:
            self.monitor.start(self.log_target)
        try:
            reason = self._move_loop()
        finally:
            if self.monitor is not None:
                self.monitor.stop()

        final_free = self.space.free_space_percent()
        self._enter(Phase.FINISHED)
        return RunSummary(
            moved_count=len(self.results),
            total_freed_kb=sum(r.size_kb for r in self.results),
            final_free_pct=final_free,
            moved_paths=tuple(r.source for r in self.results),
            stop_reason=reason,
            dry_run=cfg.dry_run,
        )

    def _move_loop(self) -> str:
        cfg = self.config
        planned = set()
        while True:
            if len(self.results) >= cfg.max_moves_per_run:
                log.info("Reached the limit of %d moves for this run", cfg.max_moves_per_run)
                return BUDGET_EXHAUSTED

            free = self.space.free_space_percent()
            if free >= cfg.target_space_pct:
                log.info("Target free space reached (%d%% >= %d%%)", free, cfg.target_space_pct)
                return TARGET_REACHED
            log.info("Current free space: %d%%, target: %d%%", free, cfg.target_space_pct)

            self._enter(Phase.SELECTING)
            candidate = self.selector.find_oldest(self.mappings, exclude=planned)
            if candidate is None:
                log.warning("No more directories found to move")
                return NO_CANDIDATES

            log.info("Moving oldest directory: %s (%d days old)", candidate.path, candidate.age_days)
            self._enter(Phase.TRANSFERRING)
            result = self.engine.move(candidate)

            self._enter(Phase.RECORDING)
            self.results.append(result)
            if result.dry_run:
                # nothing was freed, don't offer the same directory again
                planned.add(result.source)
            log.info("Successfully moved %s (%d KB freed)", result.source, result.size_kb)
