from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Tuple

@dataclass(frozen=True)
class SourceMapping:
    source_root: Path
    dest_root: Path


@dataclass(frozen=True)
class CandidateDirectory:
    path: Path
    source_root: Path
    mod_time: float  # st_mtime of the directory itself
    age_days: int


@dataclass(frozen=True)
class MigrationConfig:
    low_space_pct: int = 10
    target_space_pct: int = 20
    max_moves_per_run: int = 10
    min_age_days: int = 7
    max_search_depth: int | None = None  # None = unlimited
    dry_run: bool = False


@dataclass(frozen=True)
class LockState:
    pid: int
    acquired_at: float


@dataclass(frozen=True)
class MoveResult:
    source: Path
    destination: Path
    size_kb: int
    succeeded: bool
    dry_run: bool = False
    error: str = ""


@dataclass(frozen=True)
class RunSummary:
    moved_count: int
    total_freed_kb: int
    final_free_pct: int
    moved_paths: Tuple[Path, ...] = ()
    stop_reason: str = ""
    dry_run: bool = False


@dataclass(frozen=True)
class ErrorReport:
    message: str
    recent_log_lines: List[str] = field(default_factory=list)
