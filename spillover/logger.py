import csv
import logging
import os
import sys
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

from .defaults import ERROR_LOG_TAIL_LINES
from .models import MoveResult

LOG_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marks handlers installed here so a second setup replaces rather than stacks them
_HANDLER_TAG = "_spillover_handler"


def setup_logging(debug: bool = False, log_file: Path | None = None) -> logging.Logger:
    """Console logging on stdout, plus ``log_file`` when its directory is writable."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    for h in list(root.handlers):
        if getattr(h, _HANDLER_TAG, False):
            root.removeHandler(h)
            h.close()

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    setattr(console, _HANDLER_TAG, True)
    root.addHandler(console)

    if log_file is not None:
        if _writable(log_file):
            fh = logging.FileHandler(log_file, encoding="utf-8", errors="backslashreplace")
            fh.setFormatter(formatter)
            setattr(fh, _HANDLER_TAG, True)
            root.addHandler(fh)
        else:
            root.warning("Log file %s is not writable, logging to console only", log_file)
    return root


def _writable(path: Path) -> bool:
    if path.exists():
        return os.access(path, os.W_OK)
    return path.parent.is_dir() and os.access(path.parent, os.W_OK)


def tail_log(log_file: Path | None, lines: int = ERROR_LOG_TAIL_LINES) -> List[str]:
    """Last ``lines`` lines of the log, for error reports. Empty if unreadable."""
    if log_file is None:
        return []
    try:
        with log_file.open("r", encoding="utf-8", errors="replace") as f:
            return [line.rstrip("\n") for line in deque(f, maxlen=lines)]
    except OSError:
        return []


HISTORY_FIELDS = ("run_id", "moved_at", "source", "destination", "size_kb")


class MoveHistory:
    """Append-only CSV ledger of the directories each run moved off the fast root."""

    def __init__(self, path: Path):
        self.path = path

    def record(self, run_id: str, results: Iterable[MoveResult]) -> int:
        moved_at = datetime.now().isoformat(timespec="seconds")
        rows = [
            {
                "run_id": run_id,
                "moved_at": moved_at,
                "source": os.fspath(r.source),
                "destination": os.fspath(r.destination),
                "size_kb": r.size_kb,
            }
            for r in results
            if r.succeeded and not r.dry_run
        ]
        if not rows:
            return 0

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fresh = not self.path.exists() or self.path.stat().st_size == 0
        # Undecodable path bytes are written back out unchanged
        with self.path.open("a", newline="", encoding="utf-8", errors="surrogateescape") as f:
            writer = csv.DictWriter(f, fieldnames=HISTORY_FIELDS)
            if fresh:
                writer.writeheader()
            writer.writerows(rows)
        return len(rows)
