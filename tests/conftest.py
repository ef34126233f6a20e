import logging
import os
from pathlib import Path
from typing import Dict

import pytest

from spillover.models import SourceMapping

DAY = 86400
NOW = 1_700_000_000.0


def set_age(path: Path, age_days: float, now: float = NOW) -> float:
    """Backdate ``path`` so it is ``age_days`` old (plus a minute of slack)."""
    t = now - age_days * DAY - 60
    os.utime(path, (t, t))
    return t


def make_leaf(root: Path, rel: str, age_days: float, files: Dict[str, bytes] | None = None,
              now: float = NOW) -> Path:
    path = root / rel
    path.mkdir(parents=True, exist_ok=True)
    if files is None:
        files = {"data.bin": b"x" * 100}
    for name, content in files.items():
        (path / name).write_bytes(content)
    set_age(path, age_days, now)
    return path


class FakeSpace:
    """Stands in for SpaceMonitor; replays readings, repeating the last one."""

    def __init__(self, *readings: int, path: Path = Path("/fake")):
        self.readings = list(readings)
        self.path = path
        self.calls = 0

    def free_space_percent(self) -> int:
        self.calls += 1
        if len(self.readings) > 1:
            return self.readings.pop(0)
        return self.readings[0]


@pytest.fixture
def roots(tmp_path):
    """Two source/destination pairs under tmp_path."""
    mappings = []
    for name in ("cache", "scratch"):
        src = tmp_path / "fast" / name
        dst = tmp_path / "slow" / name
        src.mkdir(parents=True)
        dst.mkdir(parents=True)
        mappings.append(SourceMapping(src, dst))
    return mappings


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main.run() reconfigures the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers[:]:
        if h not in handlers and getattr(h, "_spillover_handler", False):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)
