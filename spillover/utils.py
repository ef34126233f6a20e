import os
from pathlib import Path

from .errors import ConfigError


def resolve_against(path_str: str, base: Path) -> Path:
    """Expand ``~`` and anchor relative paths at ``base``."""
    p = Path(path_str).expanduser()
    if not p.is_absolute():
        p = base / p
    return p


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def relative_path(path: Path, root: Path) -> Path:
    try:
        return path.relative_to(root)
    except ValueError:
        raise ValueError(f"{path} is not inside {root}") from None


def dir_size_kb(path: Path) -> int:
    """
    Disk usage of a tree in KiB, the way ``du -sk`` reports it: allocated
    blocks of every entry, symlinks not followed. Unreadable entries count as 0.
    """
    total = 0
    seen = set()

    def _add(p: str) -> None:
        nonlocal total
        try:
            st = os.lstat(p)
        except OSError:
            return
        key = (st.st_dev, st.st_ino)
        if key in seen:
            return
        seen.add(key)
        blocks = getattr(st, "st_blocks", None)
        total += blocks * 512 if blocks is not None else st.st_size

    _add(str(path))
    for dirpath, dirnames, filenames in os.walk(path):
        for name in dirnames + filenames:
            _add(os.path.join(dirpath, name))
    return (total + 1023) // 1024


def validate_source_dest(src: Path, dest: Path) -> None:
    # Prevent moving into a subfolder of the source (the moved data would be scanned again)
    try:
        dest.resolve().relative_to(src.resolve())
    except ValueError:
        return
    raise ConfigError(f"Destination cannot be inside source folder: {dest} (source: {src})")
