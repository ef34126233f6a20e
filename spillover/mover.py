import logging
import os
import shutil
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import TransferError, VerificationError
from .models import CandidateDirectory, MoveResult, SourceMapping
from .utils import dir_size_kb, relative_path
from .verify import SizeVerifier

log = logging.getLogger(__name__)


def copy_if_changed(src: str, dst: str) -> str:
    """
    copy2, unless ``dst`` already holds a file with the same size and mtime
    (what a previous, interrupted run left behind).
    """
    try:
        d = os.lstat(dst)
    except FileNotFoundError:
        d = None
    if d is not None:
        s = os.stat(src)
        if (
            not os.path.islink(dst)
            and os.path.isfile(dst)
            and d.st_size == s.st_size
            and d.st_mtime_ns == s.st_mtime_ns
        ):
            return dst
        if os.path.islink(dst):
            os.unlink(dst)
    return shutil.copy2(src, dst)


def merge_tree(src: Path, dst: Path) -> None:
    """
    Copy ``src`` into ``dst``, creating ``dst`` if needed. Files already in
    ``dst`` that ``src`` does not have are left alone; same-named ones are
    replaced. Symlinks are copied as links. Safe to run again after a crash.
    """
    errors: List[Tuple[str, str, str]] = []
    dst.mkdir(exist_ok=True)
    with os.scandir(src) as it:
        entries = sorted(it, key=lambda e: e.name)

    for entry in entries:
        s = entry.path
        d = dst / entry.name
        try:
            if entry.is_symlink():
                target = os.readlink(s)
                if os.path.lexists(d):
                    if os.path.islink(d) and os.readlink(d) == target:
                        continue
                    _clear(d)
                os.symlink(target, d)
            elif entry.is_dir(follow_symlinks=False):
                if os.path.lexists(d) and not d.is_dir():
                    _clear(d)
                merge_tree(Path(s), d)
            else:
                if d.is_dir() and not d.is_symlink():
                    raise IsADirectoryError(f"destination is a directory: {d}")
                copy_if_changed(s, str(d))
        except shutil.Error as e:
            errors.extend(e.args[0])
        except OSError as e:
            errors.append((s, str(d), str(e)))

    try:
        shutil.copystat(src, dst, follow_symlinks=False)
    except OSError as e:
        errors.append((str(src), str(dst), str(e)))
    if errors:
        raise shutil.Error(errors)


def _clear(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        raise IsADirectoryError(f"destination is a directory: {path}")
    path.unlink()


class TransferEngine:
    """Copy a leaf directory to its mapped destination, verify, then delete the source."""

    def __init__(self, mappings: Iterable[SourceMapping], dry_run: bool = False, verifier=None):
        self.destinations = {m.source_root: m.dest_root for m in mappings}
        self.dry_run = dry_run
        self.verifier = verifier if verifier is not None else SizeVerifier()

    def destination_for(self, candidate: CandidateDirectory) -> Path:
        dest_root = self.destinations.get(candidate.source_root)
        if dest_root is None:
            raise TransferError("no destination configured", candidate.path)
        try:
            rel = relative_path(candidate.path, candidate.source_root)
        except ValueError as e:
            raise TransferError(str(e), candidate.path) from None
        return dest_root / rel

    def move(self, candidate: CandidateDirectory) -> MoveResult:
        source = candidate.path
        destination = self.destination_for(candidate)
        log.info("Preparing to move: %s -> %s", source, destination)
        if destination.exists():
            log.warning("Destination exists, merging into: %s", destination)

        size_kb = dir_size_kb(source)

        if self.dry_run:
            log.info("DRY RUN: Would move %s to %s (%d KB)", source, destination, size_kb)
            return MoveResult(source, destination, size_kb, succeeded=True, dry_run=True)

        self.copy(source, destination)

        try:
            self.verifier.verify(source, destination)
        except VerificationError:
            log.error("Transfer verification failed, keeping source directory: %s", source)
            raise
        except OSError as e:
            log.error("Transfer verification failed, keeping source directory: %s", source)
            raise VerificationError([f"unreadable: {e}"], source, destination) from e
        log.info("Transfer verification passed, removing source")

        try:
            shutil.rmtree(source)
        except OSError as e:
            log.error("Failed to remove source directory: %s (%s)", source, e)
            raise TransferError("delete failed", source, destination, copy_intact=True) from e
        log.info("Source directory removed successfully")
        return MoveResult(source, destination, size_kb, succeeded=True)

    def copy(self, source: Path, destination: Path) -> None:
        parent = destination.parent
        if not parent.is_dir():
            log.info("Creating parent directories: %s", parent)
        try:
            parent.mkdir(parents=True, exist_ok=True)
            log.info("Starting transfer...")
            merge_tree(source, destination)
        except shutil.Error as e:
            for s, d, why in e.args[0][:10]:
                log.error("Copy failed: %s -> %s: %s", s, d, why)
            raise TransferError("copy failed", source, destination) from e
        except OSError as e:
            log.error("Copy failed: %s", e)
            raise TransferError("copy failed", source, destination) from e
        log.info("Transfer completed: %s", destination)
