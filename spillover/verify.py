"""
Post-copy verification strategies.

The default compares byte sizes only. ``Sha256Verifier`` also hashes every
file, for setups that would rather pay the extra read than trust sizes.
"""
import hashlib
import logging
import os
from pathlib import Path
from typing import Iterator, List

from .errors import VerificationError
from .utils import is_hidden

log = logging.getLogger(__name__)


def iter_source_files(source: Path) -> Iterator[str]:
    """
    Relative paths of every file (and symlink) under ``source``. Hidden
    entries directly under ``source`` are left out; deeper ones are kept.
    """
    root = os.fspath(source)
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise):
        top = dirpath == root
        if top:
            dirnames[:] = [d for d in dirnames if not is_hidden(d)]
        # os.walk lists symlinked directories in dirnames but does not descend
        links = [d for d in dirnames if os.path.islink(os.path.join(dirpath, d))]
        for name in sorted(filenames + links):
            if top and is_hidden(name):
                continue
            yield os.path.relpath(os.path.join(dirpath, name), source)


def _raise(err: OSError) -> None:
    raise err


class SizeVerifier:
    """Every source file must exist at the destination with the same size."""

    name = "size"

    def verify(self, source: Path, destination: Path) -> None:
        log.debug("Verifying transfer: %s -> %s", source, destination)
        problems: List[str] = []
        if not destination.is_dir():
            problems = list(iter_source_files(source)) or ["."]
            raise VerificationError(problems, source, destination)

        checked = 0
        for rel in iter_source_files(source):
            checked += 1
            problem = self._check(source / rel, destination / rel)
            if problem:
                problems.append(f"{rel} ({problem})")
        if problems:
            raise VerificationError(problems, source, destination)
        log.debug("Verification passed for %d files", checked)

    def _check(self, src: Path, dst: Path) -> str:
        if src.is_symlink():
            return "" if os.path.lexists(dst) else "missing"
        try:
            dst_size = dst.stat().st_size
        except FileNotFoundError:
            return "missing"
        src_size = src.stat().st_size
        if src_size != dst_size:
            return f"size {src_size} != {dst_size}"
        return ""


class Sha256Verifier(SizeVerifier):
    name = "sha256"

    def _check(self, src: Path, dst: Path) -> str:
        problem = super()._check(src, dst)
        if problem or src.is_symlink():
            return problem
        if file_digest(src) != file_digest(dst):
            return "content differs"
        return ""


def file_digest(path: Path, block_size: int = 1024 * 1024) -> str:
    h = hashlib.sha256()
    with path.open("rb") as fh:
        while True:
            chunk = fh.read(block_size)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


VERIFIERS = {
    SizeVerifier.name: SizeVerifier,
    Sha256Verifier.name: Sha256Verifier,
}
