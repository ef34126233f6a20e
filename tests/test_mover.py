import os
import shutil

import pytest

from spillover import mover
from spillover.errors import TransferError, VerificationError
from spillover.models import CandidateDirectory
from spillover.mover import TransferEngine, copy_if_changed, merge_tree
from spillover.verify import SizeVerifier

from conftest import make_leaf


def candidate(mapping, rel, age=10):
    path = mapping.source_root / rel
    return CandidateDirectory(path, mapping.source_root, path.stat().st_mtime, age)


@pytest.fixture
def leaf(roots):
    cache = roots[0]
    make_leaf(cache.source_root, "show/season1/ep1", 10,
              files={"video.bin": b"v" * 65536, "notes.txt": b"hello"})
    return candidate(cache, "show/season1/ep1")


def test_move_preserves_relative_path_and_removes_source(roots, leaf):
    src_file = leaf.path / "video.bin"
    mtime = src_file.stat().st_mtime

    result = TransferEngine(roots).move(leaf)

    dest = roots[0].dest_root / "show" / "season1" / "ep1"
    assert result.succeeded and not result.dry_run
    assert result.source == leaf.path
    assert result.destination == dest
    assert result.size_kb > 0
    assert not leaf.path.exists()
    assert (leaf.path.parent).exists()
    assert (dest / "video.bin").read_bytes() == b"v" * 65536
    assert (dest / "notes.txt").read_bytes() == b"hello"
    assert (dest / "video.bin").stat().st_mtime == pytest.approx(mtime, abs=1e-3)


def test_move_merges_into_existing_destination(roots, leaf):
    dest = roots[0].dest_root / "show" / "season1" / "ep1"
    dest.mkdir(parents=True)
    (dest / "unrelated.txt").write_text("keep me")
    (dest / "notes.txt").write_text("stale notes that are longer")

    TransferEngine(roots).move(leaf)

    assert (dest / "unrelated.txt").read_text() == "keep me"
    assert (dest / "notes.txt").read_bytes() == b"hello"
    assert (dest / "video.bin").exists()
    assert not leaf.path.exists()


def test_dry_run_touches_nothing(roots, leaf):
    before = sorted(p.name for p in leaf.path.iterdir())
    result = TransferEngine(roots, dry_run=True).move(leaf)

    assert result.succeeded and result.dry_run
    assert sorted(p.name for p in leaf.path.iterdir()) == before
    assert list(roots[0].dest_root.iterdir()) == []


def test_copy_failure_leaves_source_untouched(roots, leaf):
    blocker = roots[0].dest_root / "show" / "season1" / "ep1"
    blocker.parent.mkdir(parents=True)
    blocker.write_text("a file where the directory should go")

    with pytest.raises(TransferError) as exc:
        TransferEngine(roots).move(leaf)
    assert exc.value.reason == "copy failed"
    assert not exc.value.copy_intact
    assert (leaf.path / "video.bin").exists()


def test_verification_failure_keeps_source(roots, leaf):
    class Picky(SizeVerifier):
        def _check(self, src, dst):
            return "mismatch" if src.name == "notes.txt" else ""

    with pytest.raises(VerificationError) as exc:
        TransferEngine(roots, verifier=Picky()).move(leaf)
    assert exc.value.missing_or_mismatched == ["notes.txt (mismatch)"]
    assert (leaf.path / "notes.txt").exists()
    assert (leaf.path / "video.bin").exists()


def test_delete_failure_reports_intact_copy(roots, leaf, monkeypatch):
    def rmtree(path, *a, **kw):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(mover.shutil, "rmtree", rmtree)
    with pytest.raises(TransferError) as exc:
        TransferEngine(roots).move(leaf)
    assert exc.value.reason == "delete failed"
    assert exc.value.copy_intact
    dest = roots[0].dest_root / "show" / "season1" / "ep1"
    assert (dest / "video.bin").exists()
    assert leaf.path.exists()


def test_rerun_after_partial_copy(roots, leaf):
    dest = roots[0].dest_root / "show" / "season1" / "ep1"
    dest.mkdir(parents=True)
    shutil.copy2(leaf.path / "notes.txt", dest / "notes.txt")
    (dest / "video.bin").write_bytes(b"v" * 1000)  # interrupted mid-file

    TransferEngine(roots).move(leaf)

    assert (dest / "video.bin").read_bytes() == b"v" * 65536
    assert (dest / "notes.txt").read_bytes() == b"hello"


def test_round_trip_backup_verifies_against_destination(roots, leaf, tmp_path):
    backup = tmp_path / "backup"
    shutil.copytree(leaf.path, backup)

    result = TransferEngine(roots).move(leaf)

    SizeVerifier().verify(backup, result.destination)
    assert not leaf.path.exists()


def test_unknown_source_root_is_rejected(roots, tmp_path):
    stray = make_leaf(tmp_path, "elsewhere/leaf", 10)
    cand = CandidateDirectory(stray, tmp_path / "elsewhere", 0.0, 10)
    with pytest.raises(TransferError):
        TransferEngine(roots).move(cand)
    assert stray.exists()


def test_copy_if_changed_skips_identical_files(tmp_path):
    src = tmp_path / "a"
    dst = tmp_path / "b"
    src.write_text("same size")
    shutil.copy2(src, dst)
    dst.write_text("SAME SIZE")
    st = src.stat()
    os.utime(dst, ns=(st.st_atime_ns, st.st_mtime_ns))

    copy_if_changed(str(src), str(dst))
    # quick check matched, nothing rewritten
    assert dst.read_text() == "SAME SIZE"


def test_copy_if_changed_rewrites_when_mtime_differs_within_the_second(tmp_path):
    src = tmp_path / "a"
    dst = tmp_path / "b"
    src.write_text("new data")
    dst.write_text("old data")
    second = 1_700_000_000 * 10**9
    os.utime(src, ns=(second + 200_000_000, second + 200_000_000))
    os.utime(dst, ns=(second + 100_000_000, second + 100_000_000))

    copy_if_changed(str(src), str(dst))
    assert dst.read_text() == "new data"
    assert dst.stat().st_mtime_ns == src.stat().st_mtime_ns


def test_merge_tree_copies_symlinks_as_links(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    (src / "target.txt").write_text("t")
    os.symlink("target.txt", src / "link")
    dst = tmp_path / "dst"

    merge_tree(src, dst)
    merge_tree(src, dst)  # second pass must not trip over the existing link

    assert os.path.islink(dst / "link")
    assert os.readlink(dst / "link") == "target.txt"
