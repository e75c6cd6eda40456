"""Tests for restorepoint.restore module."""

import io
import shutil
import tarfile
from pathlib import Path

from restorepoint.chain import resolve_chain
from restorepoint.changes import detect_changes
from restorepoint.fingerprint import fingerprint_files
from restorepoint.registry import checkpoint_map, read_checkpoints
from restorepoint.restore import (
    ApplyReport,
    apply_chain,
    extract_full,
    plan_restore,
    remove_empty_dirs,
)
from restorepoint.tracking import list_tracked_files
from restorepoint.types import CheckpointKind
from restorepoint.writer import write_checkpoint


def _snapshot(project: Path, snapshots: Path, kind=CheckpointKind.FULL):
    hashes = fingerprint_files(project, list_tracked_files(project), max_workers=1)
    history = read_checkpoints(snapshots)
    if kind is CheckpointKind.FULL:
        return write_checkpoint(project, snapshots, kind, hashes).unwrap()
    last = history[0]
    changes = detect_changes(hashes, last.file_hashes)
    return write_checkpoint(project, snapshots, kind, hashes, changes=changes, base=last).unwrap()


def _chain(snapshots: Path, target):
    return resolve_chain(target, checkpoint_map(read_checkpoints(snapshots))).unwrap()


class TestPlanRestore:
    """Tests for plan_restore()."""

    def test_direct_plan(self, project: Path, tmp_path: Path):
        """A FULL target restores directly."""
        snapshots = tmp_path / "snapshots"
        full = _snapshot(project, snapshots)

        plan = plan_restore([full], snapshots).unwrap()

        assert plan.strategy == "direct"
        assert plan.chain == (full.name,)

    def test_chained_plan(self, project: Path, tmp_path: Path):
        """An INCREMENTAL target restores through its chain."""
        snapshots = tmp_path / "snapshots"
        full = _snapshot(project, snapshots)
        (project / "README.md").write_text("changed\n")
        inc = _snapshot(project, snapshots, CheckpointKind.INCREMENTAL)

        plan = plan_restore(_chain(snapshots, inc), snapshots).unwrap()

        assert plan.strategy == "chained"
        assert plan.chain == (full.name, inc.name)
        assert plan.chain_length == 2

    def test_missing_archive(self, project: Path, tmp_path: Path):
        """A base without files.tar.gz cannot be restored."""
        snapshots = tmp_path / "snapshots"
        full = _snapshot(project, snapshots)
        (snapshots / full.name / "files.tar.gz").unlink()

        result = plan_restore([full], snapshots)

        assert result.unwrap_err().code == "CHAIN_BROKEN"


class TestApplyChain:
    """Tests for apply_chain()."""

    def test_full_restore_replaces_tracked_tree(self, project: Path, tmp_path: Path, read_tree):
        """Files are reverted, and files added since are removed."""
        snapshots = tmp_path / "snapshots"
        before = read_tree(project)
        full = _snapshot(project, snapshots)
        (project / "README.md").write_text("edited\n")
        (project / "extra").mkdir()
        (project / "extra" / "new.txt").write_text("new\n")

        report = apply_chain(project, snapshots, [full], list_tracked_files(project))

        assert read_tree(project) == before
        assert not (project / "extra").exists()
        assert report.deleted == 1
        assert report.skipped == []

    def test_chained_restore(self, project: Path, tmp_path: Path, read_tree):
        """Replaying FULL plus incrementals reproduces the target state."""
        snapshots = tmp_path / "snapshots"
        _snapshot(project, snapshots)
        (project / "src" / "app.py").write_text("v2\n")
        _snapshot(project, snapshots, CheckpointKind.INCREMENTAL)
        (project / "src" / "util.py").unlink()
        (project / "docs").mkdir()
        (project / "docs" / "guide.md").write_text("guide\n")
        target = _snapshot(project, snapshots, CheckpointKind.INCREMENTAL)
        expected = read_tree(project)

        (project / "README.md").write_text("later edit\n")
        (project / "docs" / "guide.md").unlink()
        (project / "src" / "util.py").write_text("resurrected\n")

        apply_chain(project, snapshots, _chain(snapshots, target), list_tracked_files(project))

        assert read_tree(project) == expected

    def test_removes_directories_emptied_by_deletions(self, project: Path, tmp_path: Path):
        """Directories left empty after deletions are pruned."""
        snapshots = tmp_path / "snapshots"
        full = _snapshot(project, snapshots)
        nested = project / "a" / "b"
        nested.mkdir(parents=True)
        (nested / "c.txt").write_text("c")

        report = apply_chain(project, snapshots, [full], list_tracked_files(project))

        assert not (project / "a").exists()
        assert report.removed_dirs == 2


class TestExtractFull:
    """Tests for extract_full()."""

    def test_unsafe_members_skipped(self, tmp_path: Path):
        """Members escaping the project are skipped, the rest extracted."""
        checkpoint_dir = tmp_path / "cp"
        checkpoint_dir.mkdir()
        with tarfile.open(checkpoint_dir / "files.tar.gz", "w:gz") as tar:
            for name, data in (("../evil.txt", b"evil"), ("good.txt", b"good")):
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))
        project = tmp_path / "project"
        project.mkdir()
        report = ApplyReport()

        assert extract_full(project, checkpoint_dir, report) is True

        assert (project / "good.txt").read_text() == "good"
        assert not (tmp_path / "evil.txt").exists()
        assert report.skipped == ["../evil.txt"]

    def test_unreadable_archive(self, tmp_path: Path):
        """A corrupt archive reports failure."""
        checkpoint_dir = tmp_path / "cp"
        checkpoint_dir.mkdir()
        (checkpoint_dir / "files.tar.gz").write_bytes(b"not a tarball")

        assert extract_full(tmp_path, checkpoint_dir, ApplyReport()) is False


class TestRemoveEmptyDirs:
    """Tests for remove_empty_dirs()."""

    def test_keeps_non_empty_directories(self, tmp_path: Path):
        """Walking up stops at the first non-empty directory."""
        (tmp_path / "a" / "b").mkdir(parents=True)
        (tmp_path / "a" / "keep.txt").write_text("x")

        removed = remove_empty_dirs(tmp_path, ["a/b/gone.txt"])

        assert removed == 1
        assert (tmp_path / "a").is_dir()
        assert not (tmp_path / "a" / "b").exists()


def _make_docs_file(project: Path) -> None:
    docs = project / "docs"
    if docs.is_dir():
        shutil.rmtree(docs)
    docs.write_text("docs file\n")


def _make_docs_dir(project: Path) -> None:
    docs = project / "docs"
    if docs.is_file():
        docs.unlink()
    docs.mkdir(exist_ok=True)
    (docs / "a.txt").write_text("inside docs\n")


class TestFileDirectorySwap:
    """Restores where a path changed between file and directory."""

    def test_full_restore_file_replaced_by_directory(self, project: Path, tmp_path: Path, read_tree):
        """A file that became a directory comes back as a file."""
        snapshots = tmp_path / "snapshots"
        _make_docs_file(project)
        expected = read_tree(project)
        full = _snapshot(project, snapshots)
        _make_docs_dir(project)

        report = apply_chain(project, snapshots, [full], list_tracked_files(project))

        assert read_tree(project) == expected
        assert report.skipped == []

    def test_full_restore_directory_replaced_by_file(self, project: Path, tmp_path: Path, read_tree):
        """A directory that became a file comes back as a directory."""
        snapshots = tmp_path / "snapshots"
        _make_docs_dir(project)
        expected = read_tree(project)
        full = _snapshot(project, snapshots)
        _make_docs_file(project)

        report = apply_chain(project, snapshots, [full], list_tracked_files(project))

        assert read_tree(project) == expected
        assert report.skipped == []

    def test_incremental_turns_file_into_directory(self, project: Path, tmp_path: Path, read_tree):
        """An incremental deleting 'docs' and adding 'docs/a.txt' replays cleanly."""
        snapshots = tmp_path / "snapshots"
        _make_docs_file(project)
        _snapshot(project, snapshots)
        _make_docs_dir(project)
        target = _snapshot(project, snapshots, CheckpointKind.INCREMENTAL)
        expected = read_tree(project)
        _make_docs_file(project)

        report = apply_chain(project, snapshots, _chain(snapshots, target), list_tracked_files(project))

        assert target.changes.deleted == ("docs",)
        assert target.changes.added == ("docs/a.txt",)
        assert read_tree(project) == expected
        assert report.skipped == []

    def test_incremental_turns_directory_into_file(self, project: Path, tmp_path: Path, read_tree):
        """An incremental deleting 'docs/a.txt' and adding 'docs' replays cleanly."""
        snapshots = tmp_path / "snapshots"
        _make_docs_dir(project)
        _snapshot(project, snapshots)
        _make_docs_file(project)
        target = _snapshot(project, snapshots, CheckpointKind.INCREMENTAL)
        expected = read_tree(project)
        _make_docs_dir(project)

        report = apply_chain(project, snapshots, _chain(snapshots, target), list_tracked_files(project))

        assert read_tree(project) == expected
        assert report.skipped == []

    def test_unreadable_base_keeps_current_files(self, project: Path, tmp_path: Path, read_tree):
        """A corrupt base archive deletes nothing."""
        snapshots = tmp_path / "snapshots"
        full = _snapshot(project, snapshots)
        (project / "extra.txt").write_text("keep\n")
        (snapshots / full.name / "files.tar.gz").write_bytes(b"corrupt")

        report = apply_chain(project, snapshots, [full], list_tracked_files(project))

        assert (project / "extra.txt").read_text() == "keep\n"
        assert report.deleted == 0
