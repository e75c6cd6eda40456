"""Tests for restorepoint.retention module."""

from pathlib import Path

from restorepoint.config import get_snapshots_dir
from restorepoint.registry import read_checkpoints
from restorepoint.retention import run_retention
from restorepoint.types import CheckpointKind

INC = CheckpointKind.INCREMENTAL


def _names(project: Path) -> list[str]:
    return [cp.name for cp in read_checkpoints(get_snapshots_dir(project))]


class TestRunRetention:
    """Tests for run_retention()."""

    def test_empty_store(self, tmp_path: Path):
        """Nothing to do on an empty store."""
        result = run_retention(tmp_path / "snapshots", max_count=3)

        assert result.total_remaining == 0
        assert result.deleted == ()

    def test_no_limits_keeps_everything(self, project: Path, make_record, store_record):
        """Zero limits disable pruning."""
        for i in range(4):
            store_record(make_record(f"cp{i}", age_days=i))

        result = run_retention(get_snapshots_dir(project))

        assert result.total_remaining == 4
        assert len(_names(project)) == 4

    def test_count_cap_removes_oldest(self, project: Path, make_record, store_record):
        """The oldest FULL checkpoints beyond the cap are deleted."""
        for i in range(5):
            store_record(make_record(f"cp{i}", age_days=i))

        result = run_retention(get_snapshots_dir(project), max_count=2)

        assert _names(project) == ["cp0", "cp1"]
        assert result.pruned_by_cap == 3
        assert result.deleted == ("cp4", "cp3", "cp2")

    def test_age_limit(self, project: Path, make_record, store_record):
        """Checkpoints older than max_age_days are deleted."""
        store_record(make_record("fresh", age_days=1))
        store_record(make_record("stale", age_days=10))

        result = run_retention(get_snapshots_dir(project), max_age_days=7)

        assert _names(project) == ["fresh"]
        assert result.pruned_by_age == 1

    def test_chain_base_is_protected(self, project: Path, make_record, store_record):
        """A FULL root needed by a kept incremental survives the cap."""
        store_record(make_record("full", age_days=3))
        store_record(make_record("inc1", INC, base="full", age_days=2))
        store_record(make_record("inc2", INC, base="inc1", age_days=1))

        result = run_retention(get_snapshots_dir(project), max_count=1)

        assert _names(project) == ["inc2", "inc1", "full"]
        assert result.protected == 2
        assert result.deleted == ()

    def test_unreferenced_chain_evicted(self, project: Path, make_record, store_record):
        """Once nothing depends on an old chain it is pruned whole."""
        store_record(make_record("old-full", age_days=5))
        store_record(make_record("old-inc", INC, base="old-full", age_days=4))
        store_record(make_record("new-full", age_days=1))

        result = run_retention(get_snapshots_dir(project), max_count=1)

        assert _names(project) == ["new-full"]
        assert result.deleted == ("old-full", "old-inc")

    def test_protect_keeps_named_chain(self, project: Path, make_record, store_record):
        """Protected names keep their chain even when marked."""
        store_record(make_record("full", age_days=3))
        store_record(make_record("inc", INC, base="full", age_days=2))
        store_record(make_record("newest", age_days=0))

        result = run_retention(get_snapshots_dir(project), max_count=1, protect=["inc"])

        assert _names(project) == ["newest", "inc", "full"]
        assert result.protected == 2
