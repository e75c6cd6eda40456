"""Shared fixtures for restorepoint tests."""

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from restorepoint.config import STORE_DIRNAME, RestorePointConfig, get_snapshots_dir
from restorepoint.manifest import ChangeSet, Checkpoint, Statistics
from restorepoint.types import CheckpointKind, CheckpointName


@pytest.fixture
def config() -> RestorePointConfig:
    """Policy without cooldown or retention so tests control every checkpoint."""
    return RestorePointConfig(cooldown_seconds=0, max_checkpoints=0, hash_workers=1)


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """A project with three tracked files."""
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "README.md").write_text("# Demo\n")
    (root / "src" / "app.py").write_text("print('hello')\n")
    (root / "src" / "util.py").write_text("def helper():\n    return 1\n")
    return root


@pytest.fixture
def read_tree():
    """Return a function mapping a project to {relative path: bytes}, store excluded."""

    def _read(root: Path) -> dict[str, bytes]:
        tree = {}
        for path in sorted(root.rglob("*")):
            rel = path.relative_to(root)
            if rel.parts[0] == STORE_DIRNAME or not path.is_file():
                continue
            tree[rel.as_posix()] = path.read_bytes()
        return tree

    return _read


@pytest.fixture
def make_record():
    """Return a factory for in-memory Checkpoint records."""

    def _make(
        name: str,
        kind: CheckpointKind = CheckpointKind.FULL,
        base: str | None = None,
        age_days: float = 0,
        files: tuple[str, ...] = ("a.txt",),
    ) -> Checkpoint:
        ts = datetime.now(UTC) - timedelta(days=age_days)
        incremental = kind is CheckpointKind.INCREMENTAL
        return Checkpoint(
            name=CheckpointName(name),
            timestamp=ts.isoformat(),
            description=name,
            kind=kind,
            files=files,
            total_size=10,
            file_hashes={f: "0" * 64 for f in files},
            base_checkpoint=CheckpointName(base) if base else None,
            changes=ChangeSet(modified=files) if incremental else None,
            statistics=Statistics(files_changed=len(files)) if incremental else None,
        )

    return _make


@pytest.fixture
def store_record(project: Path):
    """Return a function writing a record's manifest into the project's store."""

    def _store(checkpoint: Checkpoint) -> Path:
        checkpoint_dir = get_snapshots_dir(project) / checkpoint.name
        checkpoint_dir.mkdir(parents=True, exist_ok=True)
        (checkpoint_dir / "manifest.json").write_text(json.dumps(checkpoint.to_dict()))
        return checkpoint_dir

    return _store
