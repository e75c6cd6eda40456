"""Snapshot writer: persists one checkpoint into the store.

Order of operations is what keeps the store consistent:

1. create the checkpoint directory (a fresh, unique name)
2. write the payload (files.tar.gz, or added/ modified/ deleted.json)
3. write manifest.json atomically

The registry only trusts directories with a valid manifest, so a crash
before step 3 leaves an orphan directory that listing ignores. On an
ordinary failure the partial directory is removed.
"""

from __future__ import annotations

import logging
import re
import shutil
import tarfile
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path

from restorepoint.atomic import atomic_write_json
from restorepoint.errors import SNAPSHOT_WRITE_FAILED, Err, Ok, RestorePointError, Result
from restorepoint.manifest import (
    ADDED_DIRNAME,
    ARCHIVE_FILENAME,
    DELETED_FILENAME,
    MANIFEST_FILENAME,
    MODIFIED_DIRNAME,
    ChangeSet,
    Checkpoint,
    Statistics,
)
from restorepoint.types import CheckpointKind, CheckpointName

logger = logging.getLogger(__name__)

NAME_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S"


def _slugify(text: str, max_length: int = 40) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:max_length].strip("-")


def _sanitize_name(name: str) -> str:
    """Keep names to a single safe path component."""
    return re.sub(r"[^a-zA-Z0-9_-]+", "-", name).strip("-")


def generate_checkpoint_name(
    name: str | None = None,
    description: str | None = None,
    now: datetime | None = None,
) -> str:
    """Build '<prefix>_<timestamp>' from a custom name, a description or a default."""
    if now is None:
        now = datetime.now(UTC)
    ts = now.strftime(NAME_TIMESTAMP_FORMAT)

    prefix = ""
    if name:
        prefix = _sanitize_name(name)
    if not prefix and description:
        prefix = _slugify(description)
    if not prefix:
        prefix = "checkpoint"

    return f"{prefix}_{ts}"


def format_size(size: int) -> str:
    """Human readable byte count, e.g. '1.5KB'."""
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f}{units[unit]}"


def _reserve_directory(snapshots_dir: Path, base_name: str) -> tuple[CheckpointName, Path]:
    """Create a new checkpoint directory, suffixing the name on collision."""
    snapshots_dir.mkdir(parents=True, exist_ok=True)
    candidate = base_name
    suffix = 2
    while True:
        path = snapshots_dir / candidate
        try:
            path.mkdir()
            return CheckpointName(candidate), path
        except FileExistsError:
            candidate = f"{base_name}-{suffix}"
            suffix += 1


def _total_size(project_root: Path, files: list[str]) -> int:
    total = 0
    for rel in files:
        try:
            total += (project_root / rel).stat().st_size
        except OSError:
            logger.debug(f"Cannot stat {rel}, not counted in total size")
    return total


def write_full_archive(project_root: Path, checkpoint_dir: Path, files: list[str]) -> int:
    """Archive every tracked file into files.tar.gz. Returns the archive size."""
    archive_path = checkpoint_dir / ARCHIVE_FILENAME
    with tarfile.open(archive_path, "w:gz") as tar:
        for rel in files:
            tar.add(project_root / rel, arcname=rel, recursive=False)
    return archive_path.stat().st_size


def write_incremental_payload(
    project_root: Path,
    checkpoint_dir: Path,
    changes: ChangeSet,
    total_size: int,
) -> Statistics:
    """Copy added/modified files and record deletions.

    Deletions must be explicit: a path missing from the payload only means
    it did not change.
    """
    bytes_added = 0
    bytes_modified = 0

    for dirname, paths in ((ADDED_DIRNAME, changes.added), (MODIFIED_DIRNAME, changes.modified)):
        for rel in paths:
            src = project_root / rel
            dest = checkpoint_dir / dirname / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dest)
            size = dest.stat().st_size
            if dirname == ADDED_DIRNAME:
                bytes_added += size
            else:
                bytes_modified += size

    if changes.deleted:
        result = atomic_write_json(checkpoint_dir / DELETED_FILENAME, list(changes.deleted))
        if result.is_err():
            raise OSError(result.unwrap_err().message)

    stored = bytes_added + bytes_modified
    return Statistics(
        files_changed=changes.total,
        bytes_added=bytes_added,
        bytes_modified=bytes_modified,
        compression_ratio=round(stored / total_size, 4) if total_size else 0.0,
    )


def write_checkpoint(
    project_root: Path,
    snapshots_dir: Path,
    kind: CheckpointKind,
    file_hashes: Mapping[str, str],
    name: str | None = None,
    description: str | None = None,
    changes: ChangeSet | None = None,
    base: Checkpoint | None = None,
) -> Result[Checkpoint, RestorePointError]:
    """Persist a checkpoint: payload first, manifest last.

    Args:
        project_root: Project whose files are captured
        snapshots_dir: Store directory receiving the checkpoint
        kind: FULL or INCREMENTAL
        file_hashes: Fingerprint of every tracked file (complete state)
        name: Optional custom name prefix
        description: Free text; also the name prefix when no name is given
        changes: Delta from base (INCREMENTAL only)
        base: The newest existing checkpoint (INCREMENTAL only)

    Returns:
        Ok(Checkpoint) once the manifest is durable, Err otherwise
    """
    if kind is CheckpointKind.INCREMENTAL and (changes is None or base is None):
        raise ValueError("Incremental checkpoints need a change set and a base")

    project_root = Path(project_root)
    now = datetime.now(UTC)
    files = sorted(file_hashes)

    checkpoint_name, checkpoint_dir = _reserve_directory(
        snapshots_dir, generate_checkpoint_name(name, description, now)
    )

    try:
        total_size = _total_size(project_root, files)

        if kind is CheckpointKind.FULL:
            archive_size = write_full_archive(project_root, checkpoint_dir, files)
            logger.debug(f"Archived {len(files)} files ({format_size(archive_size)})")
            checkpoint = Checkpoint(
                name=checkpoint_name,
                timestamp=now.isoformat(),
                description=description or "Manual checkpoint",
                kind=kind,
                files=tuple(files),
                total_size=total_size,
                file_hashes=dict(file_hashes),
            )
        else:
            statistics = write_incremental_payload(project_root, checkpoint_dir, changes, total_size)
            checkpoint = Checkpoint(
                name=checkpoint_name,
                timestamp=now.isoformat(),
                description=description or "Manual checkpoint",
                kind=kind,
                files=tuple(files),
                total_size=total_size,
                file_hashes=dict(file_hashes),
                base_checkpoint=base.name,
                changes=changes,
                statistics=statistics,
            )

        result = atomic_write_json(checkpoint_dir / MANIFEST_FILENAME, checkpoint.to_dict())
        if result.is_err():
            raise OSError(result.unwrap_err().message)

    except (OSError, tarfile.TarError) as e:
        logger.error(f"Failed to write checkpoint {checkpoint_name}: {e}")
        shutil.rmtree(checkpoint_dir, ignore_errors=True)
        return Err(
            RestorePointError(
                code=SNAPSHOT_WRITE_FAILED,
                message=f"Failed to write checkpoint {checkpoint_name}: {e}",
                context={"checkpoint": checkpoint_name, "kind": kind.value, "error": str(e)},
            )
        )

    logger.info(f"Wrote {kind.value.lower()} checkpoint {checkpoint_name} ({len(files)} files)")
    return Ok(checkpoint)
