"""Restore engine: replays a resolved chain onto the project directory.

Tracked files the base FULL checkpoint does not contain are removed, then
its archive is extracted over the project, then every incremental link is
applied in order (deletions before copies). Problems with individual files
are logged and skipped; a partially restored tree is better than an abort
halfway through, and the emergency backup taken beforehand keeps the
operation reversible.
"""

from __future__ import annotations

import json
import logging
import shutil
import tarfile
from dataclasses import dataclass, field
from pathlib import Path

from restorepoint.errors import CHAIN_BROKEN, Err, Ok, RestorePointError, Result
from restorepoint.manifest import (
    ADDED_DIRNAME,
    ARCHIVE_FILENAME,
    DELETED_FILENAME,
    MODIFIED_DIRNAME,
    Checkpoint,
)
from restorepoint.types import CheckpointKind, CheckpointName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestorePlan:
    """What a restore would do, computed without touching the tree."""

    target: CheckpointName
    kind: CheckpointKind
    chain: tuple[CheckpointName, ...]

    @property
    def chain_length(self) -> int:
        return len(self.chain)

    @property
    def strategy(self) -> str:
        return "direct" if self.chain_length == 1 else "chained"


@dataclass
class ApplyReport:
    """Counts and skipped paths from applying a chain."""

    written: int = 0
    deleted: int = 0
    skipped: list[str] = field(default_factory=list)
    removed_dirs: int = 0


def plan_restore(
    chain: list[Checkpoint],
    snapshots_dir: Path,
) -> Result[RestorePlan, RestorePointError]:
    """Turn a resolved chain into a plan, checking the base archive exists."""
    base, target = chain[0], chain[-1]
    archive = snapshots_dir / base.name / ARCHIVE_FILENAME
    if not archive.is_file():
        return Err(
            RestorePointError(
                code=CHAIN_BROKEN,
                message=(
                    f"Checkpoint {target.name} cannot be restored: "
                    f"archive of {base.name} is missing"
                ),
                context={"target": target.name, "missing": str(archive)},
            )
        )

    return Ok(
        RestorePlan(
            target=target.name,
            kind=target.kind,
            chain=tuple(cp.name for cp in chain),
        )
    )


def _safe_destination(project_root: Path, rel: str) -> Path | None:
    """Resolve rel under project_root, or None if it would escape it."""
    root = project_root.resolve()
    dest = (root / rel).resolve()
    if dest == root or not dest.is_relative_to(root):
        return None
    return root / rel


def _delete_file(project_root: Path, rel: str, report: ApplyReport) -> bool:
    dest = _safe_destination(project_root, rel)
    if dest is None:
        logger.warning(f"Refusing to delete path outside project: {rel}")
        report.skipped.append(rel)
        return False
    try:
        dest.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete {rel}: {e}")
        report.skipped.append(rel)
        return False
    report.deleted += 1
    return True


def archive_is_readable(checkpoint_dir: Path) -> bool:
    """Read a FULL archive's member list to the end without extracting."""
    archive = checkpoint_dir / ARCHIVE_FILENAME
    try:
        with tarfile.open(archive, "r:gz") as tar:
            tar.getmembers()
    except (OSError, EOFError, tarfile.TarError) as e:
        logger.error(f"Could not read archive {archive}: {e}")
        return False
    return True


def extract_full(
    project_root: Path,
    checkpoint_dir: Path,
    report: ApplyReport,
) -> bool:
    """Extract a FULL archive over the project, one member at a time.

    Returns False if the archive itself could not be read to the end.
    """
    archive = checkpoint_dir / ARCHIVE_FILENAME
    try:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar:
                if not member.isfile():
                    continue
                try:
                    tar.extract(member, path=project_root, filter="data")
                    report.written += 1
                except (OSError, tarfile.TarError) as e:
                    logger.warning(f"Could not restore {member.name}: {e}")
                    report.skipped.append(member.name)
    except (OSError, EOFError, tarfile.TarError) as e:
        logger.error(f"Could not read archive {archive}: {e}")
        return False
    return True


def _deleted_paths(checkpoint_dir: Path, checkpoint: Checkpoint) -> list[str]:
    if checkpoint.changes is not None and checkpoint.changes.deleted:
        return list(checkpoint.changes.deleted)

    deleted_doc = checkpoint_dir / DELETED_FILENAME
    if not deleted_doc.exists():
        return []
    try:
        return json.loads(deleted_doc.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable {deleted_doc}: {e}")
        return []


def apply_incremental(
    project_root: Path,
    checkpoint_dir: Path,
    checkpoint: Checkpoint,
    report: ApplyReport,
) -> list[str]:
    """Apply one incremental link: deletions first, then added/modified copies.

    Deleting and pruning emptied directories before copying lets a path
    switch between file and directory within a single link.

    Returns the paths deleted.
    """
    changes = checkpoint.changes
    if changes is None:
        return []

    removed = []
    for rel in _deleted_paths(checkpoint_dir, checkpoint):
        if _delete_file(project_root, rel, report):
            removed.append(rel)
    report.removed_dirs += remove_empty_dirs(project_root, removed)

    for dirname, paths in ((ADDED_DIRNAME, changes.added), (MODIFIED_DIRNAME, changes.modified)):
        for rel in paths:
            dest = _safe_destination(project_root, rel)
            if dest is None:
                logger.warning(f"Refusing to write path outside project: {rel}")
                report.skipped.append(rel)
                continue
            src = checkpoint_dir / dirname / rel
            try:
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(src, dest)
                report.written += 1
            except OSError as e:
                logger.warning(f"Could not restore {rel} from {checkpoint.name}: {e}")
                report.skipped.append(rel)

    return removed


def remove_empty_dirs(project_root: Path, deleted: list[str]) -> int:
    """Remove directories left empty by deletions, walking up to the root."""
    root = project_root.resolve()
    removed = 0
    for rel in sorted(deleted, key=lambda p: p.count("/"), reverse=True):
        directory = (root / rel).parent
        while directory != root and directory.is_relative_to(root):
            try:
                directory.rmdir()
            except OSError:
                break
            removed += 1
            directory = directory.parent
    return removed


def apply_chain(
    project_root: Path,
    snapshots_dir: Path,
    chain: list[Checkpoint],
    current_files: list[str],
) -> ApplyReport:
    """Replace the project's tracked state with the state of chain[-1].

    Tracked files the base does not contain are removed (and their emptied
    directories pruned) before the archive is extracted, so a path that
    became a directory since the base can turn back into a file.

    Args:
        project_root: Project directory to mutate
        snapshots_dir: Store holding the chain's payloads
        chain: Resolved chain, FULL base first
        current_files: Tracked files present before the restore
    """
    project_root = Path(project_root)
    report = ApplyReport()
    base = chain[0]
    base_dir = snapshots_dir / base.name

    if archive_is_readable(base_dir):
        base_files = set(base.files)
        deleted = []
        for rel in current_files:
            if rel not in base_files and _delete_file(project_root, rel, report):
                deleted.append(rel)
        report.removed_dirs += remove_empty_dirs(project_root, deleted)
        extract_full(project_root, base_dir, report)
    else:
        logger.error(f"Base archive of {base.name} unreadable, keeping files it does not list")

    for checkpoint in chain[1:]:
        apply_incremental(project_root, snapshots_dir / checkpoint.name, checkpoint, report)

    logger.info(
        f"Applied {len(chain)} checkpoint(s): {report.written} written, "
        f"{report.deleted} deleted, {len(report.skipped)} skipped"
    )
    return report
