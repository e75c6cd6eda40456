"""Checkpoint operations for restorepoint.

These are the entry points front ends (CLI, editor hooks, protocol
adapters) call:

- create_checkpoint: capture the tracked tree as a FULL or INCREMENTAL checkpoint
- list_checkpoints: summaries of stored checkpoints, newest first
- restore_checkpoint: reproduce a stored state, after an emergency backup
- undo_last_checkpoint: restore the newest checkpoint
- get_changes_since_last: what changed since the newest checkpoint
- setup_project: initialize the store for a project

Every operation takes the project root plus optional collaborators. When
omitted, the config comes from the project/user cascade, files are listed
with restorepoint.tracking and actions are recorded in the project's
changelog.json.

"Nothing to do" situations (no files, no changes, cooldown) are successful
results with a status, not errors.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from restorepoint.changelog import (
    CREATE_CHECKPOINT,
    RESTORE_CHECKPOINT,
    ChangelogSink,
    JsonChangelog,
)
from restorepoint.changes import detect_changes, select_kind
from restorepoint.chain import resolve_chain
from restorepoint.config import (
    CHANGELOG_FILENAME,
    CONFIG_FILENAME,
    STORE_DIRNAME,
    RestorePointConfig,
    ensure_directories,
    get_config,
    get_snapshots_dir,
    get_store_dir,
)
from restorepoint.errors import BACKUP_FAILED, SETUP_FAILED, Err, Ok, RestorePointError, Result
from restorepoint.fingerprint import fingerprint_files
from restorepoint.manifest import ChangeSet, Checkpoint
from restorepoint.registry import checkpoint_map, find_checkpoint, read_checkpoints
from restorepoint.restore import RestorePlan, apply_chain, plan_restore
from restorepoint.retention import RetentionResult, run_retention
from restorepoint.tracking import Lister, make_lister
from restorepoint.types import CheckpointKind, CheckpointName
from restorepoint.writer import format_size, write_checkpoint

logger = logging.getLogger(__name__)

EMERGENCY_BACKUP_NAME = "emergency_backup"
GITIGNORE_ENTRY = f"{STORE_DIRNAME}/"


# ============================================================================
# Outcomes
# ============================================================================


@dataclass(frozen=True)
class CheckpointSummary:
    """Caller-facing view of a checkpoint."""

    name: CheckpointName
    kind: CheckpointKind
    description: str
    timestamp: str
    file_count: int
    files_changed: int
    bytes_stored: int
    total_size: int
    base_checkpoint: CheckpointName | None = None

    @property
    def size(self) -> str:
        """Bytes this checkpoint stores, human readable."""
        return format_size(self.bytes_stored)

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> CheckpointSummary:
        if not checkpoint.is_full and checkpoint.statistics is not None:
            files_changed = checkpoint.statistics.files_changed
            bytes_stored = checkpoint.statistics.bytes_stored
        else:
            files_changed = checkpoint.file_count
            bytes_stored = checkpoint.total_size
        return cls(
            name=checkpoint.name,
            kind=checkpoint.kind,
            description=checkpoint.description,
            timestamp=checkpoint.timestamp,
            file_count=checkpoint.file_count,
            files_changed=files_changed,
            bytes_stored=bytes_stored,
            total_size=checkpoint.total_size,
            base_checkpoint=checkpoint.base_checkpoint,
        )


class CreateStatus(str, Enum):
    CREATED = "created"
    NO_FILES = "no_files"
    NO_CHANGES = "no_changes"
    TOO_RECENT = "too_recent"


@dataclass(frozen=True)
class CreateOutcome:
    """Result of create_checkpoint: a new checkpoint or a reason for skipping."""

    status: CreateStatus
    message: str
    checkpoint: CheckpointSummary | None = None
    changes: ChangeSet | None = None
    retention: RetentionResult | None = None

    @property
    def created(self) -> bool:
        return self.status is CreateStatus.CREATED


@dataclass(frozen=True)
class RestoreOutcome:
    """Result of a real (non dry-run) restore."""

    restored_name: CheckpointName
    kind: CheckpointKind
    emergency_backup_name: CheckpointName | None
    chain_length: int
    strategy: str
    files_written: int
    files_deleted: int
    skipped: tuple[str, ...] = ()


@dataclass(frozen=True)
class UndoOutcome:
    """Result of undo_last_checkpoint; restored is None when the store is empty."""

    message: str
    restored: RestoreOutcome | None = None

    @property
    def performed(self) -> bool:
        return self.restored is not None


@dataclass(frozen=True)
class SetupOutcome:
    store_dir: Path
    config_created: bool
    gitignore_updated: bool
    initial_checkpoint: CheckpointName | None = None


# ============================================================================
# Helpers
# ============================================================================


def _default_changelog(project_root: Path) -> JsonChangelog:
    return JsonChangelog(get_store_dir(project_root) / CHANGELOG_FILENAME)


def _record(
    changelog: ChangelogSink,
    action: str,
    description: str,
    details: str | None = None,
) -> None:
    """Record to the changelog; failures never propagate."""
    try:
        changelog.record(action, description, details)
    except Exception as e:
        logger.warning(f"Changelog update failed: {e}")


def _retain(
    snapshots_dir: Path,
    config: RestorePointConfig,
    protect: Iterable[str],
) -> RetentionResult | None:
    try:
        return run_retention(
            snapshots_dir,
            max_age_days=config.max_age_days,
            max_count=config.max_checkpoints,
            protect=protect,
        )
    except Exception as e:
        logger.warning(f"Checkpoint retention failed: {e}")
        return None


# ============================================================================
# Operations
# ============================================================================


def create_checkpoint(
    project_root: Path,
    name: str | None = None,
    description: str | None = None,
    force_full: bool = False,
    *,
    config: RestorePointConfig | None = None,
    lister: Lister | None = None,
    changelog: ChangelogSink | None = None,
    protect: Iterable[str] = (),
    now: datetime | None = None,
) -> Result[CreateOutcome, RestorePointError]:
    """Capture the project's tracked files as a new checkpoint.

    Without force_full, nothing is written when there are no changes since
    the newest checkpoint or when that checkpoint is younger than the
    configured cooldown. force_full always writes a FULL checkpoint.

    Args:
        project_root: Project directory
        name: Optional name prefix (a timestamp suffix is always added)
        description: Free text stored in the manifest
        force_full: Skip the no-op checks and store a FULL snapshot
        config: Policy; loaded from the config cascade when None
        lister: Tracked-file lister; gitignore-aware default when None
        changelog: Changelog sink; project changelog.json when None
        protect: Checkpoint names whose chains retention must keep
        now: Reference time for the cooldown check

    Returns:
        Ok(CreateOutcome) for created and skipped checkpoints,
        Err(RestorePointError) when writing failed
    """
    root = Path(project_root)
    if config is None:
        config = get_config(root)
    if lister is None:
        lister = make_lister(config)
    if changelog is None:
        changelog = _default_changelog(root)
    if now is None:
        now = datetime.now(UTC)

    snapshots_dir = ensure_directories(root)

    files = lister(root)
    if not files:
        return Ok(CreateOutcome(CreateStatus.NO_FILES, "No files found to checkpoint"))

    checkpoints = read_checkpoints(snapshots_dir)
    last = checkpoints[0] if checkpoints else None

    if not force_full and last is not None and config.cooldown_seconds > 0:
        elapsed = (now - last.created_at).total_seconds()
        if elapsed < config.cooldown_seconds:
            return Ok(
                CreateOutcome(
                    CreateStatus.TOO_RECENT,
                    f"Last checkpoint {last.name} is {elapsed:.0f}s old "
                    f"(cooldown {config.cooldown_seconds:g}s)",
                )
            )

    hashes = fingerprint_files(root, files, max_workers=config.hash_workers)
    if not hashes:
        return Ok(CreateOutcome(CreateStatus.NO_FILES, "No readable files found to checkpoint"))

    changes = detect_changes(hashes, last.file_hashes if last is not None else None)

    if not force_full and last is not None and changes.is_empty:
        return Ok(
            CreateOutcome(CreateStatus.NO_CHANGES, "No changes detected since last checkpoint")
        )

    kind = select_kind(checkpoints, changes, config, force_full=force_full)
    incremental = kind is CheckpointKind.INCREMENTAL

    result = write_checkpoint(
        root,
        snapshots_dir,
        kind,
        hashes,
        name=name,
        description=description,
        changes=changes if incremental else None,
        base=last if incremental else None,
    )
    if result.is_err():
        return result

    checkpoint = result.unwrap()
    retention = _retain(snapshots_dir, config, protect)

    _record(
        changelog,
        CREATE_CHECKPOINT,
        f"Created {kind.value.lower()} checkpoint: {checkpoint.name}",
        checkpoint.description,
    )

    return Ok(
        CreateOutcome(
            CreateStatus.CREATED,
            f"Created {kind.value.lower()} checkpoint {checkpoint.name}",
            checkpoint=CheckpointSummary.from_checkpoint(checkpoint),
            changes=changes,
            retention=retention,
        )
    )


def list_checkpoints(project_root: Path, limit: int | None = None) -> list[CheckpointSummary]:
    """Summaries of stored checkpoints, most recent first."""
    checkpoints = read_checkpoints(get_snapshots_dir(Path(project_root)))
    if limit is not None:
        checkpoints = checkpoints[:limit]
    return [CheckpointSummary.from_checkpoint(cp) for cp in checkpoints]


def get_changes_since_last(
    project_root: Path,
    *,
    config: RestorePointConfig | None = None,
    lister: Lister | None = None,
) -> ChangeSet:
    """Changes between the tracked tree and the newest checkpoint.

    Everything counts as added when there is no checkpoint yet.
    """
    root = Path(project_root)
    if config is None:
        config = get_config(root)
    if lister is None:
        lister = make_lister(config)

    checkpoints = read_checkpoints(get_snapshots_dir(root))
    reference = checkpoints[0].file_hashes if checkpoints else None
    hashes = fingerprint_files(root, lister(root), max_workers=config.hash_workers)
    return detect_changes(hashes, reference)


def restore_checkpoint(
    project_root: Path,
    name: str,
    dry_run: bool = False,
    *,
    config: RestorePointConfig | None = None,
    lister: Lister | None = None,
    changelog: ChangelogSink | None = None,
) -> Result[RestoreOutcome | RestorePlan, RestorePointError]:
    """Restore the tracked tree to the state of a stored checkpoint.

    The chain is resolved first; a broken chain aborts before anything is
    touched. A FULL emergency backup of the current tree is then written
    (retention keeps the chain being restored), and only once it exists is
    the tree replaced.

    Args:
        project_root: Project directory
        name: Exact or unique partial checkpoint name
        dry_run: Only resolve and report the plan
        config: Policy; loaded from the config cascade when None
        lister: Tracked-file lister; gitignore-aware default when None
        changelog: Changelog sink; project changelog.json when None

    Returns:
        Ok(RestorePlan) for a dry run, Ok(RestoreOutcome) after a restore,
        Err for not-found, broken chains and failed backups
    """
    root = Path(project_root)
    if config is None:
        config = get_config(root)
    if lister is None:
        lister = make_lister(config)
    if changelog is None:
        changelog = _default_changelog(root)

    snapshots_dir = get_snapshots_dir(root)
    checkpoints = read_checkpoints(snapshots_dir)

    found = find_checkpoint(checkpoints, name)
    if found.is_err():
        return found
    target = found.unwrap()

    chain_result = resolve_chain(target, checkpoint_map(checkpoints))
    if chain_result.is_err():
        return chain_result
    chain = chain_result.unwrap()

    plan_result = plan_restore(chain, snapshots_dir)
    if plan_result.is_err():
        return plan_result
    plan = plan_result.unwrap()

    if dry_run:
        return Ok(plan)

    current_files = lister(root)
    backup_name: CheckpointName | None = None

    if current_files:
        backup = create_checkpoint(
            root,
            name=EMERGENCY_BACKUP_NAME,
            description=f"Auto-backup before restoring {target.name}",
            force_full=True,
            config=config,
            lister=lister,
            changelog=changelog,
            protect=plan.chain,
        )
        if backup.is_err() or not backup.unwrap().created:
            reason = (
                backup.unwrap_err().message if backup.is_err() else backup.unwrap().message
            )
            logger.error(f"Emergency backup failed, restore of {target.name} aborted: {reason}")
            return Err(
                RestorePointError(
                    code=BACKUP_FAILED,
                    message="Failed to create emergency backup; nothing was restored",
                    context={"target": target.name, "reason": reason},
                )
            )
        backup_name = backup.unwrap().checkpoint.name
    else:
        logger.info("No tracked files present, restoring without an emergency backup")

    report = apply_chain(root, snapshots_dir, chain, current_files)

    _record(
        changelog,
        RESTORE_CHECKPOINT,
        f"Restored {target.kind.value} checkpoint: {target.name}",
        f"Emergency backup: {backup_name}" if backup_name else None,
    )

    return Ok(
        RestoreOutcome(
            restored_name=target.name,
            kind=target.kind,
            emergency_backup_name=backup_name,
            chain_length=plan.chain_length,
            strategy=plan.strategy,
            files_written=report.written,
            files_deleted=report.deleted,
            skipped=tuple(report.skipped),
        )
    )


def undo_last_checkpoint(
    project_root: Path,
    *,
    config: RestorePointConfig | None = None,
    lister: Lister | None = None,
    changelog: ChangelogSink | None = None,
) -> Result[UndoOutcome, RestorePointError]:
    """Discard everything since the newest checkpoint by restoring it.

    The usual emergency backup is taken first, so the undo itself can be
    undone. An empty store is a no-op, not an error.
    """
    root = Path(project_root)
    checkpoints = read_checkpoints(get_snapshots_dir(root))
    if not checkpoints:
        return Ok(UndoOutcome(message="No checkpoints found to undo"))

    latest = checkpoints[0]
    result = restore_checkpoint(
        root,
        latest.name,
        config=config,
        lister=lister,
        changelog=changelog,
    )
    if result.is_err():
        return result

    return Ok(UndoOutcome(message=f"Restored {latest.name}", restored=result.unwrap()))


def _update_gitignore(project_root: Path) -> bool:
    """Append the store directory to .gitignore. Returns True if it was added."""
    gitignore_path = project_root / ".gitignore"
    try:
        content = gitignore_path.read_text(encoding="utf-8") if gitignore_path.exists() else ""
    except OSError as e:
        logger.warning(f"Could not read {gitignore_path}: {e}")
        return False

    if GITIGNORE_ENTRY in content.splitlines():
        return False

    separator = "\n" if content and not content.endswith("\n") else ""
    prefix = "\n" if content else ""
    try:
        with open(gitignore_path, "a", encoding="utf-8") as f:
            f.write(f"{separator}{prefix}# restorepoint checkpoints\n{GITIGNORE_ENTRY}\n")
    except OSError as e:
        logger.warning(f"Could not update {gitignore_path}: {e}")
        return False
    return True


def setup_project(
    project_root: Path,
    update_gitignore: bool = True,
    create_initial: bool = True,
    *,
    config: RestorePointConfig | None = None,
    lister: Lister | None = None,
    changelog: ChangelogSink | None = None,
) -> Result[SetupOutcome, RestorePointError]:
    """Initialize the store for a project.

    Creates .restorepoint/ with a config.yaml (when missing), adds the store
    to .gitignore, and takes an initial checkpoint if there are files.
    """
    root = Path(project_root)
    store_dir = get_store_dir(root)

    try:
        ensure_directories(root)
    except OSError as e:
        return Err(
            RestorePointError(
                code=SETUP_FAILED,
                message=f"Could not create {store_dir}: {e}",
                context={"path": str(store_dir)},
            )
        )

    if config is None:
        config = get_config(root)

    config_created = False
    if not (store_dir / CONFIG_FILENAME).exists():
        saved = config.save(store_dir)
        if saved.is_err():
            return Err(
                RestorePointError(
                    code=SETUP_FAILED,
                    message=saved.unwrap_err().message,
                    context=saved.unwrap_err().context,
                )
            )
        config_created = True

    gitignore_updated = _update_gitignore(root) if update_gitignore else False

    initial: CheckpointName | None = None
    if create_initial:
        created = create_checkpoint(
            root,
            name="initial",
            description="Initial checkpoint",
            config=config,
            lister=lister,
            changelog=changelog,
        )
        if created.is_err():
            return created
        outcome = created.unwrap()
        if outcome.created:
            initial = outcome.checkpoint.name

    return Ok(
        SetupOutcome(
            store_dir=store_dir,
            config_created=config_created,
            gitignore_updated=gitignore_updated,
            initial_checkpoint=initial,
        )
    )
