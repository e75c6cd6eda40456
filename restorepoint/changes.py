"""Change detection and the FULL vs INCREMENTAL decision."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from restorepoint.config import RestorePointConfig
from restorepoint.manifest import ChangeSet, Checkpoint
from restorepoint.registry import incrementals_since_last_full
from restorepoint.types import CheckpointKind

logger = logging.getLogger(__name__)


def detect_changes(
    current_hashes: Mapping[str, str],
    reference_hashes: Mapping[str, str] | None,
) -> ChangeSet:
    """Diff the current fingerprint map against a reference checkpoint's.

    With no reference every current file is added. Otherwise a path missing
    from the reference is added, a differing digest is modified and a
    reference path missing from the current map is deleted. The three sets
    are disjoint.
    """
    if reference_hashes is None:
        return ChangeSet(added=tuple(sorted(current_hashes)))

    added = []
    modified = []
    for path, digest in current_hashes.items():
        previous = reference_hashes.get(path)
        if previous is None:
            added.append(path)
        elif previous != digest:
            modified.append(path)

    deleted = [path for path in reference_hashes if path not in current_hashes]

    return ChangeSet(
        added=tuple(sorted(added)),
        modified=tuple(sorted(modified)),
        deleted=tuple(sorted(deleted)),
    )


def select_kind(
    checkpoints: list[Checkpoint],
    changes: ChangeSet,
    config: RestorePointConfig,
    force_full: bool = False,
) -> CheckpointKind:
    """Decide how the next checkpoint is stored.

    Rules, first match wins:
    1. forced, or incremental storage disabled -> FULL
    2. no prior checkpoint -> FULL
    3. incrementals since the last FULL >= full_snapshot_interval -> FULL
    4. incrementals since the last FULL >= max_chain_length -> FULL
    5. changed files > full_change_ratio of the newest checkpoint's file count -> FULL
    6. otherwise INCREMENTAL

    Args:
        checkpoints: Registry listing, newest first
        changes: Delta from the newest checkpoint
        config: Policy thresholds
        force_full: Caller demands a FULL checkpoint
    """
    if force_full or not config.incremental_enabled:
        return CheckpointKind.FULL

    if not checkpoints:
        return CheckpointKind.FULL

    since_full = incrementals_since_last_full(checkpoints)
    if since_full >= config.full_snapshot_interval:
        logger.debug(f"Full snapshot interval reached ({since_full} incrementals)")
        return CheckpointKind.FULL

    if since_full >= config.max_chain_length:
        logger.debug(f"Max chain length reached ({since_full} incrementals)")
        return CheckpointKind.FULL

    last_file_count = checkpoints[0].file_count
    if changes.total > last_file_count * config.full_change_ratio:
        logger.debug(f"{changes.total} of {last_file_count} files changed, storing full snapshot")
        return CheckpointKind.FULL

    return CheckpointKind.INCREMENTAL
