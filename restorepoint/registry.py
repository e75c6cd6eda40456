"""Checkpoint registry: what the store currently holds.

There is no in-memory authority. Every query rescans the snapshots
directory, so checkpoints removed or broken by hand simply disappear from
the listing instead of causing errors.
"""

from __future__ import annotations

import logging
from pathlib import Path

from restorepoint.errors import (
    CHECKPOINT_AMBIGUOUS,
    CHECKPOINT_NOT_FOUND,
    Err,
    Ok,
    RestorePointError,
    Result,
)
from restorepoint.manifest import Checkpoint, load_manifest
from restorepoint.types import CheckpointKind, CheckpointName

logger = logging.getLogger(__name__)


def read_checkpoints(snapshots_dir: Path) -> list[Checkpoint]:
    """All valid checkpoints in the store, newest first.

    Directories without a valid manifest (half-written or corrupted) are
    skipped.
    """
    if not snapshots_dir.is_dir():
        return []

    checkpoints = []
    for entry in snapshots_dir.iterdir():
        if not entry.is_dir():
            continue
        checkpoint = load_manifest(entry)
        if checkpoint is None:
            logger.debug(f"Skipping checkpoint directory without valid manifest: {entry.name}")
            continue
        if checkpoint.name != entry.name:
            logger.debug(f"Skipping {entry.name}: manifest names {checkpoint.name}")
            continue
        checkpoints.append(checkpoint)

    checkpoints.sort(key=lambda cp: (cp.created_at, cp.name), reverse=True)
    return checkpoints


def checkpoint_map(checkpoints: list[Checkpoint]) -> dict[CheckpointName, Checkpoint]:
    """Name-indexed arena of checkpoint records."""
    return {cp.name: cp for cp in checkpoints}


def find_checkpoint(
    checkpoints: list[Checkpoint],
    name: str,
) -> Result[Checkpoint, RestorePointError]:
    """Look up a checkpoint by exact name, else by unique partial name."""
    for cp in checkpoints:
        if cp.name == name:
            return Ok(cp)

    matches = [cp for cp in checkpoints if name and name in cp.name]
    if len(matches) == 1:
        return Ok(matches[0])

    if len(matches) > 1:
        return Err(
            RestorePointError(
                code=CHECKPOINT_AMBIGUOUS,
                message=f"'{name}' matches {len(matches)} checkpoints",
                context={"query": name, "matches": [cp.name for cp in matches]},
            )
        )

    return Err(
        RestorePointError(
            code=CHECKPOINT_NOT_FOUND,
            message=f"Checkpoint not found: {name}",
            context={"query": name},
        )
    )


def incrementals_since_last_full(checkpoints: list[Checkpoint]) -> int:
    """Count INCREMENTAL checkpoints newer than the newest FULL one.

    Args:
        checkpoints: Registry listing, newest first
    """
    count = 0
    for cp in checkpoints:
        if cp.kind is CheckpointKind.FULL:
            break
        count += 1
    return count
