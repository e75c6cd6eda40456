"""Retention: evict old checkpoints by age and count without breaking chains.

Executes in order:
1. Mark checkpoints older than max_age_days
2. Mark the oldest checkpoints beyond max_count
3. Unmark every marked checkpoint that a kept checkpoint's chain still
   needs (or that a protected name's chain needs)
4. Delete the directories still marked

Step 3 means the store can hold more than max_count checkpoints while an
old FULL root still anchors newer incrementals. It is evicted as soon as
nothing depends on it.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from restorepoint.chain import chain_names
from restorepoint.registry import checkpoint_map, read_checkpoints
from restorepoint.types import CheckpointName

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionResult:
    """Result of a retention pass."""

    pruned_by_age: int = 0
    pruned_by_cap: int = 0
    protected: int = 0
    total_remaining: int = 0
    deleted: tuple[CheckpointName, ...] = ()


def run_retention(
    snapshots_dir: Path,
    max_age_days: int = 0,
    max_count: int = 0,
    protect: Iterable[str] = (),
    now: datetime | None = None,
) -> RetentionResult:
    """Prune old checkpoints and cap to max count, keeping chains intact.

    Args:
        snapshots_dir: Store directory
        max_age_days: Age threshold in days (0 = never prune by age)
        max_count: Maximum checkpoints to keep (0 = unlimited)
        protect: Names whose chains must survive regardless of policy
        now: Reference time for the age check

    Returns:
        RetentionResult with counts of pruned, protected and remaining checkpoints
    """
    checkpoints = read_checkpoints(snapshots_dir)
    if not checkpoints:
        return RetentionResult()

    if now is None:
        now = datetime.now(UTC)

    by_age: set[CheckpointName] = set()
    by_cap: set[CheckpointName] = set()

    # Phase 1: age
    if max_age_days > 0:
        cutoff = now - timedelta(days=max_age_days)
        by_age = {cp.name for cp in checkpoints if cp.created_at < cutoff}

    # Phase 2: count (listing is newest first)
    if max_count > 0:
        survivors = [cp for cp in checkpoints if cp.name not in by_age]
        by_cap = {cp.name for cp in survivors[max_count:]}

    marked = by_age | by_cap
    if not marked:
        return RetentionResult(total_remaining=len(checkpoints))

    # Phase 3: keep every link a retained or protected checkpoint depends on
    arena = checkpoint_map(checkpoints)
    anchors = [cp for cp in checkpoints if cp.name not in marked]
    anchors.extend(arena[name] for name in protect if name in arena)

    needed: set[CheckpointName] = set()
    for cp in anchors:
        needed.update(chain_names(cp, arena))

    protected = marked & needed
    for name in sorted(protected):
        logger.info(f"Keeping {name}: still part of a retained checkpoint's chain")

    # Phase 4: delete, oldest first
    pruned_by_age = 0
    pruned_by_cap = 0
    deleted: list[CheckpointName] = []
    for cp in reversed(checkpoints):
        if cp.name not in marked or cp.name in protected:
            continue
        try:
            shutil.rmtree(snapshots_dir / cp.name)
        except OSError as e:
            logger.warning(f"Failed to prune checkpoint {cp.name}: {e}")
            continue
        deleted.append(cp.name)
        if cp.name in by_age:
            pruned_by_age += 1
            logger.info(f"Pruned old checkpoint: {cp.name}")
        else:
            pruned_by_cap += 1
            logger.info(f"Pruned excess checkpoint: {cp.name}")

    total_remaining = len(checkpoints) - len(deleted)
    if deleted:
        logger.info(
            f"Checkpoint retention: pruned {pruned_by_age} by age, "
            f"{pruned_by_cap} by cap, {total_remaining} remaining"
        )

    return RetentionResult(
        pruned_by_age=pruned_by_age,
        pruned_by_cap=pruned_by_cap,
        protected=len(protected),
        total_remaining=total_remaining,
        deleted=tuple(deleted),
    )
