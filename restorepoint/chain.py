"""Chain resolution: from a target checkpoint back to its FULL root.

Works on a name-indexed snapshot of the registry, never on live state, so
the walk cannot be disturbed by the store changing underneath it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from restorepoint.errors import CHAIN_BROKEN, Err, Ok, RestorePointError, Result
from restorepoint.manifest import Checkpoint
from restorepoint.types import CheckpointKind, CheckpointName

logger = logging.getLogger(__name__)


def _broken(target: Checkpoint, message: str, **context) -> Err[RestorePointError]:
    logger.warning(f"Checkpoint {target.name} is unrestorable: {message}")
    return Err(
        RestorePointError(
            code=CHAIN_BROKEN,
            message=f"Checkpoint {target.name} cannot be restored: {message}",
            context={"target": target.name, **context},
        )
    )


def resolve_chain(
    target: Checkpoint,
    arena: Mapping[CheckpointName, Checkpoint],
) -> Result[list[Checkpoint], RestorePointError]:
    """Build [base FULL, incr_1, ..., target].

    Applied in order, the chain reproduces the target's tracked state.

    Returns:
        Ok(chain), or Err(CHAIN_BROKEN) when a base is missing, an
        incremental names no base, or the references loop.
    """
    chain = [target]
    seen = {target.name}

    while chain[0].kind is CheckpointKind.INCREMENTAL:
        head = chain[0]
        if not head.base_checkpoint:
            return _broken(target, f"{head.name} has no base checkpoint", link=head.name)

        base = arena.get(head.base_checkpoint)
        if base is None:
            return _broken(
                target,
                f"base checkpoint {head.base_checkpoint} is missing",
                link=head.name,
                missing=head.base_checkpoint,
            )

        if base.name in seen:
            return _broken(target, f"cycle at {base.name}", link=head.name, cycle=base.name)

        seen.add(base.name)
        chain.insert(0, base)

    return Ok(chain)


def chain_names(
    target: Checkpoint,
    arena: Mapping[CheckpointName, Checkpoint],
) -> list[CheckpointName]:
    """Names along target's chain, stopping quietly at a break.

    Used where a partial chain is still useful, e.g. deciding what
    retention must keep.
    """
    names = [target.name]
    current = target
    while current.kind is CheckpointKind.INCREMENTAL and current.base_checkpoint:
        base = arena.get(current.base_checkpoint)
        if base is None or base.name in names:
            break
        names.append(base.name)
        current = base
    return names
