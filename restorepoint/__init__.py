"""Restorepoint: local full and incremental checkpoints for a project directory."""

__version__ = "1.0.0"

# Branded types for type-safe names
from restorepoint.types import CheckpointKind, CheckpointName

__all__ = [
    "__version__",
    "CheckpointKind",
    "CheckpointName",
]
