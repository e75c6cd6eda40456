"""Branded and enumerated types shared across restorepoint."""

from enum import Enum
from typing import NewType

# Directory name of a checkpoint inside the snapshots store
CheckpointName = NewType("CheckpointName", str)

# Hex SHA-256 digest of a file's raw bytes
Fingerprint = NewType("Fingerprint", str)


class CheckpointKind(str, Enum):
    """How a checkpoint stores its payload."""

    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"

    def __str__(self) -> str:
        return self.value
