"""Checkpoint records and their manifest.json representation.

A manifest describes one checkpoint completely: what was tracked, the
fingerprint of every tracked file, and for incremental checkpoints the base
it builds on plus the delta from that base.

Example manifest (INCREMENTAL):

    {
      "name": "fix-login_2026-10-18T09-12-44",
      "timestamp": "2026-10-18T09:12:44.120431+00:00",
      "description": "fix login",
      "kind": "INCREMENTAL",
      "files": ["app.py", "auth.py"],
      "file_count": 2,
      "total_size": 5120,
      "file_hashes": {"app.py": "9f86...", "auth.py": "60303..."},
      "base_checkpoint": "initial_2026-10-18T09-00-02",
      "changes": {"added": [], "modified": ["auth.py"], "deleted": []},
      "statistics": {"files_changed": 1, "bytes_added": 0,
                     "bytes_modified": 2048, "compression_ratio": 0.4}
    }
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from restorepoint.types import CheckpointKind, CheckpointName

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
ARCHIVE_FILENAME = "files.tar.gz"
ADDED_DIRNAME = "added"
MODIFIED_DIRNAME = "modified"
DELETED_FILENAME = "deleted.json"


@dataclass(frozen=True)
class ChangeSet:
    """Paths that differ between two tracked states. Each tuple is sorted."""

    added: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return len(self.added) + len(self.modified) + len(self.deleted)

    @property
    def is_empty(self) -> bool:
        return self.total == 0

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "added": list(self.added),
            "modified": list(self.modified),
            "deleted": list(self.deleted),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChangeSet:
        return cls(
            added=tuple(data.get("added", [])),
            modified=tuple(data.get("modified", [])),
            deleted=tuple(data.get("deleted", [])),
        )


@dataclass(frozen=True)
class Statistics:
    """Storage figures of an incremental checkpoint."""

    files_changed: int = 0
    bytes_added: int = 0
    bytes_modified: int = 0
    compression_ratio: float = 0.0

    @property
    def bytes_stored(self) -> int:
        return self.bytes_added + self.bytes_modified

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_changed": self.files_changed,
            "bytes_added": self.bytes_added,
            "bytes_modified": self.bytes_modified,
            "compression_ratio": self.compression_ratio,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Statistics:
        return cls(
            files_changed=int(data.get("files_changed", 0)),
            bytes_added=int(data.get("bytes_added", 0)),
            bytes_modified=int(data.get("bytes_modified", 0)),
            compression_ratio=float(data.get("compression_ratio", 0.0)),
        )


@dataclass(frozen=True)
class Checkpoint:
    """An immutable, named capture of the tracked-file tree."""

    name: CheckpointName
    timestamp: str  # ISO-8601 UTC, microsecond precision
    description: str
    kind: CheckpointKind
    files: tuple[str, ...]
    total_size: int
    file_hashes: dict[str, str] = field(default_factory=dict)

    # Incremental only
    base_checkpoint: CheckpointName | None = None
    changes: ChangeSet | None = None
    statistics: Statistics | None = None

    @property
    def file_count(self) -> int:
        return len(self.files)

    @property
    def is_full(self) -> bool:
        return self.kind is CheckpointKind.FULL

    @property
    def created_at(self) -> datetime:
        created = datetime.fromisoformat(self.timestamp)
        if created.tzinfo is None:
            created = created.replace(tzinfo=UTC)
        return created

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "timestamp": self.timestamp,
            "description": self.description,
            "kind": self.kind.value,
            "files": list(self.files),
            "file_count": self.file_count,
            "total_size": self.total_size,
            "file_hashes": dict(self.file_hashes),
        }
        if self.kind is CheckpointKind.INCREMENTAL:
            data["base_checkpoint"] = self.base_checkpoint
            data["changes"] = (self.changes or ChangeSet()).to_dict()
            data["statistics"] = (self.statistics or Statistics()).to_dict()
        return data


def validate_manifest(data: Any) -> str | None:
    """Validate manifest structure.

    Returns None if valid, or an error message if invalid.
    """
    if not isinstance(data, dict):
        return "Manifest must be a JSON object"

    required = ["name", "timestamp", "kind", "files", "file_hashes"]
    for field_name in required:
        if field_name not in data:
            return f"Missing required field: {field_name}"

    if data["kind"] not in (CheckpointKind.FULL.value, CheckpointKind.INCREMENTAL.value):
        return f"Unknown kind: {data['kind']!r}"

    if not isinstance(data["files"], list):
        return "'files' must be a list"

    if not isinstance(data["file_hashes"], dict):
        return "'file_hashes' must be an object"

    try:
        datetime.fromisoformat(data["timestamp"])
    except (TypeError, ValueError):
        return "'timestamp' must be an ISO-8601 string"

    if data["kind"] == CheckpointKind.INCREMENTAL.value:
        if not isinstance(data.get("base_checkpoint"), str):
            return "Incremental checkpoint without 'base_checkpoint'"
        if not isinstance(data.get("changes"), dict):
            return "Incremental checkpoint without 'changes'"

    return None


def checkpoint_from_dict(data: dict[str, Any]) -> Checkpoint:
    """Build a Checkpoint from an already validated manifest dict."""
    kind = CheckpointKind(data["kind"])
    incremental = kind is CheckpointKind.INCREMENTAL
    return Checkpoint(
        name=CheckpointName(data["name"]),
        timestamp=data["timestamp"],
        description=data.get("description", ""),
        kind=kind,
        files=tuple(data["files"]),
        total_size=int(data.get("total_size", 0)),
        file_hashes=dict(data["file_hashes"]),
        base_checkpoint=CheckpointName(data["base_checkpoint"]) if incremental else None,
        changes=ChangeSet.from_dict(data["changes"]) if incremental else None,
        statistics=Statistics.from_dict(data.get("statistics", {})) if incremental else None,
    )


def load_manifest(checkpoint_dir: Path) -> Checkpoint | None:
    """Read and validate <checkpoint_dir>/manifest.json.

    Returns None for a missing, unparseable or invalid manifest.
    """
    manifest_path = checkpoint_dir / MANIFEST_FILENAME
    try:
        with open(manifest_path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.debug(f"Unreadable manifest {manifest_path}: {e}")
        return None

    validation_error = validate_manifest(data)
    if validation_error:
        logger.debug(f"Invalid manifest {manifest_path}: {validation_error}")
        return None

    try:
        return checkpoint_from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        logger.debug(f"Malformed manifest {manifest_path}: {e}")
        return None
