"""Changelog of create and restore actions.

The engine reports what it did through a sink with a single
``record(action, description, details)`` method. Recording is fire and
forget: a failing sink is logged and never aborts the operation.

The default sink keeps the 50 most recent entries, newest first, in
``.restorepoint/changelog.json``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from restorepoint.atomic import atomic_write_json

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50

# Actions
CREATE_CHECKPOINT = "CREATE_CHECKPOINT"
RESTORE_CHECKPOINT = "RESTORE_CHECKPOINT"
CODE_CHANGE = "CODE_CHANGE"  # default for entries written by hand


class ChangelogSink(Protocol):
    def record(self, action: str, description: str, details: str | None = None) -> None: ...


@dataclass(frozen=True)
class ChangelogEntry:
    timestamp: str
    action: str
    description: str
    details: str | None = None


def read_changelog(path: Path) -> list[ChangelogEntry]:
    """Entries from a changelog file, newest first. Empty if unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return []
    except (OSError, ValueError) as e:
        logger.warning(f"Unreadable changelog {path}: {e}")
        return []

    if not isinstance(data, list):
        return []

    entries = []
    for item in data:
        if not isinstance(item, dict):
            continue
        entries.append(
            ChangelogEntry(
                timestamp=str(item.get("timestamp", "")),
                action=str(item.get("action", "")),
                description=str(item.get("description", "")),
                details=item.get("details"),
            )
        )
    return entries


class JsonChangelog:
    """Changelog sink persisted as a JSON array."""

    def __init__(self, path: Path, max_entries: int = MAX_ENTRIES):
        self.path = Path(path)
        self.max_entries = max_entries

    def record(self, action: str, description: str, details: str | None = None) -> None:
        entries = [
            {
                "timestamp": e.timestamp,
                "action": e.action,
                "description": e.description,
                "details": e.details,
            }
            for e in read_changelog(self.path)
        ]
        entries.insert(
            0,
            {
                "timestamp": datetime.now(UTC).isoformat(),
                "action": action,
                "description": description,
                "details": details,
            },
        )

        result = atomic_write_json(self.path, entries[: self.max_entries])
        if result.is_err():
            logger.warning(f"Could not update changelog: {result.unwrap_err().message}")

    def entries(self) -> list[ChangelogEntry]:
        return read_changelog(self.path)
