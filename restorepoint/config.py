"""Configuration management for restorepoint.

Storage Structure
-----------------
~/.restorepoint/
└── config.yaml               # User-level defaults for every project

<project>/.restorepoint/      # Per-project store (added to .gitignore)
├── config.yaml               # Project policy (overrides user-level)
├── changelog.json            # Recent create/restore actions
└── snapshots/
    └── <checkpoint-name>/
        ├── manifest.json     # Written last; its presence makes the checkpoint valid
        ├── files.tar.gz      # FULL payload
        ├── added/ modified/  # INCREMENTAL payload
        └── deleted.json      # INCREMENTAL deletions

RestorePointConfig
------------------
Cascade: project .restorepoint/config.yaml → user ~/.restorepoint/config.yaml → defaults

The config object is frozen and passed explicitly into every operation, so
tests can run with different policies side by side.
"""

import dataclasses
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from restorepoint.atomic import atomic_write_yaml
from restorepoint.errors import RestorePointError, Result

logger = logging.getLogger(__name__)

STORE_DIRNAME = ".restorepoint"
SNAPSHOTS_DIRNAME = "snapshots"
CONFIG_FILENAME = "config.yaml"
CHANGELOG_FILENAME = "changelog.json"

USER_DIR = Path.home() / STORE_DIRNAME

DEFAULT_IGNORE_PATTERNS: tuple[str, ...] = (
    ".git",
    STORE_DIRNAME,
    "node_modules",
    ".env",
    ".env.*",
    "*.log",
    ".DS_Store",
    "Thumbs.db",
    "__pycache__",
    "*.pyc",
    ".vscode",
    ".idea",
    "dist",
    "build",
    "coverage",
    ".nyc_output",
    ".next",
    ".nuxt",
    ".cache",
    "tmp",
    "temp",
)

# Fields stored as tuples so the frozen config stays hashable and immutable
_TUPLE_FIELDS = ("ignore_patterns", "additional_ignores", "ignores", "force_include")


@dataclass(frozen=True)
class RestorePointConfig:
    """Policy knobs for tracking, incremental storage and retention."""

    # Retention
    max_checkpoints: int = 10  # 0 = unlimited
    max_age_days: int = 0  # 0 = never prune by age

    # Tracked files
    ignore_patterns: tuple[str, ...] = DEFAULT_IGNORE_PATTERNS
    additional_ignores: tuple[str, ...] = ()
    ignores: tuple[str, ...] | None = None  # Complete override of the two above
    force_include: tuple[str, ...] = ()

    # Incremental storage
    incremental_enabled: bool = True
    full_snapshot_interval: int = 5
    max_chain_length: int = 20
    full_change_ratio: float = 0.5

    # Anti-spam: minimum seconds between non-forced checkpoints (0 = off)
    cooldown_seconds: float = 30.0

    # Worker threads for fingerprinting (1 = sequential)
    hash_workers: int = 8

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RestorePointConfig":
        """Build a config from a mapping, ignoring unknown keys."""
        valid_fields = {f.name for f in dataclasses.fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in valid_fields:
                logger.debug(f"Ignoring unknown config key: {key}")
                continue
            if key in _TUPLE_FIELDS and value is not None:
                value = tuple(value)
            values[key] = value
        return cls(**values)

    @classmethod
    def load(cls, store_dir: Path) -> "RestorePointConfig":
        """Load config from a store directory, or defaults if there is none.

        Args:
            store_dir: Path to a .restorepoint directory (project or user level)
        """
        config_path = store_dir / CONFIG_FILENAME
        if not config_path.exists():
            return cls()

        try:
            with open(config_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Unreadable config {config_path}, using defaults: {e}")
            return cls()

        if not isinstance(data, dict):
            logger.warning(f"Config {config_path} is not a mapping, using defaults")
            return cls()

        return cls.from_dict(data)

    def save(self, store_dir: Path) -> Result[Path, RestorePointError]:
        """Save non-default values to store_dir/config.yaml."""
        defaults = RestorePointConfig().to_dict()
        data: dict[str, Any] = {}
        for key, value in self.to_dict().items():
            if defaults[key] != value:
                data[key] = value

        if not data:
            data = {"_version": 1}  # Marker that config was explicitly saved

        return atomic_write_yaml(store_dir / CONFIG_FILENAME, data)

    def with_overrides(self, **overrides: Any) -> "RestorePointConfig":
        """Return a copy with some fields replaced."""
        for key in _TUPLE_FIELDS:
            if key in overrides and overrides[key] is not None:
                overrides[key] = tuple(overrides[key])
        return dataclasses.replace(self, **overrides)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a YAML-friendly dictionary."""
        data = dataclasses.asdict(self)
        for key in _TUPLE_FIELDS:
            if data[key] is not None:
                data[key] = list(data[key])
        return data

    def effective_ignores(self) -> list[str]:
        """Ignore patterns in force, before .gitignore is added."""
        if self.ignores is not None:
            return list(self.ignores)
        return [*self.ignore_patterns, *self.additional_ignores]


def get_store_dir(project_root: Path) -> Path:
    """Directory holding config, changelog and snapshots for a project."""
    return Path(project_root) / STORE_DIRNAME


def get_snapshots_dir(project_root: Path) -> Path:
    """Directory holding one subdirectory per checkpoint."""
    return get_store_dir(project_root) / SNAPSHOTS_DIRNAME


def ensure_directories(project_root: Path) -> Path:
    """Create the store and snapshots directories, returning the latter."""
    snapshots_dir = get_snapshots_dir(project_root)
    snapshots_dir.mkdir(parents=True, exist_ok=True)
    return snapshots_dir


def get_config(project_root: Path | None = None) -> RestorePointConfig:
    """Load RestorePointConfig with project → user → default cascade."""
    if project_root is not None:
        project_store = get_store_dir(project_root)
        if (project_store / CONFIG_FILENAME).exists():
            return RestorePointConfig.load(project_store)

    return RestorePointConfig.load(USER_DIR)


def detect_project_root(start_path: Path | None = None) -> Path | None:
    """Find the project root by walking up from start_path.

    Looks for (in order of priority):
    1. A .restorepoint directory (already initialized project)
    2. A .git directory (repository root)

    Returns:
        Project root path, or None if no marker was found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while True:
        if (current / STORE_DIRNAME).is_dir():
            return current
        if (current / ".git").exists():
            return current
        if current == current.parent:
            return None
        current = current.parent
