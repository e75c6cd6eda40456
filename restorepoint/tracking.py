"""Tracked-file listing with gitignore semantics.

Decides which files of a project take part in checkpoints. Patterns come
from the config (built-in defaults plus additional_ignores, or a complete
``ignores`` override) and from the project's root .gitignore, matched with
the pathspec library (full gitignore rules: negation, anchoring, ``dir/``
patterns, ``**`` globs).

``force_include`` patterns win over ignores. An ignored directory is only
descended into when the directory itself matches a force_include pattern.

The store directory is always excluded, whatever the patterns say.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

import pathspec

from restorepoint.config import STORE_DIRNAME, RestorePointConfig

logger = logging.getLogger(__name__)

# Signature of any tracked-file lister: project root -> sorted relative POSIX paths
Lister = Callable[[Path], list[str]]


def _read_gitignore(project_root: Path) -> list[str]:
    """Patterns from <project>/.gitignore, skipping comments and blanks."""
    gitignore_path = project_root / ".gitignore"
    if not gitignore_path.exists():
        return []

    try:
        lines = gitignore_path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.debug(f"Could not read {gitignore_path}: {e}")
        return []

    patterns = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        patterns.append(line)
    return patterns


def build_ignore_spec(project_root: Path, config: RestorePointConfig) -> pathspec.PathSpec:
    """PathSpec for config ignores plus the project's .gitignore."""
    patterns = config.effective_ignores()
    patterns.extend(_read_gitignore(project_root))
    return pathspec.GitIgnoreSpec.from_lines(patterns)


def build_force_spec(config: RestorePointConfig) -> pathspec.PathSpec | None:
    """PathSpec for force_include patterns, or None when there are none."""
    if not config.force_include:
        return None
    return pathspec.GitIgnoreSpec.from_lines(list(config.force_include))


def _is_ignored(
    rel_path: str,
    ignore_spec: pathspec.PathSpec,
    force_spec: pathspec.PathSpec | None,
) -> bool:
    if not ignore_spec.match_file(rel_path):
        return False
    if force_spec is not None and force_spec.match_file(rel_path):
        return False
    return True


def list_tracked_files(
    project_root: Path,
    config: RestorePointConfig | None = None,
) -> list[str]:
    """List tracked files of a project.

    Args:
        project_root: Project directory to scan
        config: Policy supplying ignore and force-include patterns

    Returns:
        Sorted relative POSIX paths of regular files that are not ignored.
        Deterministic for a given tree and config.
    """
    if config is None:
        config = RestorePointConfig()

    root = Path(project_root)
    ignore_spec = build_ignore_spec(root, config)
    force_spec = build_force_spec(config)

    files: list[str] = []

    def _on_error(error: OSError) -> None:
        logger.debug(f"Skipping unreadable directory: {error}")

    for current, dirs, filenames in os.walk(root, onerror=_on_error):
        current_path = Path(current)
        rel_dir = current_path.relative_to(root).as_posix()
        prefix = "" if rel_dir == "." else f"{rel_dir}/"

        kept_dirs = []
        for d in dirs:
            if not prefix and d == STORE_DIRNAME:
                continue
            if (current_path / d).is_symlink():
                continue
            if _is_ignored(f"{prefix}{d}/", ignore_spec, force_spec):
                continue
            kept_dirs.append(d)
        dirs[:] = kept_dirs

        for filename in filenames:
            full_path = current_path / filename
            if full_path.is_symlink() or not full_path.is_file():
                continue
            rel_path = f"{prefix}{filename}"
            if _is_ignored(rel_path, ignore_spec, force_spec):
                continue
            files.append(rel_path)

    return sorted(files)


def make_lister(config: RestorePointConfig) -> Lister:
    """Bind a config to list_tracked_files, giving the collaborator signature."""

    def _lister(project_root: Path) -> list[str]:
        return list_tracked_files(project_root, config)

    return _lister
