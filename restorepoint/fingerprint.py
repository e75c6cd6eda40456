"""Content fingerprints for tracked files.

A fingerprint is the SHA-256 hex digest of a file's raw bytes. Files that
cannot be read get no fingerprint and are left out of the map, as if they
did not exist.
"""

from __future__ import annotations

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from restorepoint.types import Fingerprint

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


def hash_file(path: Path) -> Fingerprint | None:
    """SHA-256 of a file's bytes, or None if it cannot be read."""
    digest = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            while chunk := f.read(_CHUNK_SIZE):
                digest.update(chunk)
    except OSError as e:
        logger.debug(f"Cannot fingerprint {path}: {e}")
        return None
    return Fingerprint(digest.hexdigest())


def fingerprint_files(
    project_root: Path,
    files: list[str],
    max_workers: int = 8,
) -> dict[str, Fingerprint]:
    """Fingerprint tracked files relative to project_root.

    Hashing runs on a thread pool when max_workers > 1. executor.map keeps
    input order, so the result is identical to a sequential run.

    Args:
        project_root: Directory the relative paths are resolved against
        files: Relative POSIX paths
        max_workers: Worker threads (1 = sequential)

    Returns:
        Mapping of path to digest, in input order, unreadable files omitted
    """
    root = Path(project_root)
    paths = [root / rel for rel in files]

    if max_workers <= 1 or len(paths) < 2:
        digests = [hash_file(p) for p in paths]
    else:
        workers = min(max_workers, len(paths))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            digests = list(executor.map(hash_file, paths))

    hashes: dict[str, Fingerprint] = {}
    for rel, digest in zip(files, digests):
        if digest is not None:
            hashes[rel] = digest

    skipped = len(files) - len(hashes)
    if skipped:
        logger.info(f"Skipped {skipped} unreadable file(s) while fingerprinting")

    return hashes
