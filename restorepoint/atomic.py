"""Atomic file writes for manifests, config and the changelog.

A checkpoint becomes visible to the registry only once its manifest exists,
so the manifest must never be observed half-written. Every write here goes
through the same steps:

1. serialize to bytes (before touching the disk, so bad data writes nothing)
2. write a temp file next to the target, flush and fsync it
3. os.replace() it over the target (atomic on POSIX)
4. fsync the directory so the rename survives a crash

All functions return Result values instead of raising.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml

from restorepoint.errors import Err, Ok, RestorePointError, Result

logger = logging.getLogger(__name__)

# Error codes
ATOMIC_WRITE_FAILED = "ATOMIC_WRITE_FAILED"
ATOMIC_PERMISSION_DENIED = "ATOMIC_PERMISSION_DENIED"
JSON_SERIALIZATION_FAILED = "JSON_SERIALIZATION_FAILED"
YAML_SERIALIZATION_FAILED = "YAML_SERIALIZATION_FAILED"


def _fsync_directory(directory: Path) -> None:
    try:
        fd = os.open(directory, os.O_RDONLY)
    except OSError:
        # Directories cannot be opened on some platforms (Windows)
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.debug(f"Directory fsync not supported for {directory}: {e}")
    finally:
        os.close(fd)


def _discard(temp_path: str) -> None:
    try:
        os.unlink(temp_path)
    except FileNotFoundError:
        return
    except OSError as e:
        logger.debug(f"Could not remove temp file {temp_path}: {e}")


def atomic_write_bytes(
    path: Path,
    payload: bytes,
    mode: int = 0o600,
) -> Result[Path, RestorePointError]:
    """Replace path with payload in one step.

    Missing parent directories are created owner-only.

    Args:
        path: Target file path
        payload: Complete new file content
        mode: File permissions (default 0o600, owner read/write only)

    Returns:
        Ok(path) once the content is on disk, Err(RestorePointError) otherwise.
        On failure the previous file (if any) is left untouched.
    """
    path = Path(path)

    try:
        path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        # Same directory as the target, or the rename is not atomic
        fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    except PermissionError as e:
        return _write_failed(ATOMIC_PERMISSION_DENIED, path, e)
    except OSError as e:
        return _write_failed(ATOMIC_WRITE_FAILED, path, e)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except OSError as e:
        _discard(temp_path)
        code = ATOMIC_PERMISSION_DENIED if isinstance(e, PermissionError) else ATOMIC_WRITE_FAILED
        return _write_failed(code, path, e)

    _fsync_directory(path.parent)
    logger.debug(f"Wrote {path} ({len(payload)} bytes)")
    return Ok(path)


def _write_failed(code: str, path: Path, error: OSError) -> Err[RestorePointError]:
    logger.error(f"Could not write {path}: {error}")
    if code == ATOMIC_PERMISSION_DENIED:
        message = f"Permission denied writing to {path}"
    else:
        message = f"Failed to write {path}: {error}"
    return Err(
        RestorePointError(
            code=code,
            message=message,
            context={"path": str(path), "error": str(error)},
        )
    )


def atomic_write_text(
    path: Path,
    content: str,
    mode: int = 0o600,
) -> Result[Path, RestorePointError]:
    """UTF-8 text variant of atomic_write_bytes."""
    return atomic_write_bytes(path, content.encode("utf-8"), mode)


def atomic_write_json(
    path: Path,
    data: Any,
    mode: int = 0o600,
    indent: int | None = 2,
) -> Result[Path, RestorePointError]:
    """Serialize data as JSON and write it atomically.

    Non-ASCII text is written as-is (UTF-8), so paths with accents stay
    readable in manifests.
    """
    try:
        content = json.dumps(data, indent=indent, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        logger.error(f"Cannot encode {path.name} as JSON: {e}")
        return Err(
            RestorePointError(
                code=JSON_SERIALIZATION_FAILED,
                message=f"Failed to serialize data to JSON: {e}",
                context={"path": str(path), "error": str(e)},
            )
        )

    return atomic_write_text(path, content + "\n", mode)


def atomic_write_yaml(
    path: Path,
    data: Any,
    mode: int = 0o600,
) -> Result[Path, RestorePointError]:
    """Serialize data with yaml.safe_dump, keys in insertion order, and write atomically."""
    try:
        content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
    except yaml.YAMLError as e:
        logger.error(f"Cannot encode {path.name} as YAML: {e}")
        return Err(
            RestorePointError(
                code=YAML_SERIALIZATION_FAILED,
                message=f"Failed to serialize data to YAML: {e}",
                context={"path": str(path), "error": str(e)},
            )
        )

    return atomic_write_text(path, content, mode)
