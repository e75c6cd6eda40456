"""Tests for restorepoint.atomic module."""

import json
import os
import stat
from pathlib import Path
from unittest.mock import patch

import yaml

from restorepoint.atomic import (
    atomic_write_bytes,
    atomic_write_json,
    atomic_write_text,
    atomic_write_yaml,
)


class TestAtomicWriteText:
    """Tests for atomic_write_text()."""

    def test_creates_file(self, tmp_path: Path):
        """atomic_write_text creates a new file."""
        file_path = tmp_path / "test.txt"

        result = atomic_write_text(file_path, "hello world")

        assert result.is_ok()
        assert result.unwrap() == file_path
        assert file_path.read_text() == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path):
        """atomic_write_text replaces existing content."""
        file_path = tmp_path / "test.txt"
        file_path.write_text("old content")

        result = atomic_write_text(file_path, "new content")

        assert result.is_ok()
        assert file_path.read_text() == "new content"

    def test_creates_parent_directories(self, tmp_path: Path):
        """atomic_write_text creates missing parent directories."""
        file_path = tmp_path / "nested" / "deep" / "test.txt"

        result = atomic_write_text(file_path, "content")

        assert result.is_ok()
        assert file_path.read_text() == "content"

    def test_sets_default_permissions(self, tmp_path: Path):
        """Files are owner read/write only by default."""
        file_path = tmp_path / "test.txt"

        atomic_write_text(file_path, "content")

        mode = file_path.stat().st_mode
        assert mode & stat.S_IRWXU == stat.S_IRUSR | stat.S_IWUSR
        assert mode & stat.S_IRWXG == 0
        assert mode & stat.S_IRWXO == 0

    def test_leaves_no_temp_files(self, tmp_path: Path):
        """Only the target file remains after a successful write."""
        atomic_write_text(tmp_path / "test.txt", "content")

        assert [p.name for p in tmp_path.iterdir()] == ["test.txt"]

    def test_failed_rename_keeps_original_and_cleans_up(self, tmp_path: Path):
        """A failing rename returns Err, keeps the old file and removes the temp file."""
        file_path = tmp_path / "test.txt"
        file_path.write_text("original")

        with patch("restorepoint.atomic.os.replace", side_effect=OSError("disk full")):
            result = atomic_write_text(file_path, "new")

        assert result.is_err()
        assert result.unwrap_err().code == "ATOMIC_WRITE_FAILED"
        assert file_path.read_text() == "original"
        assert [p.name for p in tmp_path.iterdir()] == ["test.txt"]

    def test_permission_denied(self, tmp_path: Path):
        """PermissionError maps to ATOMIC_PERMISSION_DENIED."""
        with patch("restorepoint.atomic.tempfile.mkstemp", side_effect=PermissionError("nope")):
            result = atomic_write_text(tmp_path / "test.txt", "content")

        assert result.is_err()
        assert result.unwrap_err().code == "ATOMIC_PERMISSION_DENIED"


class TestAtomicWriteJson:
    """Tests for atomic_write_json()."""

    def test_writes_json(self, tmp_path: Path):
        """Data round-trips through json.loads."""
        file_path = tmp_path / "data.json"
        data = {"name": "cp", "files": ["a", "b"], "unicode": "héllo"}

        result = atomic_write_json(file_path, data)

        assert result.is_ok()
        assert json.loads(file_path.read_text(encoding="utf-8")) == data

    def test_unserializable_data(self, tmp_path: Path):
        """Unserializable values return Err without creating the file."""
        file_path = tmp_path / "data.json"

        result = atomic_write_json(file_path, {"bad": object()})

        assert result.is_err()
        assert result.unwrap_err().code == "JSON_SERIALIZATION_FAILED"
        assert not file_path.exists()


class TestAtomicWriteYaml:
    """Tests for atomic_write_yaml()."""

    def test_writes_yaml_preserving_key_order(self, tmp_path: Path):
        """Keys keep insertion order."""
        file_path = tmp_path / "config.yaml"

        result = atomic_write_yaml(file_path, {"zeta": 1, "alpha": [1, 2]})

        assert result.is_ok()
        content = file_path.read_text()
        assert content.index("zeta") < content.index("alpha")
        assert yaml.safe_load(content) == {"zeta": 1, "alpha": [1, 2]}

    def test_directory_permissions(self, tmp_path: Path):
        """New parent directories are created owner-only."""
        file_path = tmp_path / "store" / "config.yaml"

        atomic_write_yaml(file_path, {"a": 1})

        mode = os.stat(file_path.parent).st_mode
        assert mode & stat.S_IRWXO == 0


class TestAtomicWriteBytes:
    """Tests for atomic_write_bytes()."""

    def test_writes_raw_bytes(self, tmp_path: Path):
        """Binary payloads are written unchanged."""
        file_path = tmp_path / "blob.bin"

        result = atomic_write_bytes(file_path, b"\x00\xffdata")

        assert result.is_ok()
        assert file_path.read_bytes() == b"\x00\xffdata"
