"""Tests for restorepoint.fingerprint module."""

import hashlib
from pathlib import Path
from unittest.mock import patch

from restorepoint.fingerprint import fingerprint_files, hash_file


class TestHashFile:
    """Tests for hash_file()."""

    def test_sha256_of_bytes(self, tmp_path: Path):
        """Digest is the SHA-256 hex of the raw content."""
        path = tmp_path / "data.bin"
        path.write_bytes(b"\x00\x01hello")

        assert hash_file(path) == hashlib.sha256(b"\x00\x01hello").hexdigest()

    def test_empty_file(self, tmp_path: Path):
        """Empty files still get a digest."""
        path = tmp_path / "empty"
        path.write_bytes(b"")

        assert hash_file(path) == hashlib.sha256(b"").hexdigest()

    def test_missing_file_returns_none(self, tmp_path: Path):
        """Unreadable files have no fingerprint."""
        assert hash_file(tmp_path / "missing") is None


class TestFingerprintFiles:
    """Tests for fingerprint_files()."""

    def test_maps_paths_to_digests(self, tmp_path: Path):
        """Every readable file is fingerprinted, keyed by relative path."""
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "sub").mkdir()
        (tmp_path / "sub" / "b.txt").write_text("b")

        hashes = fingerprint_files(tmp_path, ["a.txt", "sub/b.txt"], max_workers=1)

        assert hashes == {
            "a.txt": hashlib.sha256(b"a").hexdigest(),
            "sub/b.txt": hashlib.sha256(b"b").hexdigest(),
        }

    def test_parallel_matches_sequential(self, tmp_path: Path):
        """Thread pool output equals a sequential run, in input order."""
        files = []
        for i in range(20):
            (tmp_path / f"f{i}.txt").write_text(f"content {i}")
            files.append(f"f{i}.txt")

        sequential = fingerprint_files(tmp_path, files, max_workers=1)
        parallel = fingerprint_files(tmp_path, files, max_workers=4)

        assert parallel == sequential
        assert list(parallel) == files

    def test_unreadable_files_omitted(self, tmp_path: Path):
        """Files that vanish or cannot be read are left out."""
        (tmp_path / "ok.txt").write_text("ok")

        hashes = fingerprint_files(tmp_path, ["ok.txt", "gone.txt"], max_workers=1)

        assert list(hashes) == ["ok.txt"]

    def test_read_error_mid_run(self, tmp_path: Path):
        """An OSError on open skips just that file."""
        (tmp_path / "a.txt").write_text("a")
        (tmp_path / "b.txt").write_text("b")
        real_open = open

        def flaky_open(path, *args, **kwargs):
            if Path(path).name == "b.txt":
                raise PermissionError("denied")
            return real_open(path, *args, **kwargs)

        with patch("builtins.open", side_effect=flaky_open):
            hashes = fingerprint_files(tmp_path, ["a.txt", "b.txt"], max_workers=1)

        assert list(hashes) == ["a.txt"]
