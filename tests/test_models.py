"""
Unit tests for data models and DTOs: Digest, ScanParams, EngineConfig, ScanStats.
"""
import hashlib
import os

import pytest

from dupindex.core.models import (
    Digest, DuplicateGroup, EngineConfig, ScanParams, ScanReport, ScanStats, Stage, SymlinkPolicy,
    to_file_path,
)


class TestDigest:
    """Boundary string form and algorithm separation."""

    def test_hex_round_trip(self):
        value = hashlib.sha256(b"hello").digest()
        digest = Digest(value)

        assert str(digest) == value.hex()
        assert Digest.from_hex(digest.hex.upper()) == digest

    def test_algorithms_never_equal(self):
        assert Digest(b"\x01", "sha256") != Digest(b"\x01", "xxh128")

    @pytest.mark.parametrize("text", ["", "zz", "abc"])
    def test_invalid_hex(self, text):
        with pytest.raises(ValueError):
            Digest.from_hex(text)

    def test_non_bytes_rejected(self):
        with pytest.raises(ValueError):
            Digest("abc")


class TestFilePath:
    def test_normalized_absolute(self):
        path = to_file_path(os.path.join("a", "..", "b", ".", "c"))
        assert path == os.path.join(os.getcwd(), "b", "c")


class TestScanParams:
    """Validation in __post_init__ and the human-readable factory."""

    def test_defaults(self):
        params = ScanParams(root_dir="/data")

        assert params.recursive is True
        assert params.include_hidden is True
        assert params.skip_empty is False
        assert params.symlink_policy == SymlinkPolicy.FOLLOW_ONCE

    def test_extensions_normalized(self):
        params = ScanParams(root_dir="/data", extensions=["JPG", ".Png", " ", "txt "])
        assert params.extensions == [".jpg", ".png", ".txt"]

    @pytest.mark.parametrize("kwargs", [
        {"root_dir": ""},
        {"root_dir": "/data", "min_size_bytes": -1},
        {"root_dir": "/data", "min_size_bytes": 10, "max_size_bytes": 5},
        {"root_dir": "/data", "timeout": 0},
    ])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            ScanParams(**kwargs)

    def test_from_human_readable(self):
        params = ScanParams.from_human_readable(
            "/data", "500K", "1.5GB", "jpg, png", ["/data/skip"], recursive=False,
        )

        assert params.min_size_bytes == 500 * 1024
        assert params.max_size_bytes == int(1.5 * 1024 ** 3)
        assert params.extensions == [".jpg", ".png"]
        assert params.excluded_dirs == ["/data/skip"]
        assert params.recursive is False

    def test_from_human_readable_no_max(self):
        assert ScanParams.from_human_readable("/data").max_size_bytes is None


class TestEngineConfig:
    def test_algorithm_normalized(self):
        assert EngineConfig(algorithm=" SHA256 ").algorithm == "sha256"

    @pytest.mark.parametrize("kwargs", [{"chunk_size": 0}, {"workers": 0}])
    def test_invalid(self, kwargs):
        with pytest.raises(ValueError):
            EngineConfig(**kwargs)


class TestScanStats:
    """Per-stage counters and listeners."""

    def test_accumulates_and_notifies(self):
        stats = ScanStats()
        events = []
        stats.add_listener(lambda stage, data: events.append((stage, data["items"])))

        stats.update_stage(Stage.HASH.value, 3, 0.5)
        stats.update_stage(Stage.HASH.value, 2, 0.25, errors=1)

        assert stats.get(Stage.HASH.value, "items") == 5
        assert stats.get(Stage.HASH.value, "errors") == 1
        assert stats.get(Stage.WALK.value, "items") == 0
        assert events == [("hash", 3), ("hash", 5)]

    def test_failing_listener_does_not_break_update(self):
        stats = ScanStats()
        stats.add_listener(lambda stage, data: 1 / 0)

        stats.update_stage(Stage.WALK.value, 1, 0.1)

        assert "Walked files: 1 / 0" in stats.print_summary()


class TestScanReport:
    def test_duplicate_files(self):
        digest = Digest(b"\x01")
        groups = [
            DuplicateGroup(1, digest, (to_file_path("/a"), to_file_path("/b"))),
            DuplicateGroup(2, Digest(b"\x02"), (to_file_path("/c"), to_file_path("/d"), to_file_path("/e"))),
        ]

        assert ScanReport(groups).duplicate_files == 5
