"""
Tests for the engine facade and boundary functions: index_folder, resolve, DedupEngine.
"""
import os

import pytest

from conftest import sha256_hex
from dupindex.commands import DedupEngine, index_folder, resolve
from dupindex.core.errors import ScanError
from dupindex.core.models import EngineConfig, ScanParams


@pytest.fixture
def hello_world(temp_dir):
    """a.txt and b.txt say hello, c.txt says world."""
    (temp_dir / "a.txt").write_bytes(b"hello")
    (temp_dir / "b.txt").write_bytes(b"hello")
    (temp_dir / "c.txt").write_bytes(b"world")
    return temp_dir


class TestIndexFolder:
    """Boundary mapping: hex digest -> member paths."""

    def test_hello_world_scenario(self, hello_world):
        mapping = index_folder(str(hello_world))

        assert mapping == {
            sha256_hex(b"hello"): [str(hello_world / "a.txt"), str(hello_world / "b.txt")],
        }

    def test_deleting_one_of_a_pair_empties_listing(self, hello_world):
        engine = DedupEngine(str(hello_world), EngineConfig(use_trash=False))
        engine.scan()

        result = resolve(engine, sha256_hex(b"hello"), str(hello_world / "a.txt"), "delete")

        assert result.success
        assert engine.mapping() == {}
        assert engine.groups() == []

    def test_deterministic_across_runs(self, temp_dir, test_files):
        first = index_folder(str(temp_dir))
        second = index_folder(str(temp_dir))

        assert first == second
        assert list(first) == list(second)

    def test_empty_files_form_a_group(self, temp_dir):
        (temp_dir / "e1").write_bytes(b"")
        (temp_dir / "e2").write_bytes(b"")

        assert index_folder(str(temp_dir)) == {sha256_hex(b""): [str(temp_dir / "e1"), str(temp_dir / "e2")]}

    def test_missing_root(self, temp_dir):
        with pytest.raises(ScanError):
            index_folder(str(temp_dir / "missing"))

    def test_file_root(self, hello_world):
        with pytest.raises(ScanError):
            index_folder(str(hello_world / "a.txt"))

    def test_algorithm_from_config(self, hello_world):
        mapping = index_folder(str(hello_world), EngineConfig(algorithm="xxh128"))
        assert len(mapping) == 1
        assert len(next(iter(mapping))) == 32  # 16-byte digest in hex


class TestDedupEngine:
    """One engine per root, each with its own index."""

    def test_engines_are_independent(self, temp_dir):
        left = temp_dir / "left"
        right = temp_dir / "right"
        for folder in (left, right):
            folder.mkdir()
            (folder / "x").write_bytes(b"dup")
            (folder / "y").write_bytes(b"dup")

        e1 = DedupEngine(str(left))
        e2 = DedupEngine(str(right))
        e1.scan()
        e2.scan()

        assert e1.index is not e2.index
        assert set(e1.groups()[0].members) == {str(left / "x"), str(left / "y")}
        assert set(e2.groups()[0].members) == {str(right / "x"), str(right / "y")}

    def test_scan_clears_previous_state(self, hello_world):
        engine = DedupEngine(str(hello_world))
        engine.scan()
        os.remove(hello_world / "b.txt")

        engine.scan()

        assert engine.groups() == []
        assert str(hello_world / "b.txt") not in engine.index

    def test_params_for_other_root_rejected(self, hello_world, temp_dir):
        engine = DedupEngine(str(hello_world / ".."))
        with pytest.raises(ValueError):
            engine.scan(ScanParams(root_dir=str(hello_world)))

    def test_skip_empty_param(self, temp_dir):
        (temp_dir / "e1").write_bytes(b"")
        (temp_dir / "e2").write_bytes(b"")
        engine = DedupEngine(str(temp_dir))

        report = engine.scan(ScanParams(root_dir=str(temp_dir), skip_empty=True))

        assert report.groups == []
        assert len(engine.index) == 0

    def test_group_lookup_and_last_report(self, hello_world):
        engine = DedupEngine(str(hello_world))
        report = engine.scan()

        assert engine.last_report is report
        assert engine.group(1).members == (str(hello_world / "a.txt"), str(hello_world / "b.txt"))
        with pytest.raises(KeyError):
            engine.group(2)
