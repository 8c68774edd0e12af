"""
Shared fixtures for dupindex tests.
Creates isolated temporary directories with controlled test files.
"""
import hashlib
import os
import pytest
import tempfile
from pathlib import Path
from typing import Dict

from dupindex.core.models import EngineConfig


@pytest.fixture
def temp_dir():
    """Creates isolated temporary directory, auto-cleanup after test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(os.path.realpath(tmpdir))


@pytest.fixture
def test_files(temp_dir) -> Dict[str, Path]:
    """
    Creates controlled test files for indexing scenarios:
    - a.txt and sub/c.txt with identical content "hello"
    - d.txt with unique content "world"
    - three copies of 1KB of 'A' (one nested two levels deep)
    - one unique 2KB file
    - one empty file
    """
    files = {}

    files["a"] = temp_dir / "a.txt"
    files["a"].write_bytes(b"hello")

    subdir = temp_dir / "sub"
    subdir.mkdir()
    files["c"] = subdir / "c.txt"
    files["c"].write_bytes(b"hello")

    files["d"] = temp_dir / "d.txt"
    files["d"].write_bytes(b"world")

    content_a = b"A" * 1024
    files["triple1"] = temp_dir / "triple1.bin"
    files["triple2"] = temp_dir / "triple2.bin"
    files["triple3"] = subdir / "deep" / "triple3.bin"
    files["triple3"].parent.mkdir()
    for key in ("triple1", "triple2", "triple3"):
        files[key].write_bytes(content_a)

    files["unique"] = temp_dir / "unique.bin"
    files["unique"].write_bytes(b"B" * 2048)

    files["empty"] = temp_dir / "empty.txt"
    files["empty"].write_bytes(b"")

    return files


@pytest.fixture
def config() -> EngineConfig:
    """Engine config that deletes permanently (tests never touch the real trash)."""
    return EngineConfig(use_trash=False, workers=2)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def allocated_bytes(root: Path) -> int:
    """Allocated bytes of every distinct inode under root, like `du`."""
    seen = set()
    total = 0
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            st = os.lstat(os.path.join(dirpath, name))
            if (st.st_dev, st.st_ino) in seen:
                continue
            seen.add((st.st_dev, st.st_ino))
            total += st.st_blocks * 512
    return total
