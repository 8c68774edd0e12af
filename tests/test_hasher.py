"""
Unit tests for HasherImpl and the registered digest algorithms.
Verifies streaming digests, error mapping and cancellation between chunks.
"""
import hashlib
import pytest
import xxhash

from dupindex.core.errors import IoError, OperationCancelled
from dupindex.core.hasher import (
    HasherImpl, Sha256AlgorithmImpl, Sha3AlgorithmImpl, Blake2bAlgorithmImpl,
    XXHashAlgorithmImpl, get_algorithm, ALGORITHMS,
)
from dupindex.core.models import Digest, to_file_path


class TestHasherImpl:
    """Whole-content digests computed chunk by chunk."""

    def test_default_is_sha256(self, temp_dir):
        """Default algorithm must match hashlib's SHA-256 of the whole file."""
        path = temp_dir / "file.bin"
        path.write_bytes(b"hello")

        digest = HasherImpl().hash(to_file_path(path))

        assert digest.algorithm == "sha256"
        assert digest.hex == hashlib.sha256(b"hello").hexdigest()

    def test_same_content_produces_same_digest(self, temp_dir):
        content = b"test content " * 1000
        (temp_dir / "a").write_bytes(content)
        (temp_dir / "b").write_bytes(content)

        hasher = HasherImpl()
        assert hasher.hash(to_file_path(temp_dir / "a")) == hasher.hash(to_file_path(temp_dir / "b"))

    def test_one_byte_difference_changes_digest(self, temp_dir):
        (temp_dir / "a").write_bytes(b"A" * 4096)
        (temp_dir / "b").write_bytes(b"A" * 4095 + b"B")

        hasher = HasherImpl()
        assert hasher.hash(to_file_path(temp_dir / "a")) != hasher.hash(to_file_path(temp_dir / "b"))

    def test_empty_files_share_a_digest(self, temp_dir):
        """All zero-byte files hash to the digest of the empty string."""
        (temp_dir / "e1").write_bytes(b"")
        (temp_dir / "e2").write_bytes(b"")

        hasher = HasherImpl()
        d1 = hasher.hash(to_file_path(temp_dir / "e1"))
        d2 = hasher.hash(to_file_path(temp_dir / "e2"))

        assert d1 == d2
        assert d1.hex == hashlib.sha256(b"").hexdigest()

    @pytest.mark.parametrize("chunk_size", [1, 7, 1024, 1024 * 1024])
    def test_chunk_size_does_not_change_digest(self, temp_dir, chunk_size):
        content = bytes(range(256)) * 40
        path = temp_dir / "file.bin"
        path.write_bytes(content)

        digest = HasherImpl(chunk_size=chunk_size).hash(to_file_path(path))
        assert digest.hex == hashlib.sha256(content).hexdigest()

    def test_reads_in_bounded_chunks(self, temp_dir, monkeypatch):
        """No single read may request more than chunk_size bytes."""
        path = temp_dir / "big.bin"
        path.write_bytes(b"x" * 10_000)
        requested = []

        real_open = open

        class RecordingFile:
            def __init__(self, f):
                self._f = f

            def read(self, size=-1):
                requested.append(size)
                return self._f.read(size)

            def __enter__(self):
                return self

            def __exit__(self, *exc):
                self._f.close()

        monkeypatch.setattr("builtins.open", lambda p, mode="r", *a, **k: RecordingFile(real_open(p, mode, *a, **k)))
        HasherImpl(chunk_size=512).hash(to_file_path(path))

        assert requested
        assert all(0 < size <= 512 for size in requested)

    def test_missing_file_raises_io_error(self, temp_dir):
        path = to_file_path(temp_dir / "missing.bin")
        with pytest.raises(IoError) as exc_info:
            HasherImpl().hash(path)
        assert exc_info.value.path == path
        assert exc_info.value.kind == "IoError"

    def test_stopped_flag_cancels_between_chunks(self, temp_dir):
        path = temp_dir / "file.bin"
        path.write_bytes(b"x" * 4096)
        calls = []

        def stopped():
            calls.append(1)
            return len(calls) > 2

        with pytest.raises(OperationCancelled):
            HasherImpl(chunk_size=1024).hash(to_file_path(path), stopped_flag=stopped)

    def test_invalid_chunk_size_rejected(self):
        with pytest.raises(ValueError):
            HasherImpl(chunk_size=0)

    def test_hash_bytes_matches_file_digest(self, temp_dir):
        path = temp_dir / "file.bin"
        path.write_bytes(b"payload")
        hasher = HasherImpl(XXHashAlgorithmImpl())
        assert hasher.hash_bytes(b"payload") == hasher.hash(to_file_path(path))


class TestAlgorithms:
    """Registered algorithms and their digest sizes."""

    def test_sha3(self):
        digest = HasherImpl(Sha3AlgorithmImpl()).hash_bytes(b"hello")
        assert digest.hex == hashlib.sha3_256(b"hello").hexdigest()
        assert digest.algorithm == "sha3-256"

    def test_blake2b_is_32_bytes(self):
        digest = HasherImpl(Blake2bAlgorithmImpl()).hash_bytes(b"hello")
        assert len(digest.value) == 32
        assert digest.hex == hashlib.blake2b(b"hello", digest_size=32).hexdigest()

    def test_xxh128_is_16_bytes(self):
        digest = HasherImpl(XXHashAlgorithmImpl()).hash_bytes(b"hello")
        assert len(digest.value) == 16
        assert digest.hex == xxhash.xxh3_128(b"hello").hexdigest()

    def test_same_bytes_different_algorithms_never_equal(self):
        """Digests carry their algorithm, so equal bytes from different algorithms differ."""
        assert Digest(b"\x01" * 32, "sha256") != Digest(b"\x01" * 32, "blake2b")

    def test_get_algorithm_by_name(self):
        for name in ALGORITHMS:
            assert get_algorithm(name).name == name
        assert isinstance(get_algorithm(" SHA256 "), Sha256AlgorithmImpl)

    def test_get_algorithm_unknown(self):
        with pytest.raises(ValueError, match="Valid options"):
            get_algorithm("md5")


class TestDigest:
    """Boundary conversions of the digest value type."""

    def test_hex_round_trip(self):
        digest = HasherImpl().hash_bytes(b"hello")
        assert Digest.from_hex(digest.hex) == digest
        assert str(digest) == digest.hex

    def test_from_hex_rejects_garbage(self):
        with pytest.raises(ValueError):
            Digest.from_hex("not-hex")
        with pytest.raises(ValueError):
            Digest.from_hex("")
