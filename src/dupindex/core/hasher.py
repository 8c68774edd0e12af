"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

hasher.py
Implements streaming content hashing with pluggable hash algorithms.

HasherImpl reads a file in fixed-size chunks and feeds them to a HashAlgorithm,
so peak memory per file is bounded by the chunk size whatever the file size.
"""

import hashlib
import logging
from typing import Callable, Dict, Optional

import xxhash

from dupindex.core.errors import IoError, OperationCancelled
from dupindex.core.interfaces import HashAlgorithm, HashState, Hasher
from dupindex.core.models import Digest, FilePath, DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


# Use the same way to implement and use any other hashing algorithm
class Sha256AlgorithmImpl(HashAlgorithm):
    name = "sha256"
    digest_size = 32

    def new(self) -> HashState:
        return hashlib.sha256()


class Sha3AlgorithmImpl(HashAlgorithm):
    name = "sha3-256"
    digest_size = 32

    def new(self) -> HashState:
        return hashlib.sha3_256()


class Blake2bAlgorithmImpl(HashAlgorithm):
    name = "blake2b"
    digest_size = 32

    def new(self) -> HashState:
        return hashlib.blake2b(digest_size=self.digest_size)


class XXHashAlgorithmImpl(HashAlgorithm):
    """Non-cryptographic XXH3-128: much faster, still negligible collision odds for local trees."""
    name = "xxh128"
    digest_size = 16

    def new(self) -> HashState:
        return xxhash.xxh3_128()


ALGORITHMS: Dict[str, Callable[[], HashAlgorithm]] = {
    Sha256AlgorithmImpl.name: Sha256AlgorithmImpl,
    Sha3AlgorithmImpl.name: Sha3AlgorithmImpl,
    Blake2bAlgorithmImpl.name: Blake2bAlgorithmImpl,
    XXHashAlgorithmImpl.name: XXHashAlgorithmImpl,
}


def get_algorithm(name: str) -> HashAlgorithm:
    """Returns an algorithm instance by its registered name."""
    try:
        return ALGORITHMS[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown hash algorithm: '{name}'. Valid options: {', '.join(ALGORITHMS)}"
        ) from None


class HasherImpl(Hasher):
    """
    A hasher implementation that supports any algorithm via the HashAlgorithm interface.
    Computes the digest of the whole file content, one chunk at a time.
    """

    def __init__(self, algorithm: Optional[HashAlgorithm] = None, chunk_size: int = DEFAULT_CHUNK_SIZE):
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        self.algorithm = algorithm or Sha256AlgorithmImpl()
        self.chunk_size = chunk_size

    def hash(self, path: FilePath, stopped_flag: Optional[Callable[[], bool]] = None) -> Digest:
        """
        Streams the file through the algorithm.
        Raises:
            IoError: the file could not be opened or read to the end.
            OperationCancelled: stopped_flag returned True between two chunks.
        """
        state = self.algorithm.new()
        try:
            with open(path, 'rb') as f:
                while True:
                    if stopped_flag and stopped_flag():
                        raise OperationCancelled(f"Hashing cancelled: {path}", path=path)
                    chunk = f.read(self.chunk_size)
                    if not chunk:
                        break
                    state.update(chunk)
        except OSError as e:
            logger.debug(f"Failed to hash {path}: {e}")
            raise IoError(f"Cannot read {path}: {e.strerror or e}", path=path) from e

        return Digest(value=state.digest(), algorithm=self.algorithm.name)

    def hash_bytes(self, data: bytes) -> Digest:
        """Digest of an in-memory buffer, same algorithm as hash()."""
        state = self.algorithm.new()
        state.update(data)
        return Digest(value=state.digest(), algorithm=self.algorithm.name)
