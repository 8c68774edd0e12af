"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

interfaces.py

Defines core interfaces (Protocols) used throughout the indexing engine.
These protocols enforce structural typing using Python's `typing.Protocol` so that
walkers, hash algorithms and hashers can be swapped in tests or by front ends.

Key Components:
---------------
- HashState / HashAlgorithm: incremental hash objects and their factory (SHA-256, XXH3...).
- Hasher: streams a file through a HashAlgorithm and returns a Digest.
- FileWalker: lazily enumerates candidate files under a root.
"""

from typing import Protocol, Iterator, Optional, Callable
from dupindex.core.models import Digest, FilePath, FileRecord, ScanIssue


# ===== Interfaces =====

class HashState(Protocol):
    """Running hash, the shape shared by hashlib and xxhash objects."""
    def update(self, data: bytes) -> None: ...
    def digest(self) -> bytes: ...


class HashAlgorithm(Protocol):
    """
    Interface for content hash functions.

    Allows plugging in SHA-256, SHA3-256, BLAKE2b or xxHash
    without affecting the rest of the indexing logic.
    """
    name: str
    digest_size: int

    def new(self) -> HashState:
        """Returns a fresh incremental hash object."""
        ...


class Hasher(Protocol):
    """Interface for computing the full content digest of one file."""
    def hash(self, path: FilePath, stopped_flag: Optional[Callable[[], bool]] = None) -> Digest: ...


class FileWalker(Protocol):
    """
    Interface for enumerating candidate files.

    Methods:
        walk: Lazily yields FileRecord objects (digest not yet set); unreadable entries are reported through on_error.
    """
    def walk(
        self,
        stopped_flag: Optional[Callable[[], bool]] = None,
        on_error: Optional[Callable[[ScanIssue], None]] = None,
    ) -> Iterator[FileRecord]:
        ...
