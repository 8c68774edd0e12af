"""
Core indexing engine — walker, hasher, duplicate index, grouping and scan pipeline.

This package contains the performance-critical foundation of dupindex:
- FileWalkerImpl: lazy directory traversal with size/extension/hidden/symlink policies
- HasherImpl + algorithms: streaming SHA-256 (default), SHA3-256, BLAKE2b, xxHash XXH3-128
- DuplicateIndex: digest -> ordered buckets with per-bucket locking
- snapshot: deterministic, numbered DuplicateGroups
- ScanPipeline: walker -> worker pool -> index, with cancellation and error accumulation

All components are pure Python with no GUI dependencies — suitable for CLI and server usage.
"""

from .errors import (
    DupIndexError, AccessError, IoError, ConflictError, CrossVolumeError,
    InvariantViolation, MemberNotFound, ScanError, OperationCancelled,
)
from .models import (
    FilePath, Digest, FileRecord, DuplicateGroup, ScanIssue, ScanStats, ScanReport,
    ResolutionResult, ScanParams, EngineConfig, SymlinkPolicy, LinkKind, ActionKind,
    Stage, to_file_path,
)
from .walker import FileWalkerImpl
from .hasher import (
    HasherImpl, Sha256AlgorithmImpl, Sha3AlgorithmImpl, Blake2bAlgorithmImpl,
    XXHashAlgorithmImpl, get_algorithm, ALGORITHMS,
)
from .index import DuplicateIndex
from .grouper import snapshot, to_mapping, find_group
from .pipeline import ScanPipeline

__all__ = [
    "DupIndexError",
    "AccessError",
    "IoError",
    "ConflictError",
    "CrossVolumeError",
    "InvariantViolation",
    "MemberNotFound",
    "ScanError",
    "OperationCancelled",
    "FilePath",
    "Digest",
    "FileRecord",
    "DuplicateGroup",
    "ScanIssue",
    "ScanStats",
    "ScanReport",
    "ResolutionResult",
    "ScanParams",
    "EngineConfig",
    "SymlinkPolicy",
    "LinkKind",
    "ActionKind",
    "Stage",
    "to_file_path",
    "FileWalkerImpl",
    "HasherImpl",
    "Sha256AlgorithmImpl",
    "Sha3AlgorithmImpl",
    "Blake2bAlgorithmImpl",
    "XXHashAlgorithmImpl",
    "get_algorithm",
    "ALGORITHMS",
    "DuplicateIndex",
    "snapshot",
    "to_mapping",
    "find_group",
    "ScanPipeline",
]
