"""
dupindex — content-hash duplicate file indexer with safe, incremental resolution.

Core features:
- Streaming content digests (SHA-256 default, SHA3-256, BLAKE2b, xxHash XXH3-128) on a worker pool
- Deterministic, numbered duplicate groups kept in an in-memory index
- Move, hard/symbolic link and delete actions that never lose the last copy
- Safe deletion to system trash (via send2trash)
- CLI for headless usage, optional Qt worker (install with [gui] extra)
"""

# Get version
try:
    from importlib.metadata import version as _version
    __version__ = _version("dupindex")
except Exception:
    try:
        import tomllib  # Python 3.11+
    except ImportError:
        import tomli as tomllib  # Python < 3.11: pip install tomli

    try:
        with open("pyproject.toml", "rb") as f:
            __version__ = tomllib.load(f)["project"]["version"]
    except (OSError, KeyError):
        __version__ = "0.0.0"

# Public API: only what users should import directly
from dupindex.commands import DedupEngine, index_folder, resolve
from dupindex.core import (
    ActionKind, Digest, DuplicateGroup, EngineConfig, LinkKind, ResolutionResult, ScanParams,
    ScanReport, SymlinkPolicy, DupIndexError, AccessError, IoError, ConflictError, CrossVolumeError,
    InvariantViolation, MemberNotFound, ScanError, OperationCancelled,
)
from dupindex.utils.convert_utils import ConvertUtils
from dupindex.services.file_service import FileService

__all__ = [
    "DedupEngine",
    "index_folder",
    "resolve",
    "ActionKind",
    "Digest",
    "DuplicateGroup",
    "EngineConfig",
    "LinkKind",
    "ResolutionResult",
    "ScanParams",
    "ScanReport",
    "SymlinkPolicy",
    "DupIndexError",
    "AccessError",
    "IoError",
    "ConflictError",
    "CrossVolumeError",
    "InvariantViolation",
    "MemberNotFound",
    "ScanError",
    "OperationCancelled",
    "ConvertUtils",
    "FileService",
    "__version__",
]
