"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/models.py
Data models and domain logic for scanning, indexing and resolving duplicates.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, Union, Callable, Tuple, NewType, Any
import logging
import os
from enum import Enum

logger = logging.getLogger(__name__)


# =============================
# Enums
# =============================

class SymlinkPolicy(Enum):
    """
    How the walker treats symbolic links to files.
    Directory symlinks are never followed.
    """
    SKIP = "skip"
    FOLLOW_ONCE = "follow-once"
    FOLLOW = "follow"

    def __repr__(self) -> str:
        return self.value


class LinkKind(Enum):
    HARDLINK = "hardlink"
    SYMLINK = "symlink"

    def __repr__(self) -> str:
        return self.value


class ActionKind(Enum):
    """Resolution actions a front end can request for one group member."""
    MOVE = "move"
    LINK = "link"
    DELETE = "delete"

    @property
    def display_name(self) -> str:
        mapping = {
            ActionKind.MOVE: "Move",
            ActionKind.LINK: "Link",
            ActionKind.DELETE: "Delete",
        }
        return mapping.get(self, self.value)

    def __repr__(self) -> str:
        return self.value


class Stage(str, Enum):
    WALK = "walk"
    HASH = "hash"
    GROUP = "group"


# ======================
#  Value types
# ======================

FilePath = NewType("FilePath", str)


def to_file_path(path: Union[str, "os.PathLike[str]"]) -> FilePath:
    """Absolute, normalized path. The only way a FilePath should be built."""
    return FilePath(os.path.normpath(os.path.abspath(os.fspath(path))))


@dataclass(frozen=True, order=True)
class Digest:
    """
    Content digest produced by a HashAlgorithm.
    Carries the algorithm name so digests from different algorithms never compare equal.
    """
    value: bytes
    algorithm: str = "sha256"

    def __post_init__(self):
        if not isinstance(self.value, bytes):
            raise ValueError("Digest value must be bytes")
        if not self.value:
            raise ValueError("Digest value cannot be empty")

    @property
    def hex(self) -> str:
        return self.value.hex()

    @classmethod
    def from_hex(cls, text: str, algorithm: str = "sha256") -> "Digest":
        """Parse the boundary string form back into a Digest."""
        try:
            value = bytes.fromhex(text.strip())
        except (ValueError, AttributeError) as e:
            raise ValueError(f"Invalid digest string: {text!r}") from e
        return cls(value=value, algorithm=algorithm)

    def short(self, length: int = 12) -> str:
        return self.hex[:length]

    def __str__(self) -> str:
        return self.hex

    def __repr__(self) -> str:
        return f"<Digest {self.algorithm}:{self.short()}>"


# ======================
#  Core Data Models
# ======================

@dataclass
class FileRecord:
    """
    One scanned file.
    Created when the walker discovers the path; digest is filled in by the hasher.
    """
    path: FilePath
    size: int  # in bytes
    digest: Optional[Digest] = None
    mtime_ns: int = 0
    sequence: int = -1  # discovery ordinal, assigned by the index
    device: Optional[int] = None
    inode: Optional[int] = None
    link_kind: Optional[LinkKind] = None
    link_target: Optional[FilePath] = None
    stale: bool = False

    def __post_init__(self):
        if self.size < 0:
            raise ValueError("File size cannot be negative")

    @property
    def is_link(self) -> bool:
        return self.link_kind is not None

    @property
    def is_symlink(self) -> bool:
        return self.link_kind == LinkKind.SYMLINK

    @property
    def identity(self) -> Optional[Tuple[int, int]]:
        """(st_dev, st_ino) of the underlying file, when known."""
        if self.device is None or self.inode is None:
            return None
        return self.device, self.inode

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    def __repr__(self):
        return f"<FileRecord path={self.path}, size={self.size}>"


@dataclass(frozen=True)
class DuplicateGroup:
    """
    Materialized view of one index bucket with at least two members.
    Regenerated from the index on every listing; never mutated.
    """
    group_number: int
    digest: Digest
    members: Tuple[FilePath, ...]
    size: int = 0
    linked: Tuple[FilePath, ...] = ()

    @property
    def duplicate_count(self) -> int:
        """How many files are in this group."""
        return len(self.members)

    @property
    def primary(self) -> FilePath:
        """First discovered member, the presumptive original."""
        return self.members[0]

    def is_duplicate(self) -> bool:
        """True if this group contains at least two files."""
        return self.duplicate_count >= 2

    def __contains__(self, path: object) -> bool:
        return path in self.members

    def __repr__(self):
        return f"<DuplicateGroup #{self.group_number} digest={self.digest.short()}, count={len(self.members)}>"


@dataclass(frozen=True)
class ScanIssue:
    """A per-file error collected during a scan instead of aborting it."""
    path: str
    kind: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.path}: {self.message}"


class ScanStats:
    """
    Statistics collected during a scan.
    """
    def __init__(self):
        self.total_time: float = 0.0
        self.stage_stats: Dict[str, Dict[str, Union[int, float]]] = {}
        self._listeners: List[Callable[[str, Dict], None]] = []

    def add_listener(self, listener: Callable[[str, Dict], None]):
        """Adds a listener to receive updates when stats are updated."""
        self._listeners.append(listener)

    def update_stage(
            self,
            stage_name: str,
            items: int,
            duration: float,
            bytes_processed: int = 0,
            errors: int = 0,
    ) -> None:
        if stage_name not in self.stage_stats:
            self.stage_stats[stage_name] = {
                "items": 0,
                "bytes": 0,
                "errors": 0,
                "time": 0.0
            }
        self.stage_stats[stage_name]["items"] += items
        self.stage_stats[stage_name]["bytes"] += bytes_processed
        self.stage_stats[stage_name]["errors"] += errors
        self.stage_stats[stage_name]["time"] += duration

        for listener in self._listeners:
            try:
                listener(stage_name, self.stage_stats[stage_name])
            except Exception:
                logger.exception("Error in stats event handler")

    def get(self, stage_name: str, key: str) -> Union[int, float]:
        return self.stage_stats.get(stage_name, {}).get(key, 0)

    def print_summary(self) -> str:
        labels = {
            Stage.WALK.value: "Walked files",
            Stage.HASH.value: "Hashed files",
            Stage.GROUP.value: "Duplicate groups",
        }

        lines = [
            "Scan Statistics:",
            f"Total Execution Time: {self.total_time:.3f}s\n",
            "Stage: ITEMS / ERRORS / TIME"
        ]

        for stage, data in self.stage_stats.items():
            label = labels.get(stage, stage.title())
            lines.append(f"{label}: {data['items']} / {data['errors']} / {data['time']:.3f}s")

        return "\n".join(lines)


@dataclass
class ScanReport:
    """Result of one scan: groups, side list of per-file issues, stats."""
    groups: List[DuplicateGroup]
    issues: List[ScanIssue] = field(default_factory=list)
    stats: ScanStats = field(default_factory=ScanStats)
    cancelled: bool = False
    timed_out: bool = False

    @property
    def duplicate_files(self) -> int:
        return sum(g.duplicate_count for g in self.groups)


@dataclass
class ResolutionResult:
    """
    Outcome of one resolution action, shaped for a front end to refresh its view.
    """
    success: bool
    action: Optional[ActionKind]  # None when the requested action was not recognised
    digest: str
    path: str
    new_path: Optional[str] = None
    freed_bytes: int = 0
    error_kind: Optional[str] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action.value if self.action else None,
            "digest": self.digest,
            "path": self.path,
            "new_path": self.new_path,
            "freed_bytes": self.freed_bytes,
            "error_kind": self.error_kind,
            "reason": self.reason,
        }


"""
DTOs for scan parameters and engine configuration with built-in validation.
Interface-agnostic — used by the engine facade, the CLI and the Qt worker.
"""
from dupindex.utils.convert_utils import ConvertUtils

DEFAULT_CHUNK_SIZE = 1024 * 1024
DEFAULT_WORKERS = min(8, max(2, os.cpu_count() or 2))


@dataclass
class ScanParams:
    """Parameters for one scan with validation."""
    root_dir: str
    min_size_bytes: int = 0
    max_size_bytes: Optional[int] = None
    extensions: List[str] = field(default_factory=list)
    excluded_dirs: List[str] = field(default_factory=list)
    recursive: bool = True
    include_hidden: bool = True
    skip_empty: bool = False
    symlink_policy: SymlinkPolicy = SymlinkPolicy.FOLLOW_ONCE
    timeout: Optional[float] = None  # seconds for the whole scan

    def __post_init__(self):
        """Validate parameters immediately after creation."""
        if not self.root_dir:
            raise ValueError("Root directory cannot be empty")

        if self.min_size_bytes < 0:
            raise ValueError("Minimum size cannot be negative")

        if self.max_size_bytes is not None and self.max_size_bytes < self.min_size_bytes:
            raise ValueError("Maximum size cannot be less than minimum size")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("Timeout must be positive")

        # Normalize extensions: ensure they start with dot and are lowercase
        normalized = []
        for ext in self.extensions:
            ext = ext.strip().lower()
            if ext and not ext.startswith('.'):
                ext = f".{ext}"
            if ext:
                normalized.append(ext)
        self.extensions = normalized

    @staticmethod
    def from_human_readable(
            root_dir: str,
            min_size_str: str = "0",
            max_size_str: str = "",
            extensions_str: str = "",
            excluded_dirs: Optional[List[str]] = None,
            **options,
    ) -> 'ScanParams':
        """
        Factory method to create params from human-readable inputs.
        Useful for CLI argument parsing or GUI input conversion.
        """
        min_size = ConvertUtils.human_to_bytes(min_size_str)
        max_size = ConvertUtils.human_to_bytes(max_size_str) if max_size_str else None

        ext_list = [
            ext.strip() for ext in extensions_str.split(",") if ext.strip()
        ] if extensions_str else []

        return ScanParams(
            root_dir=root_dir,
            min_size_bytes=min_size,
            max_size_bytes=max_size,
            extensions=ext_list,
            excluded_dirs=excluded_dirs or [],
            **options,
        )


@dataclass
class EngineConfig:
    """Engine-wide settings shared by every scan and resolution on one engine instance."""
    algorithm: str = "sha256"
    chunk_size: int = DEFAULT_CHUNK_SIZE
    workers: int = DEFAULT_WORKERS
    use_trash: bool = True
    allow_symlink_fallback: bool = False
    allow_group_delete: bool = False
    verify_cross_volume_moves: bool = True

    def __post_init__(self):
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        if self.workers < 1:
            raise ValueError("At least one worker is required")
        self.algorithm = self.algorithm.strip().lower()
