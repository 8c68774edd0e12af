"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/walker.py
Implements lazy file enumeration for the indexing pipeline.
Features:
- Recursively walks directories (or only the root level) in sorted, deterministic order
- Keeps regular files only; devices, sockets and FIFOs are ignored
- Applies size, extension, hidden-file and excluded-directory filters
- Symlink policy: skip, follow, or follow while counting each target file once
- Reports unreadable entries as AccessError issues instead of failing the walk
"""

import os
import stat
import sys
import logging
from typing import Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Local imports
from dupindex.core.errors import AccessError, ScanError
from dupindex.core.interfaces import FileWalker
from dupindex.core.models import (
    FilePath, FileRecord, LinkKind, ScanIssue, ScanParams, SymlinkPolicy, to_file_path,
)


class FileWalkerImpl(FileWalker):
    """
    Walks a directory tree and yields FileRecord objects (digest not yet computed).
    The walk is a generator: nothing is read until the caller iterates, and a new call
    to walk() starts over from the root.

    Attributes:
        root_dir: Root directory to walk
        min_size / max_size: Inclusive size limits in bytes (optional)
        extensions: Allowed file extensions (e.g., [".txt", ".jpg"]); empty means all
        excluded_dirs: Directories pruned from the walk
        symlink_policy: How symbolic links to files are handled
    """

    def __init__(
        self,
        root_dir: str,
        min_size: Optional[int] = None,
        max_size: Optional[int] = None,
        extensions: Optional[List[str]] = None,
        excluded_dirs: Optional[List[str]] = None,
        recursive: bool = True,
        include_hidden: bool = True,
        skip_empty: bool = False,
        symlink_policy: SymlinkPolicy = SymlinkPolicy.FOLLOW_ONCE,
    ):
        self.root_dir = to_file_path(root_dir)
        self.min_size = min_size
        self.max_size = max_size
        self.extensions = [ext.lower() for ext in extensions] if extensions else []
        self.excluded_dirs = [to_file_path(d) for d in excluded_dirs] if excluded_dirs else []
        self.recursive = recursive
        self.include_hidden = include_hidden
        self.skip_empty = skip_empty
        self.symlink_policy = symlink_policy

    @classmethod
    def from_params(cls, params: ScanParams) -> "FileWalkerImpl":
        return cls(
            root_dir=params.root_dir,
            min_size=params.min_size_bytes,
            max_size=params.max_size_bytes,
            extensions=params.extensions,
            excluded_dirs=params.excluded_dirs,
            recursive=params.recursive,
            include_hidden=params.include_hidden,
            skip_empty=params.skip_empty,
            symlink_policy=params.symlink_policy,
        )

    def validate_root(self) -> None:
        """Raises ScanError if the root is missing or not a directory."""
        if not os.path.exists(self.root_dir):
            error_msg = f"Directory does not exist: {self.root_dir}"
            logger.error(error_msg)
            raise ScanError(error_msg, path=self.root_dir)
        if not os.path.isdir(self.root_dir):
            error_msg = f"Not a directory: {self.root_dir}"
            logger.error(error_msg)
            raise ScanError(error_msg, path=self.root_dir)

    def walk(
        self,
        stopped_flag: Optional[Callable[[], bool]] = None,
        on_error: Optional[Callable[[ScanIssue], None]] = None,
    ) -> Iterator[FileRecord]:
        """
        Yields candidate files in discovery order.
        With FOLLOW_ONCE, symlinks are held back until the tree is exhausted and only
        emitted when no regular file (or earlier symlink) already reached the same target.
        """
        self.validate_root()
        logger.debug(f"Walking {self.root_dir} (recursive={self.recursive}, symlinks={self.symlink_policy.value})")
        logger.debug(f"Filters: min_size={self.min_size}, max_size={self.max_size}, extensions={self.extensions}")

        def report(path: str, error: OSError) -> None:
            issue = ScanIssue(path=str(path), kind=AccessError.__name__, message=error.strerror or str(error))
            logger.warning(f"Skipping unreadable entry: {issue}")
            if on_error:
                on_error(issue)

        seen: Dict[Tuple[int, int], FilePath] = {}
        deferred: List[FileRecord] = []

        for root, dirs, files in os.walk(self.root_dir, onerror=lambda e: report(e.filename, e)):
            if stopped_flag and stopped_flag():
                logger.debug("Walk interrupted by user")
                return

            if self.recursive:
                dirs[:] = sorted(d for d in dirs if self._prefilter_dir(os.path.join(root, d)))
            else:
                dirs[:] = []

            for filename in sorted(files):
                if stopped_flag and stopped_flag():
                    logger.debug("Walk interrupted by user")
                    return

                path = os.path.join(root, filename)
                if not self.include_hidden and filename.startswith('.'):
                    continue

                try:
                    record = self._process_file(path)
                except OSError as e:
                    report(path, e)
                    continue
                if record is None:
                    continue

                if record.is_symlink:
                    if self.symlink_policy == SymlinkPolicy.FOLLOW_ONCE:
                        deferred.append(record)
                        continue
                    yield record
                    continue

                identity = record.identity
                if identity is not None:
                    if identity in seen:
                        record.link_kind = LinkKind.HARDLINK
                        record.link_target = seen[identity]
                    else:
                        seen[identity] = record.path
                yield record

        for record in deferred:
            if stopped_flag and stopped_flag():
                return
            identity = record.identity
            if identity is not None and identity in seen:
                logger.debug(f"Skipping symlink to already counted file: {record.path}")
                continue
            if identity is not None:
                seen[identity] = record.path
            yield record

    @staticmethod
    def _is_system_trash(path: str) -> bool:
        """
        Check if path belongs to OS trash/recycle bin (cross-platform).
        Returns False on any error (fail-safe: better to scan than skip valid data).
        """
        try:
            path_str = os.path.realpath(path)

            if sys.platform == "win32":
                if "$Recycle.Bin" in path_str or "\\Recycler\\" in path_str:
                    return True
            elif sys.platform == "darwin":
                if "/.Trash/" in path_str or path_str.endswith("/.Trash"):
                    return True
            else:
                # Linux/BSD: freedesktop.org standard locations
                if ".local/share/Trash" in path_str or "/.trash/" in path_str:
                    return True

            return False
        except (OSError, ValueError):
            return False

    def _is_excluded_directory(self, path: str) -> bool:
        """Check if path is within an excluded directory."""
        normalized = to_file_path(path)
        for excluded_dir in self.excluded_dirs:
            if normalized == excluded_dir or normalized.startswith(excluded_dir + os.sep):
                return True
        return False

    def _prefilter_dir(self, path: str) -> bool:
        """Pre-filter directories before os.walk enters them."""
        name = os.path.basename(path)
        if not self.include_hidden and name.startswith('.'):
            return False

        if os.path.islink(path):
            logger.debug(f"Not following directory symlink: {path}")
            return False

        if FileWalkerImpl._is_system_trash(path):
            logger.debug(f"Skipping system trash directory: {path}")
            return False

        if self.excluded_dirs and self._is_excluded_directory(path):
            logger.debug(f"Skipping excluded directory: {path}")
            return False

        return True

    def _process_file(self, path: str) -> Optional[FileRecord]:
        """
        Stat an individual path and return a FileRecord if it passes all filters.
        Raises OSError for entries that cannot be stat'ed; the caller reports them.
        """
        lstat_result = os.lstat(path)
        link_kind = None
        link_target = None

        if stat.S_ISLNK(lstat_result.st_mode):
            if self.symlink_policy == SymlinkPolicy.SKIP:
                logger.debug(f"Skipping symbolic link: {path}")
                return None
            stat_result = os.stat(path)  # dangling links raise here
            link_kind = LinkKind.SYMLINK
            link_target = to_file_path(os.path.realpath(path))
        else:
            stat_result = lstat_result

        if not stat.S_ISREG(stat_result.st_mode):
            logger.debug(f"Skipping non-regular file: {path}")
            return None

        if not self.include_hidden and self._has_hidden_attribute(stat_result):
            return None

        size = stat_result.st_size
        if size == 0 and self.skip_empty:
            logger.debug(f"Skipping zero-byte file: {path}")
            return None

        if not self._size_passes(size):
            logger.debug(f"Skipping {path} (size {size} bytes outside range)")
            return None

        if not self._extension_passes(path):
            logger.debug(f"Skipping {path} (extension not allowed)")
            return None

        return FileRecord(
            path=to_file_path(path),
            size=size,
            mtime_ns=stat_result.st_mtime_ns,
            device=stat_result.st_dev,
            inode=stat_result.st_ino,
            link_kind=link_kind,
            link_target=link_target,
        )

    @staticmethod
    def _has_hidden_attribute(stat_result: os.stat_result) -> bool:
        """Windows hidden attribute; always False elsewhere."""
        attributes = getattr(stat_result, "st_file_attributes", 0)
        return bool(attributes & stat.FILE_ATTRIBUTE_HIDDEN)

    def _size_passes(self, size: int) -> bool:
        """Check if file size is within configured (inclusive) limits."""
        if self.min_size is not None and size < self.min_size:
            return False
        if self.max_size is not None and size > self.max_size:
            return False
        return True

    def _extension_passes(self, path: str) -> bool:
        """Check if file matches any of the allowed extensions."""
        if not self.extensions:
            return True
        ext = os.path.splitext(path)[1].lower()
        return ext in self.extensions
