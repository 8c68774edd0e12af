"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

services/file_service.py
Filesystem primitives behind the resolution actions: trash/delete, move, hard and
symbolic link replacement. Every failure surfaces as an engine error (IoError,
ConflictError, CrossVolumeError) carrying the path involved.
"""
import errno
import logging
import os
import shutil
import uuid
from typing import Optional, Tuple

from send2trash import send2trash

from dupindex.core.errors import ConflictError, CrossVolumeError, IoError

logger = logging.getLogger(__name__)


class FileService:
    """
    Cross-platform file operations used by the resolution engine.
    Stateless; every method is a static helper.
    """

    @staticmethod
    def move_to_trash(file_path: str):
        """Moves a file to the system trash."""
        if not os.path.lexists(file_path):
            raise IoError(f"File not found: {file_path}", path=file_path)

        try:
            send2trash(file_path)
        except Exception as e:
            raise IoError(f"Failed to move to trash: {e}", path=file_path) from e

    @staticmethod
    def delete_permanently(file_path: str):
        """Unlinks a file (or a symlink, never its target)."""
        try:
            os.unlink(file_path)
        except FileNotFoundError as e:
            raise IoError(f"File not found: {file_path}", path=file_path) from e
        except OSError as e:
            raise IoError(f"Failed to delete: {e.strerror or e}", path=file_path) from e

    @staticmethod
    def resolve_destination(source: str, destination: str) -> str:
        """
        An existing directory means "into that directory under the same name".
        Raises ConflictError if the final destination already exists.
        """
        if os.path.isdir(destination) and not os.path.islink(destination):
            destination = os.path.join(destination, os.path.basename(source))
        if os.path.lexists(destination):
            raise ConflictError(f"Destination already exists: {destination}", path=destination)
        return destination

    @staticmethod
    def unique_destination(dest_dir: str, name: str) -> str:
        """Returns dest_dir/name, or dest_dir/name_N.ext if that is taken."""
        base, ext = os.path.splitext(name)
        candidate = os.path.join(dest_dir, name)
        counter = 1
        while os.path.lexists(candidate):
            candidate = os.path.join(dest_dir, f"{base}_{counter}{ext}")
            counter += 1
        return candidate

    @staticmethod
    def same_volume(path: str, other: str) -> bool:
        """
        True when both paths live on one filesystem.
        `other` may not exist yet; its closest existing ancestor is used.
        """
        existing = other
        while not os.path.exists(existing):
            parent = os.path.dirname(existing)
            if parent == existing:
                break
            existing = parent
        try:
            return os.stat(path).st_dev == os.stat(existing).st_dev
        except OSError as e:
            raise IoError(f"Cannot stat {path}: {e.strerror or e}", path=path) from e

    @staticmethod
    def rename(source: str, destination: str) -> None:
        """Same-volume move. Parent directories are created as needed."""
        try:
            os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
            os.rename(source, destination)
        except OSError as e:
            if e.errno == errno.EXDEV:
                raise CrossVolumeError(f"Rename across filesystems: {source} -> {destination}", path=source) from e
            raise IoError(f"Failed to move {source}: {e.strerror or e}", path=source) from e

    @staticmethod
    def copy(source: str, destination: str) -> None:
        """Copy with metadata, used for moves across volumes."""
        try:
            os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
            shutil.copy2(source, destination)
        except OSError as e:
            FileService.discard(destination)
            raise IoError(f"Failed to copy {source}: {e.strerror or e}", path=source) from e

    @staticmethod
    def discard(path: str) -> None:
        """Best-effort removal of a temporary or half-written file."""
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove leftover file {path}: {e}")

    @staticmethod
    def replace_with_hardlink(path: str, target: str) -> None:
        """
        Replaces path with a hard link to target.
        The link is created under a temporary sibling name and renamed over path,
        so path always refers to complete content.
        """
        try:
            if os.stat(path).st_dev != os.stat(target).st_dev:
                raise CrossVolumeError(
                    f"Cannot hard link across filesystems: {path} -> {target}", path=path
                )
        except OSError as e:
            raise IoError(f"Cannot stat link endpoints: {e.strerror or e}", path=path) from e

        temp_path = FileService._temp_sibling(path)
        try:
            os.link(target, temp_path)
            os.replace(temp_path, path)
        except OSError as e:
            FileService.discard(temp_path)
            if e.errno == errno.EXDEV:
                raise CrossVolumeError(f"Cannot hard link across filesystems: {path} -> {target}", path=path) from e
            raise IoError(f"Failed to hard link {path}: {e.strerror or e}", path=path) from e

    @staticmethod
    def replace_with_symlink(path: str, target: str) -> None:
        """Replaces path with an absolute symbolic link to target."""
        temp_path = FileService._temp_sibling(path)
        try:
            os.symlink(os.path.abspath(target), temp_path)
            os.replace(temp_path, path)
        except OSError as e:
            FileService.discard(temp_path)
            raise IoError(f"Failed to symlink {path}: {e.strerror or e}", path=path) from e

    @staticmethod
    def create_symlink(target: str, path: str) -> None:
        """Creates a new absolute symlink at path (used when moving a symlink member)."""
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            os.symlink(os.path.abspath(target), path)
        except OSError as e:
            raise IoError(f"Failed to create symlink {path}: {e.strerror or e}", path=path) from e

    @staticmethod
    def reclaimable_bytes(path: str) -> int:
        """
        Disk space released if path's directory entry goes away.
        Zero for files with other hard links or for symlinks.
        """
        try:
            st = os.lstat(path)
        except OSError:
            return 0
        if os.path.islink(path) or st.st_nlink > 1:
            return 0
        return FileService.allocated_bytes(st)

    @staticmethod
    def allocated_bytes(st: os.stat_result) -> int:
        """Allocated size where the platform reports blocks, apparent size otherwise."""
        blocks: Optional[int] = getattr(st, "st_blocks", None)
        if blocks is None:
            return st.st_size
        return blocks * 512

    @staticmethod
    def identity(path: str) -> Tuple[int, int]:
        st = os.stat(path)
        return st.st_dev, st.st_ino

    @staticmethod
    def _temp_sibling(path: str) -> str:
        directory, name = os.path.split(path)
        return os.path.join(directory, f".{name}.{uuid.uuid4().hex[:8]}.dupindex-tmp")
