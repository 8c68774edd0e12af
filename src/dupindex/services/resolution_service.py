"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

services/resolution_service.py
Executes user-chosen actions (move, link, delete) on one member of a duplicate group,
then updates the index in place.

SAFETY RULES
------------
• An action only applies to a current member of the named digest's bucket
• The bucket is locked for the whole action; a concurrent rescan of that digest waits
• Delete never removes the last independent copy, nor a file other members symlink to,
  unless group deletion is explicitly enabled
• A failed filesystem mutation leaves the index untouched; a failed index update after a
  successful mutation is logged, the paths are flagged stale and InvariantViolation is raised
"""
import logging
import os
from contextlib import ExitStack, contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from dupindex.core.errors import (
    ConflictError, CrossVolumeError, DupIndexError, InvariantViolation, IoError, MemberNotFound,
)
from dupindex.core.index import DuplicateIndex
from dupindex.core.interfaces import Hasher
from dupindex.core.models import (
    ActionKind, Digest, EngineConfig, FilePath, FileRecord, LinkKind, ResolutionResult, to_file_path,
)
from dupindex.services.file_service import FileService

logger = logging.getLogger(__name__)


class ResolutionService:
    """
    Resolution engine bound to one index.
    Action methods raise engine errors; resolve() converts them into failed results.
    """

    def __init__(self, index: DuplicateIndex, hasher: Hasher, config: Optional[EngineConfig] = None):
        self.index = index
        self.hasher = hasher
        self.config = config or EngineConfig()

    # =============================
    # Boundary
    # =============================
    def resolve(
        self,
        digest: Union[Digest, str],
        path: str,
        action: Union[ActionKind, str],
        params: Optional[Dict[str, Any]] = None,
    ) -> ResolutionResult:
        """
        Applies one action and reports success or failure with a reason.
        Never raises for engine errors or bad parameters.
        """
        digest_text = str(digest)
        try:
            action = ActionKind(action) if not isinstance(action, ActionKind) else action
        except ValueError:
            return ResolutionResult(
                success=False, action=None, digest=digest_text, path=str(path),
                error_kind=ValueError.__name__, reason=f"Unknown action: {action!r}",
            )

        try:
            if not isinstance(digest, Digest):
                digest = Digest.from_hex(digest, algorithm=self.config.algorithm)
            return self.apply(digest, to_file_path(_path_param(path, "path")), action, params or {})
        except (DupIndexError, ValueError) as e:
            kind = e.kind if isinstance(e, DupIndexError) else type(e).__name__
            logger.warning(f"{action.display_name} failed for {path}: {kind}: {e}")
            return ResolutionResult(
                success=False, action=action, digest=digest_text, path=str(path),
                error_kind=kind, reason=str(e),
            )

    def apply(self, digest: Digest, path: FilePath, action: ActionKind, params: Dict[str, Any]) -> ResolutionResult:
        """Dispatches to move/link/delete. Raises on failure."""
        if action == ActionKind.MOVE:
            destination = params.get("destination")
            if not destination:
                raise ValueError("Move requires a 'destination' parameter")
            return self.move(digest, path, _path_param(destination, "destination"))

        if action == ActionKind.LINK:
            link_kind = params.get("link_kind", LinkKind.HARDLINK)
            if not isinstance(link_kind, LinkKind):
                link_kind = LinkKind(link_kind)
            target = params.get("target")
            target = _path_param(target, "target") if target else self._default_link_target(digest, path)
            return self.link(digest, path, target, link_kind=link_kind)

        if action == ActionKind.DELETE:
            return self.delete(digest, path, allow_last_copy=bool(params.get("allow_last_copy", False)))

        raise ValueError(f"Unsupported action: {action!r}")

    # =============================
    # Actions
    # =============================
    def move(self, digest: Digest, path: str, destination: str) -> ResolutionResult:
        """
        Relocates one member. Same volume: rename, digest carried over.
        Across volumes: copy, verify the copy's digest, then remove the source.
        """
        path = to_file_path(path)
        with self._member(digest, path, ActionKind.MOVE) as record:
            self._refuse_if_symlinked(digest, path, ActionKind.MOVE)
            final = to_file_path(FileService.resolve_destination(path, to_file_path(destination)))
            if final in self.index:
                raise ConflictError(f"Destination is already indexed: {final}", path=final,
                                    digest=digest.hex, action=ActionKind.MOVE.value)

            if record.is_symlink:
                FileService.create_symlink(record.link_target or os.path.realpath(path), final)
                FileService.delete_permanently(path)
            elif FileService.same_volume(path, final):
                FileService.rename(path, final)
            else:
                self._copy_across_volumes(digest, path, final)

            logger.info(f"Moved {path} -> {final}")

            def update():
                self.index.remove(path)
                st = os.stat(final)
                self.index.insert(FileRecord(
                    path=final,
                    size=record.size,
                    digest=digest,
                    mtime_ns=st.st_mtime_ns,
                    device=st.st_dev,
                    inode=st.st_ino,
                    link_kind=record.link_kind,
                    link_target=record.link_target,
                ))

            self._commit(ActionKind.MOVE, digest, [path, final], update)
            return ResolutionResult(
                success=True, action=ActionKind.MOVE, digest=digest.hex, path=path, new_path=final,
            )

    def link(
        self,
        digest: Digest,
        path: str,
        target: str,
        link_kind: LinkKind = LinkKind.HARDLINK,
    ) -> ResolutionResult:
        """
        Replaces path's content with a link to target, another member of the same group.
        Hard links across filesystems raise CrossVolumeError unless symlink fallback is enabled.
        """
        path, target = to_file_path(path), to_file_path(target)
        with self._member(digest, path, ActionKind.LINK) as record:
            if target == path:
                raise InvariantViolation(f"Cannot link a file to itself: {path}", path=path,
                                         digest=digest.hex, action=ActionKind.LINK.value)
            target_record = self.index.get(target)
            if target_record is None or target_record.digest != digest:
                raise MemberNotFound(f"Link target is not in the same group: {target}", path=target,
                                     digest=digest.hex, action=ActionKind.LINK.value)
            if target_record.is_symlink:
                raise InvariantViolation(f"Link target is itself a symlink: {target}", path=target,
                                         digest=digest.hex, action=ActionKind.LINK.value)

            if link_kind == LinkKind.HARDLINK and self._same_inode(path, target):
                logger.info(f"{path} is already a hard link to {target}")
                return ResolutionResult(success=True, action=ActionKind.LINK, digest=digest.hex,
                                        path=path, new_path=path)

            freed = FileService.reclaimable_bytes(path)
            if link_kind == LinkKind.HARDLINK:
                try:
                    FileService.replace_with_hardlink(path, target)
                except CrossVolumeError:
                    if not self.config.allow_symlink_fallback:
                        raise
                    logger.warning(f"Hard link impossible across volumes, using a symlink: {path} -> {target}")
                    link_kind = LinkKind.SYMLINK
                    FileService.replace_with_symlink(path, target)
            else:
                FileService.replace_with_symlink(path, target)

            logger.info(f"Replaced {path} with a {link_kind.value} to {target} ({freed} bytes freed)")
            self._commit(ActionKind.LINK, digest, [path],
                         lambda: self.index.tag_link(path, link_kind, target))
            return ResolutionResult(
                success=True, action=ActionKind.LINK, digest=digest.hex, path=path,
                new_path=path, freed_bytes=freed,
            )

    def delete(self, digest: Digest, path: str, allow_last_copy: bool = False) -> ResolutionResult:
        """
        Removes one member from disk (to the OS trash by default).
        Refuses to remove the last independent copy of the content.
        """
        path = to_file_path(path)
        if allow_last_copy and not self.config.allow_group_delete:
            raise InvariantViolation("Deleting the last copy of a group is disabled", path=path,
                                     digest=digest.hex, action=ActionKind.DELETE.value)

        with self._member(digest, path, ActionKind.DELETE) as record:
            if not allow_last_copy:
                members = self.index.bucket(digest)
                survivors = [r for r in members if r.path != path and not r.is_symlink]
                if len(members) < 2 or (not record.is_symlink and not survivors):
                    raise InvariantViolation(
                        f"Refusing to delete the last remaining copy: {path}",
                        path=path, digest=digest.hex, action=ActionKind.DELETE.value,
                    )
                self._refuse_if_symlinked(digest, path, ActionKind.DELETE)

            freed = FileService.reclaimable_bytes(path)
            if self.config.use_trash:
                FileService.move_to_trash(path)
            else:
                FileService.delete_permanently(path)
            logger.info(f"Deleted {path} ({freed} bytes freed)")

            self._commit(ActionKind.DELETE, digest, [path], lambda: self.index.remove(path))
            return ResolutionResult(
                success=True, action=ActionKind.DELETE, digest=digest.hex, path=path, freed_bytes=freed,
            )

    def delete_group(self, digest: Digest) -> List[ResolutionResult]:
        """
        Deletes every member of a group, symlinks first.
        Only available when the engine is configured with allow_group_delete.
        """
        if not self.config.allow_group_delete:
            raise InvariantViolation("Group deletion is disabled", digest=digest.hex,
                                     action=ActionKind.DELETE.value)
        with ExitStack() as stack:
            try:
                stack.enter_context(self.index.bucket_guard(digest))
            except KeyError:
                raise MemberNotFound(f"Unknown digest: {digest.hex}", digest=digest.hex,
                                     action=ActionKind.DELETE.value) from None
            members = sorted(self.index.bucket(digest), key=lambda r: not r.is_symlink)
            return [self.delete(digest, r.path, allow_last_copy=True) for r in members]

    # =============================
    # Batches
    # =============================
    def keep_one(self, digest: Digest, action: ActionKind, **params) -> List[ResolutionResult]:
        """
        Applies action to every member except the first one (the presumptive original).
        Failures are reported per member; the batch carries on.
        """
        members = self.index.bucket(digest)
        if len(members) < 2:
            return []
        primary = next((r for r in members if not r.is_symlink), members[0])

        results = []
        for record in members:
            if record.path == primary.path:
                continue
            member_params = dict(params)
            if action == ActionKind.LINK:
                member_params.setdefault("target", primary.path)
            elif action == ActionKind.MOVE:
                dest_dir = params.get("dest_dir")
                if not dest_dir:
                    raise ValueError("Moving duplicates requires a 'dest_dir' parameter")
                member_params["destination"] = FileService.unique_destination(dest_dir, record.name)
            results.append(self.resolve(digest, record.path, action, member_params))
        return results

    def move_duplicates(self, dest_dir: str) -> List[ResolutionResult]:
        """Moves every non-primary member of every group into dest_dir."""
        os.makedirs(dest_dir, exist_ok=True)
        results = []
        for group in self.index.groups():
            results.extend(self.keep_one(group.digest, ActionKind.MOVE, dest_dir=dest_dir))
        return results

    # =============================
    # Helpers
    # =============================
    @contextmanager
    def _member(self, digest: Digest, path: FilePath, action: ActionKind) -> Iterator[FileRecord]:
        """Locks the digest's bucket and yields path's record, or raises MemberNotFound."""
        with ExitStack() as stack:
            try:
                stack.enter_context(self.index.bucket_guard(digest))
            except KeyError:
                raise MemberNotFound(f"Unknown digest: {digest.hex}", path=path,
                                     digest=digest.hex, action=action.value) from None
            record = self.index.get(path)
            if record is None or record.digest != digest:
                raise MemberNotFound(f"Not a member of group {digest.short()}: {path}", path=path,
                                     digest=digest.hex, action=action.value)
            yield record

    def _commit(self, action: ActionKind, digest: Digest, paths: List[FilePath], update: Callable[[], Any]) -> None:
        """Runs the index update for an action whose filesystem mutation already succeeded."""
        try:
            update()
        except Exception as e:
            logger.exception(f"Index update failed after {action.value}; flagging {paths} stale")
            for path in paths:
                self.index.mark_stale(path)
            raise InvariantViolation(
                f"Index out of sync after {action.value} of {paths[0]}; rescan required",
                path=paths[0], digest=digest.hex, action=action.value,
            ) from e

    def _refuse_if_symlinked(self, digest: Digest, path: FilePath, action: ActionKind) -> None:
        """Other members that are symlinks to path would dangle."""
        real = os.path.realpath(path)
        dependents = [
            r.path for r in self.index.bucket(digest)
            if r.is_symlink and r.path != path and r.link_target
            and os.path.realpath(r.link_target) == real
        ]
        if dependents:
            raise InvariantViolation(
                f"{len(dependents)} symlink(s) in the group still point at {path}",
                path=path, digest=digest.hex, action=action.value,
            )

    def _copy_across_volumes(self, digest: Digest, path: FilePath, final: FilePath) -> None:
        FileService.copy(path, final)
        if self.config.verify_cross_volume_moves:
            try:
                copied = self.hasher.hash(final)
            except IoError:
                FileService.discard(final)
                raise
            if copied != digest:
                FileService.discard(final)
                raise IoError(f"Copy verification failed, source kept: {path}", path=path,
                              digest=digest.hex, action=ActionKind.MOVE.value)
        try:
            FileService.delete_permanently(path)
        except IoError:
            FileService.discard(final)
            raise

    def _default_link_target(self, digest: Digest, path: FilePath) -> FilePath:
        """First independent member other than path."""
        for record in self.index.bucket(digest):
            if record.path != path and not record.is_symlink:
                return record.path
        raise InvariantViolation(f"No other copy to link {path} to", path=path,
                                 digest=digest.hex, action=ActionKind.LINK.value)

    @staticmethod
    def _same_inode(path: str, target: str) -> bool:
        try:
            return FileService.identity(path) == FileService.identity(target)
        except OSError:
            return False


def _path_param(value: Any, name: str) -> str:
    """Path-valued action parameter as str; anything else is a bad parameter."""
    if isinstance(value, os.PathLike):
        value = os.fspath(value)
    if not isinstance(value, str):
        raise ValueError(f"'{name}' must be a path, got {type(value).__name__}")
    return value
