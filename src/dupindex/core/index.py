"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/index.py
The duplicate index: digest -> ordered bucket of FileRecords.

LOCKING
-------
Each bucket owns a re-entrant lock; inserts, removals and resolution actions on one
digest serialize on that lock only. A short structural lock guards the bucket map,
the path -> digest map and the sequence counter, and is only ever taken while no
other structural work is pending (bucket locks first, structural lock second).
A path that changes digest takes both bucket locks in sorted digest order.

ORDERING
--------
Every record carries a discovery sequence reserved when the walker finds the path.
Members are ordered by sequence and buckets by the smallest sequence they have held,
so numbering depends on discovery order, never on hash completion order.
"""

import dataclasses
import logging
import threading
from contextlib import ExitStack, contextmanager
from typing import Dict, Iterator, List, Optional, Set, Tuple

from dupindex.core.models import Digest, DuplicateGroup, FilePath, FileRecord, LinkKind

logger = logging.getLogger(__name__)


class _Bucket:
    """Records sharing one digest. Guarded by its own lock."""
    __slots__ = ("digest", "lock", "records", "first_seen", "retired")

    def __init__(self, digest: Digest):
        self.digest = digest
        self.lock = threading.RLock()
        self.records: Dict[FilePath, FileRecord] = {}
        self.first_seen: Optional[int] = None
        self.retired = False  # removed from the index map; inserters must retry

    def ordered(self) -> List[FileRecord]:
        return sorted(self.records.values(), key=lambda r: r.sequence)

    def __repr__(self):
        return f"<_Bucket {self.digest!r} size={len(self.records)}>"


class DuplicateIndex:
    """
    Single source of truth for one scan root.
    Every digest key maps to at least one record; a digest is a duplicate group
    exactly when its bucket holds two or more records.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._buckets: Dict[Digest, _Bucket] = {}
        self._paths: Dict[FilePath, Digest] = {}
        self._sequences: Dict[FilePath, int] = {}
        self._stale: Set[FilePath] = set()
        self._next_sequence = 0

    # =============================
    # Sequences
    # =============================
    def reserve_sequence(self, path: FilePath) -> int:
        """
        Returns the discovery ordinal for path, allocating a new one for unknown paths.
        Known paths keep their ordinal across rescans.
        """
        with self._lock:
            sequence = self._sequences.get(path)
            if sequence is None:
                sequence = self._next_sequence
                self._next_sequence += 1
                self._sequences[path] = sequence
            return sequence

    # =============================
    # Mutations
    # =============================
    def insert(self, record: FileRecord) -> None:
        """
        Inserts or replaces the record for record.path.
        Same digest: replaced in place, position kept.
        New digest: moved to the new bucket; the old bucket collapses.
        """
        if record.digest is None:
            raise ValueError(f"Cannot index {record.path} before it is hashed")
        if record.sequence < 0:
            record.sequence = self.reserve_sequence(record.path)

        path, digest = record.path, record.digest
        while True:
            with self._lock:
                old_digest = self._paths.get(path)
                new_bucket = self._buckets.get(digest)
                if new_bucket is None:
                    new_bucket = self._buckets[digest] = _Bucket(digest)
                old_bucket = None
                if old_digest is not None and old_digest != digest:
                    old_bucket = self._buckets.get(old_digest)

            buckets = sorted(filter(None, (new_bucket, old_bucket)), key=lambda b: b.digest)
            with ExitStack() as stack:
                for bucket in buckets:
                    stack.enter_context(bucket.lock)

                with self._lock:
                    if any(b.retired for b in buckets) or self._paths.get(path) != old_digest:
                        continue  # lost a race with another writer, start over
                    self._paths[path] = digest
                    self._sequences.setdefault(path, record.sequence)
                    self._stale.discard(path)

                if old_bucket is not None:
                    old_bucket.records.pop(path, None)
                    self._collapse(old_bucket)

                previous = new_bucket.records.get(path)
                if previous is not None:
                    record.sequence = previous.sequence
                new_bucket.records[path] = record
                if new_bucket.first_seen is None or record.sequence < new_bucket.first_seen:
                    new_bucket.first_seen = record.sequence
                return

    def remove(self, path: FilePath) -> FileRecord:
        """
        Deletes path's record and collapses its bucket.
        Raises KeyError if the path is not indexed.
        """
        while True:
            bucket = self._bucket_for_path(path)
            if bucket is None:
                raise KeyError(path)
            with bucket.lock:
                with self._lock:
                    if bucket.retired or self._paths.get(path) != bucket.digest:
                        continue
                    del self._paths[path]
                    self._sequences.pop(path, None)
                record = bucket.records.pop(path)
                self._collapse(bucket)
                return dataclasses.replace(record)

    def tag_link(self, path: FilePath, link_kind: LinkKind, target: FilePath) -> None:
        """Marks path as a link to target; digest and position are unchanged."""
        self._update(path, link_kind=link_kind, link_target=target)

    def mark_stale(self, path: FilePath) -> None:
        """Flags path so the next rescan rehashes it, whether or not it is indexed."""
        with self._lock:
            self._stale.add(path)
        try:
            self._update(path, stale=True)
        except KeyError:
            pass  # not indexed; the stale set alone drives the rescan

    def is_stale(self, path: FilePath) -> bool:
        with self._lock:
            return path in self._stale

    def clear(self) -> None:
        with self._lock:
            for bucket in self._buckets.values():
                bucket.retired = True
            self._buckets.clear()
            self._paths.clear()
            self._sequences.clear()
            self._stale.clear()

    def _update(self, path: FilePath, **changes) -> None:
        while True:
            bucket = self._bucket_for_path(path)
            if bucket is None:
                raise KeyError(path)
            with bucket.lock:
                if bucket.retired or path not in bucket.records:
                    continue
                for name, value in changes.items():
                    setattr(bucket.records[path], name, value)
                return

    def _collapse(self, bucket: _Bucket) -> None:
        """Caller holds bucket.lock. Empty buckets leave the map; singletons stay as non-groups."""
        if bucket.records:
            return
        with self._lock:
            if self._buckets.get(bucket.digest) is bucket:
                del self._buckets[bucket.digest]
            bucket.retired = True
        logger.debug(f"Bucket {bucket.digest!r} emptied and removed")

    def _bucket_for_path(self, path: FilePath) -> Optional[_Bucket]:
        with self._lock:
            digest = self._paths.get(path)
            return self._buckets.get(digest) if digest is not None else None

    # =============================
    # Exclusion for resolution actions
    # =============================
    @contextmanager
    def bucket_guard(self, digest: Digest) -> Iterator[None]:
        """
        Holds the bucket's lock for the duration of the block.
        Inserts from a concurrent rescan into the same bucket wait; other digests proceed.
        Raises KeyError if the digest is not indexed.
        """
        while True:
            with self._lock:
                bucket = self._buckets.get(digest)
            if bucket is None:
                raise KeyError(digest)
            bucket.lock.acquire()
            if bucket.retired:
                bucket.lock.release()
                continue
            try:
                yield
            finally:
                bucket.lock.release()
            return

    # =============================
    # Queries
    # =============================
    def get(self, path: FilePath) -> Optional[FileRecord]:
        """Copy of path's record, or None."""
        while True:
            bucket = self._bucket_for_path(path)
            if bucket is None:
                return None
            with bucket.lock:
                if bucket.retired:
                    continue
                record = bucket.records.get(path)
                return dataclasses.replace(record) if record is not None else None

    def bucket(self, digest: Digest) -> List[FileRecord]:
        """Copies of the records sharing digest, in member order. Empty if unknown."""
        with self._lock:
            bucket = self._buckets.get(digest)
        if bucket is None:
            return []
        with bucket.lock:
            return [dataclasses.replace(r) for r in bucket.ordered()]

    def bucket_views(self) -> List[Tuple[int, Digest, List[FileRecord]]]:
        """(first_seen, digest, ordered record copies) for every bucket; each bucket read atomically."""
        with self._lock:
            buckets = list(self._buckets.values())
        views = []
        for bucket in buckets:
            with bucket.lock:
                if bucket.retired or not bucket.records:
                    continue
                views.append((bucket.first_seen, bucket.digest, [dataclasses.replace(r) for r in bucket.ordered()]))
        return views

    def records(self) -> List[FileRecord]:
        """Every indexed record, in discovery order."""
        result = [r for _, _, records in self.bucket_views() for r in records]
        return sorted(result, key=lambda r: r.sequence)

    def groups(self) -> List[DuplicateGroup]:
        """Current duplicate groups, numbered deterministically."""
        from dupindex.core.grouper import snapshot
        return snapshot(self)

    def paths(self) -> List[FilePath]:
        with self._lock:
            return list(self._paths)

    def digests(self) -> List[Digest]:
        with self._lock:
            return list(self._buckets)

    def stale_paths(self) -> List[FilePath]:
        with self._lock:
            return sorted(self._stale)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def __repr__(self):
        return f"<DuplicateIndex files={len(self)}, digests={len(self.digests())}>"
