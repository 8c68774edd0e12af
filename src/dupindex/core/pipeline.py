"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

core/pipeline.py
Producer/consumer scan pipeline: walker -> worker pool of hashers -> duplicate index.

STAGES
------
walk  : the walker runs on the calling thread and streams records into the pool
hash  : one task per file on a bounded ThreadPoolExecutor; results go straight into the index
group : a snapshot of the index once every task has finished

CONTRACTS
---------
• At most `workers * 4` files are in flight; the file list is never materialized
• Per-file failures become ScanIssues, the scan carries on
• Cancellation (stopped_flag or timeout) abandons in-flight reads; nothing partial is inserted
• Incremental mode reuses digests of unchanged files and drops paths no longer observed
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Set

from dupindex.core.errors import DupIndexError, IoError, OperationCancelled
from dupindex.core.index import DuplicateIndex
from dupindex.core.interfaces import FileWalker, Hasher
from dupindex.core.models import (
    DEFAULT_WORKERS, FilePath, FileRecord, ScanIssue, ScanReport, ScanStats, Stage,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, Optional[int]], None]


class _ScanRun:
    """Counters and issues of one run; each run() call gets its own."""

    def __init__(self):
        self.lock = threading.Lock()
        self.issues: List[ScanIssue] = []
        self.failures: List[BaseException] = []
        self.hashed = 0
        self.hashed_bytes = 0
        self.discovered = 0

    def add_issue(self, issue: ScanIssue) -> None:
        with self.lock:
            self.issues.append(issue)


class ScanPipeline:
    """
    Runs one scan into an existing DuplicateIndex.
    The index is owned by the caller; the pipeline never clears it.
    """
    PROGRESS_INTERVAL = 100  # files between progress updates

    def __init__(self, index: DuplicateIndex, hasher: Hasher, workers: int = DEFAULT_WORKERS):
        if workers < 1:
            raise ValueError("At least one worker is required")
        self.index = index
        self.hasher = hasher
        self.workers = workers

    def run(
        self,
        walker: FileWalker,
        stopped_flag: Optional[Callable[[], bool]] = None,
        progress_callback: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
        incremental: bool = False,
    ) -> ScanReport:
        """
        Walks, hashes and indexes every candidate file, then snapshots the groups.
        Raises ScanError if the walker's root is invalid; anything unexpected raised
        inside a worker is re-raised here once the pool has drained.
        """
        scan = _ScanRun()
        stats = ScanStats()
        total_start_time = time.time()
        deadline = time.monotonic() + timeout if timeout else None
        state = {"cancelled": False, "timed_out": False}

        def should_stop() -> bool:
            if state["cancelled"]:
                return True
            if stopped_flag and stopped_flag():
                state["cancelled"] = True
            elif deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"Scan timed out after {timeout}s")
                state["cancelled"] = state["timed_out"] = True
            return state["cancelled"]

        walker.validate_root()

        observed: Set[FilePath] = set()
        reused = 0
        slots = threading.BoundedSemaphore(self.workers * 4)
        executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="dupindex-hash")
        walk_start = time.time()

        try:
            for record in walker.walk(stopped_flag=should_stop, on_error=scan.add_issue):
                observed.add(record.path)
                record.sequence = self.index.reserve_sequence(record.path)
                with scan.lock:
                    scan.discovered += 1
                    discovered = scan.discovered

                if incremental and self._reuse_digest(record):
                    reused += 1
                else:
                    if not self._acquire_slot(slots, should_stop):
                        break
                    future = executor.submit(self._hash_and_insert, scan, record, should_stop, progress_callback)
                    future.add_done_callback(lambda f: self._task_done(scan, f, slots))

                if progress_callback and discovered % self.PROGRESS_INTERVAL == 0:
                    progress_callback("walking", discovered, None)
        finally:
            executor.shutdown(wait=True, cancel_futures=should_stop())

        walk_duration = time.time() - walk_start
        should_stop()
        cancelled = state["cancelled"]

        if scan.failures:
            raise scan.failures[0]

        if incremental and not cancelled:
            self._drop_unobserved(observed)

        access_errors = sum(1 for i in scan.issues if i.kind != IoError.__name__)
        stats.update_stage(Stage.WALK.value, scan.discovered, walk_duration, errors=access_errors)
        stats.update_stage(
            Stage.HASH.value, scan.hashed, walk_duration,
            bytes_processed=scan.hashed_bytes,
            errors=len(scan.issues) - access_errors,
        )

        group_start = time.time()
        groups = self.index.groups()
        stats.update_stage(Stage.GROUP.value, len(groups), time.time() - group_start)
        stats.total_time = time.time() - total_start_time

        if progress_callback:
            progress_callback("hashing", scan.hashed, scan.discovered)

        logger.info(
            f"Scan finished: {scan.discovered} files, {scan.hashed} hashed, {reused} reused, "
            f"{len(groups)} duplicate groups, {len(scan.issues)} issues"
            + (" (cancelled)" if cancelled else "")
        )
        return ScanReport(
            groups=groups,
            issues=list(scan.issues),
            stats=stats,
            cancelled=cancelled,
            timed_out=state["timed_out"],
        )

    def _hash_and_insert(
        self,
        scan: _ScanRun,
        record: FileRecord,
        should_stop: Callable[[], bool],
        progress_callback: Optional[ProgressCallback],
    ) -> None:
        if should_stop():
            return
        try:
            record.digest = self.hasher.hash(record.path, stopped_flag=should_stop)
        except OperationCancelled:
            return
        except IoError as e:
            scan.add_issue(ScanIssue(path=str(record.path), kind=e.kind, message=e.message))
            self._forget(record.path)
            return

        record.stale = False
        self.index.insert(record)

        with scan.lock:
            scan.hashed += 1
            scan.hashed_bytes += record.size
            hashed, discovered = scan.hashed, scan.discovered
        if progress_callback and hashed % self.PROGRESS_INTERVAL == 0:
            progress_callback("hashing", hashed, discovered)

    def _forget(self, path: FilePath) -> None:
        """An unhashable file must not keep an earlier digest in the index."""
        try:
            self.index.remove(path)
            logger.debug(f"Dropped unreadable file from index: {path}")
        except KeyError:
            pass

    def _reuse_digest(self, record: FileRecord) -> bool:
        """Incremental rescans keep the digest of files whose size and mtime did not change."""
        existing = self.index.get(record.path)
        if existing is None or existing.digest is None:
            return False
        if existing.stale or self.index.is_stale(record.path):
            return False
        if existing.size != record.size or existing.mtime_ns != record.mtime_ns:
            return False
        record.digest = existing.digest
        if record.link_kind is None:
            record.link_kind, record.link_target = existing.link_kind, existing.link_target
        self.index.insert(record)
        return True

    def _drop_unobserved(self, observed: Set[FilePath]) -> None:
        for path in self.index.paths():
            if path in observed:
                continue
            try:
                self.index.remove(path)
                logger.debug(f"Dropped vanished file from index: {path}")
            except KeyError:
                logger.debug(f"Already removed from index: {path}")

    @staticmethod
    def _acquire_slot(slots: threading.BoundedSemaphore, should_stop: Callable[[], bool]) -> bool:
        """Blocks the producer while the pool is saturated; gives up on cancellation."""
        while not slots.acquire(timeout=0.1):
            if should_stop():
                return False
        return True

    @staticmethod
    def _task_done(scan: _ScanRun, future: Future, slots: threading.BoundedSemaphore) -> None:
        slots.release()
        if future.cancelled():
            return
        error = future.exception()
        if error is None:
            return
        if isinstance(error, DupIndexError):
            scan.add_issue(ScanIssue(path=str(error.path or ""), kind=error.kind, message=error.message))
        else:
            logger.error(f"Unexpected error in hash worker: {error!r}")
            with scan.lock:
                scan.failures.append(error)
