"""
Tests for ScanPipeline: walker -> worker pool -> index.
Covers error accumulation, cancellation, timeout and incremental rescans.
"""
import os
import threading
import time
from unittest import mock

import pytest

from dupindex.core.errors import IoError, ScanError
from dupindex.core.hasher import HasherImpl
from dupindex.core.index import DuplicateIndex
from dupindex.core.models import Stage, to_file_path
from dupindex.core.pipeline import ScanPipeline
from dupindex.core.walker import FileWalkerImpl


def make_pipeline(workers=2, hasher=None):
    index = DuplicateIndex()
    return index, ScanPipeline(index, hasher or HasherImpl(), workers=workers)


class SlowHasher(HasherImpl):
    """Real digests, artificially slow."""

    def __init__(self, delay):
        super().__init__()
        self.delay = delay

    def hash(self, path, stopped_flag=None):
        time.sleep(self.delay)
        return super().hash(path, stopped_flag)


class TestScan:
    """Full scans."""

    def test_groups_found(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        report = pipeline.run(FileWalkerImpl(str(temp_dir)))

        members = [set(g.members) for g in report.groups]
        assert {str(test_files["a"]), str(test_files["c"])} in members
        assert {str(test_files[k]) for k in ("triple1", "triple2", "triple3")} in members
        assert not report.cancelled
        assert report.issues == []
        assert len(index) == len(test_files)

    def test_numbering_independent_of_worker_count(self, temp_dir, test_files):
        _, single = make_pipeline(workers=1)
        _, many = make_pipeline(workers=8)
        walker = FileWalkerImpl(str(temp_dir))

        first = [(g.group_number, g.members) for g in single.run(walker).groups]
        second = [(g.group_number, g.members) for g in many.run(walker).groups]
        assert first == second

    def test_stats_filled(self, temp_dir, test_files):
        _, pipeline = make_pipeline()
        report = pipeline.run(FileWalkerImpl(str(temp_dir)))

        assert report.stats.get(Stage.WALK.value, "items") == len(test_files)
        assert report.stats.get(Stage.HASH.value, "items") == len(test_files)
        assert report.stats.get(Stage.GROUP.value, "items") == len(report.groups)
        assert report.stats.total_time >= 0
        assert "Scan Statistics" in report.stats.print_summary()

    def test_bad_root_raises(self, temp_dir):
        _, pipeline = make_pipeline()
        with pytest.raises(ScanError):
            pipeline.run(FileWalkerImpl(str(temp_dir / "missing")))

    def test_io_error_becomes_issue(self, temp_dir, test_files):
        """A file that fails to hash is reported and left out of the index."""
        index, pipeline = make_pipeline()
        bad = str(test_files["triple2"])
        real_hash = pipeline.hasher.hash

        def flaky(path, stopped_flag=None):
            if path == bad:
                raise IoError(f"Cannot read {path}", path=path)
            return real_hash(path, stopped_flag)

        with mock.patch.object(pipeline.hasher, "hash", side_effect=flaky):
            report = pipeline.run(FileWalkerImpl(str(temp_dir)))

        assert [(i.path, i.kind) for i in report.issues] == [(bad, "IoError")]
        assert bad not in index
        assert report.stats.get(Stage.HASH.value, "errors") == 1
        triple = [g for g in report.groups if str(test_files["triple1"]) in g.members][0]
        assert len(triple.members) == 2

    def test_unexpected_worker_error_propagates(self, temp_dir, test_files):
        _, pipeline = make_pipeline()
        with mock.patch.object(pipeline.hasher, "hash", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError, match="boom"):
                pipeline.run(FileWalkerImpl(str(temp_dir)))

    def test_progress_reported(self, temp_dir, test_files):
        _, pipeline = make_pipeline()
        calls = []
        pipeline.run(FileWalkerImpl(str(temp_dir)), progress_callback=lambda *args: calls.append(args))
        assert calls[-1] == ("hashing", len(test_files), len(test_files))


class TestCancellation:
    """Cancellation and timeouts never insert partial records."""

    def test_stop_before_start(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        report = pipeline.run(FileWalkerImpl(str(temp_dir)), stopped_flag=lambda: True)

        assert report.cancelled
        assert len(index) == 0
        assert report.groups == []

    def test_stop_midway_keeps_only_complete_records(self, temp_dir):
        for i in range(30):
            (temp_dir / f"f{i:02d}.bin").write_bytes(b"x" * (i % 3 + 1))
        index, pipeline = make_pipeline(workers=2, hasher=SlowHasher(0.01))
        stop = threading.Event()
        hashed = []
        real_insert = index.insert

        def counting_insert(record):
            real_insert(record)
            hashed.append(record.path)
            if len(hashed) >= 5:
                stop.set()

        with mock.patch.object(index, "insert", side_effect=counting_insert):
            report = pipeline.run(FileWalkerImpl(str(temp_dir)), stopped_flag=stop.is_set)

        assert report.cancelled
        assert 5 <= len(index) < 30
        hasher = HasherImpl()
        for r in index.records():
            assert r.digest == hasher.hash(r.path)

    def test_timeout_marks_report(self, temp_dir):
        for i in range(6):
            (temp_dir / f"f{i}.bin").write_bytes(b"y")
        index, pipeline = make_pipeline(workers=1, hasher=SlowHasher(0.2))

        report = pipeline.run(FileWalkerImpl(str(temp_dir)), timeout=0.05)

        assert report.timed_out
        assert report.cancelled
        assert len(index) < 6


class TestIncremental:
    """Rescans reuse digests of unchanged files."""

    def test_unchanged_files_not_rehashed(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        walker = FileWalkerImpl(str(temp_dir))
        first = pipeline.run(walker)

        with mock.patch.object(pipeline.hasher, "hash", wraps=pipeline.hasher.hash) as spy:
            second = pipeline.run(walker, incremental=True)

        assert spy.call_count == 0
        assert [(g.group_number, g.members) for g in first.groups] == \
               [(g.group_number, g.members) for g in second.groups]

    def test_modified_file_rehashed(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        walker = FileWalkerImpl(str(temp_dir))
        pipeline.run(walker)

        changed = test_files["c"]
        changed.write_bytes(b"HELLO")
        st = os.stat(changed)
        os.utime(changed, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))

        with mock.patch.object(pipeline.hasher, "hash", wraps=pipeline.hasher.hash) as spy:
            report = pipeline.run(walker, incremental=True)

        assert [c.args[0] for c in spy.call_args_list] == [str(changed)]
        assert all(str(test_files["a"]) not in g.members for g in report.groups)

    def test_stale_record_rehashed(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        walker = FileWalkerImpl(str(temp_dir))
        pipeline.run(walker)
        index.mark_stale(to_file_path(test_files["d"]))

        with mock.patch.object(pipeline.hasher, "hash", wraps=pipeline.hasher.hash) as spy:
            pipeline.run(walker, incremental=True)

        assert [c.args[0] for c in spy.call_args_list] == [str(test_files["d"])]
        assert not index.is_stale(to_file_path(test_files["d"]))

    def test_vanished_file_dropped(self, temp_dir, test_files):
        index, pipeline = make_pipeline()
        walker = FileWalkerImpl(str(temp_dir))
        pipeline.run(walker)

        os.remove(test_files["a"])
        report = pipeline.run(walker, incremental=True)

        assert str(test_files["a"]) not in index
        assert all(str(test_files["c"]) not in g.members for g in report.groups)

    def test_failed_rehash_drops_old_record(self, temp_dir, test_files):
        """A changed file that cannot be read again must not keep its old digest."""
        index, pipeline = make_pipeline()
        walker = FileWalkerImpl(str(temp_dir))
        pipeline.run(walker)

        changed = test_files["c"]
        changed.write_bytes(b"something else")
        st = os.stat(changed)
        os.utime(changed, ns=(st.st_atime_ns, st.st_mtime_ns + 5_000_000_000))

        real_hash = pipeline.hasher.hash

        def unreadable(path, stopped_flag=None):
            if path == str(changed):
                raise IoError("Permission denied", path=path)
            return real_hash(path, stopped_flag=stopped_flag)

        with mock.patch.object(pipeline.hasher, "hash", side_effect=unreadable):
            report = pipeline.run(walker, incremental=True)

        assert str(changed) not in index
        assert [i.path for i in report.issues] == [str(changed)]
        assert all(str(test_files["a"]) not in g.members for g in report.groups)


class TestOverlappingRuns:
    """Concurrent runs on one pipeline keep separate counters."""

    def test_counts_not_mixed(self, temp_dir):
        roots = {}
        for name, count in (("left", 3), ("right", 5)):
            folder = temp_dir / name
            folder.mkdir()
            for i in range(count):
                (folder / f"f{i}").write_bytes(f"{name}{i}".encode())
            roots[name] = folder

        index = DuplicateIndex()
        pipeline = ScanPipeline(index, SlowHasher(0.05), workers=2)
        reports = {}

        def scan(name):
            reports[name] = pipeline.run(FileWalkerImpl(str(roots[name])))

        threads = [threading.Thread(target=scan, args=(name,)) for name in roots]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert reports["left"].stats.get(Stage.WALK.value, "items") == 3
        assert reports["left"].stats.get(Stage.HASH.value, "items") == 3
        assert reports["right"].stats.get(Stage.WALK.value, "items") == 5
        assert reports["right"].stats.get(Stage.HASH.value, "items") == 5
        assert len(index) == 8
