"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

commands.py
Engine facade: the single entry point used by the CLI, the Qt worker and library callers.
No Qt/PySide6 dependencies — pure Python.
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from dupindex.core.grouper import find_group, to_mapping
from dupindex.core.hasher import HasherImpl, get_algorithm
from dupindex.core.index import DuplicateIndex
from dupindex.core.models import (
    ActionKind, Digest, DuplicateGroup, EngineConfig, ResolutionResult, ScanParams, ScanReport,
    to_file_path,
)
from dupindex.core.pipeline import ProgressCallback, ScanPipeline
from dupindex.core.walker import FileWalkerImpl
from dupindex.services.resolution_service import ResolutionService

logger = logging.getLogger(__name__)


class DedupEngine:
    """
    Orchestrates scanning and resolution for one root directory.
    Each engine owns its own index; two engines never share state.

    Usage:
        engine = DedupEngine("/data/photos")
        report = engine.scan(progress_callback=printer, stopped_flag=check)
        for group in report.groups:
            ...
        result = engine.resolve(group.digest, group.members[1], "delete")
    """

    def __init__(self, root: str, config: Optional[EngineConfig] = None):
        self.root = to_file_path(root)
        self.config = config or EngineConfig()
        self.index = DuplicateIndex()
        self.hasher = HasherImpl(get_algorithm(self.config.algorithm), chunk_size=self.config.chunk_size)
        self.pipeline = ScanPipeline(self.index, self.hasher, workers=self.config.workers)
        self.resolver = ResolutionService(self.index, self.hasher, self.config)
        self.last_report: Optional[ScanReport] = None

    # =============================
    # Scanning
    # =============================
    def scan(
            self,
            params: Optional[ScanParams] = None,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanReport:
        """
        Full scan: the index is cleared, then rebuilt from the filesystem.

        Raises:
            ScanError: root does not exist or is not a directory
            ValueError: params point at a different root
        """
        params = self._params(params)
        self.index.clear()
        return self._run(params, stopped_flag, progress_callback, incremental=False)

    def rescan(
            self,
            params: Optional[ScanParams] = None,
            stopped_flag: Optional[Callable[[], bool]] = None,
            progress_callback: Optional[ProgressCallback] = None,
    ) -> ScanReport:
        """Incremental scan: unchanged files keep their digest, stale and changed files are rehashed."""
        return self._run(self._params(params), stopped_flag, progress_callback, incremental=True)

    def _run(self, params, stopped_flag, progress_callback, incremental: bool) -> ScanReport:
        walker = FileWalkerImpl.from_params(params)
        logger.info(f"{'Rescanning' if incremental else 'Scanning'} {self.root} ({self.config.algorithm})")
        self.last_report = self.pipeline.run(
            walker,
            stopped_flag=stopped_flag,
            progress_callback=progress_callback,
            timeout=params.timeout,
            incremental=incremental,
        )
        return self.last_report

    def _params(self, params: Optional[ScanParams]) -> ScanParams:
        if params is None:
            return ScanParams(root_dir=self.root)
        if to_file_path(params.root_dir) != self.root:
            raise ValueError(f"Engine is bound to {self.root}, not {params.root_dir}")
        return params

    # =============================
    # Queries
    # =============================
    def groups(self) -> List[DuplicateGroup]:
        return self.index.groups()

    def group(self, group_number: int) -> DuplicateGroup:
        return find_group(self.groups(), group_number)

    def mapping(self) -> Dict[str, List[str]]:
        return to_mapping(self.groups())

    # =============================
    # Resolution
    # =============================
    def resolve(
            self,
            digest: Union[Digest, str],
            path: str,
            action: Union[ActionKind, str],
            params: Optional[Dict[str, Any]] = None,
    ) -> ResolutionResult:
        """One action on one member. Failures come back as results, never as exceptions."""
        return self.resolver.resolve(digest, path, action, params)

    def keep_one(self, digest: Digest, action: ActionKind, **params) -> List[ResolutionResult]:
        return self.resolver.keep_one(digest, action, **params)

    def keep_one_everywhere(self, action: ActionKind, **params) -> List[ResolutionResult]:
        """Applies keep_one to every current group, in group-number order."""
        results = []
        for group in self.groups():
            results.extend(self.keep_one(group.digest, action, **params))
        return results

    def move_duplicates(self, dest_dir: str) -> List[ResolutionResult]:
        return self.resolver.move_duplicates(dest_dir)

    def delete_group(self, digest: Digest) -> List[ResolutionResult]:
        return self.resolver.delete_group(digest)


def index_folder(path: str, config: Optional[EngineConfig] = None) -> Dict[str, List[str]]:
    """
    Scans path and returns {hex digest: [member paths]} for every group of 2+ files,
    in group-number order.

    Raises:
        ScanError: path does not exist or is not a directory
    """
    engine = DedupEngine(path, config)
    engine.scan()
    return engine.mapping()


def resolve(
        engine: DedupEngine,
        digest: Union[Digest, str],
        path: str,
        action: Union[ActionKind, str],
        **params,
) -> ResolutionResult:
    """Module-level convenience for DedupEngine.resolve."""
    return engine.resolve(digest, path, action, params)
