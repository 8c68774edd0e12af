"""
Copyright (c) 2025 initumX (initum.x@gmail.com)
Licensed under the MIT License

gui/worker.py
Qt worker runnables — QRunnable + QThreadPool, so a desktop front end never blocks
its UI thread on scanning or on a resolution action.
"""
from typing import Any, Dict, Optional

from PySide6.QtCore import QRunnable, QObject, Signal, QMutex, QMutexLocker

from dupindex.commands import DedupEngine
from dupindex.core.models import EngineConfig, ScanParams


class WorkerSignals(QObject):
    """Separate QObject to hold signals (QRunnable cannot emit signals directly)."""
    progress = Signal(str, int, object)  # stage, current, total
    finished = Signal(object)            # ScanReport or ResolutionResult
    error = Signal(str)


class IndexWorker(QRunnable):
    """
    Scans params.root_dir in the thread pool.
    The engine stays available on `self.engine` for resolution actions afterwards.
    """
    def __init__(self, params: ScanParams, config: Optional[EngineConfig] = None,
                 engine: Optional[DedupEngine] = None, incremental: bool = False):
        super().__init__()
        self.params = params
        self.engine = engine or DedupEngine(params.root_dir, config)
        self.incremental = incremental
        self.signals = WorkerSignals()
        self._stopped = False
        self._mutex = QMutex()
        self.setAutoDelete(True)

    def stop(self):
        """Sets the stopped flag; the scan winds down at the next file or chunk boundary."""
        with QMutexLocker(self._mutex):
            self._stopped = True

    def is_stopped(self) -> bool:
        with QMutexLocker(self._mutex):
            return self._stopped

    def safe_progress_emit(self, stage: str, current: int, total=None):
        """Emits progress unless stopped; the receiver may already be gone."""
        with QMutexLocker(self._mutex):
            if not self._stopped:
                try:
                    self.signals.progress.emit(stage, current, total)
                except RuntimeError:
                    pass

    def run(self):
        """Runs in a thread pool thread."""
        try:
            if self.is_stopped():
                return

            scan = self.engine.rescan if self.incremental else self.engine.scan
            report = scan(
                self.params,
                stopped_flag=self.is_stopped,
                progress_callback=self.safe_progress_emit
            )

            if not self.is_stopped():
                self.signals.finished.emit(report)
        except Exception as e:
            if not self.is_stopped():
                self.signals.error.emit(f"{type(e).__name__}: {str(e)}")


class ResolveWorker(QRunnable):
    """Applies one resolution action in the thread pool and emits its ResolutionResult."""
    def __init__(self, engine: DedupEngine, digest, path: str, action, params: Optional[Dict[str, Any]] = None):
        super().__init__()
        self.engine = engine
        self.digest = digest
        self.path = path
        self.action = action
        self.params = params or {}
        self.signals = WorkerSignals()
        self.setAutoDelete(True)

    def run(self):
        try:
            result = self.engine.resolve(self.digest, self.path, self.action, self.params)
            self.signals.finished.emit(result)
        except Exception as e:
            self.signals.error.emit(f"{type(e).__name__}: {str(e)}")
