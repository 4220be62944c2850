"""Background sync trigger: runs registered handlers on a QTimer."""

import logging
from typing import Callable, Optional

from PySide6.QtCore import QObject, QThread, QTimer, Signal

from vip_dashboard.config import Config

logger = logging.getLogger(__name__)


class SyncWorker(QThread):
    """Runs the registered handlers once, in a thread."""

    completed = Signal(dict)  # merged summary
    error = Signal(str)  # error text

    def __init__(self, handlers: list[Callable[[], Optional[dict]]]):
        super().__init__()
        self.handlers = list(handlers)

    def run(self):
        summary = {}
        try:
            for handler in self.handlers:
                result = handler()
                if isinstance(result, dict):
                    summary.update(result)
        except Exception as e:
            self.error.emit(str(e))
            return
        self.completed.emit(summary)


class BackgroundSyncScheduler(QObject):
    """Invokes every registered handler roughly every N minutes.

    Execution is best effort: a tick that arrives while the previous run
    is still in flight is skipped.
    """

    sync_finished = Signal(dict)
    sync_failed = Signal(str)

    def __init__(self, parent=None):
        super().__init__(parent)
        self._handlers: list[Callable[[], Optional[dict]]] = []
        self._timer: Optional[QTimer] = None
        self._worker: Optional[SyncWorker] = None
        self.last_result: Optional[dict] = None
        self.last_error: Optional[str] = None

    def register(self, handler: Callable[[], Optional[dict]]):
        """Add a callable (typically ``SyncEngine.sync_all``)."""
        self._handlers.append(handler)

    @staticmethod
    def interval_ms() -> int:
        """Interval in milliseconds from Config (minimum 1 minute)."""
        return max(Config.SYNC_INTERVAL_MINUTES, 1) * 60 * 1000

    def start(self):
        self.stop()
        self._timer = QTimer(self)
        self._timer.timeout.connect(self._run)
        self._timer.start(self.interval_ms())
        logger.info(f"Background sync every {self.interval_ms() // 60000} min")

    def stop(self):
        if self._timer is not None:
            self._timer.stop()
            self._timer = None

    @property
    def enabled(self) -> bool:
        return self._timer is not None and self._timer.isActive()

    @property
    def is_running(self) -> bool:
        return self._worker is not None

    def run_now(self) -> bool:
        """Manually trigger a run. Returns False if one is in flight."""
        return self._run()

    def _run(self) -> bool:
        if self._worker is not None:
            logger.debug("Background sync still running; tick skipped")
            return False
        if not self._handlers:
            return False

        worker = SyncWorker(self._handlers)
        worker.completed.connect(self._on_completed)
        worker.error.connect(self._on_error)
        worker.finished.connect(self._on_worker_finished)
        self._worker = worker
        logger.debug("Background sync started")
        worker.start()
        return True

    def _on_completed(self, summary: dict):
        self.last_result = summary
        self.last_error = None
        self.sync_finished.emit(summary)

    def _on_error(self, error: str):
        logger.error(f"Background sync failed: {error}")
        self.last_error = error
        self.sync_failed.emit(error)

    def _on_worker_finished(self):
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.deleteLater()
