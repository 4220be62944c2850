"""Store change notifications.

The repository publishes the name of each entity kind it commits a write
for. Plain callbacks run synchronously on the writing thread;
``StoreSignals`` re-emits them as a Qt signal so a presentation layer can
receive them on its own thread.
"""

import logging
import threading
from typing import Callable

from PySide6.QtCore import QObject, Signal

logger = logging.getLogger(__name__)


class ChangeNotifier:
    """Thread-safe list of change callbacks."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[str], None]] = []

    def subscribe(self, callback: Callable[[str], None]):
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[str], None]):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def publish(self, *topics: str):
        """Notify every subscriber once per distinct topic."""
        with self._lock:
            subscribers = list(self._subscribers)
        seen = []
        for topic in topics:
            if topic in seen:
                continue
            seen.append(topic)
            for callback in subscribers:
                try:
                    callback(topic)
                except Exception:
                    logger.exception(f"Store change subscriber failed for {topic}")


class StoreSignals(QObject):
    """Qt bridge for store change notifications."""

    changed = Signal(str)  # entity kind / topic

    def __init__(self, notifier: ChangeNotifier, parent=None):
        super().__init__(parent)
        self._notifier = notifier
        self._notifier.subscribe(self._relay)

    def _relay(self, topic: str):
        self.changed.emit(topic)

    def detach(self):
        """Stop relaying notifications."""
        self._notifier.unsubscribe(self._relay)
