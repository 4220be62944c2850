"""Exponential retry delays."""

import threading
from typing import Optional

from vip_dashboard.config import Config


class BackoffPolicy:
    """Stateful delay generator: base**attempt seconds, capped at max_delay.

    The first ``next_delay()`` after construction or ``reset()`` returns
    ``base`` (2s, 4s, 8s, ... for the default base of 2).
    """

    def __init__(self, base: Optional[float] = None,
                 max_delay: Optional[float] = None):
        self.base = base if base is not None else Config.SYNC_BACKOFF_BASE
        self.max_delay = (max_delay if max_delay is not None
                          else Config.SYNC_BACKOFF_MAX)
        self._attempt = 0
        self._lock = threading.Lock()

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self) -> float:
        with self._lock:
            self._attempt += 1
            # Past the cap the power only grows; avoid float overflow.
            try:
                delay = self.base ** self._attempt
            except OverflowError:
                return float(self.max_delay)
            return float(min(delay, self.max_delay))

    def reset(self):
        with self._lock:
            self._attempt = 0
