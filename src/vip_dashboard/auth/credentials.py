"""Secure key/value storage for API credentials.

Values are kept in a JSON file readable only by the owning user, so they
survive restarts. Only the logical keys in ``CREDENTIAL_KEYS`` are allowed.
"""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Optional

from vip_dashboard.config import Config
from vip_dashboard.utils.constants import CREDENTIAL_KEYS

logger = logging.getLogger(__name__)


class CredentialStore:
    """get / set / clear_all by logical key."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else Path(Config.CREDENTIALS_PATH)
        self._lock = threading.Lock()
        self._values: Optional[dict[str, str]] = None

    def get(self, key: str) -> Optional[str]:
        self._check_key(key)
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, value: Optional[str]):
        """Store *value* under *key*; None removes it."""
        self._check_key(key)
        with self._lock:
            values = self._load()
            if value is None:
                values.pop(key, None)
            else:
                values[key] = value
            self._write(values)

    def remove(self, *keys: str):
        """Remove several keys in one write."""
        for key in keys:
            self._check_key(key)
        with self._lock:
            values = self._load()
            for key in keys:
                values.pop(key, None)
            self._write(values)

    def clear_all(self):
        with self._lock:
            self._write({})

    @staticmethod
    def _check_key(key: str):
        if key not in CREDENTIAL_KEYS:
            raise KeyError(f"Unknown credential key: {key}")

    def _load(self) -> dict[str, str]:
        if self._values is None:
            self._values = {}
            if self.path.exists():
                try:
                    data = json.loads(self.path.read_text(encoding="utf-8"))
                    if isinstance(data, dict):
                        self._values = {
                            k: str(v) for k, v in data.items()
                            if k in CREDENTIAL_KEYS and v is not None
                        }
                except (json.JSONDecodeError, OSError) as e:
                    logger.warning(f"Ignoring unreadable credential file: {e}")
        return self._values

    def _write(self, values: dict[str, str]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        fd = os.open(str(tmp_path), os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o600)
        try:
            os.write(fd, json.dumps(values, indent=2).encode("utf-8"))
        finally:
            os.close(fd)
        os.replace(tmp_path, self.path)
        self._values = dict(values)
