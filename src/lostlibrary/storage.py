from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Dict, Optional

from .errors import StorageUnavailable

logger = logging.getLogger("lostlibrary")


class DeviceStorage:
    """String key-value storage kept in a single JSON file on this device.

    Every failure surfaces as StorageUnavailable; callers decide how to
    degrade. Several stores share one file, so each read-modify-write holds
    the instance lock.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.RLock()

    def _read_all(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageUnavailable(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailable(f"{self.path} does not hold a key-value object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except (OSError, ValueError) as e:
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.unlink(tmp_path)
                except OSError as cleanup_error:
                    logger.warning("Could not remove %s: %s", tmp_path, cleanup_error)
            raise StorageUnavailable(f"cannot write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)
        logger.debug("Storage set for key: %s", key)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key not in data:
                return
            del data[key]
            self._write_all(data)
        logger.debug("Storage removed key: %s", key)

    def clear(self) -> None:
        """Remove every key."""
        with self._lock:
            self._write_all({})
        logger.info("Storage cleared.")
