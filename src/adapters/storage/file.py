"""
JSON file storage adapter - Long-lived KeyValueStorage on local disk.

The whole store is one JSON object. Writes go to a temporary file that
replaces the original, so a crash mid-write leaves the previous state.
"""

import json
import os
import threading
from pathlib import Path

from src.domain.exceptions import StorageError


class FileStorage:
    """Implements KeyValueStorage over a single JSON file."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if data.pop(key, None) is not None:
                self._write(data)

    def _read(self) -> dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise StorageError(f"Cannot read {self._path}: {e}") from e

        try:
            data = json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Corrupt storage file {self._path}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Corrupt storage file {self._path}")
        return data

    def _write(self, data: dict[str, str]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as e:
            raise StorageError(f"Cannot write {self._path}: {e}") from e
