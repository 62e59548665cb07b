"""
In-memory storage adapters - Page-scoped KeyValueStorage.

MemoryStorage lives as long as the process. PrefixedStorage gives each
registration its own key namespace over any shared backing store.
"""

from src.domain.ports import KeyValueStorage


class MemoryStorage:
    """Implements KeyValueStorage with a dict."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class PrefixedStorage:
    """Implements KeyValueStorage as a namespaced view of another store."""

    def __init__(self, storage: KeyValueStorage, prefix: str) -> None:
        self._storage = storage
        self._prefix = prefix

    def get(self, key: str) -> str | None:
        return self._storage.get(self._prefix + key)

    def set(self, key: str, value: str) -> None:
        self._storage.set(self._prefix + key, value)

    def remove(self, key: str) -> None:
        self._storage.remove(self._prefix + key)
