"""Storage adapters - KeyValueStorage implementations."""

from .file import FileStorage
from .memory import MemoryStorage, PrefixedStorage
from .redis import RedisStorage

__all__ = ["FileStorage", "MemoryStorage", "PrefixedStorage", "RedisStorage"]
