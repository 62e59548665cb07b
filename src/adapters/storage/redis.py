"""
Redis storage adapter - Shared long-lived KeyValueStorage.

Used when several API workers must see the same drafts and session slots.
Redis errors are surfaced as StorageError so callers can degrade.
"""

from redis import Redis
from redis.exceptions import RedisError

from src.domain.exceptions import StorageError


class RedisStorage:
    """Implements KeyValueStorage via redis-py."""

    def __init__(self, client: Redis, ttl_seconds: int | None = None) -> None:
        """
        Args:
            client: Redis client created with decode_responses=True
            ttl_seconds: Optional expiry applied to every write
        """
        self._client = client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int | None = None) -> "RedisStorage":
        return cls(Redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except RedisError as e:
            raise StorageError(f"Redis get failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self._client.set(key, value, ex=self._ttl_seconds)
        except RedisError as e:
            raise StorageError(f"Redis set failed: {e}") from e

    def remove(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as e:
            raise StorageError(f"Redis delete failed: {e}") from e

    def close(self) -> None:
        self._client.close()
