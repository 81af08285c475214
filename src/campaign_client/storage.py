"""Persistent storage delegates for :class:`~campaign_client.cache.Cache`.

A delegate is any object with ``get_item``, ``set_item`` and ``remove_item``
methods (synchronous or coroutines). Two are provided:

* :class:`MemoryStorage`, a dict, mostly useful to share entries between
  several client instances of the same process and in tests.
* :class:`RedisStorage`, backed by a Redis server, so cached schemas survive
  process restarts and are shared between workers.

Environment variables (see :func:`create_storage`):
    REDIS_URL               Redis connection URL. When unset no Redis storage is used.
    CAMPAIGN_REDIS_PREFIX   Prefix of all Redis keys (default ``campaign:``).

Delegates are allowed to raise: the cache wraps them in
:class:`~campaign_client.cache.SafeStorage` which turns failures into misses.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import redis

logger = logging.getLogger(__name__)

DEFAULT_REDIS_PREFIX = "campaign:"


class MemoryStorage:
    """Dictionary backed storage."""

    def __init__(self, data: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = data if data is not None else {}

    def get_item(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)

    def __len__(self) -> int:
        return len(self.data)


class RedisStorage:
    """Redis backed storage.

    Args:
        client: A ``redis.Redis`` compatible client (``fakeredis.FakeRedis`` in tests).
        prefix: Prefix added to every key.
        ttl: Optional expiration of Redis keys, in seconds. Entries also carry
            their own cache TTL, this only bounds how long dead entries linger.
    """

    def __init__(
        self,
        client: Any,
        prefix: str = DEFAULT_REDIS_PREFIX,
        ttl: Optional[float] = None,
    ) -> None:
        self._redis = client
        self.prefix = prefix
        self.ttl = ttl

    @classmethod
    def from_url(
        cls, url: str, prefix: str = DEFAULT_REDIS_PREFIX, ttl: Optional[float] = None
    ) -> "RedisStorage":
        """Connect to the Redis server at ``url``. The connection is lazy."""
        logger.info(f"Using Redis cache storage at {url}")
        return cls(redis.from_url(url, decode_responses=False), prefix=prefix, ttl=ttl)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get_item(self, key: str) -> Optional[str]:
        blob = self._redis.get(self._key(key))
        if blob is None:
            return None
        return blob.decode("utf-8") if isinstance(blob, bytes) else blob

    def set_item(self, key: str, value: str) -> None:
        if self.ttl:
            self._redis.setex(self._key(key), int(self.ttl), value)
        else:
            self._redis.set(self._key(key), value)

    def remove_item(self, key: str) -> None:
        self._redis.delete(self._key(key))


def create_storage(config: Any) -> Optional[Any]:
    """Storage delegate described by a :class:`~campaign_client.config.ClientConfig`.

    Returns None when persistent storage is disabled, a :class:`RedisStorage`
    when a Redis URL is configured, and a process local :class:`MemoryStorage`
    otherwise.
    """
    if config.no_storage:
        return None
    if config.redis_url:
        return RedisStorage.from_url(config.redis_url, prefix=config.redis_prefix)
    return MemoryStorage()
