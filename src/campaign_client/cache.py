"""TTL cache with optional persistent storage.

Provides:
    * :class:`Cache`, an in-memory key/value cache with per-entry TTL, backed
      by an optional persistent storage delegate (see :mod:`.storage`).
    * :class:`SafeStorage`, the wrapper placed around every delegate. Delegate
      failures (raised exceptions, undecodable payloads) are absorbed and
      turned into cache misses; faulty entries are removed.

Design goals:
    1. Memory first: persistent storage is only consulted on a memory miss.
    2. O(1) clear: :meth:`Cache.clear` never walks persistent storage. It
       records a ``lastCleared`` watermark, and entries cached at or before
       the watermark are evicted lazily when read.
    3. Fail soft: a broken storage backend degrades to an in-memory cache.
    4. Pluggable keys and serialization for specialized caches.

Quick example::

    from campaign_client.cache import Cache
    from campaign_client.storage import MemoryStorage

    cache = Cache(MemoryStorage(), "acc.cache", ttl=60)
    await cache.put("nms:recipient", {"label": "Recipients"})
    await cache.get("nms:recipient")    # {'label': 'Recipients'}
    await cache.clear()
    await cache.get("nms:recipient")    # None

All operations are coroutines because storage delegates may be asynchronous.
Delegates may implement their methods either synchronously or as coroutines.
"""

from __future__ import annotations

import functools
import inspect
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

from .monitoring import CacheStats, get_monitor

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0  # 5 minutes
LAST_CLEARED_KEY = "lastCleared"

SerDeser = Callable[[Any, bool], Any]
MakeKey = Callable[..., str]


class StorageDelegate(Protocol):
    """Persistent storage interface (``getItem``/``setItem``/``removeItem``).

    Methods may return values directly or awaitables.
    """

    def get_item(self, key: str) -> Any: ...

    def set_item(self, key: str, value: str) -> Any: ...

    def remove_item(self, key: str) -> Any: ...


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def json_ser_deser(item: Any, serialize: bool) -> Any:
    """Default serializer: cached objects are stored as JSON text."""
    if serialize:
        if not item:
            raise ValueError("Cannot serialize falsy cached item")
        if not isinstance(item, dict):
            raise ValueError("Cannot serialize non-object")
        return json.dumps(item)
    if not item:
        raise ValueError("Cannot deserialize falsy cached item")
    return json.loads(item)


def _absorb_storage_errors(method: Callable[..., Any]) -> Callable[..., Any]:
    """Turn any delegate or serialization failure into an absent value.

    When reading or writing fails, the (probably corrupted) entry is removed.
    """

    @functools.wraps(method)
    async def wrapper(self: "SafeStorage", key: str, *args: Any) -> Any:
        if self._delegate is None:
            return None
        try:
            return await method(self, key, *args)
        except Exception as ex:
            logger.debug(f"Storage {method.__name__} failed for key '{key}': {ex}")
            if method.__name__ != "remove_item":
                await self.remove_item(key)
            return None

    return wrapper


class SafeStorage:
    """Safe wrapper around a storage delegate.

    * never raises and tolerates a missing delegate
    * prefixes every key with ``{root_key}$``
    * stores JSON-like objects through a ser/deser function
    * removes entries which cannot be read back

    Args:
        delegate: Optional object implementing :class:`StorageDelegate`.
        root_key: Optional prefix for all keys.
        ser_deser: ``fn(item, serialize)`` returning the serialized text when
            ``serialize`` is True, or the decoded object otherwise.
    """

    def __init__(
        self,
        delegate: Optional[StorageDelegate] = None,
        root_key: Optional[str] = None,
        ser_deser: Optional[SerDeser] = None,
    ) -> None:
        self._delegate = delegate
        self._root_key = f"{root_key}$" if root_key else ""
        self._ser_deser = ser_deser or json_ser_deser

    def _item_key(self, key: str) -> str:
        return f"{self._root_key}{key}"

    @_absorb_storage_errors
    async def get_item(self, key: str) -> Any:
        raw = await _resolve(self._delegate.get_item(self._item_key(key)))
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return self._ser_deser(raw, False)

    @_absorb_storage_errors
    async def set_item(self, key: str, item: Any) -> None:
        raw = self._ser_deser(item, True)
        await _resolve(self._delegate.set_item(self._item_key(key), raw))

    @_absorb_storage_errors
    async def remove_item(self, key: str) -> None:
        await _resolve(self._delegate.remove_item(self._item_key(key)))


@dataclass
class CachedObject:
    """A cached value and the timestamps used to manage it (epoch seconds)."""

    value: Any
    cached_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "cachedAt": self.cached_at, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CachedObject":
        return cls(value=data["value"], cached_at=data["cachedAt"], expires_at=data["expiresAt"])


def default_make_key(*parts: Any) -> str:
    if len(parts) == 1:
        return parts[0]
    return "|".join(str(part) for part in parts)


_NOT_LOADED = object()


class Cache:
    """General purpose TTL cache with optional persistent storage.

    By default a cache is keyed by a single value. Specialized caches pass a
    ``make_key`` function combining several key parts into one string; ``get``
    and ``put`` then accept the same variable number of key parts.

    Args:
        storage: Optional persistent storage delegate, wrapped in :class:`SafeStorage`.
        root_key: Optional prefix for keys in persistent storage.
        ttl: Time to live of entries, in seconds (defaults to 5 minutes).
        make_key: Builds the primitive key from the key parts.
        ser_deser: Serializer for persistent storage.
        clock: Returns the current time in epoch seconds.
        name: Name under which statistics are reported (class name by default).
    """

    def __init__(
        self,
        storage: Optional[StorageDelegate] = None,
        root_key: Optional[str] = None,
        ttl: Optional[float] = None,
        make_key: Optional[MakeKey] = None,
        ser_deser: Optional[SerDeser] = None,
        clock: Callable[[], float] = time.time,
        name: Optional[str] = None,
    ) -> None:
        self._storage = SafeStorage(storage, root_key, ser_deser)
        # The watermark is plain JSON whatever the entries serializer is
        self._watermark_storage = SafeStorage(storage, root_key)
        self.ttl = ttl or DEFAULT_TTL
        self._make_key = make_key or default_make_key
        self._clock = clock
        self._cache: Dict[str, CachedObject] = {}
        # Timestamp at which the cache was last cleared. _NOT_LOADED until read
        # from storage, then None if the cache was never cleared.
        self._last_cleared: Any = _NOT_LOADED
        self.name = name or type(self).__name__
        self.stats = CacheStats()
        self._monitor = get_monitor()

    def _record(self, counter: str) -> None:
        setattr(self.stats, counter, getattr(self.stats, counter) + 1)
        self._monitor.record(self.name, counter)

    def make_key(self, *parts: Any) -> str:
        """Primitive key for the given key parts."""
        return self._make_key(*parts)

    def keys(self) -> List[str]:
        """Keys currently held in memory."""
        return list(self._cache.keys())

    async def _load_last_cleared(self) -> Optional[float]:
        data = await self._watermark_storage.get_item(LAST_CLEARED_KEY)
        return data.get("timestamp") if isinstance(data, dict) else None

    async def _save_last_cleared(self) -> None:
        now = self._clock()
        self._last_cleared = now
        await self._watermark_storage.set_item(LAST_CLEARED_KEY, {"timestamp": now})

    async def _load(self, key: str) -> Optional[CachedObject]:
        self._record("loads")
        if self._last_cleared is _NOT_LOADED:
            self._last_cleared = await self._load_last_cleared()
        data = await self._storage.get_item(key)
        cached = None
        if isinstance(data, dict):
            try:
                cached = CachedObject.from_dict(data)
            except (KeyError, TypeError):
                cached = None
        if cached is None or not cached.cached_at:
            await self._storage.remove_item(key)
            return None
        if self._last_cleared is not None and cached.cached_at <= self._last_cleared:
            self._record("evictions")
            await self._storage.remove_item(key)
            return None
        return cached

    async def _save(self, key: str, cached: CachedObject) -> None:
        self._record("saves")
        await self._storage.set_item(key, cached.to_dict())

    async def _get_if_active(self, key: str) -> Any:
        cached = self._cache.get(key)
        memory_hit = cached is not None
        if cached is None:
            cached = await self._load(key)
            if cached is None:
                return None
            self._cache[key] = cached
        if cached.is_expired(self._clock()):
            self._record("evictions")
            self._cache.pop(key, None)
            await self._storage.remove_item(key)
            return None
        self._record("hits")
        if not memory_hit:
            self._record("storage_hits")
        return cached.value

    async def get(self, *key_parts: Any) -> Any:
        """Return the cached value for the key parts, or None."""
        self._record("reads")
        key = self._make_key(*key_parts)
        return await self._get_if_active(key)

    async def put(self, *key_parts_and_value: Any) -> CachedObject:
        """Cache a value. The last argument is the value, the others the key parts."""
        if len(key_parts_and_value) < 2:
            raise TypeError("put() expects at least one key part and a value")
        self._record("writes")
        value = key_parts_and_value[-1]
        key = self._make_key(*key_parts_and_value[:-1])
        now = self._clock()
        cached = CachedObject(value=value, cached_at=now, expires_at=now + self.ttl)
        self._cache[key] = cached
        await self._save(key, cached)
        return cached

    async def remove(self, key: str) -> None:
        """Remove a primitive key (see :meth:`make_key`) from memory and storage."""
        self._record("removals")
        self._cache.pop(key, None)
        await self._storage.remove_item(key)

    async def invalidate(self, entity_type: str, entity_id: str) -> None:
        """Drop the entry of an entity modified on the server (see :mod:`.refresher`)."""
        await self.remove(self.make_key(entity_type, entity_id))

    async def clear(self) -> None:
        """Empty the cache.

        Persistent storage is not walked: entries stored there are ignored
        and evicted when next read because they predate the new watermark.
        """
        self._record("clears")
        self._cache = {}
        await self._save_last_cleared()

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "cache_size": len(self._cache),
            "default_ttl": self.ttl,
            **self.stats.to_dict(),
        }
