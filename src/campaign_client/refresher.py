"""Cache refresher: keeps a cache coherent with server side modifications.

The refresher periodically calls ``xtk:session#GetModifiedEntities`` with
the server time and build number returned by the previous call. The server
answers with the entities modified since then, or with ``emptyCache="true"``
when the whole cache must be dropped (new build, too many changes...).

It is a small state machine::

    IDLE --(construction)--> POLLING --(SOP-330006 fault | stop)--> IDLE

The timer is injectable: tests pass a timer which never fires and drive the
refresher by awaiting :meth:`CacheRefresher.tick`.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol

from .cache import Cache
from .caster import XtkCaster
from .dom import DomUtil, Representation
from .entity_accessor import from_representation
from .exceptions import METHOD_NOT_FOUND_ERROR_CODE, CampaignException
from .metadata_cache import MetadataCache

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = 10.0  # seconds


class RefresherState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


class Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], Awaitable[None]]], Timer]


class IntervalTimer:
    """Calls an async callback every ``interval`` seconds on the running event loop.

    A tick is not started before the previous one completed. Cancelling stops
    the timer but lets a callback in progress run to completion.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]) -> None:
        self.interval = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop = asyncio.Event()
        self._task = asyncio.get_running_loop().create_task(self._run(self._stop))

    async def _run(self, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), self.interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                return
            try:
                await self._callback()
            except Exception as ex:
                logger.warning(f"Cache refresh tick failed: {ex}")

    def cancel(self) -> None:
        if self._stop is not None:
            self._stop.set()
        self._stop = None
        self._task = None


class Invoker(Protocol):
    async def invoke(self, urn: str, method_name: str, params: Any) -> Any: ...


class CacheRefresher:
    """Polls the server for modified entities and invalidates a cache.

    Args:
        cache: Cache to invalidate. Each modified entity is dropped with
            ``cache.invalidate(schema, pk)``, which removes ``cache.make_key(schema, pk)``.
        invoker: Performs the ``GetModifiedEntities`` call directly, without
            going through the method cache (which may be outdated right after
            a server upgrade).
        cache_schema: Schema of the cached entities (``xtk:schema``).
        metadata_cache: Persists the last server time and build number.
        interval: Polling period, in seconds.
        timer_factory: Builds the timer, :class:`IntervalTimer` by default.
    """

    def __init__(
        self,
        cache: Cache,
        invoker: Invoker,
        cache_schema: str,
        metadata_cache: Optional[MetadataCache] = None,
        interval: float = DEFAULT_REFRESH_INTERVAL,
        timer_factory: Optional[TimerFactory] = None,
    ) -> None:
        self._cache = cache
        self._invoker = invoker
        self.cache_schema = cache_schema
        self._metadata_cache = metadata_cache or MetadataCache(name=f"MetadataCache[{cache_schema}]")
        self.last_time: Optional[str] = None
        self.build_number: Optional[str] = None
        self.state = RefresherState.IDLE
        self._timer = (timer_factory or IntervalTimer)(interval, self.tick)
        self._start()

    @property
    def is_polling(self) -> bool:
        return self.state is RefresherState.POLLING

    def _start(self) -> None:
        self._timer.start()
        self.state = RefresherState.POLLING
        logger.debug(f"Cache refresher for {self.cache_schema} started")

    def stop_auto_refresh(self) -> None:
        """Cancel the timer. A poll in flight completes harmlessly."""
        self._timer.cancel()
        self.state = RefresherState.IDLE
        logger.debug(f"Cache refresher for {self.cache_schema} stopped")

    async def tick(self) -> None:
        if self.state is not RefresherState.POLLING:
            return
        await self.call_and_refresh()

    async def _load_metadata(self) -> None:
        if self.last_time is None:
            self.last_time = await self._metadata_cache.get("time")
        if self.build_number is None:
            self.build_number = await self._metadata_cache.get("buildNumber")

    def _cache_document(self):
        # SimpleJson because an xtk:schema tag cannot be written as markup text
        if self.last_time is None or self.build_number is None:
            json_cache = {self.cache_schema: {}}
        else:
            json_cache = {
                "buildNumber": self.build_number,
                "lastModified": self.last_time,
                self.cache_schema: {},
            }
        return DomUtil.from_json("cache", json_cache, Representation.SIMPLE_JSON)

    async def call_and_refresh(self) -> None:
        """Poll once and apply the result to the cache."""
        await self._load_metadata()
        try:
            result = await self._invoker.invoke(
                "xtk:session", "GetModifiedEntities", [self._cache_document()]
            )
        except CampaignException as ex:
            if ex.error_code == METHOD_NOT_FOUND_ERROR_CODE:
                logger.info(
                    f"Server does not support GetModifiedEntities, stopping refresh of {self.cache_schema}"
                )
                self.stop_auto_refresh()
                return
            logger.warning(f"Failed to refresh cache of {self.cache_schema}: {ex}")
            return

        doc = from_representation("cache", result)
        if doc is None:
            logger.warning(f"GetModifiedEntities returned no document for {self.cache_schema}")
            return
        self.last_time = DomUtil.get_attribute_as_string(doc, "time")
        self.build_number = DomUtil.get_attribute_as_string(doc, "buildNumber")
        await self.refresh(doc)
        await self._metadata_cache.put("time", self.last_time)
        await self._metadata_cache.put("buildNumber", self.build_number)

    async def refresh(self, doc: Any) -> None:
        """Remove the modified entities listed in ``doc``, or clear the whole cache."""
        if XtkCaster.as_boolean(doc.get("emptyCache")):
            logger.info(f"Clearing cache of {self.cache_schema}")
            await self._cache.clear()
            return
        for child in DomUtil.child_elements(doc, "entityCache"):
            pk = DomUtil.get_attribute_as_string(child, "pk")
            schema = DomUtil.get_attribute_as_string(child, "schema")
            if schema == self.cache_schema:
                logger.debug(f"Removing {schema} {pk} from cache")
                await self._cache.invalidate(schema, pk)
