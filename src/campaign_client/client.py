"""Session client: schema access and method dispatch through the caches.

The client owns one instance of each cache, keyed in persistent storage by
the server endpoint so several servers can share the same storage. Network
access is delegated to two collaborators:

* a :class:`SchemaFetcher` retrieving ``xtk:schema`` definitions;
* a :class:`MethodInvoker` performing SOAP calls (transport and argument
  marshalling live there).

Example::

    client = Client(fetcher, invoker, ClientConfig.from_env(), endpoint="https://acc.example.com")
    schema = await client.get_schema("nms:recipient", "BadgerFish")
    method = await client.get_method("xtk:session", "Logon")
    result = await client.call_method("xtk:session", "GetOption", params=["XtkDatabaseId"])
    client.start_refresh_caches()
"""

from __future__ import annotations

import logging
import time
import xml.etree.ElementTree as ET
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Union

from .application import Application
from .config import ClientConfig
from .dom import Representation
from .entity_accessor import Entity, to_representation
from .entity_cache import XtkEntityCache
from .exceptions import CampaignException
from .metadata_cache import MetadataCache
from .method_cache import MethodCache, MethodDescriptor
from .option_cache import OptionCache
from .refresher import CacheRefresher, TimerFactory
from .storage import create_storage

logger = logging.getLogger(__name__)

_DEFAULT = object()


class SchemaFetcher(Protocol):
    async def fetch(self, schema_id: str) -> Optional[Any]:
        """Schema definition, or None if it does not exist on the server."""


class MethodInvoker(Protocol):
    async def invoke(
        self,
        urn: str,
        method_name: str,
        params: Any,
        method: Optional[ET.Element] = None,
        obj: Any = None,
    ) -> Any:
        """Call a method. Server faults raise :class:`CampaignException`."""


class Client:
    """Schema and method access for one server.

    Args:
        fetcher: Retrieves schema definitions.
        invoker: Invokes SOAP methods.
        config: Client settings (defaults to :class:`ClientConfig` defaults).
        endpoint: Server identifier, part of the persistent storage keys.
        storage: Persistent storage delegate. By default it is created from
            the configuration; pass None to disable persistence.
        clock: Time source of the caches (epoch seconds).
        timer_factory: Timer used by the cache refreshers.
        session_info: Session information given to :class:`Application`.
    """

    def __init__(
        self,
        fetcher: SchemaFetcher,
        invoker: MethodInvoker,
        config: Optional[ClientConfig] = None,
        endpoint: str = "default",
        storage: Any = _DEFAULT,
        clock: Callable[[], float] = time.time,
        timer_factory: Optional[TimerFactory] = None,
        session_info: Any = None,
    ) -> None:
        self.config = config or ClientConfig()
        self._fetcher = fetcher
        self._invoker = invoker
        self._storage = create_storage(self.config) if storage is _DEFAULT else storage
        self._clock = clock
        self._timer_factory = timer_factory
        self.root_key = f"campaign.cache.{endpoint}"

        self._entity_cache = XtkEntityCache(
            self._storage, f"{self.root_key}.XtkEntityCache", self.config.entity_cache_ttl, clock=clock
        )
        self._method_cache = MethodCache(
            self._storage, f"{self.root_key}.MethodCache", self.config.method_cache_ttl, clock=clock
        )
        self._option_cache = OptionCache(
            self._storage, f"{self.root_key}.OptionCache", self.config.option_cache_ttl, clock=clock
        )
        self._refreshers: List[CacheRefresher] = []
        self.application = Application(self, session_info)

    # ------------------------------------------------------------------ #
    # Schemas

    async def get_schema(
        self,
        schema_id: str,
        representation: Union[str, Representation, None] = None,
        use_cache: bool = True,
    ) -> Any:
        """Schema definition in the requested representation, or None if unknown.

        Fetch failures propagate to the caller.

        Raises:
            CampaignException: Invalid representation.
        """
        rep = Representation.of(representation or self.config.representation)
        entity = await self._entity_cache.get("xtk:schema", schema_id) if use_cache else None
        if entity is None:
            fetched = await self._fetcher.fetch(schema_id)
            if fetched is None:
                logger.debug(f"Schema {schema_id} not found")
                return None
            entity = Entity.of(fetched).to_xml("schema")
            await self._entity_cache.put("xtk:schema", schema_id, entity)
            await self._method_cache.put(entity)
        return to_representation(entity, rep)

    def has_package(self, name: str) -> bool:
        return self.application.has_package(name)

    # ------------------------------------------------------------------ #
    # Methods

    async def get_method(self, schema_id: str, method_name: str) -> Optional[MethodDescriptor]:
        """Method definition and urn, loading the schema on a cache miss."""
        descriptor = await self._method_cache.get_method(schema_id, method_name)
        if descriptor is not None:
            return descriptor
        schema = await self.get_schema(schema_id, Representation.XML)
        if schema is None:
            return None
        await self._method_cache.put(schema)
        return await self._method_cache.get_method(schema_id, method_name)

    async def call_method(
        self,
        schema_id: str,
        method_name: str,
        obj: Any = None,
        params: Optional[Sequence[Any]] = None,
    ) -> Any:
        """Invoke a method of a schema.

        Args:
            schema_id: Schema id, such as ``xtk:session``.
            method_name: Method name.
            obj: The object (``this``) of non static methods.
            params: Method parameters, passed as is to the invoker.

        Raises:
            CampaignException: Unknown schema or method, non static method
                called without object, or a fault raised by the invoker.
        """
        descriptor = await self.get_method(schema_id, method_name)
        if descriptor is None:
            raise CampaignException.soap_unknown_method(
                schema_id, method_name, f"Method '{method_name}' of schema '{schema_id}' not found"
            )
        if not descriptor.is_static and obj is None:
            raise CampaignException.soap_unknown_method(
                schema_id,
                method_name,
                f"Cannot call non-static method '{method_name}' of schema '{schema_id}' : no object was specified",
            )
        logger.debug(f"Calling {descriptor.urn}#{method_name}")
        return await self._invoker.invoke(
            descriptor.urn, method_name, list(params or []), method=descriptor.method, obj=obj
        )

    # ------------------------------------------------------------------ #
    # Options

    async def get_option(self, name: str, use_cache: bool = True) -> Any:
        """Value of a server option, cast to its type."""
        if use_cache:
            option = await self._option_cache.get_option(name)
            if option is not None:
                return option["value"]
        raw_value_and_type = await self._invoker.invoke("xtk:session", "GetOption", [name])
        return await self._option_cache.put(name, raw_value_and_type)

    # ------------------------------------------------------------------ #
    # Caches

    async def clear_entity_cache(self) -> None:
        await self._entity_cache.clear()

    async def clear_method_cache(self) -> None:
        await self._method_cache.clear()

    async def clear_option_cache(self) -> None:
        await self._option_cache.clear()

    async def clear_all_caches(self) -> None:
        await self.clear_entity_cache()
        await self.clear_method_cache()
        await self.clear_option_cache()

    def start_refresh_caches(self) -> None:
        """Start polling the server for modified schemas.

        Requires a running event loop unless a custom timer factory was given.
        """
        self.stop_refresh_caches()
        for cache in (self._entity_cache, self._method_cache):
            metadata_cache = MetadataCache(
                self._storage,
                f"{self.root_key}.{cache.name}.MetadataCache",
                self.config.option_cache_ttl,
                clock=self._clock,
            )
            self._refreshers.append(
                CacheRefresher(
                    cache,
                    self._invoker,
                    "xtk:schema",
                    metadata_cache=metadata_cache,
                    interval=self.config.refresh_interval,
                    timer_factory=self._timer_factory,
                )
            )

    def stop_refresh_caches(self) -> None:
        for refresher in self._refreshers:
            refresher.stop_auto_refresh()
        self._refreshers = []

    @property
    def refreshers(self) -> List[CacheRefresher]:
        return list(self._refreshers)

    def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        return {
            cache.name: cache.get_cache_stats()
            for cache in (self._entity_cache, self._method_cache, self._option_cache)
        }
