"""Campaign Client
===============

Schema-driven representation and dispatch engine for clients of a
schema-described, SOAP-like marketing automation server.

Key capabilities
----------------
- Three interchangeable entity representations: markup (``xml``), attribute
  prefixed "fat" JSON (``BadgerFish``) and ``SimpleJson``, see :mod:`~campaign_client.dom`.
- Navigation of server schemas (refs, links, joins, keys, enumerations) with
  :class:`~campaign_client.schema.XtkSchema`.
- TTL caches of schemas, methods and options, optionally persisted in Redis.
- Cache coherence with server side modifications by polling
  (:class:`~campaign_client.refresher.CacheRefresher`).

Design principles
-----------------
1. **Collaborators, not transport** - HTTP, credentials and SOAP marshalling
    are provided by the caller through small protocols.
2. **Fail soft caching** - persistent storage failures degrade to cache misses.
3. **Errors vs absence** - malformed metadata raises
    :class:`~campaign_client.exceptions.DomException`, missing data is None.

Minimal quick start
-------------------
>>> from campaign_client import Client, ClientConfig
>>> client = Client(fetcher, invoker, ClientConfig.from_env(), endpoint="https://acc.example.com")
>>> schema = await client.application.get_schema("nms:recipient")
>>> node = await schema.find_node("/@email")

Public surface
--------------
Only a curated subset is exported at the package level; other modules can be
imported explicitly.
"""

__version__ = "0.1.0"

from .application import Application, CurrentLogin
from .cache import Cache
from .client import Client
from .config import ClientConfig
from .dom import DomUtil, Representation
from .entity_accessor import Entity
from .exceptions import CampaignException, DomException
from .refresher import CacheRefresher
from .schema import XtkSchema, XtkSchemaNode
from .storage import MemoryStorage, RedisStorage

__all__ = [
    "Application",
    "Cache",
    "CacheRefresher",
    "CampaignException",
    "Client",
    "ClientConfig",
    "CurrentLogin",
    "DomException",
    "DomUtil",
    "Entity",
    "MemoryStorage",
    "RedisStorage",
    "Representation",
    "XtkSchema",
    "XtkSchemaNode",
]
