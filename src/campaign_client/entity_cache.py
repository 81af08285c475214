"""Cache of entities (mostly ``xtk:schema`` definitions) keyed by type and name."""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from typing import Any, List, Optional, Tuple

from .cache import Cache, StorageDelegate
from .dom import DomUtil

logger = logging.getLogger(__name__)

# Ephemeral schemas, with a content specific to each call
TEMP_GROUP_PREFIX = "temp:group:"


def entity_key(entity_type: str, entity_full_name: str) -> str:
    return f"{entity_type}|{entity_full_name}"


def xml_value_ser_deser(item: Any, serialize: bool) -> Any:
    """Store a cached object whose value is a markup element as JSON text."""
    if serialize:
        if not item or not isinstance(item, dict) or item.get("value") is None:
            raise ValueError("Cannot serialize falsy cached item")
        data = dict(item)
        data["value"] = DomUtil.to_xml_string(item["value"])
        return json.dumps(data)
    if not item:
        raise ValueError("Cannot deserialize falsy cached item")
    data = json.loads(item)
    data["value"] = DomUtil.parse(data["value"])
    return data


class XtkEntityCache(Cache):
    """Cache of markup entities keyed by ``entityType|fullName``.

    Putting an ``xtk:schema`` also caches each of its ``<interface>`` elements
    as a schema of its own, named ``namespace:interfaceName``.

    Example::

        cache = XtkEntityCache(storage, "acc.cache.XtkEntityCache", ttl=300)
        await cache.put("xtk:schema", "nms:recipient", schema_element)
        await cache.get("xtk:schema", "nms:recipient")
    """

    def __init__(
        self,
        storage: Optional[StorageDelegate] = None,
        root_key: Optional[str] = None,
        ttl: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            storage,
            root_key,
            ttl,
            make_key=entity_key,
            ser_deser=xml_value_ser_deser,
            **kwargs,
        )

    async def get(self, entity_type: str, entity_full_name: str) -> Optional[ET.Element]:
        if entity_full_name.startswith(TEMP_GROUP_PREFIX):
            return None
        return await super().get(entity_type, entity_full_name)

    async def put(self, entity_type: str, entity_full_name: str, entity: ET.Element) -> None:  # type: ignore[override]
        if entity_full_name.startswith(TEMP_GROUP_PREFIX):
            logger.debug(f"Not caching temporary entity {entity_full_name}")
            return
        await super().put(entity_type, entity_full_name, entity)

        if entity_type == "xtk:schema":
            for name, interface in self._interfaces(entity):
                await super().put(entity_type, name, interface)

    @staticmethod
    def _interfaces(schema: ET.Element) -> List[Tuple[str, ET.Element]]:
        namespace = schema.get("namespace")
        return [
            (f"{namespace}:{interface.get('name')}", interface)
            for interface in DomUtil.child_elements(schema, "interface")
        ]

    async def invalidate(self, entity_type: str, entity_full_name: str) -> None:
        """Drop an entity, and for a schema the interfaces cached along with it."""
        if entity_type == "xtk:schema":
            schema = await self.get(entity_type, entity_full_name)
            if schema is not None:
                for name, _ in self._interfaces(schema):
                    await self.remove(self.make_key(entity_type, name))
        await super().invalidate(entity_type, entity_full_name)
