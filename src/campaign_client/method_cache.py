"""Cache of SOAP method definitions and of the urn used to invoke them.

Methods are cached under ``schemaId#methodName``. The value records the
method markup and the urn the invocation must target:

* methods of ``<methods>`` use the schema id itself as urn;
* methods of ``<interface name="X">`` are cached under ``namespace:X``;
* when a schema declares ``implements="ns:itf"``, the methods already cached
  for ``ns:itf`` are copied under the schema id, with the composite urn
  ``ns:itf|schemaId``. The server dispatches such calls on the concrete schema.

Each schema (and interface) also has an index entry under ``schemaId#``
listing its method names, and for a schema the interfaces it declares. The
index is persisted like the methods, so inheritance and invalidation work
on entries another process stored.
"""

from __future__ import annotations

import json
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .cache import Cache, StorageDelegate
from .dom import DomUtil

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MethodDescriptor:
    """A method definition and the urn to invoke it with."""

    method: ET.Element
    urn: str

    @property
    def name(self) -> str:
        return self.method.get("name", "")

    @property
    def is_static(self) -> bool:
        return DomUtil.get_attribute_as_boolean(self.method, "static")

    def parameters(self, in_out: Optional[str] = None) -> List[ET.Element]:
        """``<param>`` elements of the method, optionally filtered on ``inout`` (``in`` by default)."""
        params = DomUtil.find_element(self.method, "parameters")
        result = []
        for param in DomUtil.child_elements(params, "param"):
            direction = param.get("inout") or "in"
            if in_out is None or direction == in_out:
                result.append(param)
        return result


def method_key(schema_id: str, method_name: str) -> str:
    return f"{schema_id}#{method_name}"


def method_ser_deser(item: Any, serialize: bool) -> Any:
    if serialize:
        if not item or not isinstance(item, dict) or not item.get("value"):
            raise ValueError("Cannot serialize falsy cached item")
        value = item["value"]
        data = dict(item)
        if "method" in value:
            data["value"] = {"method": DomUtil.to_xml_string(value["method"]), "urn": value["urn"]}
        return json.dumps(data)
    if not item:
        raise ValueError("Cannot deserialize falsy cached item")
    data = json.loads(item)
    value = data["value"]
    if "method" in value:
        data["value"] = {"method": DomUtil.parse(value["method"]), "urn": value["urn"]}
    return data


class MethodCache(Cache):
    """Method definitions indexed by schema id and method name."""

    def __init__(
        self,
        storage: Optional[StorageDelegate] = None,
        root_key: Optional[str] = None,
        ttl: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(
            storage, root_key, ttl, make_key=method_key, ser_deser=method_ser_deser, **kwargs
        )

    async def _put_method(self, schema_id: str, method: ET.Element, urn: str) -> None:
        method_name = method.get("name")
        await super().put(schema_id, method_name, {"method": method, "urn": urn})

    async def _put_index(
        self, schema_id: str, method_names: List[str], interfaces: Optional[List[str]] = None
    ) -> None:
        await super().put(schema_id, "", {"methods": method_names, "interfaces": interfaces or []})

    async def _get_index(self, schema_id: str) -> Optional[Dict[str, List[str]]]:
        index = await super().get(schema_id, "")
        return index if index and "methods" in index else None

    async def put(self, schema: ET.Element) -> None:  # type: ignore[override]
        """Cache all methods of a schema definition.

        Args:
            schema: ``<schema>`` markup element, as returned by the server.
        """
        namespace = DomUtil.get_attribute_as_string(schema, "namespace")
        name = DomUtil.get_attribute_as_string(schema, "name")
        schema_id = f"{namespace}:{name}"

        own_methods: List[str] = []
        interfaces: List[str] = []
        for group in DomUtil.child_elements(schema):
            if group.tag == "interface":
                interface_id = f"{namespace}:{DomUtil.get_attribute_as_string(group, 'name')}"
                names = []
                for method in DomUtil.child_elements(group, "method"):
                    await self._put_method(interface_id, method, interface_id)
                    names.append(method.get("name"))
                await self._put_index(interface_id, names)
                interfaces.append(interface_id)
            elif group.tag == "methods":
                for method in DomUtil.child_elements(group, "method"):
                    await self._put_method(schema_id, method, schema_id)
                    own_methods.append(method.get("name"))

        implements = DomUtil.get_attribute_as_string(schema, "implements")
        for interface_id in (part.strip() for part in implements.split(",")):
            if interface_id:
                own_methods.extend(await self._inherit(interface_id, schema_id))
        await self._put_index(schema_id, own_methods, interfaces)

    async def _inherit(self, interface_id: str, schema_id: str) -> List[str]:
        index = await self._get_index(interface_id)
        if index is None:
            logger.debug(f"Schema {schema_id} implements {interface_id} which is not cached")
            return []
        urn = f"{interface_id}|{schema_id}"
        inherited = []
        for method_name in index["methods"]:
            value = await self._get_value(interface_id, method_name)
            if not value:
                continue
            logger.debug(f"Schema {schema_id} inherits method {interface_id}#{method_name}")
            await self._put_method(schema_id, value["method"], urn)
            inherited.append(method_name)
        return inherited

    async def invalidate(self, entity_type: str, entity_id: str) -> None:
        """Drop all methods cached for a modified schema, and those of its interfaces.

        Entries are found from the persisted index, so methods stored by
        another process are dropped too.
        """
        if entity_type != "xtk:schema":
            return
        await self._invalidate_schema(entity_id)

    async def _invalidate_schema(self, schema_id: str) -> None:
        index = await self._get_index(schema_id)
        method_names = set(index["methods"]) if index else set()
        prefix = f"{schema_id}#"
        method_names.update(key[len(prefix):] for key in self.keys() if key.startswith(prefix))
        for method_name in method_names:
            await self.remove(method_key(schema_id, method_name))
        await self.remove(method_key(schema_id, ""))
        for interface_id in index["interfaces"] if index else []:
            await self._invalidate_schema(interface_id)

    async def _get_value(self, schema_id: str, method_name: str) -> Optional[Dict[str, Any]]:
        if not method_name:
            return None
        value = await super().get(schema_id, method_name)
        return value if value and "method" in value else None

    async def get(self, schema_id: str, method_name: str) -> Optional[ET.Element]:
        value = await self._get_value(schema_id, method_name)
        return value["method"] if value else None

    async def get_soap_urn(self, schema_id: str, method_name: str) -> Optional[str]:
        value = await self._get_value(schema_id, method_name)
        return value["urn"] if value else None

    async def get_method(self, schema_id: str, method_name: str) -> Optional[MethodDescriptor]:
        """Method definition and urn, or None when the method is not cached."""
        value = await self._get_value(schema_id, method_name)
        if not value:
            return None
        return MethodDescriptor(method=value["method"], urn=value["urn"])
