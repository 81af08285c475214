"""Tests for the specialized caches (entities, methods, options, metadata)."""

import json

import pytest

from campaign_client.dom import DomUtil
from campaign_client.entity_cache import XtkEntityCache
from campaign_client.metadata_cache import MetadataCache
from campaign_client.method_cache import MethodCache
from campaign_client.option_cache import OptionCache
from campaign_client.storage import MemoryStorage

from conftest import DELIVERY_SCHEMA, RECIPIENT_SCHEMA, SESSION_SCHEMA


class TestXtkEntityCache:
    @pytest.mark.asyncio
    async def test_put_get(self, clock):
        cache = XtkEntityCache(clock=clock)
        schema = DomUtil.parse(RECIPIENT_SCHEMA)
        await cache.put("xtk:schema", "nms:recipient", schema)
        assert await cache.get("xtk:schema", "nms:recipient") is schema
        assert await cache.get("xtk:schema", "nms:delivery") is None
        assert cache.keys() == ["xtk:schema|nms:recipient"]

    @pytest.mark.asyncio
    async def test_interfaces_are_cached_as_schemas(self, clock):
        cache = XtkEntityCache(clock=clock)
        await cache.put("xtk:schema", "xtk:session", DomUtil.parse(SESSION_SCHEMA))
        interface = await cache.get("xtk:schema", "xtk:persist")
        assert interface is not None
        assert interface.tag == "interface"
        assert interface.get("name") == "persist"

    @pytest.mark.asyncio
    async def test_invalidate_schema_drops_its_interfaces(self, clock):
        storage = MemoryStorage()
        await XtkEntityCache(storage, "root", clock=clock).put(
            "xtk:schema", "xtk:session", DomUtil.parse(SESSION_SCHEMA)
        )

        cache = XtkEntityCache(storage, "root", clock=clock)
        await cache.put("xtk:schema", "nms:recipient", DomUtil.parse(RECIPIENT_SCHEMA))
        await cache.invalidate("xtk:schema", "xtk:session")
        assert await cache.get("xtk:schema", "xtk:session") is None
        assert await cache.get("xtk:schema", "xtk:persist") is None
        assert "root$xtk:schema|xtk:persist" not in storage.data
        assert await cache.get("xtk:schema", "nms:recipient") is not None

    @pytest.mark.asyncio
    async def test_temp_group_schemas_are_not_cached(self, clock):
        cache = XtkEntityCache(clock=clock)
        await cache.put("xtk:schema", "temp:group:1234", DomUtil.parse("<schema/>"))
        assert cache.keys() == []
        assert await cache.get("xtk:schema", "temp:group:1234") is None

    @pytest.mark.asyncio
    async def test_markup_is_persisted_as_text(self, clock):
        storage = MemoryStorage()
        await XtkEntityCache(storage, "root", clock=clock).put(
            "xtk:schema", "nms:delivery", DomUtil.parse(DELIVERY_SCHEMA)
        )
        stored = json.loads(storage.data["root$xtk:schema|nms:delivery"])
        assert stored["value"].startswith("<schema")

        reader = XtkEntityCache(storage, "root", clock=clock)
        schema = await reader.get("xtk:schema", "nms:delivery")
        assert schema.tag == "schema"
        assert schema.get("name") == "delivery"


class TestMethodCache:
    @pytest.mark.asyncio
    async def test_methods_and_urns(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))

        logon = await cache.get("xtk:session", "Logon")
        assert logon.get("name") == "Logon"
        assert await cache.get_soap_urn("xtk:session", "Logon") == "xtk:session"

        assert (await cache.get("xtk:persist", "Write")).get("name") == "Write"
        assert await cache.get_soap_urn("xtk:persist", "Write") == "xtk:persist"

        assert await cache.get("xtk:session", "Unknown") is None
        assert await cache.get_soap_urn("xtk:session", "Unknown") is None
        assert await cache.get_method("nms:recipient", "Logon") is None

    @pytest.mark.asyncio
    async def test_interface_method_inheritance(self, clock):
        """Methods of an implemented interface are exposed with a composite urn."""
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))
        assert await cache.get("nms:delivery", "Write") is None

        await cache.put(DomUtil.parse(DELIVERY_SCHEMA))
        descriptor = await cache.get_method("nms:delivery", "Write")
        assert descriptor is not None
        assert descriptor.urn == "xtk:persist|nms:delivery"
        assert descriptor.name == "Write"
        assert descriptor.is_static
        assert await cache.get_soap_urn("nms:delivery", "Prepare") == "nms:delivery"
        assert await cache.get_soap_urn("nms:delivery", "Delete") == "xtk:persist|nms:delivery"

    @pytest.mark.asyncio
    async def test_inheritance_needs_interface_cached_first(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(DELIVERY_SCHEMA))
        assert await cache.get("nms:delivery", "Write") is None

    @pytest.mark.asyncio
    async def test_method_parameters(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))
        descriptor = await cache.get_method("xtk:session", "GetOption")
        assert [p.get("name") for p in descriptor.parameters("in")] == ["name"]
        assert [p.get("name") for p in descriptor.parameters("out")] == ["value", "type"]
        assert len(descriptor.parameters()) == 3

    @pytest.mark.asyncio
    async def test_persisted_methods(self, clock):
        storage = MemoryStorage()
        await MethodCache(storage, "root", clock=clock).put(DomUtil.parse(SESSION_SCHEMA))
        assert "root$xtk:session#Logon" in storage.data

        reader = MethodCache(storage, "root", clock=clock)
        descriptor = await reader.get_method("xtk:persist", "Write")
        assert descriptor.urn == "xtk:persist"
        assert descriptor.method.get("name") == "Write"

    @pytest.mark.asyncio
    async def test_inherits_interface_stored_by_another_cache(self, clock):
        storage = MemoryStorage()
        await MethodCache(storage, "root", clock=clock).put(DomUtil.parse(SESSION_SCHEMA))

        reader = MethodCache(storage, "root", clock=clock)
        assert reader.keys() == []
        await reader.put(DomUtil.parse(DELIVERY_SCHEMA))
        descriptor = await reader.get_method("nms:delivery", "Write")
        assert descriptor is not None
        assert descriptor.urn == "xtk:persist|nms:delivery"
        assert await reader.get_soap_urn("nms:delivery", "Delete") == "xtk:persist|nms:delivery"

    @pytest.mark.asyncio
    async def test_index_is_not_a_method(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))
        assert await cache.get("xtk:session", "") is None
        assert await cache.get_method("xtk:persist", "") is None

    @pytest.mark.asyncio
    async def test_invalidate_schema(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))
        await cache.put(DomUtil.parse(DELIVERY_SCHEMA))
        await cache.invalidate("xtk:schema", "xtk:session")
        assert await cache.get("xtk:session", "Logon") is None
        # Interfaces declared by the schema go with it
        assert await cache.get("xtk:persist", "Write") is None
        assert await cache.get("nms:delivery", "Prepare") is not None

    @pytest.mark.asyncio
    async def test_invalidate_ignores_other_entity_types(self, clock):
        cache = MethodCache(clock=clock)
        await cache.put(DomUtil.parse(SESSION_SCHEMA))
        await cache.invalidate("nms:recipient", "xtk:session")
        assert await cache.get("xtk:session", "Logon") is not None

    @pytest.mark.asyncio
    async def test_invalidate_methods_stored_by_another_cache(self, clock):
        storage = MemoryStorage()
        await MethodCache(storage, "root", clock=clock).put(DomUtil.parse(SESSION_SCHEMA))

        other = MethodCache(storage, "root", clock=clock)
        await other.invalidate("xtk:schema", "xtk:session")
        assert not [key for key in storage.data if key.startswith("root$xtk:session#")]
        assert not [key for key in storage.data if key.startswith("root$xtk:persist#")]
        assert await MethodCache(storage, "root", clock=clock).get("xtk:session", "Logon") is None


class TestOptionCache:
    @pytest.mark.asyncio
    async def test_typed_value(self, clock):
        cache = OptionCache(clock=clock)
        assert await cache.put("XtkDatabaseId", ["u12345", 6]) == "u12345"
        assert await cache.put("NmsBroadcast_MaxDelay", ["42", 3]) == 42
        assert await cache.get("NmsBroadcast_MaxDelay") == 42
        assert await cache.get_option("NmsBroadcast_MaxDelay") == {"value": 42, "type": 3, "rawValue": "42"}

    @pytest.mark.asyncio
    async def test_missing_option(self, clock):
        cache = OptionCache(clock=clock)
        assert await cache.put("Missing", ["", 0]) is None
        assert await cache.get_option("Missing") == {"value": None, "type": 0, "rawValue": None}
        assert await cache.get("Unknown") is None

    @pytest.mark.asyncio
    async def test_value_recomputed_after_storage_round_trip(self, clock):
        storage = MemoryStorage()
        await OptionCache(storage, "root", clock=clock).put("Enabled", ["1", 15])
        stored = json.loads(storage.data["root$Enabled"])
        assert stored["value"] == {"type": 15, "rawValue": "1"}

        reader = OptionCache(storage, "root", clock=clock)
        assert await reader.get("Enabled") is True


class TestMetadataCache:
    @pytest.mark.asyncio
    async def test_raw_values(self, clock):
        storage = MemoryStorage()
        cache = MetadataCache(storage, "root", clock=clock)
        await cache.put("time", "2022-06-30T00:00:00.000Z")
        assert await cache.get("time") == "2022-06-30T00:00:00.000Z"
        assert await cache.get("buildNumber") is None

        reader = MetadataCache(storage, "root", clock=clock)
        assert await reader.get("time") == "2022-06-30T00:00:00.000Z"
