"""Tests for the schema node model: paths, refs, links, joins, keys and enumerations."""

import pytest
import pytest_asyncio

from campaign_client.client import Client
from campaign_client.dom import DomUtil
from campaign_client.entity_accessor import Entity
from campaign_client.exceptions import DomException
from campaign_client.schema import XtkSchema, new_schema

from conftest import FakeFetcher, FakeInvoker, RECIPIENT_SCHEMA

LOOP_SCHEMA = """
<schema namespace="nms" name="loop">
  <element name="loop">
    <element name="x" ref="a"/>
    <element name="me" ref="loop"/>
  </element>
  <element name="a" ref="b"/>
  <element name="b" ref="a"/>
</schema>
"""

NO_ROOT_SCHEMA = """
<schema namespace="nms" name="noRoot">
  <element name="other">
    <attribute name="a" type="string"/>
  </element>
</schema>
"""

WORKFLOW_SCHEMA = """
<schema namespace="xtk" name="workflow">
  <element name="workflow">
    <attribute name="label" type="string">
      <default>Untitled</default>
    </attribute>
    <element name="transitions">
      <default>
        <transition name="done" label="Done"/>
        <transition name="error" label="Error"/>
      </default>
    </element>
  </element>
</schema>
"""


@pytest.fixture
def client(clock):
    return Client(FakeFetcher(), FakeInvoker(), storage=None, clock=clock)


@pytest_asyncio.fixture
async def recipient(client):
    return await client.application.get_schema("nms:recipient")


def parse(text):
    return new_schema(DomUtil.parse(text))


class TestSchemaProperties:
    @pytest.mark.asyncio
    async def test_schema_attributes(self, recipient):
        assert recipient.id == "nms:recipient"
        assert recipient.namespace == "nms"
        assert recipient.name == "recipient"
        assert recipient.label_singular == "Recipient"
        assert recipient.mapping_type == "sql"
        assert recipient.implements == "xtk:persist"
        assert recipient.md5 == "a1b2"
        assert recipient.root is recipient.children["recipient"]
        assert recipient.root.is_root
        assert not recipient.children["address"].is_root

    @pytest.mark.asyncio
    async def test_children(self, recipient):
        root = recipient.root
        names = list(root.children)
        # Attributes first, in declaration order
        assert names[:5] == ["@id", "@email", "@gender", "@fullName", "@folder-id"]
        assert root.has_child("country")
        assert not root.has_child("email")
        assert root.children_count == len(names)
        assert root.children["@email"].is_attribute
        assert root.children["@email"].length == 80
        assert root.children["@email"].is_not_null

    @pytest.mark.asyncio
    async def test_node_paths(self, recipient):
        root = recipient.root
        assert root.node_path == "/"
        assert root.children["@email"].node_path == "/@email"
        assert root.children["country"].children["@isoA3"].node_path == "/country/@isoA3"
        assert recipient.children["address"].children["@line1"].node_path == "/address/@line1"

    @pytest.mark.asyncio
    async def test_user_description(self, recipient):
        assert recipient.root.children["@email"].user_description == "Email (@email)"
        assert recipient.root.children["myAddress"].user_description == "myAddress"
        assert "Email (@email)" in recipient.to_string()

    @pytest.mark.asyncio
    async def test_localization_ids(self, recipient):
        email = recipient.root.children["@email"]
        assert email.label_localization_id == "nms__recipient__recipient__email__@label"
        assert email.description_localization_id == "nms__recipient__recipient__email__@desc"
        assert recipient.label_localization_id == "nms__recipient__@label"

    def test_duplicate_child(self):
        with pytest.raises(DomException):
            parse('<schema namespace="a" name="dup"><element name="dup"><attribute name="x"/><attribute name="x"/></element></schema>')

    def test_iter_nodes_and_to_dict(self):
        schema = parse(RECIPIENT_SCHEMA)
        paths = [node.node_path for node in schema.root.iter_nodes()]
        assert "/country/@isoA3" in paths
        assert schema.root.to_dict()["children"][1]["name"] == "@email"


class TestFindNode:
    @pytest.mark.asyncio
    async def test_path_resolution(self, recipient):
        root = recipient.root
        email = await root.find_node("@email")
        country = await root.find_node("country")
        iso = await root.find_node("country/@isoA3")

        assert email is root.children["@email"]
        assert iso is country.children["@isoA3"]
        assert await iso.find_node("/@email") is email
        assert await country.find_node("../@email") is email
        assert await root.find_node("./country/..") is root
        assert await root.find_node(".") is root

    @pytest.mark.asyncio
    async def test_empty_and_absolute_paths_start_at_root(self, recipient):
        assert await recipient.find_node("") is recipient.root
        assert await recipient.find_node("/") is recipient.root
        assert await recipient.find_node("/country/@isoA3") is recipient.root.children["country"].children["@isoA3"]

    @pytest.mark.asyncio
    async def test_attribute_names_are_exact(self, recipient):
        root = recipient.root
        assert await root.find_node("@nope") is None
        assert await root.find_node("@Email") is None
        assert await root.find_node("email") is None
        assert await root.find_node("nope/@isoA3") is None

    @pytest.mark.asyncio
    async def test_non_strict_infers_attribute_marker(self, recipient):
        root = recipient.root
        assert await root.find_node("email", strict=False) is root.children["@email"]
        assert await root.find_node("@country", strict=False) is root.children["country"]
        assert await root.find_node("country/isoA3", strict=False) is root.children["country"].children["@isoA3"]

    @pytest.mark.asyncio
    async def test_schema_without_root(self):
        schema = parse(NO_ROOT_SCHEMA)
        assert schema.root is None
        assert await schema.find_node("/@a") is None
        assert await schema.find_node("") is None
        other = schema.children["other"]
        assert await other.find_node("@a") is other.children["@a"]


class TestRefs:
    @pytest.mark.asyncio
    async def test_ref_resolves_like_its_target(self, recipient):
        through_ref = await recipient.root.find_node("myAddress/country/@name")
        address = recipient.children["address"]
        direct = await address.find_node("country/@name")
        assert through_ref is not None
        assert through_ref is direct

    @pytest.mark.asyncio
    async def test_follow_ref(self, recipient):
        root = recipient.root
        alias = await root.find_node("myAddress", follow_ref=False)
        assert alias is root.children["myAddress"]
        assert await root.find_node("myAddress") is recipient.children["address"]
        assert await alias.ref_target() is recipient.children["address"]
        assert await root.children["@email"].ref_target() is None

    @pytest.mark.asyncio
    async def test_cross_schema_ref(self, recipient):
        label = await recipient.root.find_node("folderRef/@label")
        assert label is not None
        assert label.schema.id == "xtk:folder"

    @pytest.mark.asyncio
    async def test_malformed_ref_raises(self, recipient):
        with pytest.raises(DomException, match="nms:recipient"):
            await recipient.root.find_node("badRef")
        # The node itself exists
        assert await recipient.root.find_node("badRef", follow_ref=False) is not None

    @pytest.mark.asyncio
    async def test_ref_loop_raises(self):
        schema = parse(LOOP_SCHEMA)
        with pytest.raises(DomException, match="Circular"):
            await schema.root.find_node("x")

    @pytest.mark.asyncio
    async def test_ref_to_own_root(self):
        schema = parse(LOOP_SCHEMA)
        assert await schema.root.find_node("me") is schema.root
        assert await schema.root.find_node("me/x", follow_ref=False) is schema.root.children["x"]

    @pytest.mark.asyncio
    async def test_cross_schema_ref_without_application(self):
        schema = parse(RECIPIENT_SCHEMA)
        assert await schema.root.find_node("folderRef") is None


class TestLinks:
    @pytest.mark.asyncio
    async def test_path_through_link(self, recipient):
        label = await recipient.root.find_node("folder/@label")
        assert label is not None
        assert label.schema.id == "xtk:folder"
        assert label.node_path == "/@label"

    @pytest.mark.asyncio
    async def test_link_target(self, recipient):
        link = await recipient.root.find_node("folder")
        assert link.is_link
        target = await link.link_target()
        assert target.is_root
        assert target.schema.id == "xtk:folder"
        assert await recipient.root.children["@email"].link_target() is None

    @pytest.mark.asyncio
    async def test_multiple_targets_raise(self, recipient):
        with pytest.raises(DomException):
            await recipient.root.children["badLink"].link_target()
        with pytest.raises(DomException):
            await recipient.root.find_node("badLink/@id")

    @pytest.mark.asyncio
    async def test_unqualified_target_raises(self, recipient):
        with pytest.raises(DomException):
            await recipient.root.children["unqualifiedLink"].link_target()

    @pytest.mark.asyncio
    async def test_missing_target_schema_is_not_found(self, recipient):
        link = recipient.root.children["missingLink"]
        assert await link.link_target() is None
        assert await recipient.root.find_node("missingLink/@id") is None

    @pytest.mark.asyncio
    async def test_reverse_link(self, recipient):
        link = recipient.root.children["folder"]
        reverse = await link.reverse_link()
        assert reverse.name == "recipient"
        assert reverse.schema.id == "xtk:folder"
        assert await reverse.reverse_link() is link
        # No join information
        assert not await recipient.root.children["badLink"].reverse_link()

    @pytest.mark.asyncio
    async def test_joins(self, recipient):
        link = recipient.root.children["folder"]
        assert [(j.src, j.dst) for j in link.joins] == [("@folder-id", "@id")]
        pairs = await link.join_nodes()
        assert len(pairs) == 1
        source, destination = pairs[0]
        assert source is recipient.root.children["@folder-id"]
        assert destination.schema.id == "xtk:folder"
        assert destination.name == "@id"

    @pytest.mark.asyncio
    async def test_join_nodes_not_found(self, recipient):
        assert await recipient.root.children["missingLink"].join_nodes() == []
        assert await recipient.root.children["@email"].join_nodes() == []


class TestKeysAndComputeString:
    @pytest.mark.asyncio
    async def test_keys(self, recipient):
        root = recipient.root
        assert set(root.keys) == {"email", "id"}
        assert root.keys["email"].fields == {"@email": root.children["@email"]}
        assert root.first_internal_key().name == "id"
        assert root.first_external_key().name == "email"

    def test_keyfield_without_xpath(self):
        with pytest.raises(DomException):
            parse('<schema namespace="a" name="k"><element name="k"><key name="bad"><keyfield/></key></element></schema>')

    @pytest.mark.asyncio
    async def test_compute_string(self, recipient, client):
        assert recipient.root.compute_string() == "/@email"
        folder = await client.application.get_schema("xtk:folder")
        assert folder.root.compute_string() == "@label"
        assert recipient.children["address"].compute_string() == ""

    @pytest.mark.asyncio
    async def test_is_calculated(self, recipient):
        assert recipient.root.children["@fullName"].is_calculated
        assert not recipient.root.children["@email"].is_calculated


class TestDefaults:
    def test_attribute_default(self):
        schema = parse(RECIPIENT_SCHEMA)
        assert schema.root.children["@gender"].default == "0"
        assert schema.root.children["@email"].default is None

    def test_child_defaults(self):
        schema = parse(WORKFLOW_SCHEMA)
        assert schema.root.children["@label"].default == "Untitled"
        assert schema.root.children["transitions"].default == {
            "transition": [
                {"@name": "done", "@label": "Done"},
                {"@name": "error", "@label": "Error"},
            ]
        }


class TestEnumerations:
    @pytest.mark.asyncio
    async def test_node_enumeration(self, recipient):
        gender = await recipient.root.children["@gender"].enumeration()
        assert gender.name == "gender"
        assert gender.id == "nms:recipient:gender"
        assert list(gender.values) == ["unknown", "male", "female"]
        assert gender.values["female"].value == 2
        assert gender.default.name == "unknown"
        assert not gender.has_image

    @pytest.mark.asyncio
    async def test_implicit_values(self, recipient):
        status = await recipient.root.enumeration("status")
        assert [v.value for v in status.values.values()] == [0, 1, 10, 11]
        assert status.has_image
        assert status.default is None
        assert status.find_by_value(10).name == "blocked"
        assert status.get("deleted").label == "Deleted"

    @pytest.mark.asyncio
    async def test_qualified_names(self, recipient):
        root = recipient.root
        assert (await root.enumeration("nms:recipient:gender")).name == "gender"
        assert await root.enumeration("xtk:folder:gender") is None
        assert await root.enumeration("nms:unknown:gender") is None
        assert await root.enumeration("missing") is None

    @pytest.mark.asyncio
    async def test_bad_names_raise(self, recipient):
        with pytest.raises(DomException):
            await recipient.root.enumeration("nms:gender")
        with pytest.raises(DomException):
            await recipient.root.enumeration("a:b:c:d")
        with pytest.raises(DomException):
            await recipient.root.children["@email"].enumeration()


class TestRepresentations:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("flavor", ["BadgerFish", "SimpleJson"])
    async def test_schema_from_json(self, flavor):
        json = DomUtil.to_json(DomUtil.parse(RECIPIENT_SCHEMA), flavor)
        schema = XtkSchema(Entity.of(json, flavor))
        assert schema.id == "nms:recipient"
        iso = await schema.root.find_node("country/@isoA3")
        assert iso.label == "ISO code"
        assert await schema.root.find_node("myAddress/country/@name") is schema.children["address"].children["country"].children["@name"]
        assert schema.root.compute_string() == "/@email"
        assert list((await schema.root.enumeration("status")).values) == ["active", "inactive", "blocked", "deleted"]
