"""Schema node model.

A schema (``xtk:schema`` entity) describes the structure of one entity type
as a tree of attribute and element definitions. This module turns the schema
entity, in any representation, into navigable objects:

* :class:`XtkSchema`, the schema itself. It is also the parent node of the
  top level elements, one of which (named like the schema) is the root.
* :class:`XtkSchemaNode`, an attribute (name prefixed with ``@``) or element.
* :class:`XtkSchemaKey`, :class:`XtkJoin`, :class:`XtkEnumeration` and
  :class:`XtkEnumerationValue`.

Path resolution follows the conventions of the server:

    ``.``         the node itself
    ``..``        the parent node
    ``/...``      absolute path, from the schema root node
    ``@name``     an attribute (exact, case sensitive)

Nodes may alias other nodes with ``ref`` (``name`` for a top level element of
the same schema, ``namespace:schema:path`` for a node of another schema) and
links (``type="link"``) point to another schema. Following either may need
to fetch another schema, which is why navigation methods are coroutines.

Example::

    schema = XtkSchema(DomUtil.parse(xml), application)
    email = await schema.root.find_node("@email")
    iso = await schema.find_node("/country/@isoA3")

Malformed metadata (bad ref, bad link target, bad enumeration name, keyfield
without xpath) raises :class:`~campaign_client.exceptions.DomException`.
Legitimately missing nodes or schemas resolve to None.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Union

from .caster import XtkCaster
from .dom import DomUtil, Representation
from .entity_accessor import Entity
from .exceptions import DomException
from .xpath import XPath

if TYPE_CHECKING:
    from .application import Application

logger = logging.getLogger(__name__)

NUMERIC_TYPES = ("byte", "short", "long", "int64", "float", "double")


def is_attribute_name(name: str) -> bool:
    return len(name) > 0 and name[0] == "@"


@dataclass(frozen=True)
class XtkJoin:
    """A join condition of a link: source xpath (this schema) to destination xpath (target)."""

    src: str
    dst: str


class XtkSchemaKey:
    """A key (internal or external) and its fields.

    Key fields are resolved locally when the schema is loaded.

    Raises:
        DomException: A keyfield has no ``xpath`` attribute.
    """

    def __init__(self, schema: "XtkSchema", entity: Entity, schema_node: "XtkSchemaNode") -> None:
        self.schema = schema
        self.name = entity.get_attribute_as_string("name")
        self.label = entity.get_attribute_as_string("label")
        self.description = entity.get_attribute_as_string("desc")
        self.is_internal = entity.get_attribute_as_boolean("internal")
        self.allow_empty_part = entity.get_attribute_as_boolean("allowEmptyPart")
        self.xpaths: List[str] = []
        self.fields: Dict[str, Optional[XtkSchemaNode]] = {}

        for child in entity.get_child_elements("keyfield"):
            xpath = child.get_attribute_as_string("xpath")
            if xpath == "":
                raise DomException(
                    f"Cannot create XtkSchemaKey for key '{self.name}': keyfield does not have an xpath attribute"
                )
            field = schema_node._find_local(xpath)
            if field is None:
                logger.debug(f"Key '{self.name}' of schema '{schema.id}': cannot resolve field '{xpath}' locally")
            self.xpaths.append(xpath)
            self.fields[field.name if field is not None else XPath(xpath).leaf()] = field


class XtkEnumerationValue:
    """One value of an enumeration."""

    def __init__(self, entity: Entity, base_type: str, implicit_value: Any) -> None:
        self.name = entity.get_attribute_as_string("name")
        self.label = entity.get_attribute_as_string("label")
        self.description = entity.get_attribute_as_string("desc")
        self.image = entity.get_attribute_as_string("img")
        self.enabled_if = entity.get_attribute_as_string("enabledIf")
        self.applicable_if = entity.get_attribute_as_string("applicableIf")
        self.is_implicit = not entity.has_attribute("value")
        self.string_value = entity.get_attribute_as_string("value")
        if self.is_implicit:
            self.value = implicit_value
        elif base_type:
            self.value = XtkCaster.as_(self.string_value, base_type)
        else:
            self.value = self.string_value

    def __repr__(self) -> str:
        return f"XtkEnumerationValue({self.name!r}, {self.value!r})"


class XtkEnumeration:
    """A named set of values, declared at the schema level.

    Values of numeric enumerations may be implicit: a value without a
    ``value`` attribute takes the previous value plus one (starting at 0).
    Values of string enumerations default to their name.
    """

    def __init__(self, schema_id: str, entity: Entity) -> None:
        self.name = entity.get_attribute_as_string("name")
        self.label = entity.get_attribute_as_string("label")
        self.description = entity.get_attribute_as_string("desc")
        self.base_type = entity.get_attribute_as_string("basetype")
        self.id = f"{schema_id}:{self.name}"
        self.default: Optional[XtkEnumerationValue] = None
        self.has_image = False
        self.values: Dict[str, XtkEnumerationValue] = {}

        default_value = entity.get_attribute_as_string("default")
        numeric = self.base_type in NUMERIC_TYPES
        position = 0
        for child in entity.get_child_elements("value"):
            implicit = position if numeric else child.get_attribute_as_string("name")
            value = XtkEnumerationValue(child, self.base_type, implicit)
            if numeric and not value.is_implicit:
                position = XtkCaster.as_long(value.string_value)
            position += 1
            self.values[value.name] = value
            if value.image != "":
                self.has_image = True
            if default_value != "" and default_value in (value.string_value, value.name):
                self.default = value

    def get(self, name: str) -> Optional[XtkEnumerationValue]:
        return self.values.get(name)

    def find_by_value(self, value: Any) -> Optional[XtkEnumerationValue]:
        for enum_value in self.values.values():
            if enum_value.value == value:
                return enum_value
        return None


class XtkSchemaNode:
    """An attribute or element definition of a schema.

    Attributes:
        schema: Owning schema.
        parent: Parent node (the schema itself for top level elements).
        name: Node name, prefixed with ``@`` for attributes.
        children: Child nodes by name, in declaration order (attributes first).
        keys: Keys declared on this node, by name.
        joins: Join conditions of a link node.
    """

    def __init__(
        self,
        schema: Optional["XtkSchema"],
        entity: Union[Entity, Any],
        parent: Optional["XtkSchemaNode"] = None,
        is_attribute: bool = False,
    ) -> None:
        entity = Entity.of(entity)
        self.schema: XtkSchema = schema if schema is not None else self  # type: ignore[assignment]
        self.parent = parent
        self.is_attribute = is_attribute
        self.name = ("@" if is_attribute else "") + entity.get_attribute_as_string("name")
        self.label = entity.get_attribute_as_string("label")
        self.description = entity.get_attribute_as_string("desc")
        self.img = entity.get_attribute_as_string("img")
        self.type = entity.get_attribute_as_string("type")
        self.length = entity.get_attribute_as_long("length")
        self.ref = entity.get_attribute_as_string("ref")
        self.target = entity.get_attribute_as_string("target")
        self.rev_link = entity.get_attribute_as_string("revLink")
        self.integrity = entity.get_attribute_as_string("integrity")
        self.enum = entity.get_attribute_as_string("enum")
        self.expr = entity.get_attribute_as_string("expr")
        self.sql_name = entity.get_attribute_as_string("sqlname")
        self.sql_table = entity.get_attribute_as_string("sqltable")
        self.is_not_null = entity.get_attribute_as_boolean("notNull")
        self.is_required = entity.get_attribute_as_boolean("required")
        self.is_advanced = entity.get_attribute_as_boolean("advanced")
        self.is_collection = entity.get_attribute_as_boolean("unbound")
        self.is_mapped_as_xml = entity.get_attribute_as_boolean("xml")
        self.is_calculated = self.expr != ""
        self.is_link = self.type == "link"
        self.is_root = (
            parent is not None and parent.parent is None and parent.name == self.name
        )
        if self.label == "" or self.label == self.name:
            self.user_description = self.name
        else:
            self.user_description = f"{self.label} ({self.name})"

        self.default = self._read_default(entity, "default")
        self.translated_default = self._read_default(entity, "translatedDefault")

        self.children: Dict[str, XtkSchemaNode] = {}
        self.keys: Dict[str, XtkSchemaKey] = {}
        self.joins: List[XtkJoin] = []
        compute_string = entity.get_element("compute-string")
        self._compute_string_expr = (
            compute_string.get_attribute_as_string("expr") if compute_string is not None else ""
        )

        self.node_path = self._get_node_path(absolute=True).as_string()
        self._init_children(entity)

    def _init_children(self, entity: Entity) -> None:
        nodes = [XtkSchemaNode(self.schema, child, self, True) for child in entity.get_child_elements("attribute")]
        nodes.extend(XtkSchemaNode(self.schema, child, self, False) for child in entity.get_child_elements("element"))
        for node in nodes:
            if node.name in self.children:
                raise DomException(
                    f"Failed to create schema node '{node.name}': there's a already a node with this name"
                )
            self.children[node.name] = node

        for child in entity.get_child_elements("join"):
            self.joins.append(
                XtkJoin(
                    src=child.get_attribute_as_string("xpath-src"),
                    dst=child.get_attribute_as_string("xpath-dst"),
                )
            )

        for child in entity.get_child_elements("key"):
            key = XtkSchemaKey(self.schema, child, self)
            self.keys[key.name] = key

    @staticmethod
    def _read_default(entity: Entity, name: str) -> Any:
        if entity.has_attribute(name):
            return entity.get_attribute_as_string(name)
        child = entity.get_element(name)
        if child is None:
            return None
        if child.get_child_elements():
            # Structured default, e.g. a list of transition templates
            return DomUtil.to_json(child.to_xml(name), Representation.BADGER_FISH)
        return child.get_text()

    # ------------------------------------------------------------------ #

    @property
    def children_count(self) -> int:
        return len(self.children)

    def has_child(self, name: str) -> bool:
        return name in self.children

    @property
    def label_localization_id(self) -> str:
        return f"{self._localization_base()}__@label"

    @property
    def description_localization_id(self) -> str:
        return f"{self._localization_base()}__@desc"

    def _localization_base(self) -> str:
        names: List[str] = []
        node: Optional[XtkSchemaNode] = self
        while node is not None and node.parent is not None:
            names.append(node.name.lstrip("@"))
            node = node.parent
        schema = self.schema
        return "__".join([schema.namespace, schema.name, *reversed(names)])

    def _get_node_path(self, absolute: bool = True) -> XPath:
        names: List[str] = []
        node: Optional[XtkSchemaNode] = self
        schema_name = self.schema.name
        while node is not None and node.parent is not None:
            # The root element does not appear in paths
            if node.parent.parent is not None or node.name != schema_name:
                names.append(node.name)
            node = node.parent
        path = "/".join(reversed(names))
        return XPath(f"/{path}" if absolute else path)

    def first_internal_key(self) -> Optional[XtkSchemaKey]:
        for key in self.keys.values():
            if key.is_internal:
                return key
        return None

    def first_external_key(self) -> Optional[XtkSchemaKey]:
        for key in self.keys.values():
            if not key.is_internal:
                return key
        return None

    def compute_string(self) -> str:
        """Expression used to display an entity of this node.

        Returns the ``<compute-string expr>`` if any, else the first field of
        the first external key as an absolute path, else "".
        """
        if self._compute_string_expr:
            return self._compute_string_expr
        key = self.first_external_key()
        if key is not None and key.xpaths:
            xpath = key.xpaths[0]
            return xpath if xpath.startswith("/") else f"/{xpath}"
        return ""

    # ------------------------------------------------------------------ #
    # Navigation

    def _find_local(self, path: Union[str, XPath]) -> Optional["XtkSchemaNode"]:
        """Resolve a path without following refs or links."""
        xpath = XPath(path)
        node: Optional[XtkSchemaNode] = self
        if xpath.is_absolute():
            node = self.schema.root or self._root_ancestor()
        for element in xpath.get_elements():
            if node is None:
                return None
            if element.is_self():
                continue
            if element.is_parent():
                node = node.parent
            else:
                node = node.children.get(element.as_string())
        return node

    def _root_ancestor(self) -> Optional["XtkSchemaNode"]:
        # Keys are built while the schema is loading, before its root is set
        node: Optional[XtkSchemaNode] = self
        while node is not None and node.parent is not None:
            if node.parent.parent is None:
                return node if node.name == self.schema.name else None
            node = node.parent
        return None

    async def _resolve_ref(self) -> Optional["XtkSchemaNode"]:
        """One hop through the ``ref`` attribute."""
        parts = self.ref.split(":")
        if len(parts) == 1:
            # Top level element of the same schema
            return await self.schema.find_node(self.ref, follow_ref=False)
        if len(parts) == 3:
            schema = await self.schema.get_other_schema(f"{parts[0]}:{parts[1]}")
            if schema is None:
                return None
            return await schema.find_node(parts[2], follow_ref=False)
        raise DomException(
            f"Invalid ref '{self.ref}' for node '{self.node_path}' of schema '{self.schema.id}': "
            "expected '<name>' or '<namespace>:<schema>:<path>'"
        )

    async def ref_target(self) -> Optional["XtkSchemaNode"]:
        """Node aliased by ``ref``, following ref chains. None if no ref.

        Raises:
            DomException: Malformed or circular ref.
        """
        if not self.ref:
            return None
        node: Optional[XtkSchemaNode] = self
        visited = set()
        while node is not None and node.ref:
            if id(node) in visited:
                raise DomException(f"Circular ref '{self.ref}' from node '{self.node_path}' of schema '{self.schema.id}'")
            visited.add(id(node))
            node = await node._resolve_ref()
        return node

    async def link_target(self) -> Optional["XtkSchemaNode"]:
        """Node of the target schema a link points to (its root by default).

        Raises:
            DomException: The target names several schemas or has no namespace.
        """
        if not self.is_link:
            return None
        target = self.target
        if "," in target:
            raise DomException(
                f"Cannot resolve link '{self.name}' of schema '{self.schema.id}': multiple targets '{target}' are not supported"
            )
        parts = target.split(":")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise DomException(
                f"Cannot resolve link '{self.name}' of schema '{self.schema.id}': target '{target}' is not qualified by a schema id"
            )
        schema = await self.schema.get_other_schema(f"{parts[0]}:{parts[1]}")
        if schema is None:
            return None
        if len(parts) > 2 and parts[2]:
            return await schema.find_node(":".join(parts[2:]))
        return schema.root

    async def reverse_link(self) -> Optional["XtkSchemaNode"]:
        """The link of the target schema going back to this node.

        Falsy when this link has no join information.
        """
        if not self.joins:
            return None
        target = await self.link_target()
        if target is None:
            return None
        if self.rev_link:
            return target.children.get(self.rev_link)
        for child in target.children.values():
            if child.is_link and child.rev_link == self.name:
                return child
        return None

    async def join_nodes(self) -> List[Tuple[Optional["XtkSchemaNode"], "XtkSchemaNode"]]:
        """Resolved ``(source, destination)`` nodes of each join. [] when unresolvable."""
        if not self.joins:
            return []
        target = await self.link_target()
        if target is None:
            return []
        source_context = self.parent if self.parent is not None else self
        nodes = []
        for join in self.joins:
            if not join.dst:
                return []
            destination = await target.find_node(join.dst)
            if destination is None:
                return []
            source = await source_context.find_node(join.src) if join.src else None
            nodes.append((source, destination))
        return nodes

    async def _expand(self) -> Optional["XtkSchemaNode"]:
        """Node whose children a path continues into (ref and link targets)."""
        node: Optional[XtkSchemaNode] = self
        if node.ref:
            node = await node.ref_target()
        if node is not None and node.is_link:
            node = await node.link_target()
        return node

    async def find_node(
        self, path: Union[str, XPath], strict: bool = True, follow_ref: bool = True
    ) -> Optional["XtkSchemaNode"]:
        """Resolve a path relative to this node.

        Args:
            path: Slash separated path. Empty or absolute paths start at the
                schema root node.
            strict: When False, the ``@`` marker of the last segment may be
                omitted (or given for an element) and is inferred.
            follow_ref: When True and the resolved node is a ref, return the
                aliased node. Refs and links crossed in the middle of the path
                are always followed.

        Returns:
            The node, or None when a node, the schema root or a schema is missing.
        """
        xpath = XPath(path)
        node: Optional[XtkSchemaNode] = self
        if xpath.is_empty() or xpath.is_absolute():
            node = self.schema.root
            if node is None:
                return None
            xpath = xpath.get_relative_path()

        elements = xpath.get_elements()
        for index, element in enumerate(elements):
            if node is None:
                return None
            if element.is_self():
                continue
            if element.is_parent():
                node = node.parent
                continue
            node = await node._expand()
            if node is None:
                return None
            name = element.as_string()
            child = node.children.get(name)
            if child is None and not strict and index == len(elements) - 1:
                alternate = name[1:] if is_attribute_name(name) else f"@{name}"
                child = node.children.get(alternate)
            node = child

        if node is not None and follow_ref and node.ref:
            node = await node.ref_target()
        return node

    async def enumeration(self, name: Optional[str] = None) -> Optional[XtkEnumeration]:
        """Enumeration by name, or the one named by this node ``enum`` attribute.

        Short names are looked up in this schema, ``namespace:schema:name`` in
        another schema.

        Raises:
            DomException: No name available, or a name with a bad number of parts.
        """
        enum_name = name or self.enum
        if not enum_name:
            raise DomException(f"Node '{self.node_path}' of schema '{self.schema.id}' has no enumeration")
        parts = enum_name.split(":")
        if len(parts) == 1:
            return self.schema.enumerations.get(enum_name)
        if len(parts) == 3:
            schema = await self.schema.get_other_schema(f"{parts[0]}:{parts[1]}")
            if schema is None:
                return None
            return schema.enumerations.get(parts[2])
        raise DomException(
            f"Invalid enumeration name '{enum_name}': expected '<name>' or '<namespace>:<schema>:<name>'"
        )

    def iter_nodes(self) -> List["XtkSchemaNode"]:
        """Depth-first list of this node and all its descendants."""
        nodes: List[XtkSchemaNode] = [self]
        for child in self.children.values():
            nodes.extend(child.iter_nodes())
        return nodes

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "label": self.label,
            "type": self.type,
            "node_path": self.node_path,
            "ref": self.ref,
            "target": self.target,
            "children": [child.to_dict() for child in self.children.values()],
        }

    def to_string(self, indent: str = "") -> str:
        text = f"{indent}{self.user_description}\n"
        for child in self.children.values():
            text += child.to_string(f"   {indent}")
        return text

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r} {self.node_path!r}>"


class XtkSchema(XtkSchemaNode):
    """A parsed schema.

    Args:
        entity: The ``<schema>`` entity (markup element, or JSON tagged as an Entity).
        application: Used to resolve refs, links and enumerations of other
            schemas. Without it those resolve to None.
    """

    def __init__(self, entity: Union[Entity, Any], application: Optional["Application"] = None) -> None:
        entity = Entity.of(entity)
        # Needed by node paths and localization ids of the children
        self.namespace = entity.get_attribute_as_string("namespace")
        self.root: Optional[XtkSchemaNode] = None
        self.application = application
        super().__init__(None, entity, None, False)

        self.id = f"{self.namespace}:{self.name}"
        self.is_library = entity.get_attribute_as_boolean("library")
        self.label_singular = entity.get_attribute_as_string("labelSingular")
        self.mapping_type = entity.get_attribute_as_string("mappingType")
        self.implements = entity.get_attribute_as_string("implements")
        self.md5 = entity.get_attribute_as_string("md5")
        self.package_status = entity.get_attribute_as_string("packageStatus")
        self.entity = entity
        self.root = self.children.get(self.name)
        self.enumerations: Dict[str, XtkEnumeration] = {}
        for child in entity.get_child_elements("enumeration"):
            enumeration = XtkEnumeration(self.id, child)
            self.enumerations[enumeration.name] = enumeration

    async def get_other_schema(self, schema_id: str) -> Optional["XtkSchema"]:
        if schema_id == self.id:
            return self
        if self.application is None:
            logger.debug(f"Schema '{self.id}' cannot resolve '{schema_id}' without an application")
            return None
        return await self.application.get_schema(schema_id)

    def to_string(self, indent: str = "") -> str:
        text = f"{self.user_description}\n"
        for child in self.children.values():
            text += child.to_string("    - ")
        return text


def new_schema(entity: Union[Entity, Any], application: Optional["Application"] = None) -> XtkSchema:
    """Build a schema from its entity (``ElementTree`` documents are accepted)."""
    return XtkSchema(entity, application)
