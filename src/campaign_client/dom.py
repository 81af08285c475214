"""Markup helpers and the JSON representation converter.

Entities exchanged with the server are XML documents. Callers may prefer to
handle them as JSON, in one of two flavors:

* ``BadgerFish`` ("fat" JSON): attributes are keys prefixed with ``@``, the
  element text is stored under ``"$"`` and child elements are nested objects
  (or lists of objects when the element repeats).
* ``SimpleJson``: attributes are bare keys holding primitive values, a child
  element carrying only text is stored as ``"$name": text`` and the element
  own text under ``"$"``.

Example::

    from campaign_client.dom import DomUtil

    xml = DomUtil.parse('<recipient email="jdoe@example.com"><desc>VIP</desc></recipient>')
    DomUtil.to_json(xml, "BadgerFish")
    # {'@email': 'jdoe@example.com', 'desc': {'$': 'VIP'}}
    DomUtil.to_json(xml, "SimpleJson")
    # {'email': 'jdoe@example.com', '$desc': 'VIP'}
    DomUtil.from_json("recipient", {"email": "jdoe@example.com"}, "SimpleJson")

Known limitation: an element whose tag ends with ``-collection`` always maps
its children to lists (even with zero or one child), while any other element
maps a single child to an object. A list holding exactly one object therefore
does not survive a round trip for tags outside that naming convention.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections import Counter
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .caster import XtkCaster
from .exceptions import CampaignException, DomException

COLLECTION_SUFFIX = "-collection"


class Representation(str, Enum):
    """The three shapes an entity can take."""

    XML = "xml"
    BADGER_FISH = "BadgerFish"
    SIMPLE_JSON = "SimpleJson"

    @classmethod
    def of(cls, value: Union[str, "Representation", None]) -> "Representation":
        """Validate a representation name."""
        if isinstance(value, Representation):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise CampaignException.invalid_representation(
            value, "Should be 'xml', 'BadgerFish' or 'SimpleJson'"
        )


def _json_flavor(flavor: Union[str, Representation, None]) -> Representation:
    if flavor is None:
        return Representation.SIMPLE_JSON
    if flavor in (Representation.BADGER_FISH, Representation.SIMPLE_JSON):
        return Representation(flavor)
    raise DomException(
        f"Invalid JSON flavor '{getattr(flavor, 'value', flavor)}'. Should be 'SimpleJson' or 'BadgerFish'"
    )


def _is_primitive(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _type_name(value: Any) -> str:
    return type(value).__name__


class DomUtil:
    """Static helpers over :mod:`xml.etree.ElementTree` elements."""

    @staticmethod
    def is_array(value: Any) -> bool:
        return isinstance(value, list)

    @staticmethod
    def parse(xml_string: str) -> ET.Element:
        """Parse a markup string and return its document element."""
        try:
            return ET.fromstring(xml_string)
        except ET.ParseError as ex:
            raise DomException(f"Cannot parse XML: {ex}") from ex

    @staticmethod
    def new_document(name: str) -> ET.Element:
        return ET.Element(name)

    @staticmethod
    def to_xml_string(node: Optional[Union[ET.Element, ET.ElementTree]]) -> str:
        if node is None:
            return ""
        if isinstance(node, ET.ElementTree):
            node = node.getroot()
        return ET.tostring(node, encoding="unicode")

    @staticmethod
    def escape_xml_string(text: Optional[str]) -> Optional[str]:
        if text is None:
            return None
        return (
            text.replace("&", "&amp;")
            .replace('"', "&quot;")
            .replace("'", "&apos;")
            .replace("<", "&lt;")
            .replace(">", "&gt;")
        )

    @staticmethod
    def child_elements(node: Optional[ET.Element], tag: Optional[str] = None) -> List[ET.Element]:
        """Element children of ``node``, optionally restricted to one tag."""
        if node is None:
            return []
        return [
            child
            for child in node
            if isinstance(child.tag, str) and (tag is None or child.tag == tag)
        ]

    @classmethod
    def get_first_child_element(
        cls, node: Optional[ET.Element], tag: Optional[str] = None
    ) -> Optional[ET.Element]:
        children = cls.child_elements(node, tag)
        return children[0] if children else None

    @classmethod
    def get_next_sibling_element(
        cls, parent: Optional[ET.Element], node: ET.Element, tag: Optional[str] = None
    ) -> Optional[ET.Element]:
        """Next element sibling of ``node`` (ElementTree has no parent pointers)."""
        siblings = cls.child_elements(parent)
        for index, sibling in enumerate(siblings):
            if sibling is node:
                for candidate in siblings[index + 1 :]:
                    if tag is None or candidate.tag == tag:
                        return candidate
                return None
        return None

    @classmethod
    def find_element(
        cls, node: Optional[ET.Element], tag: str, throws: bool = False
    ) -> Optional[ET.Element]:
        child = cls.get_first_child_element(node, tag)
        if child is None and throws:
            raise DomException(f"Node {tag} not found")
        return child

    @staticmethod
    def element_value(node: Optional[ET.Element]) -> str:
        """Text and CDATA directly contained by ``node`` (not by its children)."""
        if node is None:
            return ""
        parts = [node.text or ""]
        parts.extend(child.tail or "" for child in node)
        return "".join(parts)

    @staticmethod
    def get_attribute_as_string(node: ET.Element, name: str) -> str:
        return XtkCaster.as_string(node.get(name))

    @staticmethod
    def get_attribute_as_long(node: ET.Element, name: str) -> int:
        return XtkCaster.as_long(node.get(name))

    @staticmethod
    def get_attribute_as_short(node: ET.Element, name: str) -> int:
        return XtkCaster.as_short(node.get(name))

    @staticmethod
    def get_attribute_as_byte(node: ET.Element, name: str) -> int:
        return XtkCaster.as_byte(node.get(name))

    @staticmethod
    def get_attribute_as_boolean(node: ET.Element, name: str) -> bool:
        return XtkCaster.as_boolean(node.get(name))

    # ---------------- JSON -> markup ---------------- #

    @classmethod
    def _from_json(cls, xml_root: ET.Element, json_root: Dict[str, Any], flavor: Representation) -> None:
        for key, value in json_root.items():
            if value is None:
                continue
            primitive = _is_primitive(value)
            is_attribute = key.startswith("@")
            first_index = 1
            if flavor is Representation.SIMPLE_JSON and primitive and not key.startswith("$"):
                is_attribute = True
                first_index = 0

            if is_attribute:
                name = key[first_index:]
                if not primitive:
                    raise DomException(
                        f"Cannot cast JSON to XML: attribute '{name}' type '{_type_name(value)}' is unknown or not supported yet"
                    )
                xml_root.set(name, XtkCaster.as_string(value))
            elif key == "$":
                if not primitive:
                    raise DomException(
                        f"Cannot cast JSON to XML: text of element '{xml_root.tag}' type '{_type_name(value)}' is not supported"
                    )
                xml_root.text = XtkCaster.as_string(value)
            elif flavor is Representation.SIMPLE_JSON and key.startswith("$"):
                if not primitive:
                    raise DomException(
                        f"Cannot cast JSON to XML: element '{key[1:]}' type '{_type_name(value)}' is not supported"
                    )
                child = ET.SubElement(xml_root, key[1:])
                child.text = XtkCaster.as_string(value)
            elif isinstance(value, list):
                for item in value:
                    if not isinstance(item, dict):
                        raise DomException(
                            f"Cannot cast JSON to XML: element '{key}' item type '{_type_name(item)}' is unknown or not supported yet"
                        )
                    child = ET.SubElement(xml_root, key)
                    cls._from_json(child, item, flavor)
            elif isinstance(value, dict):
                child = ET.SubElement(xml_root, key)
                cls._from_json(child, value, flavor)
            else:
                raise DomException(
                    f"Cannot cast JSON to XML: element '{key}' type '{_type_name(value)}' is unknown or not supported yet"
                )

    @classmethod
    def from_json(
        cls,
        doc_name: str,
        json: Dict[str, Any],
        flavor: Union[str, Representation, None] = None,
    ) -> ET.Element:
        """Build a markup element named ``doc_name`` from a JSON object.

        Args:
            doc_name: Tag of the document element.
            json: JSON object in the given flavor.
            flavor: ``"SimpleJson"`` (default) or ``"BadgerFish"``.

        Raises:
            DomException: Unknown flavor, missing ``doc_name`` or a JSON value
                type which has no markup equivalent.
        """
        json_flavor = _json_flavor(flavor)
        if not doc_name:
            raise DomException(
                f"Cannot transform entity of flavor '{json_flavor.value}' to xml because no XML root name was given"
            )
        root = cls.new_document(doc_name)
        cls._from_json(root, json or {}, json_flavor)
        return root

    # ---------------- markup -> JSON ---------------- #

    @staticmethod
    def _is_text_only(element: ET.Element) -> bool:
        if element.attrib or len(element):
            return False
        return bool(element.text)

    @classmethod
    def _to_json(cls, xml: ET.Element, json: Dict[str, Any], flavor: Representation) -> None:
        prefix = "@" if flavor is Representation.BADGER_FISH else ""
        for name, value in xml.attrib.items():
            json[f"{prefix}{name}"] = value

        is_collection = (
            len(xml.tag) > len(COLLECTION_SUFFIX) and xml.tag.endswith(COLLECTION_SUFFIX)
        )
        children = cls.child_elements(xml)
        counts = Counter(child.tag for child in children)

        for child in children:
            name = child.tag
            as_list = is_collection or counts[name] > 1
            if (
                flavor is Representation.SIMPLE_JSON
                and not as_list
                and cls._is_text_only(child)
            ):
                json[f"${name}"] = child.text
                continue
            child_json: Dict[str, Any] = {}
            cls._to_json(child, child_json, flavor)
            if as_list:
                json.setdefault(name, []).append(child_json)
            else:
                json[name] = child_json

        text = cls.element_value(xml)
        if text and not (children and text.strip() == ""):
            json["$"] = text

    @classmethod
    def to_json(
        cls,
        xml: Optional[Union[ET.Element, ET.ElementTree]],
        flavor: Union[str, Representation, None] = None,
    ) -> Optional[Dict[str, Any]]:
        """Convert a markup element to JSON in the given flavor (SimpleJson by default)."""
        if xml is None:
            return None
        json_flavor = _json_flavor(flavor)
        if isinstance(xml, ET.ElementTree):
            xml = xml.getroot()
        json: Dict[str, Any] = {}
        cls._to_json(xml, json, json_flavor)
        return json
