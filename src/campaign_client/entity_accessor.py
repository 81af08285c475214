"""Representation independent access to entities.

An entity reaching the engine may be a markup element or a JSON object in one
of the two JSON flavors. :class:`Entity` tags the raw value with its
:class:`~campaign_client.dom.Representation` and exposes a single accessor
interface, so code reading schemas or server responses never inspects the
shape of the value itself.

Example::

    from campaign_client.entity_accessor import Entity

    entity = Entity.of({"@name": "recipient", "element": [...]}, "BadgerFish")
    entity.get_attribute_as_string("name")        # 'recipient'
    [e.get_attribute_as_string("name") for e in entity.get_child_elements("element")]
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from .caster import XtkCaster
from .dom import DomUtil, Representation


class EntityAccessor(ABC):
    """Field access for one concrete representation."""

    representation: Representation

    @abstractmethod
    def get_attribute(self, value: Any, name: str) -> Any:
        """Raw attribute value, or None."""

    @abstractmethod
    def get_child_elements(self, value: Any, tag: Optional[str] = None) -> List[Any]:
        """Child element values, optionally restricted to one tag."""

    @abstractmethod
    def get_text(self, value: Any) -> str:
        """Text content of the element itself."""

    @abstractmethod
    def to_xml(self, value: Any, root_name: str) -> ET.Element:
        """Markup form of the value."""

    def get_attribute_as_string(self, value: Any, name: str) -> str:
        return XtkCaster.as_string(self.get_attribute(value, name))

    def get_attribute_as_long(self, value: Any, name: str) -> int:
        return XtkCaster.as_long(self.get_attribute(value, name))

    def get_attribute_as_boolean(self, value: Any, name: str) -> bool:
        return XtkCaster.as_boolean(self.get_attribute(value, name))

    def get_element(self, value: Any, tag: str) -> Optional[Any]:
        children = self.get_child_elements(value, tag)
        return children[0] if children else None

    def has_attribute(self, value: Any, name: str) -> bool:
        return self.get_attribute(value, name) is not None


class XmlAccessor(EntityAccessor):
    representation = Representation.XML

    def get_attribute(self, value: ET.Element, name: str) -> Any:
        return value.get(name)

    def get_child_elements(self, value: ET.Element, tag: Optional[str] = None) -> List[Any]:
        return DomUtil.child_elements(value, tag)

    def get_text(self, value: ET.Element) -> str:
        return DomUtil.element_value(value)

    def to_xml(self, value: ET.Element, root_name: str) -> ET.Element:
        return value


def _as_list(value: Any) -> List[Dict[str, Any]]:
    if value is None:
        return []
    if isinstance(value, list):
        return [v for v in value if isinstance(v, dict)]
    if isinstance(value, dict):
        return [value]
    return []


class BadgerFishAccessor(EntityAccessor):
    representation = Representation.BADGER_FISH

    def get_attribute(self, value: Dict[str, Any], name: str) -> Any:
        return value.get(f"@{name}")

    def get_child_elements(self, value: Dict[str, Any], tag: Optional[str] = None) -> List[Any]:
        if tag is not None:
            return _as_list(value.get(tag))
        children: List[Dict[str, Any]] = []
        for key, child in value.items():
            if key.startswith("@") or key == "$":
                continue
            children.extend(_as_list(child))
        return children

    def get_text(self, value: Dict[str, Any]) -> str:
        return XtkCaster.as_string(value.get("$"))

    def to_xml(self, value: Dict[str, Any], root_name: str) -> ET.Element:
        return DomUtil.from_json(root_name, value, Representation.BADGER_FISH)


class SimpleJsonAccessor(EntityAccessor):
    representation = Representation.SIMPLE_JSON

    def get_attribute(self, value: Dict[str, Any], name: str) -> Any:
        attribute = value.get(name)
        if isinstance(attribute, (dict, list)):
            return None
        return attribute

    def _text_child(self, text: Any) -> Dict[str, Any]:
        return {"$": XtkCaster.as_string(text)}

    def get_child_elements(self, value: Dict[str, Any], tag: Optional[str] = None) -> List[Any]:
        if tag is not None:
            children = _as_list(value.get(tag))
            if f"${tag}" in value:
                children.append(self._text_child(value[f"${tag}"]))
            return children
        children = []
        for key, child in value.items():
            if key == "$":
                continue
            if key.startswith("$"):
                children.append(self._text_child(child))
            else:
                children.extend(_as_list(child))
        return children

    def get_text(self, value: Dict[str, Any]) -> str:
        return XtkCaster.as_string(value.get("$"))

    def to_xml(self, value: Dict[str, Any], root_name: str) -> ET.Element:
        return DomUtil.from_json(root_name, value, Representation.SIMPLE_JSON)


_ACCESSORS: Dict[Representation, EntityAccessor] = {
    Representation.XML: XmlAccessor(),
    Representation.BADGER_FISH: BadgerFishAccessor(),
    Representation.SIMPLE_JSON: SimpleJsonAccessor(),
}


def accessor_for(representation: Union[str, Representation]) -> EntityAccessor:
    return _ACCESSORS[Representation.of(representation)]


@dataclass(frozen=True)
class Entity:
    """A raw entity value tagged with its representation."""

    representation: Representation
    value: Any

    @classmethod
    def of(
        cls, value: Any, representation: Union[str, Representation, None] = None
    ) -> "Entity":
        """Wrap a raw value. Markup is recognized, JSON needs its flavor (SimpleJson by default)."""
        if isinstance(value, Entity):
            return value
        if isinstance(value, ET.ElementTree):
            value = value.getroot()
        if isinstance(value, ET.Element):
            return cls(Representation.XML, value)
        rep = Representation.of(representation or Representation.SIMPLE_JSON)
        if rep is Representation.XML:
            raise TypeError(f"Expected a markup element, got {type(value).__name__}")
        return cls(rep, value)

    @property
    def accessor(self) -> EntityAccessor:
        return _ACCESSORS[self.representation]

    def _wrap(self, value: Any) -> "Entity":
        return Entity(self.representation, value)

    def get_attribute_as_string(self, name: str) -> str:
        return self.accessor.get_attribute_as_string(self.value, name)

    def get_attribute_as_long(self, name: str) -> int:
        return self.accessor.get_attribute_as_long(self.value, name)

    def get_attribute_as_boolean(self, name: str) -> bool:
        return self.accessor.get_attribute_as_boolean(self.value, name)

    def has_attribute(self, name: str) -> bool:
        return self.accessor.has_attribute(self.value, name)

    def get_element(self, tag: str) -> Optional["Entity"]:
        child = self.accessor.get_element(self.value, tag)
        return None if child is None else self._wrap(child)

    def get_child_elements(self, tag: Optional[str] = None) -> List["Entity"]:
        return [self._wrap(child) for child in self.accessor.get_child_elements(self.value, tag)]

    def get_text(self) -> str:
        return self.accessor.get_text(self.value)

    def to_xml(self, root_name: str = "") -> ET.Element:
        return self.accessor.to_xml(self.value, root_name)


def to_representation(
    xml: Optional[ET.Element], representation: Union[str, Representation]
) -> Any:
    """Convert a markup element to the requested representation."""
    rep = Representation.of(representation)
    if xml is None or rep is Representation.XML:
        return xml
    return DomUtil.to_json(xml, rep)


def from_representation(
    root_name: str, entity: Any, representation: Union[str, Representation, None] = None
) -> Optional[ET.Element]:
    """Convert an entity of any representation to markup."""
    if entity is None:
        return None
    return Entity.of(entity, representation).to_xml(root_name)
