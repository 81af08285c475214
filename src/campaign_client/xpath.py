"""Lightweight XPath-like paths used to navigate schema nodes.

Only the subset needed for schema navigation is supported: slash separated
element/attribute names, ``.`` (self), ``..`` (parent) and a leading ``/``
for absolute paths. Predicates and functions are not interpreted.

Example:
    >>> path = XPath("/country/@isoA3")
    >>> path.is_absolute()
    True
    >>> [e.as_string() for e in path.get_elements()]
    ['country', '@isoA3']
"""

from __future__ import annotations

from typing import List, Union


class XPathElement:
    """One segment of an :class:`XPath`."""

    def __init__(self, path_element: str) -> None:
        if path_element is None or path_element == "":
            raise ValueError("Invalid empty xpath element")
        self._path_element = path_element

    def as_string(self) -> str:
        return self._path_element

    def __str__(self) -> str:
        return self._path_element

    def __repr__(self) -> str:
        return f"XPathElement({self._path_element!r})"

    def is_self(self) -> bool:
        return self._path_element == "."

    def is_parent(self) -> bool:
        return self._path_element == ".."

    def is_attribute(self) -> bool:
        return self._path_element.startswith("@")


class XPath:
    """An immutable slash separated path."""

    def __init__(self, path: Union[str, "XPath", None]) -> None:
        if isinstance(path, XPath):
            path = path.as_string()
        self._path = (path or "").strip()

    def as_string(self) -> str:
        return self._path

    def __str__(self) -> str:
        return self._path

    def __repr__(self) -> str:
        return f"XPath({self._path!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, XPath):
            return self._path == other._path
        if isinstance(other, str):
            return self._path == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._path)

    def is_empty(self) -> bool:
        return self._path == ""

    def is_absolute(self) -> bool:
        return self._path.startswith("/")

    def is_self(self) -> bool:
        return self._path == "."

    def is_root_path(self) -> bool:
        return self._path == "/"

    def get_elements(self) -> List[XPathElement]:
        """Segments of the path. Empty segments (``a//b``) are ignored."""
        return [XPathElement(part) for part in self._path.split("/") if part != ""]

    def get_relative_path(self) -> "XPath":
        if not self.is_absolute():
            return self
        return XPath(self._path[1:])

    def parent(self) -> "XPath":
        """Path of the parent node, or an empty path for single segment paths."""
        elements = self.get_elements()
        if len(elements) <= 1:
            return XPath("/" if self.is_absolute() else "")
        parent = "/".join(e.as_string() for e in elements[:-1])
        return XPath(f"/{parent}" if self.is_absolute() else parent)

    def leaf(self) -> str:
        """Name of the last segment (empty for empty paths)."""
        elements = self.get_elements()
        return elements[-1].as_string() if elements else ""
