"""Application object: schema factory and session information.

:class:`Application` resolves schema ids to :class:`~campaign_client.schema.XtkSchema`
objects through the client schema cache. A parsed schema is reused for as
long as the client returns the very same cached markup element; when the
cache entry is refreshed (expired, cleared, invalidated by the refresher) the
schema is parsed again.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, List, Optional, Protocol, Tuple

from .dom import Representation
from .entity_accessor import Entity
from .schema import XtkSchema, new_schema

logger = logging.getLogger(__name__)


class SchemaSource(Protocol):
    """What the application needs from the client."""

    async def get_schema(self, schema_id: str, representation: Any = ...) -> Any: ...


class CurrentLogin:
    """The logged operator, from the ``userInfo`` element of the session info."""

    def __init__(self, user_info: Any) -> None:
        user_info = Entity.of(user_info)
        self.login = user_info.get_attribute_as_string("login")
        self.id = user_info.get_attribute_as_long("loginId")
        self.compute_string = user_info.get_attribute_as_string("loginCS")
        self.timezone = user_info.get_attribute_as_string("timezone")
        self.rights: List[str] = [
            child.get_attribute_as_string("right")
            for child in user_info.get_child_elements("login-right")
        ]
        self._rights_set = set(self.rights)

    def has_right(self, name: str) -> bool:
        return name in self._rights_set


class Application:
    """Entry point to the schemas and to information about the server.

    Args:
        client: Object providing ``get_schema(schema_id, representation)``.
        session_info: Optional session information entity (``<sessionInfo>``
            with ``serverInfo`` and ``userInfo`` children).
    """

    def __init__(self, client: SchemaSource, session_info: Any = None) -> None:
        self.client = client
        self.build_number = ""
        self.instance_name = ""
        self.operator: Optional[CurrentLogin] = None
        self.packages: List[str] = []
        self._schemas: Dict[str, Tuple[ET.Element, XtkSchema]] = {}

        if session_info is not None:
            info = Entity.of(session_info)
            server_info = info.get_element("serverInfo")
            if server_info is not None:
                self.build_number = server_info.get_attribute_as_string("buildNumber")
                self.instance_name = server_info.get_attribute_as_string("instanceName")
            user_info = info.get_element("userInfo")
            if user_info is not None:
                self.operator = CurrentLogin(user_info)
                for package in user_info.get_child_elements("installed-package"):
                    namespace = package.get_attribute_as_string("namespace")
                    name = package.get_attribute_as_string("name")
                    self.packages.append(f"{namespace}:{name}")

    async def get_schema(self, schema_id: str) -> Optional[XtkSchema]:
        """Parsed schema, or None if the server does not know it."""
        xml = await self.client.get_schema(schema_id, Representation.XML)
        if xml is None:
            return None
        memo = self._schemas.get(schema_id)
        if memo is not None and memo[0] is xml:
            return memo[1]
        logger.debug(f"Parsing schema {schema_id}")
        schema = new_schema(xml, self)
        self._schemas[schema_id] = (xml, schema)
        return schema

    def has_package(self, name: str) -> bool:
        """Whether a package (``namespace:name``) is installed."""
        return name in self.packages
