"""Cache of server options (``xtk:option``) values."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional, Sequence

from .cache import Cache, StorageDelegate
from .caster import XtkCaster


def _option(raw_value: Any, type_: Any) -> Dict[str, Any]:
    if not type_:
        return {"value": None, "type": 0, "rawValue": None}
    return {"value": XtkCaster.as_(raw_value, type_), "type": type_, "rawValue": raw_value}


def option_ser_deser(item: Any, serialize: bool) -> Any:
    """Only the raw value and the type are stored, the value is cast back on read."""
    if serialize:
        if not item or not isinstance(item, dict) or not item.get("value"):
            raise ValueError("Cannot serialize falsy cached item")
        data = dict(item)
        option = item["value"]
        data["value"] = {"type": option["type"], "rawValue": option["rawValue"]}
        return json.dumps(data)
    if not item:
        raise ValueError("Cannot deserialize falsy cached item")
    data = json.loads(item)
    stored = data["value"]
    data["value"] = _option(stored.get("rawValue"), stored.get("type"))
    return data


class OptionCache(Cache):
    """Option values by option name.

    Each entry holds ``{"value", "type", "rawValue"}``: the raw value as
    returned by the server, its numeric xtk type and the value cast to it.
    """

    def __init__(
        self,
        storage: Optional[StorageDelegate] = None,
        root_key: Optional[str] = None,
        ttl: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(storage, root_key, ttl, ser_deser=option_ser_deser, **kwargs)

    async def put(self, name: str, raw_value_and_type: Optional[Sequence[Any]]) -> Any:  # type: ignore[override]
        """Cache an option from its ``(rawValue, type)`` pair and return the cast value."""
        if raw_value_and_type and raw_value_and_type[1]:
            option = _option(raw_value_and_type[0], raw_value_and_type[1])
        else:
            option = _option(None, 0)
        await super().put(name, option)
        return option["value"]

    async def get(self, name: str) -> Any:  # type: ignore[override]
        option = await super().get(name)
        return option["value"] if option else None

    async def get_option(self, name: str) -> Optional[Dict[str, Any]]:
        return await super().get(name)
