"""Small cache of raw string values (used by the cache refresher)."""

from __future__ import annotations

from typing import Any, Optional

from .cache import Cache


class MetadataCache(Cache):
    """Stores ``name -> raw value``, wrapped as ``{"value": raw}`` in storage."""

    async def put(self, name: str, raw_value: Any) -> None:  # type: ignore[override]
        await super().put(name, {"value": raw_value})

    async def get(self, name: str) -> Optional[Any]:  # type: ignore[override]
        entry = await super().get(name)
        return entry["value"] if entry else None
