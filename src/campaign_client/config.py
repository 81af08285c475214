"""Client configuration.

Values can be given explicitly or read from the environment with
:meth:`ClientConfig.from_env`:

=============================  ===================================  =========
Variable                       Meaning                              Default
=============================  ===================================  =========
CAMPAIGN_CACHE_TTL             Schema cache TTL (seconds)           300
CAMPAIGN_METHOD_CACHE_TTL      Method cache TTL (seconds)           300
CAMPAIGN_OPTION_CACHE_TTL      Option cache TTL (seconds)           300
CAMPAIGN_REPRESENTATION        Default entity representation        SimpleJson
CAMPAIGN_REFRESH_INTERVAL      Cache refresher period (seconds)     10
CAMPAIGN_NO_STORAGE            Disable persistent storage (1/true)  false
REDIS_URL                      Use Redis as persistent storage      unset
CAMPAIGN_REDIS_PREFIX          Prefix of Redis keys                 campaign:
=============================  ===================================  =========
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .cache import DEFAULT_TTL
from .dom import Representation
from .refresher import DEFAULT_REFRESH_INTERVAL
from .storage import DEFAULT_REDIS_PREFIX

logger = logging.getLogger(__name__)


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid value '{raw}' for {name}, using {default}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non positive value '{raw}' for {name}, using {default}")
        return default
    return value


def _env_bool(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClientConfig:
    """Settings of a :class:`~campaign_client.client.Client`."""

    entity_cache_ttl: float = DEFAULT_TTL
    method_cache_ttl: float = DEFAULT_TTL
    option_cache_ttl: float = DEFAULT_TTL
    representation: Representation = Representation.SIMPLE_JSON
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    no_storage: bool = False
    redis_url: Optional[str] = None
    redis_prefix: str = DEFAULT_REDIS_PREFIX

    def __post_init__(self) -> None:
        self.representation = Representation.of(self.representation)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Build a configuration from environment variables.

        Args:
            env: Mapping to read from, ``os.environ`` by default.

        Raises:
            CampaignException: ``CAMPAIGN_REPRESENTATION`` is not a valid representation.
        """
        env = os.environ if env is None else env
        return cls(
            entity_cache_ttl=_env_float(env, "CAMPAIGN_CACHE_TTL", DEFAULT_TTL),
            method_cache_ttl=_env_float(env, "CAMPAIGN_METHOD_CACHE_TTL", DEFAULT_TTL),
            option_cache_ttl=_env_float(env, "CAMPAIGN_OPTION_CACHE_TTL", DEFAULT_TTL),
            representation=Representation.of(
                env.get("CAMPAIGN_REPRESENTATION") or Representation.SIMPLE_JSON
            ),
            refresh_interval=_env_float(
                env, "CAMPAIGN_REFRESH_INTERVAL", DEFAULT_REFRESH_INTERVAL
            ),
            no_storage=_env_bool(env, "CAMPAIGN_NO_STORAGE"),
            redis_url=env.get("REDIS_URL") or None,
            redis_prefix=env.get("CAMPAIGN_REDIS_PREFIX", DEFAULT_REDIS_PREFIX),
        )
