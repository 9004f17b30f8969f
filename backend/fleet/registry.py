"""
Server registry: where the poller gets its list of servers.

`EnvServerRegistry` reads flat `<PREFIX>_<FIELD>` variables, e.g.

    ISLAND_NAME=The Island
    ISLAND_IP=10.0.0.5
    ISLAND_PORT=7777
    ISLAND_RCON_PORT=27020
    ISLAND_RCON_PASSWORD=secret
    ISLAND_MAP=TheIsland_WP
"""

import logging
import os
import re
from typing import Mapping, Protocol

from fleet.models import ServerDescriptor

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("IP", "PORT", "RCON_PORT", "RCON_PASSWORD", "MAP")
_NAME_VAR = re.compile(r"^(.+)_NAME$")
_FALSE_VALUES = ("false", "0", "no", "off")


class ServerRegistry(Protocol):
    def get_servers(self) -> list[ServerDescriptor]: ...


class StaticServerRegistry:
    """A fixed list of servers."""

    def __init__(self, servers: list[ServerDescriptor]) -> None:
        self._servers = list(servers)

    def get_servers(self) -> list[ServerDescriptor]:
        return list(self._servers)


class EnvServerRegistry:
    """Builds descriptors from environment-style variables on every call."""

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env if env is not None else os.environ

    def get_servers(self) -> list[ServerDescriptor]:
        servers: dict[str, ServerDescriptor] = {}
        for var in sorted(self._env):
            match = _NAME_VAR.match(var)
            if not match:
                continue
            descriptor = self._build(match.group(1))
            if descriptor is None:
                continue
            if descriptor.key in servers:
                logger.warning(f"Server {match.group(1)} duplicates key {descriptor.key!r}, skipping")
                continue
            servers[descriptor.key] = descriptor
        return list(servers.values())

    def _build(self, prefix: str) -> ServerDescriptor | None:
        env = self._env
        if env.get(f"{prefix}_ENABLED", "true").strip().lower() in _FALSE_VALUES:
            logger.debug(f"Server {prefix} disabled, skipping")
            return None

        missing = [f for f in REQUIRED_FIELDS if not env.get(f"{prefix}_{f}")]
        if missing:
            # unrelated *_NAME variables (DB_NAME, ...) have none of the fields
            log = logger.debug if len(missing) == len(REQUIRED_FIELDS) else logger.warning
            log(f"Server {prefix} missing {', '.join(missing)}, skipping")
            return None

        try:
            port = int(env[f"{prefix}_PORT"])
            return ServerDescriptor(
                key=prefix.lower(),
                name=env[f"{prefix}_NAME"],
                host=env[f"{prefix}_IP"],
                game_port=port,
                query_port=int(env.get(f"{prefix}_QUERY_PORT") or port),
                rcon_port=int(env[f"{prefix}_RCON_PORT"]),
                rcon_password=env[f"{prefix}_RCON_PASSWORD"],
                map_name=env[f"{prefix}_MAP"],
            )
        except ValueError as e:
            logger.warning(f"Server {prefix} has invalid settings, skipping: {e}")
            return None
