"""
Fleet Poller: polls every configured server and builds one ClusterSnapshot.

Each server is polled in its own task with its own RCON session and its own
deadline, so a dead or slow server costs at most `poll_timeout` and never
affects the others. Connect/auth failures turn into Offline snapshots; the
cycle itself always completes.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from fleet.models import (
    ClusterSnapshot,
    PollError,
    PollErrorKind,
    PollResult,
    ServerDescriptor,
    ServerStatus,
    ServerStatusSnapshot,
    StatusRow,
)
from fleet.registry import ServerRegistry
from fleet.settings import FleetSettings
from fleet.sink import StatusSink
from fleet.uptime import UptimeStore, uptime_seconds
from remote_console.errors import AuthError, ConnectError, ProtocolError
from remote_console.parsing import DEFAULT_MAX_PLAYERS
from remote_console.session import RconSession

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FleetPoller:
    """Runs poll cycles over the servers a registry supplies."""

    def __init__(
        self,
        registry: ServerRegistry,
        uptime_store: UptimeStore,
        sink: StatusSink,
        settings: FleetSettings,
        session_factory: Callable[..., RconSession] = RconSession,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._uptime = uptime_store
        self._sink = sink
        self._settings = settings
        self._session_factory = session_factory
        self._clock = clock

    @property
    def settings(self) -> FleetSettings:
        return self._settings

    async def poll_cluster(self) -> ClusterSnapshot:
        """Poll all servers concurrently and aggregate the results."""
        try:
            descriptors = self._registry.get_servers()
        except Exception as e:
            logger.error(f"Server registry unavailable: {e}")
            descriptors = []

        snapshots = await asyncio.gather(*(self._poll_and_record(d) for d in descriptors))
        cluster = ClusterSnapshot.from_snapshots(list(snapshots), generated_at=self._clock())

        logger.info(
            f"Poll cycle done: {cluster.online_servers}/{cluster.total_servers} online, "
            f"{cluster.total_players} players"
        )
        return cluster

    async def poll_server(self, descriptor: ServerDescriptor) -> PollResult:
        """Poll one server, bounded by the poll timeout. Never raises."""
        timeout = self._settings.poll_timeout
        try:
            snapshot = await asyncio.wait_for(self._query(descriptor), timeout=timeout)
            return PollResult(server_key=descriptor.key, snapshot=snapshot)
        except AuthError as e:
            error = PollError(kind=PollErrorKind.AUTH, message=str(e))
        except ConnectError as e:
            error = PollError(kind=PollErrorKind.CONNECT, message=str(e))
        except ProtocolError as e:
            error = PollError(kind=PollErrorKind.PROTOCOL, message=str(e))
        except asyncio.TimeoutError:
            error = PollError(
                kind=PollErrorKind.TIMEOUT,
                message=f"Poll of {descriptor.host}:{descriptor.rcon_port} timed out after {timeout}s",
            )
        except Exception as e:
            logger.exception(f"Unexpected error polling {descriptor.key}")
            error = PollError(kind=PollErrorKind.INTERNAL, message=str(e) or type(e).__name__)

        logger.warning(f"Server {descriptor.key} offline: {error.message}")
        return PollResult(server_key=descriptor.key, error=error)

    async def _query(self, descriptor: ServerDescriptor) -> ServerStatusSnapshot:
        session = self._session_factory(
            descriptor.host,
            descriptor.rcon_port,
            descriptor.rcon_password,
            timeout=self._settings.rcon_timeout,
            connect_timeout=self._settings.connect_timeout,
        )
        async with session:
            player_list = await session.list_players()
            ping = await session.ping()
            max_players = await session.max_players()

        now = self._clock()
        return ServerStatusSnapshot(
            server_key=descriptor.key,
            name=descriptor.name,
            status=ServerStatus.ONLINE,
            player_count=player_list.count,
            players=player_list.players,
            player_parse_status=player_list.parse_status,
            max_players=max_players,
            ping_ms=ping,
            uptime_seconds=await self._uptime_for(descriptor.key, now),
            map_name=descriptor.map_name,
            timestamp=now,
        )

    async def _uptime_for(self, server_key: str, now: datetime) -> int:
        try:
            return await asyncio.to_thread(uptime_seconds, self._uptime, server_key, now)
        except Exception as e:
            logger.error(f"Uptime lookup failed for {server_key}: {e}")
            return 0

    def _offline_snapshot(self, descriptor: ServerDescriptor, error: PollError) -> ServerStatusSnapshot:
        return ServerStatusSnapshot(
            server_key=descriptor.key,
            name=descriptor.name,
            status=ServerStatus.OFFLINE,
            max_players=DEFAULT_MAX_PLAYERS,
            map_name=descriptor.map_name,
            timestamp=self._clock(),
            error_message=error.message,
        )

    async def _poll_and_record(self, descriptor: ServerDescriptor) -> ServerStatusSnapshot:
        result = await self.poll_server(descriptor)
        if result.ok:
            snapshot = result.snapshot
        else:
            snapshot = self._offline_snapshot(descriptor, result.error)
        await self._persist(snapshot)
        return snapshot

    async def _persist(self, snapshot: ServerStatusSnapshot) -> None:
        try:
            await asyncio.to_thread(self._sink.upsert, StatusRow.from_snapshot(snapshot))
        except Exception as e:
            logger.error(f"Failed to update server status for {snapshot.server_key}: {e}")
