"""Pydantic models for fleet polling."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from remote_console.models import ParseStatus, PlayerRecord


class ServerDescriptor(BaseModel):
    """One configured game server, as supplied by the registry."""
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    host: str
    game_port: int
    query_port: int | None = None
    rcon_port: int
    rcon_password: str = Field(repr=False)
    map_name: str = ""


class ServerStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    CRASHED = "crashed"
    RESTARTING = "restarting"


class ServerStatusSnapshot(BaseModel):
    """Point-in-time status of one server. Built once per cycle, never mutated."""
    model_config = ConfigDict(frozen=True)

    server_key: str
    name: str = ""
    status: ServerStatus
    player_count: int = 0
    players: list[PlayerRecord] = []
    player_parse_status: ParseStatus = ParseStatus.EMPTY
    max_players: int = 0
    ping_ms: int = 0
    uptime_seconds: int = 0
    map_name: str = ""
    timestamp: datetime
    error_message: str | None = None


class PollErrorKind(str, Enum):
    CONNECT = "connect"
    AUTH = "auth"
    PROTOCOL = "protocol"
    TIMEOUT = "timeout"
    INTERNAL = "internal"


class PollError(BaseModel):
    """Why a server could not be polled."""
    model_config = ConfigDict(frozen=True)

    kind: PollErrorKind
    message: str


class PollResult(BaseModel):
    """Outcome of polling one server: either a snapshot or an error."""
    model_config = ConfigDict(frozen=True)

    server_key: str
    snapshot: ServerStatusSnapshot | None = None
    error: PollError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ClusterSnapshot(BaseModel):
    """All server snapshots from one poll cycle plus the totals derived from them."""
    model_config = ConfigDict(frozen=True)

    servers: dict[str, ServerStatusSnapshot]
    total_servers: int
    online_servers: int
    total_players: int
    generated_at: datetime

    @computed_field
    @property
    def uptime_percentage(self) -> float:
        return round(self.online_servers / max(self.total_servers, 1) * 100, 1)

    @classmethod
    def from_snapshots(
        cls, snapshots: list[ServerStatusSnapshot], generated_at: datetime
    ) -> "ClusterSnapshot":
        servers = {s.server_key: s for s in snapshots}
        online = [s for s in servers.values() if s.status == ServerStatus.ONLINE]
        return cls(
            servers=servers,
            total_servers=len(servers),
            online_servers=len(online),
            total_players=sum(s.player_count for s in online),
            generated_at=generated_at,
        )


class StatusRow(BaseModel):
    """The row the status sink keeps per server."""
    server_key: str
    status: ServerStatus
    players_online: int
    ping_ms: int
    uptime_seconds: int
    last_updated: datetime

    @classmethod
    def from_snapshot(cls, snapshot: ServerStatusSnapshot) -> "StatusRow":
        return cls(
            server_key=snapshot.server_key,
            status=snapshot.status,
            players_online=snapshot.player_count,
            ping_ms=snapshot.ping_ms,
            uptime_seconds=snapshot.uptime_seconds,
            last_updated=snapshot.timestamp,
        )


class Alert(BaseModel):
    server_key: str
    type: str
    message: str
    timestamp: datetime
