"""Pydantic models for the RCON wire protocol and parsed command output."""

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict


class PacketType(IntEnum):
    """Packet type codes.

    AUTH_RESPONSE and EXEC_COMMAND share the value 2; which one a packet is
    depends on the exchange in progress.
    """
    RESPONSE_VALUE = 0
    EXEC_COMMAND = 2
    AUTH_RESPONSE = 2
    AUTH = 3


class Packet(BaseModel):
    """One framed packet. `body` excludes the size field and the two trailing nulls."""
    model_config = ConfigDict(frozen=True)

    request_id: int
    type: int
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", "replace")


class SessionState(str, Enum):
    """Lifecycle of a single RCON session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    CLOSED = "closed"
    FAILED = "failed"


class PlayerRecord(BaseModel):
    """A player line parsed out of `listplayers` output."""
    model_config = ConfigDict(frozen=True)

    name: str
    identity: str


class ParseStatus(str, Enum):
    PARSED = "parsed"      # at least one player line matched
    EMPTY = "empty"        # nothing but blank / "no players" lines
    UNPARSED = "unparsed"  # content present, none of it matched
    FAILED = "failed"      # the command itself failed


class PlayerList(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    players: list[PlayerRecord] = []
    parse_status: ParseStatus = ParseStatus.EMPTY
