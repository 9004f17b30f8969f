"""
RCON session: one TCP connection to one game server.

Drives connect -> authenticate -> command* -> close over asyncio streams.
The transport is released on every exit path; use the session as an async
context manager so that holds even when opening fails halfway.
"""

import asyncio
import logging
import time
from datetime import datetime, timezone

from config import RCON_CONNECT_TIMEOUT, RCON_TIMEOUT
from remote_console.codec import decode_packet, encode_packet
from remote_console.errors import AuthError, ConnectError, ProtocolError, RconError
from remote_console.models import Packet, PacketType, ParseStatus, PlayerList, SessionState
from remote_console.parsing import DEFAULT_MAX_PLAYERS, parse_max_players, parse_player_list

logger = logging.getLogger(__name__)

# Protocol-level command strings
CMD_LIST_PLAYERS = "listplayers"
CMD_DIAGNOSTIC = "GetGameLog"
CMD_SAVE_WORLD = "SaveWorld"
CMD_BROADCAST = "Broadcast"

AUTH_FAILED_ID = -1


class RconSession:
    """Authenticated command channel to a single server."""

    def __init__(
        self,
        host: str,
        port: int,
        password: str,
        timeout: float = RCON_TIMEOUT,
        connect_timeout: float = RCON_CONNECT_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self._state = SessionState.DISCONNECTED
        self._next_request_id = 1
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def next_request_id(self) -> int:
        return self._next_request_id

    async def __aenter__(self) -> "RconSession":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close(abort=exc_type is not None)

    # --- Lifecycle ---

    async def open(self) -> "RconSession":
        """Connect and authenticate. Raises ConnectError, AuthError or ProtocolError."""
        if self._state != SessionState.DISCONNECTED:
            raise ProtocolError(f"Session already used (state: {self._state.value})")

        try:
            await self._connect()
            await self._authenticate()
        except BaseException:
            # includes cancellation
            self._state = SessionState.FAILED
            await self._release(abort=True)
            raise
        return self

    async def close(self, abort: bool = False) -> None:
        """Release the transport. Safe to call any number of times.

        `abort` drops the connection without flushing pending writes.
        """
        if self._state not in (SessionState.FAILED, SessionState.CLOSED):
            self._state = SessionState.CLOSED
        await self._release(abort)

    async def _connect(self) -> None:
        self._state = SessionState.CONNECTING
        logger.debug(f"Connecting to RCON {self.host}:{self.port}")
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as e:
            raise ConnectError(
                f"Failed to connect to RCON {self.host}:{self.port}: timed out after {self.connect_timeout}s"
            ) from e
        except OSError as e:
            raise ConnectError(f"Failed to connect to RCON {self.host}:{self.port}: {e}") from e

    async def _authenticate(self) -> None:
        self._state = SessionState.AUTHENTICATING
        await self._send(PacketType.AUTH, self.password)
        response = await self._read()
        if response.request_id == AUTH_FAILED_ID:
            raise AuthError(f"RCON authentication rejected by {self.host}:{self.port}")
        self._state = SessionState.READY
        logger.debug(f"Authenticated with {self.host}:{self.port}")

    async def _release(self, abort: bool = False) -> None:
        writer, self._writer, self._reader = self._writer, None, None
        if writer is None:
            return
        if abort:
            writer.transport.abort()
        else:
            writer.close()
        try:
            await writer.wait_closed()
        except Exception as e:
            logger.debug(f"Transport to {self.host}:{self.port} closed with error: {e}")

    async def _fail(self, error: RconError) -> RconError:
        """Mark the session dead and drop the transport."""
        if self._state != SessionState.FAILED:
            logger.warning(f"RCON session {self.host}:{self.port} failed: {error}")
        self._state = SessionState.FAILED
        await self._release(abort=True)
        return error

    # --- Packet I/O ---

    async def _send(self, packet_type: int, body: str) -> int:
        if self._writer is None:
            raise ProtocolError("not connected")

        request_id = self._next_request_id
        frame = encode_packet(request_id, packet_type, body)
        self._next_request_id += 1

        try:
            self._writer.write(frame)
            await asyncio.wait_for(self._writer.drain(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise await self._fail(ProtocolError(f"Timed out sending to {self.host}:{self.port}"))
        except OSError as e:
            raise await self._fail(ProtocolError(f"Failed to send RCON packet: {e}"))
        return request_id

    async def _read(self) -> Packet:
        if self._reader is None:
            raise ProtocolError("not connected")

        try:
            return await asyncio.wait_for(decode_packet(self._reader), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise await self._fail(
                ProtocolError(f"Timed out waiting for response from {self.host}:{self.port}")
            )
        except ProtocolError as e:
            raise await self._fail(e)
        except OSError as e:
            raise await self._fail(ProtocolError(f"Failed to read RCON packet: {e}"))

    # --- Commands ---

    async def execute_command(self, command: str) -> str:
        """Send one command and return the body of the single response packet."""
        if self._state != SessionState.READY:
            raise ProtocolError("not connected")
        await self._send(PacketType.EXEC_COMMAND, command)
        response = await self._read()
        return response.text

    async def list_players(self) -> PlayerList:
        try:
            output = await self.execute_command(CMD_LIST_PLAYERS)
            return parse_player_list(output)
        except Exception as e:
            logger.debug(f"listplayers failed on {self.host}:{self.port}: {e}")
            return PlayerList(parse_status=ParseStatus.FAILED)

    async def ping(self) -> int:
        """Round-trip time of one diagnostic command, in ms. 0 on failure."""
        start = time.monotonic()
        try:
            await self.execute_command(CMD_DIAGNOSTIC)
        except Exception as e:
            logger.debug(f"Ping failed on {self.host}:{self.port}: {e}")
            return 0
        return round((time.monotonic() - start) * 1000)

    async def max_players(self) -> int:
        try:
            output = await self.execute_command(CMD_DIAGNOSTIC)
        except Exception as e:
            logger.debug(f"MaxPlayers lookup failed on {self.host}:{self.port}: {e}")
            return DEFAULT_MAX_PLAYERS
        value = parse_max_players(output)
        return DEFAULT_MAX_PLAYERS if value is None else value

    async def server_info(self) -> dict:
        """Raw diagnostic output. Never raises; failures land in `error`."""
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            output = await self.execute_command(CMD_DIAGNOSTIC)
        except Exception as e:
            return {"response": "", "error": str(e), "timestamp": timestamp}
        return {"response": output, "timestamp": timestamp}

    async def save_world(self) -> str:
        try:
            return await self.execute_command(CMD_SAVE_WORLD)
        except RconError as e:
            raise ProtocolError(f"Failed to save world: {e}") from e

    async def broadcast(self, message: str) -> str:
        try:
            return await self.execute_command(f"{CMD_BROADCAST} {message}")
        except RconError as e:
            raise ProtocolError(f"Failed to broadcast message: {e}") from e
