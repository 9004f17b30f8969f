"""Exceptions raised by the RCON client."""


class RconError(Exception):
    """Base class for all RCON failures."""


class ConnectError(RconError):
    """The TCP connection could not be established."""


class AuthError(RconError):
    """The server accepted the connection but rejected the password."""


class ProtocolError(RconError):
    """Malformed or truncated packet, or an operation on a dead session."""
