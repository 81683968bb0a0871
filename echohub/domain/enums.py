"""Domain enumerations for echohub.

Enums represent fixed sets of domain values (connection lifecycle, message kinds).
"""

from enum import Enum


class ConnectionState(str, Enum):
    """WebSocket connection lifecycle state.

    Transitions only move forward: CONNECTING -> OPEN -> CLOSING -> CLOSED.
    Any non-terminal state may jump straight to CLOSED on a fatal transport error.
    """

    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"

    @property
    def is_live(self) -> bool:
        """True while the connection may still be targeted by the registry."""
        return self in (ConnectionState.CONNECTING, ConnectionState.OPEN)


class MessageKind(str, Enum):
    """Wire-level message type tag (the ``type`` field of a structured message)."""

    PING = "ping"
    PONG = "pong"
    ECHO = "echo"
    BROADCAST = "broadcast"
    MALFORMED = "error"
    WELCOME = "welcome"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid kind values as strings.

        Returns:
            List of enum value strings (e.g. for validation or documentation).
        """
        return [kind.value for kind in cls]
