"""Domain layer: enums and exceptions.

No dependencies on transport or presentation. Used by the WebSocket core
and the HTTP layer.
"""

from echohub.domain.enums import ConnectionState, MessageKind
from echohub.domain.exceptions import (
    ConnectionClosedException,
    ConnectionNotFoundException,
    EchoHubException,
    InvalidStateTransitionException,
    MalformedMessageException,
    MessageTooLargeException,
    QueueFullException,
    RegistryCorruptionException,
    TransportException,
)

__all__ = [
    # Enums
    "ConnectionState",
    "MessageKind",
    # Exceptions
    "ConnectionClosedException",
    "ConnectionNotFoundException",
    "EchoHubException",
    "InvalidStateTransitionException",
    "MalformedMessageException",
    "MessageTooLargeException",
    "QueueFullException",
    "RegistryCorruptionException",
    "TransportException",
]
