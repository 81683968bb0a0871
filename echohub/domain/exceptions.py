"""Domain exceptions for echohub.

Defines the error taxonomy of the connection registry. Per-connection errors
(malformed input, queue overflow, unknown target, transport failure) are
recoverable at the registry level; only RegistryCorruptionException signals a
programming defect. The HTTP layer maps these to responses in exception handlers.
"""

from typing import Any


class EchoHubException(Exception):
    """Base exception for all echohub errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. connection_id).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-serializable representation (used for HTTP and WS error payloads)."""
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class MalformedMessageException(EchoHubException):
    """Raised when an inbound frame cannot be parsed into a structured message."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize with a description of the parse failure.

        Args:
            message: What was wrong with the frame.
            details: Optional extra context (e.g. validation errors).
        """
        super().__init__(message, "MALFORMED_MESSAGE", details)


class MessageTooLargeException(MalformedMessageException):
    """Raised when an inbound frame exceeds the configured size bound."""

    def __init__(self, size: int, max_size: int) -> None:
        """Initialize with actual and allowed size in bytes.

        Args:
            size: Size of the rejected frame in bytes.
            max_size: Configured maximum frame size in bytes.
        """
        super().__init__(
            f"Message of {size} bytes exceeds limit of {max_size} bytes",
            {"size": size, "max_size": max_size},
        )


class QueueFullException(EchoHubException):
    """Raised when a connection's outbound queue is at capacity."""

    def __init__(self, connection_id: str, capacity: int) -> None:
        """Initialize with the overflowing connection and its queue capacity.

        Args:
            connection_id: Connection whose outbound queue overflowed.
            capacity: Maximum number of pending outbound messages.
        """
        super().__init__(
            f"Outbound queue full for connection {connection_id}",
            "QUEUE_FULL",
            {"connection_id": connection_id, "capacity": capacity},
        )


class ConnectionNotFoundException(EchoHubException):
    """Raised when a connection id is no longer registered."""

    def __init__(self, connection_id: str) -> None:
        super().__init__(
            f"Connection not found: {connection_id}",
            "CONNECTION_NOT_FOUND",
            {"connection_id": connection_id},
        )


class ConnectionClosedException(EchoHubException):
    """Raised when sending to a connection that is closing or closed."""

    def __init__(self, connection_id: str, state: str) -> None:
        super().__init__(
            f"Connection {connection_id} is {state}",
            "CONNECTION_CLOSED",
            {"connection_id": connection_id, "state": state},
        )


class TransportException(EchoHubException):
    """Raised when the underlying transport fails (reset, protocol error). Connection-fatal."""

    def __init__(self, message: str, connection_id: str | None = None) -> None:
        """Initialize with a description and optional connection id.

        Args:
            message: Description of the transport failure.
            connection_id: Affected connection, when known.
        """
        details = {"connection_id": connection_id} if connection_id else {}
        super().__init__(message, "TRANSPORT_ERROR", details)


class InvalidStateTransitionException(EchoHubException):
    """Raised when a connection is asked to move to a state it cannot reach."""

    def __init__(self, connection_id: str, current: str, target: str) -> None:
        super().__init__(
            f"Connection {connection_id} cannot move from {current} to {target}",
            "INVALID_STATE_TRANSITION",
            {"connection_id": connection_id, "current": current, "target": target},
        )


class RegistryCorruptionException(EchoHubException):
    """Raised when a registry invariant is violated (e.g. duplicate connection id).

    Only raised in strict (debug) mode; otherwise the registry logs and self-heals.
    """

    def __init__(self, message: str, connection_id: str) -> None:
        super().__init__(
            message,
            "REGISTRY_CORRUPTION",
            {"connection_id": connection_id},
        )
