"""WebSocket connection registry.

Single source of truth for who is connected. Provides register/unregister,
broadcast fan-out and unicast. Use via app.state.ws_registry (set in lifespan).

The connection map is the only state shared between connections. All access
goes through ``self._lock`` and critical sections never await or call into a
Connection, so broadcast works on a consistent snapshot and a slow client can
only ever fill its own queue.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any

from echohub.api.websocket.connection import CLOSE_GOING_AWAY, Connection
from echohub.api.websocket.messages import encode_frame, welcome_message
from echohub.api.websocket.transport import Frame, Transport
from echohub.domain.enums import ConnectionState
from echohub.domain.exceptions import (
    ConnectionClosedException,
    ConnectionNotFoundException,
    QueueFullException,
    RegistryCorruptionException,
)
from echohub.shared.telemetry.tracing import add_span_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistryStatus:
    """Snapshot for health reporting."""

    up: bool
    connections: int


class ConnectionRegistry:
    """Concurrent-safe set of live connections.

    - Only CONNECTING/OPEN connections are ever present; a connection is evicted
      synchronously when it starts closing.
    - Broadcast targets OPEN connections and isolates per-connection failures.
    - strict=True turns invariant violations into RegistryCorruptionException;
      otherwise they are logged and the stale entry is evicted.
    """

    def __init__(
        self,
        *,
        max_queue_size: int = 256,
        close_timeout: float = 5.0,
        welcome_text: str | None = None,
        strict: bool = False,
    ) -> None:
        """Initialize an empty registry.

        Args:
            max_queue_size: Outbound queue bound for connections created by connect().
            close_timeout: Seconds a closing connection may spend draining.
            welcome_text: Text of the greeting sent on connect; None disables it.
            strict: Raise on invariant violations instead of self-healing.
        """
        self.max_queue_size = max_queue_size
        self.close_timeout = close_timeout
        self.welcome_text = welcome_text
        self.strict = strict
        self._connections: dict[str, Connection] = {}
        self._lock = threading.Lock()
        self._running = True

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def status(self) -> RegistryStatus:
        """Return up/down and the current connection count (synchronous, non-blocking)."""
        return RegistryStatus(up=self._running, connections=self.connection_count)

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    async def connect(self, transport: Transport) -> Connection | None:
        """Wrap an accepted transport, open it, register it and start its writer.

        Returns None (after closing the transport with 1001) when the registry
        has been shut down.
        """
        if not self._running:
            await transport.close(CLOSE_GOING_AWAY, "Server shutting down")
            return None
        connection = Connection(
            transport,
            max_queue_size=self.max_queue_size,
            close_timeout=self.close_timeout,
        )
        if self.welcome_text is not None:
            connection.send(encode_frame(welcome_message(connection.id, self.welcome_text)))
        connection.open()
        try:
            self.register(connection)
        except RegistryCorruptionException as exc:
            connection.abort(exc)
            raise
        connection.start()
        return connection

    def register(self, connection: Connection) -> str:
        """Add a live connection and return its id.

        Raises:
            ConnectionClosedException: The connection is already closing or closed.
            RegistryCorruptionException: Another connection holds the same id (strict mode).
        """
        if not connection.state.is_live:
            raise ConnectionClosedException(connection.id, connection.state.value)
        with self._lock:
            existing = self._connections.get(connection.id)
            if existing is connection:
                return connection.id
            if existing is not None and self.strict:
                raise RegistryCorruptionException(
                    f"Duplicate connection id in registry: {connection.id}",
                    connection.id,
                )
            self._connections[connection.id] = connection
            total = len(self._connections)
        if existing is not None:
            logger.error(
                "Registry invariant violated: duplicate id %s; evicting stale %r",
                connection.id,
                existing,
            )
            add_span_event("ws.registry_corruption", {"connection_id": connection.id})
            existing.abort(
                RegistryCorruptionException("Evicted stale duplicate", connection.id)
            )
        connection.add_close_listener(self._evict)
        logger.info(
            "WebSocket connected: %s (%s); %d active",
            connection.id,
            connection.remote_address,
            total,
        )
        return connection.id

    def unregister(self, connection_id: str) -> Connection | None:
        """Remove a connection if present. Absent ids are a no-op, not an error."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is None:
            logger.debug("Unregister of %s: already removed", connection_id)
        else:
            logger.info("WebSocket unregistered: %s", connection_id)
        return connection

    def _evict(self, connection: Connection) -> None:
        # Identity check: a stale duplicate must not evict its replacement.
        with self._lock:
            if self._connections.get(connection.id) is connection:
                del self._connections[connection.id]
            else:
                return
        logger.debug("Evicted %s on close", connection.id)

    def _snapshot(self, exclude_id: str | None = None) -> list[Connection]:
        with self._lock:
            return [
                conn for conn_id, conn in self._connections.items() if conn_id != exclude_id
            ]

    def broadcast(
        self, message: dict[str, Any] | Frame, exclude_id: str | None = None
    ) -> int:
        """Enqueue ``message`` to every OPEN connection except ``exclude_id``.

        The message is encoded once; each recipient gets the same frame. A full
        or closing recipient is skipped (and closes itself) without affecting
        the others.

        Returns:
            Number of connections delivery was attempted to.
        """
        frame = encode_frame(message)
        attempted = 0
        for connection in self._snapshot(exclude_id):
            if connection.state is not ConnectionState.OPEN:
                continue
            attempted += 1
            try:
                connection.send(frame)
            except QueueFullException as exc:
                logger.warning("Broadcast skipped %s: %s", connection.id, exc.message)
                add_span_event("ws.queue_full", {"connection_id": connection.id})
            except ConnectionClosedException:
                logger.debug("Broadcast skipped %s: closed during fan-out", connection.id)
        return attempted

    def unicast(self, connection_id: str, message: dict[str, Any] | Frame) -> None:
        """Enqueue ``message`` for exactly one connection.

        Raises:
            ConnectionNotFoundException: The id is not (or no longer) registered.
            QueueFullException: The target's queue overflowed; it is now closing.
        """
        connection = self.get(connection_id)
        if connection is None:
            raise ConnectionNotFoundException(connection_id)
        try:
            connection.send(encode_frame(message))
        except ConnectionClosedException:
            raise ConnectionNotFoundException(connection_id) from None

    async def shutdown(self, reason: str = "Server shutting down") -> None:
        """Close every connection and wait for their writers to finish.

        Connections that do not finish within the close timeout are aborted, so
        no reader or writer task is left blocked.
        """
        self._running = False
        connections = self._snapshot()
        for connection in connections:
            connection.close(reason, code=CLOSE_GOING_AWAY)
        if not connections:
            logger.info("WebSocket registry stopped (no active connections)")
            return
        waits = [asyncio.ensure_future(conn.wait_closed()) for conn in connections]
        _, pending = await asyncio.wait(waits, timeout=self.close_timeout + 1.0)
        for waiter in pending:
            waiter.cancel()
        for connection in connections:
            if connection.state is not ConnectionState.CLOSED:
                connection.abort()
        logger.info("WebSocket registry stopped (%d connections closed)", len(connections))
