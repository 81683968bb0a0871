"""Per-connection inbound loop: parse frames and route them.

ping -> pong to the sender, broadcast -> everyone else, anything else -> echo
to the sender. A bad frame gets an error reply and the connection stays open;
a peer close or transport failure unregisters and closes the connection. One
connection's failure never reaches another connection.
"""

from __future__ import annotations

import logging

from echohub.api.websocket.connection import CLOSE_GOING_AWAY, CLOSE_INTERNAL_ERROR, Connection
from echohub.api.websocket.messages import (
    InboundMessage,
    broadcast_message,
    echo_message,
    error_message,
    parse_frame,
    pong_message,
)
from echohub.api.websocket.registry import ConnectionRegistry
from echohub.api.websocket.transport import Frame
from echohub.domain.enums import MessageKind
from echohub.domain.exceptions import (
    ConnectionNotFoundException,
    MalformedMessageException,
    QueueFullException,
    TransportException,
)
from echohub.shared.telemetry.tracing import TracedOperation, add_span_event, set_span_error

logger = logging.getLogger(__name__)


class Dispatcher:
    """Routes inbound frames from connections through the registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        *,
        max_message_bytes: int = 64 * 1024,
        strict_types: bool = False,
    ) -> None:
        self.registry = registry
        self.max_message_bytes = max_message_bytes
        self.strict_types = strict_types

    async def run(self, connection: Connection) -> None:
        """Read and route frames until the connection closes, then wait for its writer."""
        attributes = {
            "ws.connection_id": connection.id,
            "net.peer.address": connection.remote_address or "",
        }
        async with TracedOperation("ws.connection", attributes):
            try:
                await self._read_loop(connection)
            finally:
                if connection.state.is_live:
                    # Reader cancelled (server shutdown) while the connection was still open.
                    self.registry.unregister(connection.id)
                    connection.close("Server shutting down", code=CLOSE_GOING_AWAY)
                await connection.wait_closed()

    async def _read_loop(self, connection: Connection) -> None:
        while True:
            try:
                frame = await connection.receive()
            except TransportException as exc:
                logger.info("Transport error on %s: %s", connection.id, exc.message)
                set_span_error(exc)
                self.registry.unregister(connection.id)
                connection.abort(exc)
                return
            if frame is None:
                if connection.state.is_live:
                    logger.debug("Peer closed %s", connection.id)
                    self.registry.unregister(connection.id)
                    connection.close("Peer closed")
                return
            try:
                self.dispatch(connection, frame)
            except Exception as exc:
                logger.exception("Error routing frame from %s: %s", connection.id, exc)
                set_span_error(exc)
                self.registry.unregister(connection.id)
                connection.close("Internal error", code=CLOSE_INTERNAL_ERROR)
                return

    def dispatch(self, connection: Connection, frame: Frame) -> None:
        """Parse one frame from ``connection`` and route it (never blocks)."""
        try:
            message = parse_frame(
                frame, max_bytes=self.max_message_bytes, strict=self.strict_types
            )
        except MalformedMessageException as exc:
            logger.info("Malformed message from %s: %s", connection.id, exc.message)
            add_span_event("ws.malformed_message", {"error": exc.error_code, "reason": exc.message})
            self._reply(connection, error_message(exc))
            return

        if message.kind is MessageKind.PING:
            self._reply(connection, pong_message(message.data))
        elif message.kind is MessageKind.BROADCAST:
            self._broadcast(connection, message)
        elif message.is_binary:
            self._reply(connection, message.data)
        else:
            self._reply(connection, echo_message(message.data))

    def _broadcast(self, sender: Connection, message: InboundMessage) -> None:
        count = self.registry.broadcast(
            broadcast_message(message.data, sender.id), exclude_id=sender.id
        )
        logger.debug("Broadcast from %s fanned out to %d connections", sender.id, count)

    def _reply(self, connection: Connection, message: dict | Frame) -> None:
        try:
            self.registry.unicast(connection.id, message)
        except ConnectionNotFoundException:
            logger.debug("Reply to %s dropped: connection gone", connection.id)
        except QueueFullException as exc:
            logger.warning("Reply to %s dropped: %s", connection.id, exc.message)
            add_span_event("ws.queue_full", {"connection_id": connection.id})
