"""Transport adapter between Starlette WebSockets and the connection core.

The core only depends on the Transport protocol: receive a frame, send a frame,
close. StarletteTransport maps ASGI WebSocket events and failures onto it so
Connection and Dispatcher never see framework exceptions.
"""

from __future__ import annotations

import logging
from typing import Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from echohub.domain.exceptions import TransportException

logger = logging.getLogger(__name__)

Frame = str | bytes


class Transport(Protocol):
    """Duplex frame channel wrapped by a Connection."""

    remote_address: str | None

    async def receive(self) -> Frame | None:
        """Return the next inbound frame, or None once the peer has closed.

        Raises:
            TransportException: The channel failed (reset, protocol error).
        """
        ...

    async def send(self, frame: Frame) -> None:
        """Write one frame. Raises TransportException on failure."""
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Send a close frame if the channel is still open."""
        ...


def _format_address(websocket: WebSocket) -> str | None:
    client = websocket.client
    if client is None:
        return None
    return f"{client.host}:{client.port}"


class StarletteTransport:
    """Transport over an accepted (or about to be accepted) Starlette WebSocket."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket
        self.remote_address = _format_address(websocket)

    async def accept(self) -> None:
        """Complete the upgrade handshake."""
        await self._websocket.accept()

    async def receive(self) -> Frame | None:
        try:
            message = await self._websocket.receive()
        except RuntimeError as exc:
            # Starlette refuses receive() after a disconnect was already seen.
            raise TransportException(str(exc)) from exc
        if message["type"] == "websocket.disconnect":
            logger.debug(
                "Peer %s disconnected (code=%s)", self.remote_address, message.get("code")
            )
            return None
        if message.get("text") is not None:
            return message["text"]
        if message.get("bytes") is not None:
            return message["bytes"]
        raise TransportException(f"Unexpected ASGI message type: {message['type']}")

    async def send(self, frame: Frame) -> None:
        try:
            if isinstance(frame, bytes):
                await self._websocket.send_bytes(frame)
            else:
                await self._websocket.send_text(frame)
        except Exception as exc:
            raise TransportException(f"Send failed: {exc}") from exc

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if (
            self._websocket.application_state == WebSocketState.DISCONNECTED
            or self._websocket.client_state == WebSocketState.DISCONNECTED
        ):
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as exc:
            raise TransportException(f"Close failed: {exc}") from exc
