"""Frame parsing and outbound message construction.

Inbound text frames must decode as a JSON object with a string ``type`` field;
binary frames are passed through untouched. Outbound messages are encoded once
(``encode_frame``) before being fanned out, so every recipient gets the same
immutable frame.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from echohub.api.websocket.transport import Frame
from echohub.domain.enums import MessageKind
from echohub.domain.exceptions import (
    EchoHubException,
    MalformedMessageException,
    MessageTooLargeException,
)
from echohub.schemas.message import ErrorMessage, WireMessage

# Kinds a client may request; anything else falls back to echo.
_ROUTABLE_KINDS = frozenset({MessageKind.PING, MessageKind.ECHO, MessageKind.BROADCAST})


@dataclass(frozen=True)
class InboundMessage:
    """A parsed inbound frame.

    Attributes:
        kind: Routing decision (PING, BROADCAST or ECHO).
        type: The ``type`` tag exactly as the client sent it ("binary" for binary frames).
        data: Decoded ``data`` field, or the raw bytes of a binary frame.
    """

    kind: MessageKind
    type: str
    data: Any = None

    @property
    def is_binary(self) -> bool:
        return isinstance(self.data, bytes) and self.type == "binary"


def frame_size(frame: Frame) -> int:
    """Size of a frame in bytes (UTF-8 for text)."""
    if isinstance(frame, bytes):
        return len(frame)
    return len(frame.encode("utf-8"))


def parse_frame(frame: Frame, *, max_bytes: int, strict: bool = False) -> InboundMessage:
    """Parse one inbound frame into a routable message.

    Args:
        frame: Raw text or binary frame.
        max_bytes: Frames larger than this are rejected (never truncated).
        strict: When True, unknown ``type`` values are malformed instead of echoed.

    Returns:
        InboundMessage with kind PING, BROADCAST or ECHO.

    Raises:
        MessageTooLargeException: Frame exceeds max_bytes.
        MalformedMessageException: Text frame is not a JSON object with a string ``type``.
    """
    size = frame_size(frame)
    if size > max_bytes:
        raise MessageTooLargeException(size, max_bytes)
    if isinstance(frame, bytes):
        return InboundMessage(kind=MessageKind.ECHO, type="binary", data=frame)

    try:
        wire = WireMessage.model_validate_json(frame)
    except ValidationError as exc:
        raise MalformedMessageException(
            "Expected a JSON object with a string 'type' field",
            {"errors": [err["msg"] for err in exc.errors()]},
        ) from exc

    try:
        kind = MessageKind(wire.type)
    except ValueError:
        kind = None
    if kind not in _ROUTABLE_KINDS:
        if strict:
            raise MalformedMessageException(
                f"Unknown message type: {wire.type!r}",
                {"type": wire.type, "allowed": sorted(k.value for k in _ROUTABLE_KINDS)},
            )
        kind = MessageKind.ECHO
    return InboundMessage(kind=kind, type=wire.type, data=wire.data)


def encode_frame(message: dict[str, Any] | Frame) -> Frame:
    """Encode an outbound message once; dicts become JSON text frames."""
    if isinstance(message, (str, bytes)):
        return message
    return json.dumps(message)


def pong_message(data: Any = None) -> dict[str, Any]:
    message: dict[str, Any] = {"type": MessageKind.PONG.value}
    if data is not None:
        message["data"] = data
    return message


def echo_message(data: Any) -> dict[str, Any]:
    return {"type": MessageKind.ECHO.value, "data": data}


def broadcast_message(data: Any, sender_id: str) -> dict[str, Any]:
    return {"type": MessageKind.BROADCAST.value, "data": data, "from": sender_id}


def welcome_message(connection_id: str, text: str) -> dict[str, Any]:
    return {"type": MessageKind.WELCOME.value, "data": text, "connection_id": connection_id}


def error_message(exc: EchoHubException) -> dict[str, Any]:
    """Build the reply sent to a client whose frame could not be handled."""
    return ErrorMessage(
        type=MessageKind.MALFORMED.value,
        error=exc.error_code,
        message=exc.message,
        details=exc.details,
    ).model_dump()
