"""Pydantic request/response schemas for the API."""

from echohub.schemas.health import HealthResponse
from echohub.schemas.message import ErrorMessage, WireMessage
from echohub.schemas.websocket import WebSocketStatusResponse

__all__ = [
    "ErrorMessage",
    "HealthResponse",
    "WebSocketStatusResponse",
    "WireMessage",
]
