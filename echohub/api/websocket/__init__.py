"""WebSocket core: connections, registry, dispatcher and transport adapter.

Used by the WebSocket endpoint; the registry and dispatcher live on app.state.
"""

from echohub.api.websocket.connection import Connection
from echohub.api.websocket.dispatcher import Dispatcher
from echohub.api.websocket.registry import ConnectionRegistry, RegistryStatus
from echohub.api.websocket.transport import StarletteTransport, Transport

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Dispatcher",
    "RegistryStatus",
    "StarletteTransport",
    "Transport",
]
