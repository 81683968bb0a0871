"""WebSocket endpoint: single /ws that hands connections to the registry from app.state.

Uses only the registry and dispatcher injected in lifespan; no manual construction.
"""

from fastapi import APIRouter, WebSocket

from echohub.api.v1.dependencies import RegistryDep
from echohub.api.websocket import StarletteTransport
from echohub.schemas.websocket import WebSocketStatusResponse

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Accept, register, then run the inbound loop until either side closes."""
    registry = websocket.app.state.ws_registry
    dispatcher = websocket.app.state.ws_dispatcher
    transport = StarletteTransport(websocket)
    await transport.accept()
    connection = await registry.connect(transport)
    if connection is None:
        return
    await dispatcher.run(connection)


@router.get("/ws/status", response_model=WebSocketStatusResponse)
def websocket_status(registry: RegistryDep) -> WebSocketStatusResponse:
    """Return the number of registered WebSocket connections."""
    return WebSocketStatusResponse(total_connections=registry.connection_count)
