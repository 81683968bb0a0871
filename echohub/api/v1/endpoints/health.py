"""Health check endpoint. Reports liveness and the current connection count."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from echohub.api.v1.dependencies import RegistryDep
from echohub.schemas.health import HealthResponse

router = APIRouter()


@router.get(
    "",
    response_model=HealthResponse,
    responses={503: {"description": "WebSocket registry is shut down", "model": HealthResponse}},
)
def health_check(registry: RegistryDep) -> HealthResponse | JSONResponse:
    """Return UP with the connection count; 503 DOWN once the registry has shut down."""
    status = registry.status()
    if status.up:
        return HealthResponse(status="UP", connections=status.connections)
    return JSONResponse(
        status_code=503,
        content=HealthResponse(status="DOWN", connections=status.connections).model_dump(),
    )
