"""Health check API schemas."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response for GET /health (liveness plus current connection count)."""

    status: str = Field(default="UP", description="UP or DOWN")
    connections: int = Field(default=0, description="Currently registered WebSocket connections")
